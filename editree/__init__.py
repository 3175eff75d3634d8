"""editree: an editable workspace tree with an AI patch assistant."""

__version__ = "0.1.0"
