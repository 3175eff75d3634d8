"""
Validation Service

Service class for name and path validation.
"""

from editree.core.errors import InvalidNameError

_SEPARATORS = ("/", "\\")
_RESERVED = (".", "..")


class ValidationService:
    """Validates entry names for create and rename."""

    def validate_entry_name(self, name: str) -> str:
        """
        Validate a single entry name.

        Args:
            name: Name typed by the user or produced by a patch

        Returns:
            The name, unchanged

        Raises:
            InvalidNameError: If the name is empty, blank, a relative
                reference or contains a path separator
        """
        if name is None or not name.strip():
            raise InvalidNameError("Name must not be empty")
        if any(sep in name for sep in _SEPARATORS):
            raise InvalidNameError(f"Name must not contain a path separator: {name!r}")
        if name in _RESERVED:
            raise InvalidNameError(f"Reserved name: {name!r}")
        return name
