"""
Tests for the tree mutation engine: create / rename / delete / refresh,
the path-rewrite cascade, selection bookkeeping and the file operations
used by the editor and the patch applier.
"""

import asyncio
from typing import List, Optional

from editree.core.errors import ErrorKind
from editree.core.mutation_engine import (
    MutationStage,
    MutationStatus,
    Prompter,
    TreeMutationEngine,
)
from editree.storage.local import LocalDirectoryHandle
from editree.storage.memory import MemoryDirectoryHandle, MemoryStore
from editree.workspace.node import NodeKind
from editree.workspace.workspace import Workspace


def run_async(coro):
    return asyncio.run(coro)


class FakePrompter(Prompter):
    """Scripted answers; records every prompt it was shown."""

    def __init__(self, names: Optional[List[Optional[str]]] = None, confirms: Optional[List[bool]] = None):
        self.names = list(names or [])
        self.confirms = list(confirms or [])
        self.asked: List[str] = []

    async def ask_name(self, message, default=None):
        self.asked.append(message)
        return self.names.pop(0) if self.names else None

    async def confirm(self, message):
        self.asked.append(message)
        return self.confirms.pop(0) if self.confirms else False


def make_engine(store=None, prompter=None, strict_rename=False):
    root = MemoryDirectoryHandle("proj", store)
    root.add_file("src/index.ts", "export {}")
    ws = run_async(Workspace.open(root))
    engine = TreeMutationEngine(ws, prompter=prompter, strict_rename=strict_rename)
    return root, ws, engine


def child_names(ws, path):
    return [n.name for n in ws.children_of(path)]


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def test_create_file_in_collapsed_directory():
    root, ws, engine = make_engine()

    result = run_async(engine.create(NodeKind.FILE, "b.ts", "proj/src"))

    assert result.status is MutationStatus.SUCCESS
    assert result.path == "proj/src/b.ts"
    assert child_names(ws, "proj/src") == ["b.ts", "index.ts"]
    node = ws.find("proj/src/b.ts")
    assert node.kind is NodeKind.FILE
    assert node.content is None
    assert root.lookup("src/b.ts").data == ""


def test_create_directory_is_loaded_and_empty():
    root, ws, engine = make_engine()

    result = run_async(engine.create("directory", "lib", "proj"))
    assert result.ok
    assert child_names(ws, "proj") == ["lib", "src"]
    assert ws.find("proj/lib").children == []
    assert ws.children_of("proj/lib") == []
    assert "proj/lib" not in root.store.listings


def test_reconcile_lists_only_the_parent_directory():
    root, ws, engine = make_engine()
    root.add_file("a/b/c/deep.txt", "")
    run_async(engine.refresh("proj"))
    run_async(engine.reveal("proj/a/b/c"))
    root.store.listings.clear()

    assert run_async(engine.create(NodeKind.FILE, "new.txt", "proj")).ok

    assert root.store.listings == ["proj"]
    # expanded subtrees survive the reconcile
    assert child_names(ws, "proj/a/b/c") == ["deep.txt"]
    assert ws.find("proj/a/b/c/deep.txt").path == "proj/a/b/c/deep.txt"


def test_create_duplicate_fails_preflight_and_leaves_tree_unchanged():
    root, ws, engine = make_engine()
    run_async(engine.create(NodeKind.FILE, "b.ts", "proj/src"))
    calls_before = list(root.store.calls)
    before = [n.path for n in ws.iter_nodes()]

    result = run_async(engine.create(NodeKind.FILE, "b.ts", "proj/src"))

    assert result.status is MutationStatus.FAILURE
    assert result.error_kind is ErrorKind.ALREADY_EXISTS
    assert result.stage is MutationStage.PREFLIGHT
    assert [n.path for n in ws.iter_nodes()] == before
    assert root.store.calls == calls_before


def test_create_collides_with_other_kind():
    _, _, engine = make_engine()
    result = run_async(engine.create(NodeKind.FILE, "src", "proj"))
    assert result.error_kind is ErrorKind.ALREADY_EXISTS


def test_create_rejects_invalid_names_without_storage_calls():
    root, _, engine = make_engine()
    for name in ("", "   ", "a/b", "a\\b", "..", "."):
        result = run_async(engine.create(NodeKind.FILE, name, "proj"))
        assert result.error_kind is ErrorKind.INVALID_NAME, name
        assert result.stage is MutationStage.VALIDATE
    assert root.store.calls == []


def test_create_in_missing_parent_is_not_found():
    _, _, engine = make_engine()
    result = run_async(engine.create(NodeKind.FILE, "a.ts", "proj/nowhere"))
    assert result.error_kind is ErrorKind.NOT_FOUND


def test_create_with_revoked_grant_reports_permission_denied():
    root, ws, engine = make_engine()
    root.store.granted = False

    result = run_async(engine.create(NodeKind.FILE, "b.ts", "proj"))

    assert result.status is MutationStatus.FAILURE
    assert result.error_kind is ErrorKind.PERMISSION_DENIED
    assert result.stage is MutationStage.STORAGE_MUTATE
    assert child_names(ws, "proj") == ["src"]


def test_create_then_refresh_yields_exactly_one_child():
    _, ws, engine = make_engine()
    run_async(engine.create(NodeKind.DIRECTORY, "assets", "proj"))
    run_async(engine.refresh("proj"))
    assert [n.name for n in ws.children_of("proj")].count("assets") == 1
    assert ws.find("proj/assets").kind is NodeKind.DIRECTORY


# ---------------------------------------------------------------------------
# Rename
# ---------------------------------------------------------------------------

def test_rename_directory_cascades_paths_and_selection():
    root, ws, engine = make_engine()
    run_async(engine.create(NodeKind.FILE, "b.ts", "proj/src"))
    run_async(engine.create(NodeKind.FILE, "top.txt", "proj"))
    run_async(engine.open_file("proj/src/b.ts"))

    result = run_async(engine.rename("proj/src", "lib"))

    assert result.status is MutationStatus.SUCCESS
    assert result.path == "proj/lib"
    assert child_names(ws, "proj") == ["lib", "top.txt"]
    assert child_names(ws, "proj/lib") == ["b.ts", "index.ts"]
    assert ws.find("proj/lib/index.ts").id == "proj/lib/index.ts"
    assert ws.find("proj/src") is None
    assert ws.find("proj/top.txt").path == "proj/top.txt"
    assert ws.selection.path == "proj/lib/b.ts"
    assert root.lookup("lib/b.ts") is not None


def test_rename_keeps_loaded_content_and_unsaved_buffer():
    _, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    ws.edit("unsaved")

    run_async(engine.rename("proj/src/index.ts", "main.ts"))

    assert ws.find("proj/src/main.ts").content == "export {}"
    assert ws.selection.path == "proj/src/main.ts"
    assert ws.selection.buffered_content == "unsaved"
    assert ws.selection.dirty


def test_rename_leaves_unrelated_and_ancestor_selection():
    _, ws, engine = make_engine()
    run_async(engine.create(NodeKind.FILE, "other.ts", "proj"))
    run_async(engine.open_file("proj/src"))

    run_async(engine.rename("proj/src/index.ts", "main.ts"))
    assert ws.selection.path == "proj/src"

    run_async(engine.open_file("proj/other.ts"))
    run_async(engine.rename("proj/src", "lib"))
    assert ws.selection.path == "proj/other.ts"


def test_rename_root_is_not_allowed_and_touches_no_storage():
    root, ws, engine = make_engine()
    result = run_async(engine.rename("proj", "other"))
    assert result.status is MutationStatus.FAILURE
    assert result.error_kind is ErrorKind.NOT_ALLOWED
    assert root.store.calls == []
    assert ws.root_name == "proj"


def test_rename_onto_existing_sibling_fails_preflight():
    root, ws, engine = make_engine()
    run_async(engine.create(NodeKind.FILE, "a.ts", "proj/src"))
    result = run_async(engine.rename("proj/src/a.ts", "index.ts"))
    assert result.error_kind is ErrorKind.ALREADY_EXISTS
    assert result.stage is MutationStage.PREFLIGHT
    assert child_names(ws, "proj/src") == ["a.ts", "index.ts"]


def test_rename_of_unknown_node_is_not_found():
    _, _, engine = make_engine()
    result = run_async(engine.rename("proj/missing.ts", "x.ts"))
    assert result.error_kind is ErrorKind.NOT_FOUND


def test_rename_without_atomic_move_degrades():
    root, ws, engine = make_engine(store=MemoryStore(supports_move=False))
    run_async(engine.open_file("proj/src/index.ts"))

    result = run_async(engine.rename("proj/src/index.ts", "main.ts"))

    assert result.status is MutationStatus.DEGRADED
    assert result.error_kind is ErrorKind.DEGRADED_RENAME
    assert result.ok
    assert result.path == "proj/src/index.ts"
    assert child_names(ws, "proj/src") == ["index.ts"]
    assert ws.selection.path == "proj/src/index.ts"


def test_strict_rename_fails_without_atomic_move():
    root, ws, engine = make_engine(store=MemoryStore(supports_move=False), strict_rename=True)
    result = run_async(engine.rename("proj/src", "lib"))
    assert result.status is MutationStatus.FAILURE
    assert result.error_kind is ErrorKind.DEGRADED_RENAME
    assert result.stage is MutationStage.STORAGE_MUTATE
    assert root.lookup("src") is not None
    assert ws.find("proj/src") is not None


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

def test_delete_selected_file_clears_selection():
    root, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))

    result = run_async(engine.delete("proj/src/index.ts", confirmed=True))

    assert result.status is MutationStatus.SUCCESS
    assert ws.selection is None
    assert ws.children_of("proj/src") == []
    assert root.lookup("src/index.ts") is None


def test_delete_ancestor_of_selection_clears_it():
    _, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    run_async(engine.delete("proj/src", confirmed=True))
    assert ws.selection is None
    assert ws.tree == []


def test_delete_unrelated_path_keeps_selection():
    _, ws, engine = make_engine()
    run_async(engine.create(NodeKind.FILE, "x.txt", "proj"))
    run_async(engine.open_file("proj/src/index.ts"))
    run_async(engine.delete("proj/x.txt", confirmed=True))
    assert ws.selection.path == "proj/src/index.ts"


def test_delete_root_is_not_allowed():
    root, _, engine = make_engine(prompter=FakePrompter(confirms=[True]))
    result = run_async(engine.delete("proj"))
    assert result.error_kind is ErrorKind.NOT_ALLOWED
    assert root.store.calls == []


def test_delete_asks_for_confirmation():
    prompter = FakePrompter(confirms=[False, True])
    root, ws, engine = make_engine(prompter=prompter)

    declined = run_async(engine.delete("proj/src"))
    assert declined.status is MutationStatus.ABORTED
    assert declined.error_kind is ErrorKind.ABORTED
    assert root.lookup("src") is not None
    assert "everything in it" in prompter.asked[0]

    accepted = run_async(engine.delete("proj/src"))
    assert accepted.status is MutationStatus.SUCCESS
    assert root.lookup("src") is None


def test_delete_without_prompter_is_aborted():
    root, _, engine = make_engine()
    result = run_async(engine.delete("proj/src"))
    assert result.status is MutationStatus.ABORTED
    assert root.store.calls == []


def test_delete_of_entry_missing_from_tree_resolves_kind_from_storage():
    root, ws, engine = make_engine()
    root.add_file("late.txt", "")
    result = run_async(engine.delete("proj/late.txt", confirmed=True))
    assert result.ok
    assert root.lookup("late.txt") is None


# ---------------------------------------------------------------------------
# Refresh / expand
# ---------------------------------------------------------------------------

def test_refresh_reattaches_content_by_path():
    root, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    old_node = ws.find("proj/src/index.ts")
    root.add_file("src/extra.ts", "")

    result = run_async(engine.refresh("proj/src"))

    assert result.ok
    assert result.data == {"children": 2}
    new_node = ws.find("proj/src/index.ts")
    assert new_node is not old_node
    assert new_node.content == "export {}"
    assert ws.find("proj/src/extra.ts").content is None


def test_refresh_of_file_fails():
    _, _, engine = make_engine()
    run_async(engine.expand("proj/src"))
    result = run_async(engine.refresh("proj/src/index.ts"))
    assert result.status is MutationStatus.FAILURE
    assert result.error_kind is ErrorKind.NOT_FOUND


def test_expand_is_idempotent():
    root, ws, engine = make_engine()
    assert run_async(engine.expand("proj/src")).ok
    root.add_file("src/extra.ts", "")
    run_async(engine.expand("proj/src"))
    assert child_names(ws, "proj/src") == ["index.ts"]


# ---------------------------------------------------------------------------
# Editor: open / save
# ---------------------------------------------------------------------------

def test_open_file_reads_once_and_caches():
    root, ws, engine = make_engine()
    result = run_async(engine.open_file("proj/src/index.ts"))
    assert result.ok
    assert ws.selection.buffered_content == "export {}"
    root.lookup("src/index.ts").data = "changed on disk"
    run_async(engine.open_file("proj/src/index.ts"))
    assert ws.selection.buffered_content == "export {}"


def test_open_directory_selects_with_empty_buffer():
    _, ws, engine = make_engine()
    run_async(engine.open_file("proj/src"))
    assert ws.selection.kind is NodeKind.DIRECTORY
    assert ws.selection.buffered_content == ""


def test_save_active_writes_buffer():
    root, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    ws.edit("export const a = 1;")

    result = run_async(engine.save_active())

    assert result.ok
    assert root.lookup("src/index.ts").data == "export const a = 1;"
    assert ws.find("proj/src/index.ts").content == "export const a = 1;"
    assert not ws.selection.dirty


def test_save_without_selection_or_on_directory_fails():
    _, ws, engine = make_engine()
    assert run_async(engine.save_active()).error_kind is ErrorKind.NOT_FOUND
    run_async(engine.open_file("proj/src"))
    assert run_async(engine.save_active()).error_kind is ErrorKind.NOT_ALLOWED


def test_save_failure_keeps_buffer_dirty():
    root, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    ws.edit("new")
    root.store.fail_writes = True

    result = run_async(engine.save_active())

    assert result.error_kind is ErrorKind.STORAGE_FAILURE
    assert ws.selection.dirty
    assert root.lookup("src/index.ts").data == "export {}"


# ---------------------------------------------------------------------------
# Create-or-overwrite
# ---------------------------------------------------------------------------

def test_write_file_materializes_intermediate_directories():
    root, ws, engine = make_engine()

    result = run_async(engine.write_file("proj/a/b/c.txt", "deep"))

    assert result.ok
    assert result.data == {"created": True}
    assert root.lookup("a/b/c.txt").data == "deep"
    assert ws.find("proj/a/b/c.txt").content == "deep"
    assert child_names(ws, "proj") == ["a", "src"]


def test_write_file_overwrites_and_replaces_open_buffer():
    root, ws, engine = make_engine()
    run_async(engine.open_file("proj/src/index.ts"))
    ws.edit("local edits")

    result = run_async(engine.write_file("proj/src/index.ts", "from patch"))

    assert result.data == {"created": False}
    assert root.lookup("src/index.ts").data == "from patch"
    assert ws.selection.buffered_content == "from patch"
    assert not ws.selection.dirty


def test_write_file_onto_directory_fails():
    _, _, engine = make_engine()
    result = run_async(engine.write_file("proj/src", "x"))
    assert result.error_kind is ErrorKind.ALREADY_EXISTS


# ---------------------------------------------------------------------------
# Prompted operations
# ---------------------------------------------------------------------------

def test_prompt_create_opens_new_file():
    _, ws, engine = make_engine(prompter=FakePrompter(names=["new.ts"]))
    result = run_async(engine.prompt_create(NodeKind.FILE, "proj/src"))
    assert result.ok
    assert ws.selection.path == "proj/src/new.ts"


def test_prompt_create_cancelled_is_aborted():
    root, _, engine = make_engine(prompter=FakePrompter(names=[None]))
    result = run_async(engine.prompt_create(NodeKind.DIRECTORY, "proj"))
    assert result.status is MutationStatus.ABORTED
    assert root.store.calls == []


def test_prompt_create_empty_name_is_invalid():
    _, _, engine = make_engine(prompter=FakePrompter(names=[""]))
    result = run_async(engine.prompt_create(NodeKind.FILE, "proj"))
    assert result.error_kind is ErrorKind.INVALID_NAME


def test_prompt_rename_unchanged_name_is_aborted():
    root, _, engine = make_engine(prompter=FakePrompter(names=["src", "lib"]))
    assert run_async(engine.prompt_rename("proj/src")).status is MutationStatus.ABORTED
    assert root.store.calls == []
    assert run_async(engine.prompt_rename("proj/src")).path == "proj/lib"


# ---------------------------------------------------------------------------
# End-to-end scenario (memory and local storage)
# ---------------------------------------------------------------------------

def _scenario(ws, engine):
    created = run_async(engine.create(NodeKind.FILE, "b.ts", "proj/src"))
    assert created.ok
    assert ws.find("proj/src/b.ts").content is None
    run_async(engine.open_file("proj/src/b.ts"))
    assert ws.selection.buffered_content == ""

    renamed = run_async(engine.rename("proj/src", "lib"))
    assert renamed.status is MutationStatus.SUCCESS
    assert sorted(n.path for n in ws.find("proj/lib").children) == ["proj/lib/b.ts", "proj/lib/index.ts"]
    assert ws.selection.path == "proj/lib/b.ts"

    deleted = run_async(engine.delete("proj/lib", confirmed=True))
    assert deleted.ok
    assert ws.tree == []
    assert ws.selection is None


def test_scenario_in_memory():
    _, ws, engine = make_engine()
    _scenario(ws, engine)


def test_scenario_on_disk(tmp_path):
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "src" / "index.ts").write_text("export {}", encoding="utf-8")
    ws = run_async(Workspace.open(LocalDirectoryHandle(root)))
    engine = TreeMutationEngine(ws)

    _scenario(ws, engine)

    assert list(root.iterdir()) == []
