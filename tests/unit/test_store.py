"""Tests for BookmarkStore: mutations, cycle guard, loading and persistence."""

import random
from collections.abc import Callable
from typing import Any

import pytest

from bookmark_tree.core.store import BookmarkStore, find_cycle
from bookmark_tree.errors import PersistenceError
from bookmark_tree.models.bookmark import Folder, ItemKind, ItemRef, Location, MoveOutcome
from tests.unit.fakes import (
    CountingIds,
    FailingBlobStore,
    FakeBatchBlobStore,
    FakeBlobStore,
    SampleTree,
)

LOC = Location("/project/a.py", 1)


def _folders_by_id(store: BookmarkStore) -> dict[str, Folder]:
    return {f.id: f for f in store.get_all_folders()}


# --- Creation and ordering ---


def test_first_item_gets_sort_order_zero(store: BookmarkStore) -> None:
    bookmark_id = store.add_bookmark(LOC, "first")
    bookmark = store.get_bookmark(bookmark_id)
    assert bookmark is not None
    assert bookmark.sort_order == 0


def test_sort_orders_increase_across_containers(
    store: BookmarkStore, sample: SampleTree
) -> None:
    """New items sort after every existing item, whatever their container."""
    orders = [
        store.get_folder(sample.work).sort_order,  # type: ignore[union-attr]
        store.get_bookmark(sample.x).sort_order,  # type: ignore[union-attr]
        store.get_folder(sample.later).sort_order,  # type: ignore[union-attr]
        store.get_bookmark(sample.y).sort_order,  # type: ignore[union-attr]
        store.get_bookmark(sample.z).sort_order,  # type: ignore[union-attr]
    ]
    assert orders == [0, 1, 2, 3, 4]


def test_add_bookmark_persists_record_shape(
    store: BookmarkStore, blobs: FakeBlobStore, sample: SampleTree
) -> None:
    bookmarks = {b["id"]: b for b in blobs.get("bookmarks")}
    assert bookmarks[sample.x] == {
        "id": sample.x,
        "name": "entry point",
        "location": {"documentRef": "/project/src/main.py", "line": 10, "column": 4},
        "folderId": sample.work,
        "sortOrder": 1,
    }
    # Root items carry no folder reference.
    assert "folderId" not in bookmarks[sample.z]

    folders = {f["id"]: f for f in blobs.get("bookmarkFolders")}
    assert folders[sample.later] == {
        "id": sample.later,
        "name": "Later",
        "parentId": sample.work,
        "sortOrder": 2,
    }
    assert "parentId" not in folders[sample.work]


def test_add_bookmark_to_missing_folder_falls_back_to_root(store: BookmarkStore) -> None:
    bookmark_id = store.add_bookmark(LOC, "orphan", "no-such-folder")
    bookmark = store.get_bookmark(bookmark_id)
    assert bookmark is not None
    assert bookmark.folder_id is None


def test_create_folder_under_missing_parent_falls_back_to_root(store: BookmarkStore) -> None:
    folder_id = store.create_folder("Loose", "no-such-folder")
    assert store.get_folder(folder_id).parent_id is None  # type: ignore[union-attr]


def test_ids_are_unique_even_if_factory_repeats() -> None:
    ids = iter(["a", "a", "b"])
    store = BookmarkStore(FakeBlobStore(), id_factory=lambda: next(ids))
    folder_id = store.create_folder("F")
    bookmark_id = store.add_bookmark(LOC, "B")
    assert (folder_id, bookmark_id) == ("a", "b")


def test_default_ids_are_distinct(blobs: FakeBlobStore) -> None:
    store = BookmarkStore(blobs)
    ids = {store.add_bookmark(LOC, f"b{i}") for i in range(20)}
    assert len(ids) == 20


# --- Remove / rename ---


def test_remove_bookmark(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.remove_bookmark(sample.x) is True
    assert store.get_bookmark(sample.x) is None
    assert len(store) == 4


def test_remove_missing_bookmark_is_noop(
    store: BookmarkStore, blobs: FakeBlobStore, sample: SampleTree
) -> None:
    writes_before = len(blobs.set_calls)
    assert store.remove_bookmark("missing") is False
    assert len(blobs.set_calls) == writes_before
    assert len(store) == 5


def test_rename_bookmark_and_folder(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.rename_bookmark(sample.x, "main") is True
    assert store.rename_folder(sample.work, "Job") is True
    assert store.get_bookmark(sample.x).name == "main"  # type: ignore[union-attr]
    assert store.get_folder(sample.work).name == "Job"  # type: ignore[union-attr]


def test_rename_missing_items_writes_nothing(
    store: BookmarkStore, blobs: FakeBlobStore, sample: SampleTree
) -> None:
    writes_before = len(blobs.set_calls)
    assert store.rename_bookmark("missing", "x") is False
    assert store.rename_folder("missing", "x") is False
    # A folder id is not a bookmark id and vice versa.
    assert store.rename_bookmark(sample.work, "x") is False
    assert store.rename_folder(sample.x, "x") is False
    assert len(blobs.set_calls) == writes_before


# --- Moves ---


def test_move_bookmark(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.move_bookmark(sample.z, sample.later) == MoveOutcome.MOVED
    assert store.container_of(sample.z) == sample.later
    assert store.move_bookmark(sample.z) == MoveOutcome.MOVED
    assert store.container_of(sample.z) is None


def test_move_bookmark_outcomes(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.move_bookmark("missing", sample.work) == MoveOutcome.NOT_FOUND
    assert store.move_bookmark(sample.z, "missing") == MoveOutcome.TARGET_NOT_FOUND
    assert store.container_of(sample.z) is None


def test_move_folder_keeps_subtree(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.move_folder(sample.later) == MoveOutcome.MOVED
    assert store.container_of(sample.later) is None
    assert store.container_of(sample.y) == sample.later


def test_move_folder_into_descendant_is_rejected(store: BookmarkStore) -> None:
    """A -> B -> C: moving A under C would close a cycle."""
    a = store.create_folder("A")
    b = store.create_folder("B", a)
    c = store.create_folder("C", b)

    assert store.move_folder(a, c) == MoveOutcome.CYCLE_REJECTED
    assert store.container_of(a) is None
    assert store.move_folder(a, b) == MoveOutcome.CYCLE_REJECTED
    assert store.container_of(a) is None


def test_move_folder_into_itself_is_rejected(
    store: BookmarkStore, blobs: FakeBlobStore, sample: SampleTree
) -> None:
    writes_before = len(blobs.set_calls)
    assert store.move_folder(sample.work, sample.work) == MoveOutcome.CYCLE_REJECTED
    assert store.container_of(sample.work) is None
    assert len(blobs.set_calls) == writes_before


def test_move_folder_outcomes(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.move_folder("missing") == MoveOutcome.NOT_FOUND
    assert store.move_folder(sample.later, "missing") == MoveOutcome.TARGET_NOT_FOUND
    # Bookmarks are not valid move targets.
    assert store.move_folder(sample.later, sample.x) == MoveOutcome.TARGET_NOT_FOUND


def test_random_moves_never_create_cycles() -> None:
    store = BookmarkStore(FakeBlobStore(), id_factory=CountingIds("f"))
    folder_ids = [store.create_folder(f"F{i}") for i in range(8)]
    rng = random.Random(1234)

    for _ in range(300):
        folder_id = rng.choice(folder_ids)
        target = rng.choice([*folder_ids, None])
        store.move_folder(folder_id, target)
        assert find_cycle(_folders_by_id(store)) is None


# --- Delete folder ---


def test_delete_folder_promotes_children(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.delete_folder(sample.work) is True
    assert store.get_folder(sample.work) is None
    assert store.container_of(sample.x) is None
    assert store.container_of(sample.later) is None
    # Grandchildren stay where they are.
    assert store.container_of(sample.y) == sample.later


def test_delete_nested_folder_promotes_to_its_parent(
    store: BookmarkStore, sample: SampleTree
) -> None:
    assert store.delete_folder(sample.later) is True
    assert store.container_of(sample.y) == sample.work
    assert len(store) == 4


def test_delete_missing_folder(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.delete_folder("missing") is False
    assert store.delete_folder(sample.x) is False
    assert len(store) == 5


# --- Queries ---


def test_getters_return_copies(store: BookmarkStore, sample: SampleTree) -> None:
    bookmark = store.get_bookmark(sample.x)
    assert bookmark is not None
    bookmark.name = "changed"
    bookmark.folder_id = None
    fresh = store.get_bookmark(sample.x)
    assert fresh is not None
    assert fresh.name == "entry point"
    assert fresh.folder_id == sample.work

    for folder in store.get_all_folders():
        folder.parent_id = "tampered"
    assert store.container_of(sample.later) == sample.work


def test_get_bookmarks_for_file(store: BookmarkStore, sample: SampleTree) -> None:
    found = store.get_bookmarks_for_file("/project/src/main.py")
    assert [b.id for b in found] == [sample.x]
    assert store.get_bookmarks_for_file("/elsewhere.py") == []


def test_find_item(store: BookmarkStore, sample: SampleTree) -> None:
    assert store.find_item(sample.x) == ItemRef(ItemKind.BOOKMARK, sample.x)
    assert store.find_item(sample.work) == ItemRef(ItemKind.FOLDER, sample.work)
    assert store.find_item("missing") is None


def test_container_of_unknown_id_raises(store: BookmarkStore) -> None:
    with pytest.raises(KeyError):
        store.container_of("missing")


def test_sibling_group(store: BookmarkStore, sample: SampleTree) -> None:
    group = store.get_sibling_group(sample.later)
    assert [(s.id, s.kind, s.sort_order) for s in group] == [
        (sample.x, ItemKind.BOOKMARK, 1),
        (sample.later, ItemKind.FOLDER, 2),
    ]
    assert store.get_sibling_group("missing") == []


# --- Loading ---


def test_state_survives_reload(
    blobs: FakeBlobStore, store: BookmarkStore, sample: SampleTree
) -> None:
    reloaded = BookmarkStore(blobs)
    assert len(reloaded) == 5
    assert reloaded.get_bookmark(sample.y) == store.get_bookmark(sample.y)
    assert reloaded.get_folder(sample.later) == store.get_folder(sample.later)


def test_clean_load_writes_nothing(
    blobs: FakeBlobStore, store: BookmarkStore, sample: SampleTree
) -> None:
    writes_before = len(blobs.set_calls)
    BookmarkStore(blobs)
    assert len(blobs.set_calls) == writes_before


def test_load_moves_dangling_references_to_root() -> None:
    blobs = FakeBlobStore(
        {
            "bookmarkFolders": [{"id": "f1", "name": "A", "parentId": "gone", "sortOrder": 0}],
            "bookmarks": [
                {
                    "id": "b1",
                    "name": "n",
                    "location": {"documentRef": "/a.py", "line": 0, "column": 0},
                    "folderId": "also-gone",
                    "sortOrder": 1,
                }
            ],
        }
    )
    store = BookmarkStore(blobs)
    assert store.container_of("f1") is None
    assert store.container_of("b1") is None
    # The repaired state is written back.
    assert "parentId" not in blobs.get("bookmarkFolders")[0]
    assert "folderId" not in blobs.get("bookmarks")[0]


def test_load_breaks_parent_cycles() -> None:
    blobs = FakeBlobStore(
        {
            "bookmarkFolders": [
                {"id": "f1", "name": "A", "parentId": "f2", "sortOrder": 0},
                {"id": "f2", "name": "B", "parentId": "f1", "sortOrder": 1},
            ],
        }
    )
    store = BookmarkStore(blobs)
    assert find_cycle(_folders_by_id(store)) is None
    assert store.container_of("f2") is None
    assert store.container_of("f1") == "f2"
    assert blobs.set_calls


def test_load_gives_unordered_records_fresh_sort_orders() -> None:
    blobs = FakeBlobStore(
        {
            "bookmarkFolders": [{"id": "f1", "name": "A", "sortOrder": 5}],
            "bookmarks": [
                {"id": "b1", "name": "one", "location": {"documentRef": "/a.py", "line": 0}},
                {"id": "b2", "name": "two", "location": {"documentRef": "/a.py", "line": 1}},
            ],
        }
    )
    store = BookmarkStore(blobs)
    assert store.get_bookmark("b1").sort_order == 6  # type: ignore[union-attr]
    assert store.get_bookmark("b2").sort_order == 7  # type: ignore[union-attr]
    assert [b["sortOrder"] for b in blobs.get("bookmarks")] == [6, 7]


def test_load_drops_malformed_and_duplicate_records() -> None:
    good = {
        "id": "b1",
        "name": "ok",
        "location": {"documentRef": "/a.py", "line": 0},
        "sortOrder": 0,
    }
    blobs = FakeBlobStore(
        {
            "bookmarks": [good, {"name": 3}, {**good, "name": "dup"}, "not a record"],
            "bookmarkFolders": [{"id": "b1", "name": "clash", "sortOrder": 1}],
        }
    )
    store = BookmarkStore(blobs)
    # The folder claims b1 first, so every bookmark record is dropped.
    assert store.find_item("b1") == ItemRef(ItemKind.FOLDER, "b1")
    assert store.get_all_bookmarks() == []
    assert blobs.get("bookmarks") == []


def test_load_from_empty_blobs(blobs: FakeBlobStore) -> None:
    store = BookmarkStore(blobs)
    assert len(store) == 0
    assert blobs.set_calls == []


# --- Persistence ---


def test_every_mutation_rewrites_both_blobs(store: BookmarkStore, blobs: FakeBlobStore) -> None:
    folder_id = store.create_folder("F")
    assert blobs.set_calls == ["bookmarks", "bookmarkFolders"]
    store.move_folder(folder_id)
    assert blobs.set_calls[-2:] == ["bookmarks", "bookmarkFolders"]
    assert len(blobs.set_calls) == 4


def test_persistence_failure_raises() -> None:
    store = BookmarkStore(FailingBlobStore())
    with pytest.raises(PersistenceError, match="disk full"):
        store.add_bookmark(LOC, "lost")
    assert len(store) == 0
    assert store.get_all_bookmarks() == []


def _state(store: BookmarkStore) -> tuple[list[Any], list[Any]]:
    data = store.export_bookmarks()
    return data["bookmarks"], data["folders"]


def _reopen_failing(blobs: FakeBlobStore, fail_on: str | None = None) -> BookmarkStore:
    """Load the saved state into a store whose next writes fail."""
    saved = {key: blobs.get(key) for key in ("bookmarks", "bookmarkFolders")}
    return BookmarkStore(FailingBlobStore(saved, fail_on=fail_on))


@pytest.mark.parametrize("fail_on", [None, "bookmarkFolders"])
@pytest.mark.parametrize(
    "mutate",
    [
        lambda s, t: s.rename_bookmark(t.x, "renamed"),
        lambda s, t: s.remove_bookmark(t.y),
        lambda s, t: s.move_bookmark(t.z, t.later),
        lambda s, t: s.create_folder("New", t.work),
        lambda s, t: s.rename_folder(t.work, "Play"),
        lambda s, t: s.delete_folder(t.later),
        lambda s, t: s.move_folder(t.later),
        lambda s, t: s.reorder_by_splice(t.z, 1, 0),
    ],
    ids=["rename", "remove", "move", "mkdir", "rename-folder", "rmdir", "mv", "splice"],
)
def test_failed_write_rolls_back_state(
    blobs: FakeBlobStore,
    store: BookmarkStore,
    sample: SampleTree,
    mutate: Callable[[BookmarkStore, SampleTree], object],
    fail_on: str | None,
) -> None:
    failing = _reopen_failing(blobs, fail_on)
    before = _state(failing)
    with pytest.raises(PersistenceError, match="disk full"):
        mutate(failing, sample)
    assert _state(failing) == before


def test_store_keeps_working_after_failed_write(
    blobs: FakeBlobStore, store: BookmarkStore, sample: SampleTree
) -> None:
    failing = _reopen_failing(blobs)
    with pytest.raises(PersistenceError):
        failing.delete_folder(sample.work)

    assert failing.container_of(sample.later) == sample.work
    assert [item.id for item in failing.get_sibling_group(sample.x)] == [sample.x, sample.later]


def test_batch_store_gets_one_write_per_mutation() -> None:
    blobs = FakeBatchBlobStore()
    store = BookmarkStore(blobs, id_factory=CountingIds())
    folder_id = store.create_folder("F")
    store.add_bookmark(LOC, "a", folder_id)
    assert blobs.batch_calls == [["bookmarks", "bookmarkFolders"]] * 2
    assert blobs.set_calls == []
    assert blobs.get("bookmarks")[0]["folderId"] == folder_id


def test_failed_batch_write_rolls_back() -> None:
    store = BookmarkStore(FakeBatchBlobStore(fail=True))
    with pytest.raises(PersistenceError, match="disk full"):
        store.create_folder("F")
    assert store.get_all_folders() == []
