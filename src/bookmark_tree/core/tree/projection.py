"""Tree projection: ordered children, breadcrumbs, and drag-and-drop resolution.

Everything here reads the store; writes go through apply_intent(), which
only calls store operations.
"""

from loguru import logger

from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.models.bookmark import (
    DisplayItem,
    DropPosition,
    Folder,
    ItemKind,
    ItemRef,
    MoveOutcome,
)
from bookmark_tree.models.intent import MoveIntent, MutationIntent, ReorderIntent


def children_of(store: BookmarkStore, container_id: str | None = None) -> list[DisplayItem]:
    """Get the direct children of a folder (None = root), ordered by sort_order.

    Folders and bookmarks interleave in one order; ties keep folders first.
    """
    items = [
        DisplayItem(kind=ItemKind.FOLDER, record=f)
        for f in store.get_all_folders()
        if f.parent_id == container_id
    ]
    items += [
        DisplayItem(kind=ItemKind.BOOKMARK, record=b)
        for b in store.get_all_bookmarks()
        if b.folder_id == container_id
    ]
    return sorted(items, key=lambda item: item.sort_order)


def get_breadcrumbs(store: BookmarkStore, folder_id: str | None) -> tuple[Folder, ...]:
    """Get ancestor folders of folder_id, from the root down to its parent."""
    if folder_id is None:
        return ()
    folder = store.get_folder(folder_id)
    ancestors: list[Folder] = []
    seen = {folder_id}
    current = folder.parent_id if folder else None
    while current is not None and current not in seen:
        parent = store.get_folder(current)
        if parent is None:
            break
        ancestors.append(parent)
        seen.add(current)
        current = parent.parent_id
    return tuple(reversed(ancestors))


def _container(store: BookmarkStore, ref: ItemRef) -> tuple[bool, str | None]:
    """Return (exists, container id) for an item reference."""
    if ref.kind == ItemKind.BOOKMARK:
        bookmark = store.get_bookmark(ref.id)
        return (bookmark is not None, bookmark.folder_id if bookmark else None)
    folder = store.get_folder(ref.id)
    return (folder is not None, folder.parent_id if folder else None)


def resolve_drop(
    store: BookmarkStore,
    source: ItemRef,
    target: ItemRef | None = None,
    *,
    fallback_container: str | None = None,
) -> MutationIntent | None:
    """Turn a drop gesture into the store mutation it stands for.

    1. No target (dropped on empty space): move source to fallback_container (root by default).
    2. Target in the source's own container: place source directly before the target.
    3. Otherwise: move source into the target folder, or into the container
       of the target bookmark.

    Folder moves into their own subtree are still emitted; the store's cycle
    guard refuses them. Returns None when source or target no longer exist.
    """
    source_exists, source_container = _container(store, source)
    if not source_exists:
        logger.debug("Drop source {} no longer exists", source.id)
        return None

    if target is None:
        return MoveIntent(item=source, target_container_id=fallback_container)

    target_exists, target_container = _container(store, target)
    if not target_exists:
        logger.debug("Drop target {} no longer exists", target.id)
        return None

    if source_container == target_container:
        return ReorderIntent(source_id=source.id, target_id=target.id, position=DropPosition.BEFORE)

    new_container = target.id if target.kind == ItemKind.FOLDER else target_container
    return MoveIntent(item=source, target_container_id=new_container)


def apply_intent(store: BookmarkStore, intent: MutationIntent) -> bool:
    """Run an intent against the store. Returns True if the store changed."""
    if isinstance(intent, ReorderIntent):
        return store.reorder_by_drag_drop(intent.source_id, intent.target_id, intent.position)

    if intent.item.kind == ItemKind.BOOKMARK:
        outcome = store.move_bookmark(intent.item.id, intent.target_container_id)
    else:
        outcome = store.move_folder(intent.item.id, intent.target_container_id)
    if outcome != MoveOutcome.MOVED:
        logger.debug("Move of {} not applied: {}", intent.item.id, outcome)
    return outcome == MoveOutcome.MOVED


def handle_drop(
    store: BookmarkStore,
    source: ItemRef,
    target: ItemRef | None = None,
    *,
    fallback_container: str | None = None,
) -> bool:
    """Resolve a drop and apply it. Returns True if the store changed."""
    intent = resolve_drop(store, source, target, fallback_container=fallback_container)
    if intent is None:
        return False
    return apply_intent(store, intent)
