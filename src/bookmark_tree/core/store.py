"""The bookmark store: authoritative bookmarks and folders, and every mutation on them."""

import dataclasses
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from loguru import logger

from bookmark_tree.config import BOOKMARKS_KEY, EXPORT_FORMAT_VERSION, FOLDERS_KEY
from bookmark_tree.core.exchange.records import (
    bookmark_to_record,
    folder_to_record,
    parse_bookmark_record,
    parse_folder_record,
)
from bookmark_tree.errors import PersistenceError, RecordError
from bookmark_tree.models.bookmark import (
    Bookmark,
    DropPosition,
    Folder,
    ImportResult,
    ItemKind,
    ItemRef,
    Location,
    MoveOutcome,
    SiblingItem,
)
from bookmark_tree.protocols import BatchBlobStoreProtocol, BlobStoreProtocol


_R = TypeVar("_R")


def _new_id() -> str:
    return uuid.uuid4().hex


def find_cycle(folders: Mapping[str, Folder]) -> str | None:
    """Return the id of a folder whose parent link closes a cycle, or None.

    Parent references to folders missing from the mapping count as root.
    """
    for folder in folders.values():
        seen = {folder.id}
        node = folder
        while node.parent_id is not None and node.parent_id in folders:
            if node.parent_id in seen:
                return node.id
            seen.add(node.parent_id)
            node = folders[node.parent_id]
    return None


class BookmarkStore:
    """Own all bookmarks and folders and keep the tree invariants.

    - Ids are unique across bookmarks and folders.
    - Folder parent links form a forest.
    - Parent references are either None (root) or an existing folder.

    Every call that changes state rewrites both blobs before returning. If
    that write fails, the in-memory state is rolled back and the error is
    raised. Calls addressed to missing ids change nothing and write nothing.
    """

    def __init__(
        self,
        blobs: BlobStoreProtocol,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._blobs = blobs
        self._id_factory = id_factory or _new_id
        self._bookmarks: dict[str, Bookmark] = {}
        self._folders: dict[str, Folder] = {}
        self._load()

    # --- Loading and persistence ---

    def _load(self) -> None:
        raw_bookmarks = self._blobs.get(BOOKMARKS_KEY, [])
        raw_folders = self._blobs.get(FOLDERS_KEY, [])
        repairs = 0
        unordered: list[Bookmark | Folder] = []

        for raw in raw_folders or []:
            try:
                rec = parse_folder_record(raw)
            except RecordError as e:
                logger.warning("Dropping malformed stored folder: {}", e)
                repairs += 1
                continue
            if rec.id is None or rec.id in self._folders:
                logger.warning("Dropping stored folder with missing or duplicate id {!r}", rec.id)
                repairs += 1
                continue
            folder = Folder(
                id=rec.id, name=rec.name, parent_id=rec.parent_id, sort_order=rec.sort_order or 0
            )
            self._folders[folder.id] = folder
            if rec.sort_order is None:
                unordered.append(folder)

        for raw in raw_bookmarks or []:
            try:
                brec = parse_bookmark_record(raw)
            except RecordError as e:
                logger.warning("Dropping malformed stored bookmark: {}", e)
                repairs += 1
                continue
            if brec.id is None or brec.id in self._bookmarks or brec.id in self._folders:
                logger.warning(
                    "Dropping stored bookmark with missing or duplicate id {!r}", brec.id
                )
                repairs += 1
                continue
            bookmark = Bookmark(
                id=brec.id,
                name=brec.name,
                location=brec.location,
                folder_id=brec.folder_id,
                sort_order=brec.sort_order or 0,
            )
            self._bookmarks[bookmark.id] = bookmark
            if brec.sort_order is None:
                unordered.append(bookmark)

        repairs += self._repair_references()

        # Records without a stored order sort after everything else, in load order.
        for item in unordered:
            item.sort_order = -1
        for item in unordered:
            item.sort_order = self._next_sort_order()
        repairs += len(unordered)

        logger.debug(
            "Loaded {} bookmarks and {} folders", len(self._bookmarks), len(self._folders)
        )
        if repairs:
            logger.info("Repaired {} stored record(s), saving", repairs)
            self._persist()

    def _repair_references(self) -> int:
        repairs = 0
        for folder in self._folders.values():
            if folder.parent_id is not None and folder.parent_id not in self._folders:
                logger.warning(
                    "Folder {} points at missing parent {}, moving to root",
                    folder.id, folder.parent_id,
                )
                folder.parent_id = None
                repairs += 1

        while (cycle_id := find_cycle(self._folders)) is not None:
            logger.warning("Folder {} closes a parent cycle, moving to root", cycle_id)
            self._folders[cycle_id].parent_id = None
            repairs += 1

        for bookmark in self._bookmarks.values():
            if bookmark.folder_id is not None and bookmark.folder_id not in self._folders:
                logger.warning(
                    "Bookmark {} points at missing folder {}, moving to root",
                    bookmark.id, bookmark.folder_id,
                )
                bookmark.folder_id = None
                repairs += 1
        return repairs

    def _persist(self) -> None:
        blobs = {
            BOOKMARKS_KEY: [bookmark_to_record(b) for b in self._bookmarks.values()],
            FOLDERS_KEY: [folder_to_record(f) for f in self._folders.values()],
        }
        try:
            if isinstance(self._blobs, BatchBlobStoreProtocol):
                self._blobs.set_many(blobs)
            else:
                for key, value in blobs.items():
                    self._blobs.set(key, value)
        except Exception as e:
            logger.error("Failed to persist bookmark state: {}", e)
            msg = f"Failed to persist bookmark state: {e}"
            raise PersistenceError(msg) from e

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        """Apply the changes made in the block, then persist them.

        Records are mutable, so the snapshot copies each one. On any failure
        the snapshot is put back before the exception propagates.
        """
        bookmarks = {k: dataclasses.replace(b) for k, b in self._bookmarks.items()}
        folders = {k: dataclasses.replace(f) for k, f in self._folders.items()}
        try:
            yield
            self._persist()
        except Exception:
            self._bookmarks = bookmarks
            self._folders = folders
            raise

    # --- Helpers ---

    def _generate_id(self, taken: Callable[[str], bool] | None = None) -> str:
        is_taken = taken or (lambda x: x in self._bookmarks or x in self._folders)
        while True:
            new_id = self._id_factory()
            if not is_taken(new_id):
                return new_id

    def _next_sort_order(self) -> int:
        orders = [b.sort_order for b in self._bookmarks.values()]
        orders += [f.sort_order for f in self._folders.values()]
        return max(orders) + 1 if orders else 0

    def _existing_folder_or_root(self, folder_id: str | None) -> str | None:
        if folder_id is not None and folder_id not in self._folders:
            logger.warning("Folder {} does not exist, using root", folder_id)
            return None
        return folder_id

    def _would_create_cycle(self, folder_id: str, target_parent_id: str | None) -> bool:
        """Walk up from target_parent_id; a cycle means we meet folder_id."""
        current = target_parent_id
        # Bounded by store size.
        for _ in range(len(self._folders) + 1):
            if current is None:
                return False
            if current == folder_id:
                return True
            parent = self._folders.get(current)
            current = parent.parent_id if parent else None
        return True

    def _items_in(self, container_id: str | None) -> list[Bookmark | Folder]:
        """Folders then bookmarks of one container, stably sorted by sort order."""
        items: list[Bookmark | Folder] = [
            f for f in self._folders.values() if f.parent_id == container_id
        ]
        items += [b for b in self._bookmarks.values() if b.folder_id == container_id]
        return sorted(items, key=lambda item: item.sort_order)

    # --- Bookmarks ---

    def add_bookmark(self, location: Location, name: str, folder_id: str | None = None) -> str:
        """Create a bookmark that sorts after every existing item."""
        bookmark = Bookmark(
            id=self._generate_id(),
            name=name,
            location=location,
            folder_id=self._existing_folder_or_root(folder_id),
            sort_order=self._next_sort_order(),
        )
        with self._mutation():
            self._bookmarks[bookmark.id] = bookmark
        logger.debug("Added bookmark {} ({!r})", bookmark.id, name)
        return bookmark.id

    def remove_bookmark(self, bookmark_id: str) -> bool:
        if bookmark_id not in self._bookmarks:
            return False
        with self._mutation():
            del self._bookmarks[bookmark_id]
        logger.debug("Removed bookmark {}", bookmark_id)
        return True

    def rename_bookmark(self, bookmark_id: str, new_name: str) -> bool:
        bookmark = self._bookmarks.get(bookmark_id)
        if bookmark is None:
            return False
        with self._mutation():
            bookmark.name = new_name
        return True

    def move_bookmark(self, bookmark_id: str, target_folder_id: str | None = None) -> MoveOutcome:
        """Move a bookmark into target_folder_id (None = root)."""
        bookmark = self._bookmarks.get(bookmark_id)
        if bookmark is None:
            return MoveOutcome.NOT_FOUND
        if target_folder_id is not None and target_folder_id not in self._folders:
            return MoveOutcome.TARGET_NOT_FOUND
        with self._mutation():
            bookmark.folder_id = target_folder_id
        logger.debug("Moved bookmark {} to {}", bookmark_id, target_folder_id or "root")
        return MoveOutcome.MOVED

    def get_bookmark(self, bookmark_id: str) -> Bookmark | None:
        bookmark = self._bookmarks.get(bookmark_id)
        return dataclasses.replace(bookmark) if bookmark else None

    def get_bookmarks_for_file(self, document_ref: str) -> list[Bookmark]:
        """All bookmarks pointing into document_ref, in no particular order."""
        return [
            dataclasses.replace(b)
            for b in self._bookmarks.values()
            if b.location.document_ref == document_ref
        ]

    def get_all_bookmarks(self) -> list[Bookmark]:
        return [dataclasses.replace(b) for b in self._bookmarks.values()]

    # --- Folders ---

    def create_folder(self, name: str, parent_id: str | None = None) -> str:
        folder = Folder(
            id=self._generate_id(),
            name=name,
            parent_id=self._existing_folder_or_root(parent_id),
            sort_order=self._next_sort_order(),
        )
        with self._mutation():
            self._folders[folder.id] = folder
        logger.debug("Created folder {} ({!r})", folder.id, name)
        return folder.id

    def rename_folder(self, folder_id: str, new_name: str) -> bool:
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        with self._mutation():
            folder.name = new_name
        return True

    def delete_folder(self, folder_id: str) -> bool:
        """Delete a folder, promoting its bookmarks and subfolders to its parent."""
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        promoted = 0
        with self._mutation():
            for bookmark in self._bookmarks.values():
                if bookmark.folder_id == folder_id:
                    bookmark.folder_id = folder.parent_id
                    promoted += 1
            for subfolder in self._folders.values():
                if subfolder.parent_id == folder_id:
                    subfolder.parent_id = folder.parent_id
                    promoted += 1
            del self._folders[folder_id]
        logger.debug("Deleted folder {}, promoted {} item(s)", folder_id, promoted)
        return True

    def move_folder(self, folder_id: str, target_parent_id: str | None = None) -> MoveOutcome:
        """Move a folder under target_parent_id (None = root).

        Refused with CYCLE_REJECTED when the target is the folder itself or
        one of its descendants.
        """
        folder = self._folders.get(folder_id)
        if folder is None:
            return MoveOutcome.NOT_FOUND
        if target_parent_id is not None and target_parent_id not in self._folders:
            return MoveOutcome.TARGET_NOT_FOUND
        if self._would_create_cycle(folder_id, target_parent_id):
            logger.info(
                "Refusing to move folder {} under {}: would create a cycle",
                folder_id, target_parent_id,
            )
            return MoveOutcome.CYCLE_REJECTED
        with self._mutation():
            folder.parent_id = target_parent_id
        logger.debug("Moved folder {} to {}", folder_id, target_parent_id or "root")
        return MoveOutcome.MOVED

    def get_folder(self, folder_id: str) -> Folder | None:
        folder = self._folders.get(folder_id)
        return dataclasses.replace(folder) if folder else None

    def get_all_folders(self) -> list[Folder]:
        return [dataclasses.replace(f) for f in self._folders.values()]

    # --- Items of either kind ---

    def __len__(self) -> int:
        return len(self._bookmarks) + len(self._folders)

    def find_item(self, item_id: str) -> ItemRef | None:
        if item_id in self._bookmarks:
            return ItemRef(kind=ItemKind.BOOKMARK, id=item_id)
        if item_id in self._folders:
            return ItemRef(kind=ItemKind.FOLDER, id=item_id)
        return None

    def container_of(self, item_id: str) -> str | None:
        """Return the folder id containing item_id (None = root)."""
        if item_id in self._bookmarks:
            return self._bookmarks[item_id].folder_id
        if item_id in self._folders:
            return self._folders[item_id].parent_id
        msg = f"No bookmark or folder with id {item_id!r}"
        raise KeyError(msg)

    def get_sibling_group(self, item_id: str) -> list[SiblingItem]:
        """Every item sharing item_id's container, ordered by sort order.

        Unknown ids have no group and return an empty list.
        """
        if self.find_item(item_id) is None:
            return []
        return [
            SiblingItem(
                id=item.id,
                kind=ItemKind.BOOKMARK if isinstance(item, Bookmark) else ItemKind.FOLDER,
                sort_order=item.sort_order,
            )
            for item in self._items_in(self.container_of(item_id))
        ]

    # --- Ordering ---

    def reorder_by_splice(self, item_id: str, from_index: int, to_index: int) -> bool:
        """Move the sibling at from_index to to_index, then renumber the group 0..n-1.

        Removal happens first, so to_index addresses the list without the
        moved item. to_index is clamped to the group; an out-of-range
        from_index changes nothing.
        """
        if self.find_item(item_id) is None:
            return False
        group = self._items_in(self.container_of(item_id))
        if not 0 <= from_index < len(group):
            return False
        moved = group.pop(from_index)
        group.insert(max(0, min(to_index, len(group))), moved)
        with self._mutation():
            for index, item in enumerate(group):
                item.sort_order = index
        logger.debug("Moved {} from index {} to {}", moved.id, from_index, to_index)
        return True

    def reorder_by_drag_drop(
        self,
        source_id: str,
        target_id: str,
        position: DropPosition = DropPosition.BEFORE,
    ) -> bool:
        """Place source_id directly before or after target_id within its sibling group."""
        group = self.get_sibling_group(source_id)
        ids = [item.id for item in group]
        if source_id not in ids or target_id not in ids:
            return False
        source_index = ids.index(source_id)
        target_index = ids.index(target_id)

        if position == DropPosition.AFTER:
            target_index += 1
        # Removing the source first shifts everything after it down by one.
        if source_index < target_index:
            target_index -= 1

        return self.reorder_by_splice(source_id, source_index, target_index)

    # --- Export / import ---

    def export_bookmarks(self) -> dict[str, Any]:
        """Return the whole store as a versioned export document."""
        return {
            "version": EXPORT_FORMAT_VERSION,
            "exportDate": datetime.now(tz=UTC).isoformat(),
            "bookmarks": [bookmark_to_record(b) for b in self._bookmarks.values()],
            "folders": [folder_to_record(f) for f in self._folders.values()],
        }

    def import_bookmarks(self, document: Any) -> ImportResult:
        """Replace the whole store with the contents of an export document.

        Every imported item gets a fresh id; folder references are rewritten
        through the old-id to new-id map and unmapped ones become root. The
        new state is built aside and swapped in only once it is complete, so
        a rejected import leaves the store as it was. A failed write swaps the
        old state back and is reported as a failed import.
        """
        if not isinstance(document, Mapping):
            return ImportResult(success=False, message="Invalid bookmark data: not an object")

        missing = [name for name in ("bookmarks", "folders") if document.get(name) is None]
        if not document.get("version"):
            missing.insert(0, "version")
        if missing:
            return ImportResult(
                success=False,
                message=f"Invalid bookmark data: missing {', '.join(missing)}",
            )
        if document["version"] != EXPORT_FORMAT_VERSION:
            logger.warning(
                "Importing export version {!r}, expected {!r}",
                document["version"], EXPORT_FORMAT_VERSION,
            )

        try:
            bookmarks, folders = self._build_import(document["bookmarks"], document["folders"])
        except RecordError as e:
            logger.warning("Import rejected: {}", e)
            return ImportResult(success=False, message=f"Import failed: {e}")

        previous = self._bookmarks, self._folders
        self._bookmarks, self._folders = bookmarks, folders
        try:
            self._persist()
        except PersistenceError as e:
            self._bookmarks, self._folders = previous
            return ImportResult(success=False, message=f"Import failed: {e}")

        logger.info("Imported {} bookmarks and {} folders", len(bookmarks), len(folders))
        return ImportResult(
            success=True,
            message=f"Imported {len(bookmarks)} bookmarks and {len(folders)} folders",
            bookmarks_imported=len(bookmarks),
            folders_imported=len(folders),
        )

    def _build_import(
        self,
        raw_bookmarks: Any,
        raw_folders: Any,
    ) -> tuple[dict[str, Bookmark], dict[str, Folder]]:
        folder_records = _parse_all(raw_folders, "folders", parse_folder_record)
        bookmark_records = _parse_all(raw_bookmarks, "bookmarks", parse_bookmark_record)

        folders: dict[str, Folder] = {}
        bookmarks: dict[str, Bookmark] = {}

        def taken(candidate: str) -> bool:
            return candidate in folders or candidate in bookmarks

        # Fresh sort orders follow the global max+1 rule over what is built so far.
        top = -1

        old_to_new: dict[str, str] = {}
        for rec in folder_records:
            new_id = self._generate_id(taken)
            if rec.id is not None:
                if rec.id in old_to_new:
                    msg = f"duplicate folder id {rec.id!r}"
                    raise RecordError(msg)
                old_to_new[rec.id] = new_id
            order = rec.sort_order if rec.sort_order is not None else top + 1
            top = max(top, order)
            folders[new_id] = Folder(
                id=new_id, name=rec.name, parent_id=rec.parent_id, sort_order=order
            )

        for folder in folders.values():
            if folder.parent_id is not None:
                folder.parent_id = old_to_new.get(folder.parent_id)

        if find_cycle(folders) is not None:
            msg = "folders contain a parent cycle"
            raise RecordError(msg)

        for brec in bookmark_records:
            new_id = self._generate_id(taken)
            order = brec.sort_order if brec.sort_order is not None else top + 1
            top = max(top, order)
            bookmarks[new_id] = Bookmark(
                id=new_id,
                name=brec.name,
                location=brec.location,
                folder_id=old_to_new.get(brec.folder_id) if brec.folder_id else None,
                sort_order=order,
            )

        return bookmarks, folders


def _parse_all(raw: Any, field: str, parse: Callable[[Any], _R]) -> list[_R]:
    """Parse every record of an import field, tagging errors with the record's index."""
    if not isinstance(raw, list):
        msg = f"{field!r} must be a list"
        raise RecordError(msg)
    records: list[_R] = []
    for index, item in enumerate(raw):
        try:
            records.append(parse(item))
        except RecordError as e:
            msg = f"{field}[{index}]: {e}"
            raise RecordError(msg) from e
    return records
