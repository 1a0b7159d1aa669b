"""Hierarchical bookmark store with ordering, drag-and-drop and export/import."""

from bookmark_tree.core.storage import JsonFileBlobStore, SqliteBlobStore, open_blob_store
from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.core.tree.projection import children_of, handle_drop, resolve_drop
from bookmark_tree.errors import PersistenceError, RecordError
from bookmark_tree.models.bookmark import (
    Bookmark,
    DisplayItem,
    DropPosition,
    Folder,
    ImportResult,
    ItemKind,
    ItemRef,
    Location,
    MoveOutcome,
)
from bookmark_tree.protocols import BlobStoreProtocol

__all__ = [
    "BlobStoreProtocol",
    "Bookmark",
    "BookmarkStore",
    "DisplayItem",
    "DropPosition",
    "Folder",
    "ImportResult",
    "ItemKind",
    "ItemRef",
    "JsonFileBlobStore",
    "Location",
    "MoveOutcome",
    "PersistenceError",
    "RecordError",
    "SqliteBlobStore",
    "children_of",
    "handle_drop",
    "open_blob_store",
    "resolve_drop",
]
