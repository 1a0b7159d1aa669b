"""Blob store backends for the bookmark state."""

from pathlib import Path

from bookmark_tree.core.storage.json_store import JsonFileBlobStore
from bookmark_tree.core.storage.sqlite_store import SqliteBlobStore


def open_blob_store(path: str | Path) -> JsonFileBlobStore | SqliteBlobStore:
    """Open a blob store at path: ``.json`` files use the JSON store, others SQLite."""
    store_path = Path(path)
    if store_path.suffix == ".json":
        return JsonFileBlobStore(store_path)
    return SqliteBlobStore.open(store_path)


__all__ = ["JsonFileBlobStore", "SqliteBlobStore", "open_blob_store"]
