"""Convert between plain bookmark/folder records and domain models.

The same record shapes are used for the persisted blobs and for the
bookmarks/folders lists of an export document::

    bookmark: {id, name, location: {documentRef, line, column}, folderId?, sortOrder?}
    folder:   {id, name, parentId?, sortOrder?}

Bookmarks exported by the editor extension (``uri`` plus
``position: {line, character}``) are accepted as well.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from bookmark_tree.errors import RecordError
from bookmark_tree.models.bookmark import Bookmark, Folder, Location


@dataclass(frozen=True)
class BookmarkRecord:
    """A parsed bookmark record, before the store assigns ids and order."""

    id: str | None
    name: str
    location: Location
    folder_id: str | None
    sort_order: int | None


@dataclass(frozen=True)
class FolderRecord:
    """A parsed folder record, before the store assigns ids and order."""

    id: str | None
    name: str
    parent_id: str | None
    sort_order: int | None


def _require_mapping(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        msg = f"{what} must be an object, got {type(raw).__name__}"
        raise RecordError(msg)
    return raw


def _optional_str(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    # Empty strings mean "root" for parent references.
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        msg = f"{key!r} must be a string, got {value!r}"
        raise RecordError(msg)
    return value


def _int_field(raw: Mapping[str, Any], key: str, *, default: int | None = None) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{key!r} must be an integer, got {value!r}"
        raise RecordError(msg)
    if value < 0:
        msg = f"{key!r} must not be negative, got {value!r}"
        raise RecordError(msg)
    return value


def _optional_sort_order(raw: Mapping[str, Any]) -> int | None:
    value = raw.get("sortOrder")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"'sortOrder' must be an integer, got {value!r}"
        raise RecordError(msg)
    return value


def _name(raw: Mapping[str, Any]) -> str:
    name = raw.get("name")
    if not isinstance(name, str):
        msg = f"'name' must be a string, got {name!r}"
        raise RecordError(msg)
    return name


def parse_location(raw: Mapping[str, Any]) -> Location:
    """Extract the location of a bookmark record."""
    if "location" in raw:
        loc = _require_mapping(raw["location"], "'location'")
        document_ref = loc.get("documentRef")
        line = _int_field(loc, "line")
        column = _int_field(loc, "column", default=0)
    elif "uri" in raw:
        document_ref = raw["uri"]
        position = _require_mapping(raw.get("position"), "'position'")
        line = _int_field(position, "line")
        column = _int_field(position, "character", default=0)
    else:
        msg = "bookmark has neither 'location' nor 'uri'"
        raise RecordError(msg)

    if not isinstance(document_ref, str) or not document_ref:
        msg = f"document reference must be a non-empty string, got {document_ref!r}"
        raise RecordError(msg)
    return Location(document_ref=document_ref, line=line, column=column)


def parse_bookmark_record(raw: Any) -> BookmarkRecord:
    """Validate a raw bookmark record."""
    data = _require_mapping(raw, "bookmark")
    return BookmarkRecord(
        id=_optional_str(data, "id"),
        name=_name(data),
        location=parse_location(data),
        folder_id=_optional_str(data, "folderId"),
        sort_order=_optional_sort_order(data),
    )


def parse_folder_record(raw: Any) -> FolderRecord:
    """Validate a raw folder record."""
    data = _require_mapping(raw, "folder")
    return FolderRecord(
        id=_optional_str(data, "id"),
        name=_name(data),
        parent_id=_optional_str(data, "parentId"),
        sort_order=_optional_sort_order(data),
    )


def bookmark_to_record(bookmark: Bookmark) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": bookmark.id,
        "name": bookmark.name,
        "location": {
            "documentRef": bookmark.location.document_ref,
            "line": bookmark.location.line,
            "column": bookmark.location.column,
        },
    }
    if bookmark.folder_id is not None:
        record["folderId"] = bookmark.folder_id
    record["sortOrder"] = bookmark.sort_order
    return record


def folder_to_record(folder: Folder) -> dict[str, Any]:
    record: dict[str, Any] = {"id": folder.id, "name": folder.name}
    if folder.parent_id is not None:
        record["parentId"] = folder.parent_id
    record["sortOrder"] = folder.sort_order
    return record
