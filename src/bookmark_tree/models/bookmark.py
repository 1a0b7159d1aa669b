"""Domain models for the bookmark tree."""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath
from urllib.parse import urlparse


class ItemKind(StrEnum):
    """Kind of a tree item."""

    BOOKMARK = "bookmark"
    FOLDER = "folder"


class DropPosition(StrEnum):
    """Where a dragged item lands relative to its target."""

    BEFORE = "before"
    AFTER = "after"


class MoveOutcome(StrEnum):
    """Result of a move request."""

    MOVED = "moved"
    NOT_FOUND = "not_found"
    TARGET_NOT_FOUND = "target_not_found"
    CYCLE_REJECTED = "cycle_rejected"


@dataclass(frozen=True)
class Location:
    """A zero-based position inside an external document."""

    document_ref: str
    line: int
    column: int = 0


@dataclass
class Bookmark:
    """A named reference to a location."""

    id: str
    name: str
    location: Location
    folder_id: str | None = None
    sort_order: int = 0


@dataclass
class Folder:
    """A container for bookmarks and other folders."""

    id: str
    name: str
    parent_id: str | None = None
    sort_order: int = 0


@dataclass(frozen=True)
class ItemRef:
    """An explicit reference to a bookmark or folder."""

    kind: ItemKind
    id: str


@dataclass(frozen=True)
class SiblingItem:
    """One entry of a sibling group."""

    id: str
    kind: ItemKind
    sort_order: int


@dataclass(frozen=True)
class DisplayItem:
    """A bookmark or folder as shown in the tree, tagged by kind."""

    kind: ItemKind
    record: Bookmark | Folder

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def sort_order(self) -> int:
        return self.record.sort_order

    @property
    def container_id(self) -> str | None:
        if isinstance(self.record, Bookmark):
            return self.record.folder_id
        return self.record.parent_id

    @property
    def ref(self) -> ItemRef:
        return ItemRef(kind=self.kind, id=self.record.id)

    @property
    def description(self) -> str:
        """Short "file:line" hint for bookmarks (1-based line), empty for folders."""
        if not isinstance(self.record, Bookmark):
            return ""
        location = self.record.location
        return f"{document_basename(location.document_ref)}:{location.line + 1}"


@dataclass(frozen=True)
class ImportResult:
    """Outcome of an import."""

    success: bool
    message: str
    bookmarks_imported: int = 0
    folders_imported: int = 0


def document_basename(document_ref: str) -> str:
    """Return the last path component of a document reference (path or URI)."""
    parsed = urlparse(document_ref)
    path = parsed.path if parsed.scheme and parsed.path else document_ref
    return PurePosixPath(path).name or document_ref
