"""Store mutations requested by a drag-and-drop gesture."""

from dataclasses import dataclass

from bookmark_tree.models.bookmark import DropPosition, ItemRef


@dataclass(frozen=True)
class MoveIntent:
    """Re-parent an item into another container (None = root)."""

    item: ItemRef
    target_container_id: str | None


@dataclass(frozen=True)
class ReorderIntent:
    """Reorder an item within its own sibling group."""

    source_id: str
    target_id: str
    position: DropPosition = DropPosition.BEFORE


MutationIntent = MoveIntent | ReorderIntent
