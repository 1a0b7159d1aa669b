"""Render the bookmark tree as markdown."""

import io

from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.core.tree.projection import children_of
from bookmark_tree.models.bookmark import ItemKind


def render_tree_as_markdown(
    store: BookmarkStore,
    *,
    folder_id: str | None = None,
    max_depth: int | None = None,
    show_ids: bool = False,
) -> str:
    """Render a folder's contents (None = root) as an indented markdown list.

    Args:
        store: The bookmark store.
        folder_id: Folder whose contents are rendered.
        max_depth: Max levels to render (None = unlimited, 1 = direct children only).
        show_ids: Append item ids to every line.

    Returns:
        Markdown string with bullet-list hierarchy, folders suffixed with "/".
    """
    out = io.StringIO()

    def _render(container: str | None, depth: int) -> None:
        indent = "    " * depth
        for item in children_of(store, container):
            suffix = f"  [id={item.id}]" if show_ids else ""
            if item.kind == ItemKind.BOOKMARK:
                out.write(f"{indent}- {item.name} ({item.description}){suffix}\n")
                continue

            out.write(f"{indent}- {item.name}/{suffix}\n")
            if max_depth is None or depth + 1 < max_depth:
                _render(item.id, depth + 1)
                continue

            # Truncation indicator when children are cut off by max_depth
            child_count = len(children_of(store, item.id))
            if child_count > 0:
                noun = "child" if child_count == 1 else "children"
                out.write(f"{indent}    - ... ({child_count} more {noun}, id={item.id})\n")

    _render(folder_id, 0)
    return out.getvalue()
