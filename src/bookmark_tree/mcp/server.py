"""MCP server exposing the bookmark tree as tools."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from bookmark_tree.config import resolve_store_path
from bookmark_tree.core.storage import SqliteBlobStore, open_blob_store
from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.core.tree.markdown import render_tree_as_markdown
from bookmark_tree.core.tree.projection import children_of, get_breadcrumbs, handle_drop
from bookmark_tree.models.bookmark import (
    Bookmark,
    DisplayItem,
    DropPosition,
    ItemKind,
    Location,
    MoveOutcome,
)


def _breadcrumbs_str(store: BookmarkStore, folder_id: str | None) -> str:
    crumbs = get_breadcrumbs(store, folder_id)
    return " > ".join(f.name[:40] for f in crumbs) if crumbs else ""


def _item_entry(item: DisplayItem) -> dict[str, Any]:
    entry: dict[str, Any] = {"id": item.id, "kind": str(item.kind), "name": item.name}
    if item.kind == ItemKind.BOOKMARK:
        entry["description"] = item.description
    return entry


def _bookmark_entry(bookmark: Bookmark) -> dict[str, Any]:
    return {
        "id": bookmark.id,
        "name": bookmark.name,
        "document": bookmark.location.document_ref,
        "line": bookmark.location.line,
        "column": bookmark.location.column,
        "folder_id": bookmark.folder_id,
    }


def _sibling_ids(store: BookmarkStore, item_id: str) -> list[str]:
    return [item.id for item in store.get_sibling_group(item_id)]


# --- Core functions (testable without MCP context) ---


def bookmark_list(
    store: BookmarkStore,
    *,
    folder_id: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """List the contents of a folder (root when folder_id is None).

    Args:
        folder_id: Folder to list.
        max_depth: Max depth levels for markdown output (None = unlimited).
        output_format: "markdown" (whole subtree) or "json" (direct children).
    """
    if folder_id is not None and store.get_folder(folder_id) is None:
        return {"error": f"Folder '{folder_id}' not found."}

    result: dict[str, Any] = {
        "folder_id": folder_id,
        "breadcrumbs": _breadcrumbs_str(store, folder_id),
    }
    if output_format == "markdown":
        result["content"] = render_tree_as_markdown(
            store, folder_id=folder_id, max_depth=max_depth, show_ids=True
        )
    else:
        children = children_of(store, folder_id)
        result["children"] = [_item_entry(c) for c in children]
        result["count"] = len(children)
    return result


def bookmarks_for_file(store: BookmarkStore, *, document: str) -> dict[str, Any]:
    """List bookmarks pointing into one document, ordered by position."""
    bookmarks = sorted(
        store.get_bookmarks_for_file(document),
        key=lambda b: (b.location.line, b.location.column),
    )
    return {"results": [_bookmark_entry(b) for b in bookmarks], "count": len(bookmarks)}


def bookmark_add(
    store: BookmarkStore,
    *,
    document: str,
    line: int,
    name: str,
    column: int = 0,
    folder_id: str | None = None,
) -> dict[str, Any]:
    """Add a bookmark at a zero-based line/column of a document."""
    if line < 0 or column < 0:
        return {"success": False, "error": "line and column must not be negative."}
    if folder_id is not None and store.get_folder(folder_id) is None:
        return {"success": False, "error": f"Folder '{folder_id}' not found."}
    location = Location(document_ref=document, line=line, column=column)
    bookmark_id = store.add_bookmark(location, name, folder_id)
    return {"success": True, "id": bookmark_id}


def folder_create(
    store: BookmarkStore, *, name: str, parent_id: str | None = None
) -> dict[str, Any]:
    """Create a folder under parent_id (root when None)."""
    if parent_id is not None and store.get_folder(parent_id) is None:
        return {"success": False, "error": f"Folder '{parent_id}' not found."}
    return {"success": True, "id": store.create_folder(name, parent_id)}


def bookmark_rename(store: BookmarkStore, *, item_id: str, name: str) -> dict[str, Any]:
    """Rename a bookmark or folder."""
    ref = store.find_item(item_id)
    if ref is None:
        return {"success": False, "error": f"Item '{item_id}' not found."}
    if ref.kind == ItemKind.BOOKMARK:
        store.rename_bookmark(item_id, name)
    else:
        store.rename_folder(item_id, name)
    return {"success": True, "id": item_id}


def bookmark_move(
    store: BookmarkStore, *, item_id: str, target_folder_id: str | None = None
) -> dict[str, Any]:
    """Move a bookmark or folder into target_folder_id (root when None)."""
    ref = store.find_item(item_id)
    if ref is None:
        return {"success": False, "error": f"Item '{item_id}' not found."}
    if ref.kind == ItemKind.BOOKMARK:
        outcome = store.move_bookmark(item_id, target_folder_id)
    else:
        outcome = store.move_folder(item_id, target_folder_id)
    if outcome != MoveOutcome.MOVED:
        return {"success": False, "error": f"Move refused: {outcome}", "outcome": str(outcome)}
    return {"success": True, "id": item_id, "outcome": str(outcome)}


def bookmark_delete(store: BookmarkStore, *, bookmark_id: str) -> dict[str, Any]:
    """Delete a bookmark."""
    if not store.remove_bookmark(bookmark_id):
        return {"success": False, "error": f"Bookmark '{bookmark_id}' not found."}
    return {"success": True, "id": bookmark_id}


def folder_delete(store: BookmarkStore, *, folder_id: str) -> dict[str, Any]:
    """Delete a folder; its contents move up to its parent."""
    if not store.delete_folder(folder_id):
        return {"success": False, "error": f"Folder '{folder_id}' not found."}
    return {"success": True, "id": folder_id}


def bookmark_drop(
    store: BookmarkStore, *, source_id: str, target_id: str | None = None
) -> dict[str, Any]:
    """Apply a drag-and-drop of source_id onto target_id (empty space when None)."""
    source = store.find_item(source_id)
    if source is None:
        return {"success": False, "error": f"Item '{source_id}' not found."}
    target = None
    if target_id is not None:
        target = store.find_item(target_id)
        if target is None:
            return {"success": False, "error": f"Item '{target_id}' not found."}
    changed = handle_drop(store, source, target)
    return {"success": True, "changed": changed}


def bookmark_place(
    store: BookmarkStore, *, source_id: str, target_id: str, after: bool = False
) -> dict[str, Any]:
    """Place source_id right before (or after) target_id in their shared folder."""
    position = DropPosition.AFTER if after else DropPosition.BEFORE
    if not store.reorder_by_drag_drop(source_id, target_id, position):
        return {"success": False, "error": f"'{source_id}' and '{target_id}' are not siblings."}
    return {"success": True, "id": source_id, "siblings": _sibling_ids(store, source_id)}


def bookmark_reorder(
    store: BookmarkStore, *, item_id: str, from_index: int, to_index: int
) -> dict[str, Any]:
    """Move the sibling at from_index to to_index within item_id's folder."""
    if from_index < 0 or to_index < 0:
        return {"success": False, "error": "Indexes must not be negative."}
    if not store.reorder_by_splice(item_id, from_index, to_index):
        return {
            "success": False,
            "error": f"No sibling at index {from_index} next to '{item_id}'.",
        }
    return {"success": True, "siblings": _sibling_ids(store, item_id)}


def bookmark_export(store: BookmarkStore) -> dict[str, Any]:
    """Export the whole tree as a versioned document."""
    return store.export_bookmarks()


def bookmark_import(store: BookmarkStore, *, data: dict[str, Any]) -> dict[str, Any]:
    """Replace the whole tree with an export document."""
    result = store.import_bookmarks(data)
    return {
        "success": result.success,
        "message": result.message,
        "bookmarks_imported": result.bookmarks_imported,
        "folders_imported": result.folders_imported,
    }


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    store: BookmarkStore
    store_path: Path


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the store on startup, close it on shutdown."""
    path = resolve_store_path()
    blobs = open_blob_store(path)
    try:
        store = BookmarkStore(blobs)
        logger.info("Serving {} items from {}", len(store), path)
        yield ServerContext(store=store, store_path=path)
    finally:
        if isinstance(blobs, SqliteBlobStore):
            blobs.close()


mcp_server = FastMCP(
    "bookmark-tree",
    instructions="""\
Bookmarks point at a line of a document and live in nested folders.

1. Call bookmark_list_tool to see the tree with item ids.
2. Use the ids with the move/rename/delete tools, and with place/reorder to
   change the order inside a folder.
3. Deleting a folder keeps its contents: they move up one level.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def bookmark_list_tool(
    ctx: Context,
    folder_id: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """List bookmarks and folders.

    Args:
        folder_id: Folder to list (root when omitted).
        max_depth: Max depth levels for markdown output.
        output_format: "markdown" (subtree) or "json" (direct children).
    """
    return bookmark_list(
        _ctx(ctx).store, folder_id=folder_id, max_depth=max_depth, output_format=output_format
    )


@mcp_server.tool()
async def bookmarks_for_file_tool(ctx: Context, document: str) -> dict[str, Any]:
    """List the bookmarks of one document, ordered by position."""
    return bookmarks_for_file(_ctx(ctx).store, document=document)


@mcp_server.tool()
async def bookmark_add_tool(
    ctx: Context,
    document: str,
    line: int,
    name: str,
    column: int = 0,
    folder_id: str | None = None,
) -> dict[str, Any]:
    """Add a bookmark.

    Args:
        document: Document path or URI.
        line: Zero-based line.
        name: Bookmark name.
        column: Zero-based column.
        folder_id: Folder to add to (root when omitted).
    """
    return bookmark_add(
        _ctx(ctx).store,
        document=document,
        line=line,
        name=name,
        column=column,
        folder_id=folder_id,
    )


@mcp_server.tool()
async def folder_create_tool(
    ctx: Context, name: str, parent_id: str | None = None
) -> dict[str, Any]:
    """Create a folder (at the root when parent_id is omitted)."""
    return folder_create(_ctx(ctx).store, name=name, parent_id=parent_id)


@mcp_server.tool()
async def bookmark_rename_tool(ctx: Context, item_id: str, name: str) -> dict[str, Any]:
    """Rename a bookmark or folder."""
    return bookmark_rename(_ctx(ctx).store, item_id=item_id, name=name)


@mcp_server.tool()
async def bookmark_move_tool(
    ctx: Context, item_id: str, target_folder_id: str | None = None
) -> dict[str, Any]:
    """Move a bookmark or folder into a folder (root when omitted).

    Moving a folder into its own subtree is refused.
    """
    return bookmark_move(_ctx(ctx).store, item_id=item_id, target_folder_id=target_folder_id)


@mcp_server.tool()
async def bookmark_delete_tool(ctx: Context, bookmark_id: str) -> dict[str, Any]:
    """Delete a bookmark."""
    return bookmark_delete(_ctx(ctx).store, bookmark_id=bookmark_id)


@mcp_server.tool()
async def folder_delete_tool(ctx: Context, folder_id: str) -> dict[str, Any]:
    """Delete a folder. Its bookmarks and subfolders move up to its parent."""
    return folder_delete(_ctx(ctx).store, folder_id=folder_id)


@mcp_server.tool()
async def bookmark_drop_tool(
    ctx: Context, source_id: str, target_id: str | None = None
) -> dict[str, Any]:
    """Drag source_id onto target_id, as in the tree view.

    Same folder: source lands right before target. Different folder: source
    moves into target (a folder) or next to it (a bookmark). No target:
    source moves to the root.
    """
    return bookmark_drop(_ctx(ctx).store, source_id=source_id, target_id=target_id)


@mcp_server.tool()
async def bookmark_place_tool(
    ctx: Context, source_id: str, target_id: str, after: bool = False
) -> dict[str, Any]:
    """Reorder source_id to sit right before target_id (after, when after is true).

    Both items must be in the same folder.
    """
    return bookmark_place(_ctx(ctx).store, source_id=source_id, target_id=target_id, after=after)


@mcp_server.tool()
async def bookmark_reorder_tool(
    ctx: Context, item_id: str, from_index: int, to_index: int
) -> dict[str, Any]:
    """Move the sibling at from_index to to_index in item_id's folder.

    Args:
        item_id: Any item of the folder's children.
        from_index: Current zero-based index.
        to_index: New zero-based index, clamped to the group.
    """
    return bookmark_reorder(
        _ctx(ctx).store, item_id=item_id, from_index=from_index, to_index=to_index
    )


@mcp_server.tool()
async def bookmark_export_tool(ctx: Context) -> dict[str, Any]:
    """Export all bookmarks and folders as a versioned JSON document."""
    return bookmark_export(_ctx(ctx).store)


@mcp_server.tool()
async def bookmark_import_tool(ctx: Context, data: dict[str, Any]) -> dict[str, Any]:
    """Import an export document, REPLACING all existing bookmarks and folders."""
    return bookmark_import(_ctx(ctx).store, data=data)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport.

    Logging goes to stderr, as configured by the caller; stdout carries the protocol.
    """
    mcp_server.run(transport="stdio")
