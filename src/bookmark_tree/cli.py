"""CLI for the bookmark tree (add, organise, export/import, MCP server)."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from loguru import logger

from bookmark_tree.config import resolve_store_path
from bookmark_tree.core.storage import SqliteBlobStore, open_blob_store
from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.core.tree.markdown import render_tree_as_markdown
from bookmark_tree.core.tree.projection import children_of, get_breadcrumbs, handle_drop
from bookmark_tree.logging_config import configure_logging
from bookmark_tree.models.bookmark import DropPosition, ItemKind, Location, MoveOutcome

app = typer.Typer(help="Bookmark tree: organise bookmarks into folders.")

StoreOption = Annotated[
    Path | None,
    typer.Option("--store", "-s", help="Store file (.json for a JSON file, else SQLite)"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also write debug logs to this file"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose, log_file=log_file)


@contextmanager
def _open_store(store_path: Path | None) -> Iterator[BookmarkStore]:
    """Open the bookmark store, closing the underlying database afterwards."""
    path = store_path or resolve_store_path()
    blobs = open_blob_store(path)
    try:
        yield BookmarkStore(blobs)
    finally:
        if isinstance(blobs, SqliteBlobStore):
            blobs.close()


def _default_name(document: str, line: int) -> str:
    """Name a new bookmark after the text of its line, if the document is a readable file."""
    try:
        lines = Path(document).read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        lines = []
    if 0 <= line < len(lines) and lines[line].strip():
        return lines[line].strip()
    return f"Line {line + 1}"


def _fail(message: str) -> NoReturn:
    typer.echo(message)
    raise typer.Exit(1)


@app.command()
def add(
    document: str = typer.Argument(..., help="Document path or URI"),
    line: int = typer.Argument(..., min=1, help="Line number (1-based)"),
    column: int = typer.Option(1, "--column", "-c", min=1, help="Column (1-based)"),
    name: Annotated[str | None, typer.Option("--name", "-n", help="Bookmark name")] = None,
    folder: Annotated[str | None, typer.Option("--folder", "-f", help="Folder id")] = None,
    store_path: StoreOption = None,
) -> None:
    """Add a bookmark."""
    location = Location(document_ref=document, line=line - 1, column=column - 1)
    with _open_store(store_path) as store:
        if folder and store.get_folder(folder) is None:
            _fail(f"Folder '{folder}' not found.")
        bookmark_id = store.add_bookmark(
            location, name or _default_name(document, line - 1), folder
        )
        typer.echo(bookmark_id)


@app.command()
def rm(
    bookmark_id: str = typer.Argument(..., help="Bookmark id"),
    store_path: StoreOption = None,
) -> None:
    """Remove a bookmark."""
    with _open_store(store_path) as store:
        if not store.remove_bookmark(bookmark_id):
            _fail(f"Bookmark '{bookmark_id}' not found.")


@app.command()
def rename(
    item_id: str = typer.Argument(..., help="Bookmark or folder id"),
    new_name: str = typer.Argument(..., help="New name"),
    store_path: StoreOption = None,
) -> None:
    """Rename a bookmark or folder."""
    with _open_store(store_path) as store:
        ref = store.find_item(item_id)
        if ref is None:
            _fail(f"Item '{item_id}' not found.")
        elif ref.kind == ItemKind.BOOKMARK:
            store.rename_bookmark(item_id, new_name)
        else:
            store.rename_folder(item_id, new_name)


@app.command()
def mkdir(
    name: str = typer.Argument(..., help="Folder name"),
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent folder id")] = None,
    store_path: StoreOption = None,
) -> None:
    """Create a folder."""
    with _open_store(store_path) as store:
        if parent and store.get_folder(parent) is None:
            _fail(f"Folder '{parent}' not found.")
        typer.echo(store.create_folder(name, parent))


@app.command()
def rmdir(
    folder_id: str = typer.Argument(..., help="Folder id"),
    store_path: StoreOption = None,
) -> None:
    """Delete a folder. Its contents move up to the folder's parent."""
    with _open_store(store_path) as store:
        if not store.delete_folder(folder_id):
            _fail(f"Folder '{folder_id}' not found.")


@app.command()
def mv(
    item_id: str = typer.Argument(..., help="Bookmark or folder id"),
    to: Annotated[
        str | None,
        typer.Option("--to", "-t", help="Target folder id (default: root)"),
    ] = None,
    store_path: StoreOption = None,
) -> None:
    """Move a bookmark or folder into another folder."""
    with _open_store(store_path) as store:
        ref = store.find_item(item_id)
        if ref is None:
            _fail(f"Item '{item_id}' not found.")
        if ref.kind == ItemKind.BOOKMARK:
            outcome = store.move_bookmark(item_id, to)
        else:
            outcome = store.move_folder(item_id, to)

        if outcome == MoveOutcome.TARGET_NOT_FOUND:
            _fail(f"Folder '{to}' not found.")
        elif outcome == MoveOutcome.CYCLE_REJECTED:
            _fail(f"Cannot move folder '{item_id}' into itself or one of its subfolders.")


@app.command()
def place(
    source_id: str = typer.Argument(..., help="Item to move"),
    target_id: str = typer.Argument(..., help="Sibling to place it next to"),
    after: bool = typer.Option(False, "--after", "-a", help="Place after the target, not before"),
    store_path: StoreOption = None,
) -> None:
    """Reorder an item next to a sibling in the same folder."""
    position = DropPosition.AFTER if after else DropPosition.BEFORE
    with _open_store(store_path) as store:
        if not store.reorder_by_drag_drop(source_id, target_id, position):
            _fail(f"'{source_id}' and '{target_id}' are not siblings.")


@app.command()
def reorder(
    item_id: str = typer.Argument(..., help="Any item of the sibling group"),
    from_index: int = typer.Argument(..., min=0, help="Current index (0-based)"),
    to_index: int = typer.Argument(..., min=0, help="New index (0-based)"),
    store_path: StoreOption = None,
) -> None:
    """Move the sibling at FROM_INDEX to TO_INDEX and renumber the group."""
    with _open_store(store_path) as store:
        if not store.reorder_by_splice(item_id, from_index, to_index):
            _fail(f"No sibling at index {from_index} next to '{item_id}'.")


@app.command()
def drop(
    source_id: str = typer.Argument(..., help="Dragged item"),
    target_id: str | None = typer.Argument(None, help="Item dropped onto (omit for empty space)"),
    store_path: StoreOption = None,
) -> None:
    """Apply a drag-and-drop gesture as the tree view would."""
    with _open_store(store_path) as store:
        source = store.find_item(source_id)
        if source is None:
            _fail(f"Item '{source_id}' not found.")
        target = None
        if target_id is not None:
            target = store.find_item(target_id)
            if target is None:
                _fail(f"Item '{target_id}' not found.")
        if not handle_drop(store, source, target):
            typer.echo("No change.")


@app.command(name="ls")
def ls_cmd(
    folder: Annotated[str | None, typer.Argument(help="Folder id (default: root)")] = None,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    show_ids: bool = typer.Option(False, "--ids", "-i", help="Show item ids"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output direct children as JSON"),
    store_path: StoreOption = None,
) -> None:
    """List the bookmark tree."""
    with _open_store(store_path) as store:
        if folder and store.get_folder(folder) is None:
            _fail(f"Folder '{folder}' not found.")

        if output_json:
            data = {
                "folder": folder,
                "breadcrumbs": [f.name for f in get_breadcrumbs(store, folder)],
                "children": [
                    {
                        "id": item.id,
                        "kind": str(item.kind),
                        "name": item.name,
                        "sortOrder": item.sort_order,
                        "description": item.description,
                    }
                    for item in children_of(store, folder)
                ],
            }
            typer.echo(json.dumps(data, indent=2))
            return

        md = render_tree_as_markdown(
            store, folder_id=folder, max_depth=max_depth, show_ids=show_ids
        )
        typer.echo(md.rstrip("\n") if md else "(empty)")


@app.command(name="file")
def file_cmd(
    document: str = typer.Argument(..., help="Document path or URI"),
    store_path: StoreOption = None,
) -> None:
    """Show the bookmarks of one document, by position."""
    with _open_store(store_path) as store:
        bookmarks = sorted(
            store.get_bookmarks_for_file(document),
            key=lambda b: (b.location.line, b.location.column),
        )
        typer.echo(f"{len(bookmarks)} bookmarks:\n")
        for b in bookmarks:
            typer.echo(f"  {b.location.line + 1}:{b.location.column + 1}  {b.name}  [id={b.id}]")


@app.command()
def export(
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Export file (default: bookmarks-YYYY-MM-DD.json)"),
    ] = None,
    store_path: StoreOption = None,
) -> None:
    """Export all bookmarks and folders to a JSON file."""
    dst = output or Path(f"bookmarks-{datetime.now(tz=UTC):%Y-%m-%d}.json")
    with _open_store(store_path) as store:
        data = store.export_bookmarks()
    dst.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    typer.echo(
        f"Exported {len(data['bookmarks'])} bookmarks and {len(data['folders'])} folders to {dst}"
    )


@app.command(name="import")
def import_cmd(
    source: Path = typer.Argument(..., help="Export file to import"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    store_path: StoreOption = None,
) -> None:
    """Import an export file, replacing all existing bookmarks and folders."""
    if not source.exists():
        logger.error("Import file not found: {}", source)
        raise typer.Exit(1)

    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        _fail(f"Import failed: {source} is not valid JSON ({e})")

    if not yes:
        typer.confirm(
            "Importing replaces all existing bookmarks and folders. Continue?", abort=True
        )

    with _open_store(store_path) as store:
        result = store.import_bookmarks(data)
    if not result.success:
        _fail(result.message)
    typer.echo(result.message)


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from bookmark_tree.mcp.server import run_mcp_server

    run_mcp_server()
