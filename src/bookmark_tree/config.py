"""Configuration constants for bookmark-tree."""

import os
from pathlib import Path

# Blob keys the store reads at startup and rewrites after every change.
BOOKMARKS_KEY: str = "bookmarks"
FOLDERS_KEY: str = "bookmarkFolders"

# Written into every export, checked (leniently) on import.
EXPORT_FORMAT_VERSION: str = "1.0.0"

# Environment variable pointing at the store file. Wins over DATA_DIRECTORIES.
STORE_ENV_VAR: str = "BOOKMARK_TREE_STORE"

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/bookmark-tree").expanduser(),
    Path("~/.bookmark-tree").expanduser(),
    Path("~/.config/bookmark-tree").expanduser(),
]

DEFAULT_STORE_NAME: str = "bookmarks.db"


def resolve_store_path() -> Path:
    """Return the store file to use when none is given explicitly."""
    from_env = os.environ.get(STORE_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate / DEFAULT_STORE_NAME
    return DATA_DIRECTORIES[0] / DEFAULT_STORE_NAME
