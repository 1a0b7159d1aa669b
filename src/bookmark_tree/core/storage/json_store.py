"""Blob store kept as a single JSON file."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger


class JsonFileBlobStore:
    """Keep all blobs as one JSON object in a file.

    - The whole file is rewritten on every write, via a temporary file and
      an atomic rename, so set_many() lands all of its keys or none.
    - The file is not touched if its contents would not change.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] = self._read()
        logger.debug("JSON store ready at {} ({} keys)", self.path, len(self._data))

    def _read(self) -> dict[str, Any]:
        try:
            contents = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError as e:
            msg = f"{str(self.path)!r} is not valid JSON: {e}"
            raise ValueError(msg) from e
        try:
            data = json.loads(contents)
        except json.JSONDecodeError as e:
            msg = f"{str(self.path)!r} is not valid JSON: {e}"
            raise ValueError(msg) from e
        if not isinstance(data, dict):
            msg = f"{str(self.path)!r} does not contain a JSON object"
            raise ValueError(msg)
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        data = {**self._data, **values}
        contents = json.dumps(data, sort_keys=True, indent=4) + "\n"
        try:
            if self.path.read_text(encoding="utf-8") == contents:
                self._data = data
                return
        except (FileNotFoundError, UnicodeDecodeError):
            pass

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(contents)
        os.replace(tmp_path, self.path)
        self._data = data
        logger.debug("Wrote {} to {}", ", ".join(repr(k) for k in values), self.path)
