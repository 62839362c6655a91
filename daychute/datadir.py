"""DataDir — sandboxed JSON file access under the daychute data directory."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from daychute.config import settings

logger = logging.getLogger(__name__)


class DataDir:
    """Reads and writes JSON documents below a single root directory.

    Singleton accessed via ``DataDir.get()``.  Pass an explicit *root* for
    test isolation (e.g. ``tmp_path / "data"``).

    Methods are synchronous; :class:`~daychute.scheduler.store.ScheduleStore`
    runs them through ``asyncio.to_thread()``.
    """

    _instance: DataDir | None = None

    def __init__(self, root: Path | None = None) -> None:
        self._root = Path(root or settings.data_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def get(cls) -> DataDir:
        """Return the shared DataDir instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Clear the singleton (for tests)."""
        cls._instance = None

    @property
    def root(self) -> Path:
        return self._root

    # -- Path helpers ----------------------------------------------------------

    def resolve(self, name: str) -> Path:
        """Resolve a ``/``-separated relative path to an absolute path inside the root.

        Raises ``ValueError`` for empty paths and for anything that would
        escape the root.
        """
        parts = [p for p in name.replace("\\", "/").split("/") if p and p != "."]
        if not parts:
            msg = f"Path is empty: {name!r}"
            raise ValueError(msg)
        if ".." in parts:
            msg = f"Path traversal detected: {name!r}"
            raise ValueError(msg)
        target = self._root.joinpath(*parts).resolve()
        if not target.is_relative_to(self._root):
            msg = f"Path traversal detected: {name!r}"
            raise ValueError(msg)
        return target

    def relative(self, path: Path) -> str:
        """Inverse of :meth:`resolve`: the posix path relative to the root."""
        return path.resolve().relative_to(self._root).as_posix()

    # -- File operations -------------------------------------------------------

    def read_json(self, name: str) -> Any | None:
        """Load a JSON document. Returns None if the file doesn't exist.

        Raises ``ValueError`` (``json.JSONDecodeError``) on malformed content.
        """
        target = self.resolve(name)
        if not target.exists():
            return None
        return json.loads(target.read_text("utf-8"))

    def write_json(self, name: str, data: Any) -> Path:
        """Write a JSON document atomically (temp file + rename).

        Creates parent directories as needed. Returns the absolute path written.
        """
        target = self.resolve(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(data, ensure_ascii=False, indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    def delete(self, name: str) -> bool:
        """Delete a file. Returns True if deleted, False if not found."""
        target = self.resolve(name)
        if not target.exists():
            return False
        target.unlink()
        return True

    def exists(self, name: str) -> bool:
        return self.resolve(name).exists()

    def list_files(self, folder: str, suffix: str = ".json") -> list[dict]:
        """List files under *folder* (recursively) ending in *suffix*.

        Returns a list of dicts with keys: name, stem, created.
        """
        base = self._root / folder
        if not base.is_dir():
            return []
        files = []
        for path in sorted(base.rglob(f"*{suffix}")):
            if not path.is_file() or path.name.startswith("."):
                continue
            stat = path.stat()
            files.append(
                {
                    "name": self.relative(path),
                    "stem": path.stem,
                    "created": datetime.fromtimestamp(stat.st_ctime).date(),
                }
            )
        return files
