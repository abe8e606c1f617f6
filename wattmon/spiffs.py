"""A flat, path-named file store with emulated directories."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Iterator, List, Union


class FlashStore:
    """Files named by slash-separated paths, kept under a root directory.

    Names form one flat namespace: a "directory" is only a common prefix
    of file names, so removing a path removes every file whose name
    starts with it.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def _mount(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _locate(self, path: str) -> Path:
        parts = [part for part in path.split("/") if part]
        if not parts or any(part in (".", "..") for part in parts):
            raise ValueError(f"invalid flash path {path!r}")
        return self.root.joinpath(*parts)

    def _names(self) -> Iterator[str]:
        self._mount()
        names = (
            "/" + item.relative_to(self.root).as_posix()
            for item in self.root.rglob("*")
            if item.is_file()
        )
        return iter(sorted(names))

    def _prune(self) -> None:
        directories = sorted(
            (item for item in self.root.rglob("*") if item.is_dir()),
            key=lambda item: len(item.parts),
            reverse=True,
        )
        for directory in directories:
            if not any(directory.iterdir()):
                directory.rmdir()

    def format(self) -> bool:
        """Erase every file in the store."""
        if self.root.exists():
            shutil.rmtree(self.root)
        self._mount()
        return True

    def write(self, path: str, contents: Union[str, bytes], append: bool = False) -> int:
        """Write (or append) ``contents`` to ``path``; return the bytes written."""
        data = contents.encode("utf-8") if isinstance(contents, str) else bytes(contents)
        target = self._locate(path)
        self._mount()
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("ab" if append else "wb") as handle:
            return handle.write(data)

    def read(self, path: str) -> str:
        """Return the contents of ``path``, or an empty string if it is missing."""
        target = self._locate(path)
        if not target.is_file():
            return ""
        return target.read_bytes().decode("utf-8", errors="replace")

    def remove(self, path: str) -> bool:
        """Remove every file whose name starts with ``path``."""
        for name in list(self._names()):
            if name.startswith(path):
                self._locate(name).unlink()
        self._prune()
        return True

    def file_size(self, path: str) -> int:
        """Size of ``path`` in bytes, or 0 if it does not exist."""
        if not self.exists(path):
            return 0
        return self._locate(path).stat().st_size

    def exists(self, path: str) -> bool:
        """True if a file named ``path`` exists."""
        return self._locate(path).is_file()

    def directory(self, path: str) -> str:
        """JSON array of the files and pseudo-directories directly under ``path``."""
        entries: List[dict] = []
        seen_dirs = set()
        for full in self._names():
            if not full.startswith(path):
                continue
            name = full[len(path) + 1 :]
            slash = name.find("/")
            if slash > 0:
                head = name[:slash]
                if head in seen_dirs:
                    continue
                seen_dirs.add(head)
                entries.append({"type": "dir", "name": head})
            else:
                entries.append({"type": "file", "name": name})
        return json.dumps(entries, separators=(",", ":"))