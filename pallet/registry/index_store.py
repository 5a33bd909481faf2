"""Index Store — sharded, line-per-entry Index Files.

Writers hold the package's ``PackageLock`` and replace the whole Index File
through a temporary file in the same directory, so a reader (``list``, the
static file server, cargo) only ever sees the previous or the new complete
file.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from pallet.errors import CorruptIndex
from pallet.registry import paths
from pallet.registry.locking import PackageLock
from pallet.registry.models import IndexEntry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Atomic file helpers
# ---------------------------------------------------------------------------


def _replace_from_temp(dest: Path, write, fsync: bool) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            write(fh)
            fh.flush()
            if fsync:
                os.fsync(fh.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, dest)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def atomic_write_bytes(dest: Path, data: bytes, fsync: bool = False) -> None:
    """Write *data* to *dest* via a temp file and ``os.replace``."""
    _replace_from_temp(Path(dest), lambda fh: fh.write(data), fsync)


def atomic_copy(src: Path, dest: Path, fsync: bool = False) -> None:
    """Copy *src* to *dest* so that *dest* is never seen half-written."""

    def _copy(fh):
        with open(src, "rb") as sf:
            shutil.copyfileobj(sf, fh)

    _replace_from_temp(Path(dest), _copy, fsync)


# ---------------------------------------------------------------------------
# Index Files
# ---------------------------------------------------------------------------


def parse_index_lines(text: str) -> Iterator[tuple[int, Union[IndexEntry, Exception]]]:
    """Yield ``(line number, entry or parse error)`` for each non-blank line."""
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            yield lineno, IndexEntry.from_line(line)
        except (ValueError, KeyError, TypeError) as e:
            yield lineno, e


def read_index_file(path: Path) -> list[IndexEntry]:
    """Read every entry of an Index File; a missing file is an empty list."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return []

    entries: list[IndexEntry] = []
    for lineno, item in parse_index_lines(text):
        if isinstance(item, Exception):
            raise CorruptIndex(f"line {lineno} is not a valid index entry: {item}", path=path, step="read-index")
        entries.append(item)
    return entries


def serialize_entries(entries: list[IndexEntry]) -> bytes:
    return "".join(e.to_line() + "\n" for e in entries).encode("utf-8")


class IndexStore:
    """Index Files under a registry root."""

    def __init__(self, root: Path, lock_timeout: float = 10.0, fsync: bool = False) -> None:
        self.root = Path(root)
        self.lock_timeout = lock_timeout
        self.fsync = fsync

    def path_for(self, name: str) -> Path:
        return self.root.joinpath(*paths.index_relpath(name).parts)

    def lock(self, name: str, timeout: Optional[float] = None) -> PackageLock:
        return PackageLock(
            self.root.joinpath(*paths.lock_relpath(name).parts),
            timeout=self.lock_timeout if timeout is None else timeout,
            name=name,
        )

    def read(self, name: str) -> list[IndexEntry]:
        return read_index_file(self.path_for(name))

    def write(self, name: str, entries: list[IndexEntry]) -> Path:
        """Replace the Index File for *name*. Caller must hold its lock.

        An empty entry list removes the file.
        """
        path = self.path_for(name)
        if not entries:
            try:
                path.unlink()
                logger.debug("Removed empty index file %s", path)
            except FileNotFoundError:
                pass
            return path
        atomic_write_bytes(path, serialize_entries(entries), fsync=self.fsync)
        logger.debug("Wrote %d entries to %s", len(entries), path)
        return path

    def iter_index_files(self) -> Iterator[Path]:
        """Walk the shard directories in a stable order.

        Only paths that can be Index Files are yielded: dot-files, the crate
        storage directory and root-level files are skipped.
        """
        if not self.root.is_dir():
            return
        for top in sorted(self.root.iterdir(), key=lambda p: p.name):
            if not top.is_dir() or top.name.startswith(".") or top.name == paths.CRATES_DIR:
                continue
            if not paths.is_shard_dir(top.name):
                continue
            yield from self._walk(top)

    def _walk(self, directory: Path) -> Iterator[Path]:
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            if child.name.startswith("."):
                continue
            if child.is_dir():
                yield from self._walk(child)
            elif child.is_file():
                yield child

    def relpath(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()
