"""Local file-based registry implementation.

A registry is a directory that a static file server can expose verbatim as
a Cargo sparse registry. ``Registry`` is an explicit value (root path plus
config) handed to every operation, so several registries can be used side
by side in one process.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pallet.crates.archive import inspect, sha256_file
from pallet.errors import DuplicateVersion, InvalidName, NotFound, PalletError, PartialPublish
from pallet.registry import paths
from pallet.registry.config import (
    DEFAULT_LOCK_TIMEOUT,
    RegistryConfig,
    load_config,
    validate_base_url,
    validate_flags,
    write_config,
)
from pallet.registry.index_store import IndexStore, atomic_copy, parse_index_lines, read_index_file
from pallet.registry.models import ConsistencyIssue, IndexEntry, ListRow

logger = logging.getLogger(__name__)


def _same_version(a: str, b: str) -> bool:
    # Build metadata does not distinguish versions.
    return a.split("+", 1)[0] == b.split("+", 1)[0]


def _find(entries: list[IndexEntry], version: str) -> Optional[int]:
    for i, entry in enumerate(entries):
        if _same_version(entry.vers, version):
            return i
    return None


class Registry:
    """A registry rooted at a directory."""

    def __init__(self, root: str | Path, config: RegistryConfig):
        self.root = Path(root)
        self.config = config
        self.index = IndexStore(self.root, lock_timeout=config.lock_timeout, fsync=config.fsync_enabled)

    def __repr__(self) -> str:
        return f"Registry(root={str(self.root)!r}, base_url={self.config.base_url!r})"

    @classmethod
    def open(cls, root: str | Path) -> Registry:
        """Open an initialized registry; fails if ``pallet init`` never ran."""
        return cls(root, load_config(Path(root)))

    @property
    def index_url(self) -> str:
        """The URL cargo users put in ``.cargo/config.toml``."""
        base = self.config.base_url
        return "sparse+" + (base if base.endswith("/") else base + "/")

    def crate_path(self, name: str, version: str) -> Path:
        return self.root.joinpath(*paths.crate_relpath(name, version).parts)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, archive_path: str | Path) -> IndexEntry:
        """Add a ``.crate`` to the registry and return its new Index Entry.

        The Index File is updated first and the archive copied second, both
        while holding the package's lock. A yanked version may be published
        again with byte-identical contents, which clears the yank.
        """
        archive_path = Path(archive_path)
        info = inspect(archive_path, own_index=self.index_url)
        entry = info.to_entry()
        republished = False

        with self.index.lock(info.name):
            entries = self.index.read(info.name)
            if entries and entries[0].name != info.name:
                raise InvalidName(
                    f"crate already published as {entries[0].name!r}",
                    name=info.name,
                    version=info.version,
                    step="publish",
                )

            pos = _find(entries, info.version)
            if pos is not None:
                existing = entries[pos]
                if not existing.yanked:
                    raise DuplicateVersion(
                        f"version {existing.vers} is already published",
                        name=info.name,
                        version=info.version,
                        path=self.index.path_for(info.name),
                        step="publish",
                    )
                if existing.cksum != entry.cksum:
                    raise DuplicateVersion(
                        f"version {existing.vers} is yanked and the new archive has different contents",
                        name=info.name,
                        version=info.version,
                        path=self.index.path_for(info.name),
                        step="publish",
                    )
                entries[pos] = entry
                republished = True
            else:
                entries.append(entry)

            self.index.write(info.name, entries)

            blob_path = self.crate_path(info.name, info.version)
            try:
                atomic_copy(archive_path, blob_path, fsync=self.config.fsync_enabled)
            except OSError as e:
                logger.error("Index updated but archive copy failed for %s: %s", entry.qualified_id, e)
                raise PartialPublish(
                    f"index entry written but the archive could not be stored: {e}",
                    name=info.name,
                    version=info.version,
                    path=blob_path,
                    step="store-archive",
                ) from e

        logger.info(
            "%s %s (%d bytes, sha256 %s)",
            "Republished" if republished else "Published",
            entry.qualified_id,
            info.size,
            entry.cksum,
        )
        self._after_change()
        return entry

    # ------------------------------------------------------------------
    # Yank / unyank / remove
    # ------------------------------------------------------------------

    def _not_found(self, name: str, version: Optional[str] = None) -> NotFound:
        what = f"{name}@{version}" if version else name
        return NotFound(f"{what} is not in the registry", name=name, version=version, step="lookup")

    def _set_yanked(self, name: str, version: str, yanked: bool) -> IndexEntry:
        with self.index.lock(name):
            entries = self.index.read(name)
            pos = _find(entries, version)
            if pos is None:
                raise self._not_found(name, version)
            entry = entries[pos]
            if entry.yanked != yanked:
                entry.yanked = yanked
                self.index.write(name, entries)
                logger.info("%s %s", "Yanked" if yanked else "Unyanked", entry.qualified_id)
            else:
                logger.info("%s is already %s", entry.qualified_id, "yanked" if yanked else "not yanked")
        self._after_change()
        return entry

    def yank(self, name: str, version: str) -> IndexEntry:
        return self._set_yanked(name, version, True)

    def unyank(self, name: str, version: str) -> IndexEntry:
        return self._set_yanked(name, version, False)

    def remove(self, name: str, version: str) -> IndexEntry:
        """Delete one version's Index Entry and archive.

        This is an administrative action: clients that already resolved the
        version will fail to fetch it. Prefer ``yank``.
        """
        with self.index.lock(name):
            entries = self.index.read(name)
            pos = _find(entries, version)
            if pos is None:
                raise self._not_found(name, version)
            entry = entries.pop(pos)
            self.index.write(name, entries)

            blob = self.crate_path(entry.name, entry.vers)
            blob.unlink(missing_ok=True)
            if blob.parent.is_dir() and not any(blob.parent.iterdir()):
                blob.parent.rmdir()

        logger.info("Removed %s", entry.qualified_id)
        self._after_change()
        return entry

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_entries(self) -> Iterator[ListRow]:
        """Yield one row per published version.

        Shard directories are walked in name order and versions come in
        publish order. Each call reads the current files.
        """
        for path in self.index.iter_index_files():
            for entry in read_index_file(path):
                yield ListRow(name=entry.name, version=entry.vers, yanked=entry.yanked)

    def packages(self) -> Iterator[list[IndexEntry]]:
        """Yield the entries of each Index File, one list per package."""
        for path in self.index.iter_index_files():
            entries = read_index_file(path)
            if entries:
                yield entries

    def versions(self, name: str) -> list[IndexEntry]:
        entries = self.index.read(name)
        if not entries:
            raise self._not_found(name)
        return entries

    def get(self, name: str, version: str) -> IndexEntry:
        entries = self.index.read(name)
        pos = _find(entries, version)
        if pos is None:
            raise self._not_found(name, version)
        return entries[pos]

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check(self, verify_checksums: bool = True) -> list[ConsistencyIssue]:
        """Compare Index Entries with stored archives.

        Reports entries whose archive is missing (the shape an interrupted
        publish leaves), archives whose digest differs from the entry,
        archives no entry refers to, unparseable lines, and Index Files
        stored under the wrong shard path. Nothing is repaired.
        """
        issues: list[ConsistencyIssue] = []
        referenced: set[Path] = set()

        for path in self.index.iter_index_files():
            rel = self.index.relpath(path)
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                # Removed by a concurrent ``remove`` since the walk listed it.
                continue
            for lineno, item in parse_index_lines(text):
                if isinstance(item, Exception):
                    issues.append(ConsistencyIssue("malformed-entry", rel, detail=f"line {lineno}: {item}"))
                    continue
                try:
                    expected = paths.index_relpath(item.name).as_posix()
                except InvalidName as e:
                    issues.append(
                        ConsistencyIssue("malformed-entry", rel, item.name, item.vers, f"line {lineno}: {e.message}")
                    )
                    continue
                if expected != rel:
                    issues.append(
                        ConsistencyIssue("misplaced-index", rel, item.name, item.vers, f"expected at {expected}")
                    )

                blob = self.crate_path(item.name, item.vers)
                referenced.add(blob)
                blob_rel = paths.crate_relpath(item.name, item.vers).as_posix()
                if not blob.is_file():
                    issues.append(ConsistencyIssue("missing-blob", blob_rel, item.name, item.vers))
                elif verify_checksums:
                    actual = sha256_file(blob)
                    if actual != item.cksum:
                        issues.append(
                            ConsistencyIssue(
                                "checksum-mismatch",
                                blob_rel,
                                item.name,
                                item.vers,
                                f"index {item.cksum[:12]}, stored {actual[:12]}",
                            )
                        )

        crates_dir = self.root / paths.CRATES_DIR
        if crates_dir.is_dir():
            for blob in sorted(crates_dir.rglob("*.crate")):
                if blob.name.startswith(".") or blob in referenced:
                    continue
                issues.append(
                    ConsistencyIssue(
                        "orphan-blob",
                        blob.relative_to(self.root).as_posix(),
                        blob.parent.name,
                        blob.name[: -len(".crate")],
                    )
                )

        logger.info("Consistency check of %s found %d issue(s)", self.root, len(issues))
        return issues

    def _after_change(self) -> None:
        """Regenerate ``index.html`` once a change is committed.

        The change itself already succeeded, so a failure here is logged and
        left for ``pallet generate-html`` instead of being reported as a
        failed operation.
        """
        if not self.config.html_enabled:
            return
        from pallet.registry.html import write_html

        try:
            write_html(self)
        except (PalletError, OSError) as e:
            logger.warning("index.html not regenerated: %s", e)


def initialize(
    root: str | Path,
    base_url: str,
    *,
    api_enabled: bool = False,
    defaults: Iterable[str] = (),
    force: bool = False,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> Registry:
    """Create a registry at *root* and return it.

    Raises:
        PathNotEmpty: *root* has content and *force* is not set.
        PathUnwritable: the config documents cannot be written.
        ConfigError: *base_url* or *defaults* are invalid.
    """
    config = RegistryConfig(
        base_url=validate_base_url(base_url),
        api_enabled=api_enabled,
        defaults=validate_flags(defaults),
        lock_timeout=lock_timeout,
    )
    write_config(Path(root), config, force=force)
    registry = Registry(root, config)
    registry._after_change()
    logger.info("Initialized registry at %s", root)
    return registry
