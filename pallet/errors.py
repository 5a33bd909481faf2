"""Error taxonomy for pallet.

Every failure a registry operation can report derives from ``PalletError``
and carries the package, version, path and step it concerns so the caller
can act on it. Nothing in pallet retries on its own.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class PalletError(Exception):
    """Base class for all registry errors."""

    reason_code = "error"

    def __init__(
        self,
        message: str,
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
        path: Optional[str | Path] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.name = name
        self.version = version
        self.path = str(path) if path is not None else None
        self.step = step

    def __str__(self) -> str:
        return self.format_human()

    def format_human(self) -> str:
        parts = [f"[{self.reason_code}] {self.message}"]
        if self.name:
            ident = self.name if not self.version else f"{self.name}@{self.version}"
            parts.append(f"package={ident}")
        if self.step:
            parts.append(f"step={self.step}")
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)


# -- registry root ---------------------------------------------------------


class PathError(PalletError):
    reason_code = "path"


class PathNotEmpty(PathError):
    reason_code = "path-not-empty"


class PathUnwritable(PathError):
    reason_code = "path-unwritable"


class RegistryNotInitialized(PathError):
    reason_code = "not-initialized"


class ConfigError(PalletError):
    reason_code = "config"


# -- archives --------------------------------------------------------------


class ArchiveError(PalletError):
    reason_code = "archive"


class UnreadableArchive(ArchiveError):
    reason_code = "unreadable-archive"


class MissingManifest(ArchiveError):
    reason_code = "missing-manifest"


class MalformedManifest(ArchiveError):
    reason_code = "malformed-manifest"


# -- index -----------------------------------------------------------------


class InvalidName(PalletError):
    reason_code = "invalid-name"


class DuplicateVersion(PalletError):
    reason_code = "duplicate-version"


class LockTimeout(PalletError):
    reason_code = "lock-timeout"


class PartialPublish(PalletError):
    """The index was updated but the archive could not be stored.

    Not rolled back: ``pallet check`` reports the entry as a missing blob.
    """

    reason_code = "partial-publish"


class CorruptIndex(PalletError):
    """An Index File line could not be parsed."""

    reason_code = "corrupt-index"


class NotFound(PalletError):
    reason_code = "not-found"
