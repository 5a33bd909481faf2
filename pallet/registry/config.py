"""Registry Config — ``config.json`` for cargo and ``pallet.yaml`` for pallet.

``config.json`` is the document cargo fetches first from a sparse registry;
it only carries what the client protocol defines (``dl`` and optionally
``api``). ``pallet.yaml`` keeps the manager's own settings. Both are written
once by initialization and replaced wholesale by a forced re-init.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlsplit

import yaml

from pallet.errors import ConfigError, PathNotEmpty, PathUnwritable, RegistryNotInitialized
from pallet.registry import paths
from pallet.registry.index_store import atomic_write_bytes

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

DOWNLOAD_SUFFIX = "crates/{crate}/{version}.crate"

# Flags accepted in ``defaults``.
KNOWN_FLAGS = {
    "html": "Regenerate a browsable index.html after every change",
    "fsync": "fsync Index Files and archives before renaming them into place",
}

# What ``pallet init --defaults`` turns on.
DEFAULT_FLAGS = frozenset({"html"})

DEFAULT_LOCK_TIMEOUT = 10.0


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


def expand_download_template(template: str, name: str, version: str, cksum: str = "") -> str:
    """Substitute a ``dl`` template the way cargo does."""
    prefix = paths.shard_prefix(name)
    return (
        template.replace("{crate}", name)
        .replace("{version}", version)
        .replace("{prefix}", prefix)
        .replace("{lowerprefix}", prefix.lower())
        .replace("{sha256-checksum}", cksum)
    )


def validate_base_url(base_url: str) -> str:
    if not isinstance(base_url, str):
        raise ConfigError(f"base URL must be a string, got {base_url!r}")
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"base URL must be an absolute http(s) URL, got {base_url!r}")
    if parts.query or parts.fragment:
        raise ConfigError(f"base URL must not carry a query or fragment: {base_url!r}")
    return base_url


def validate_flags(flags: Iterable[str]) -> frozenset[str]:
    result = frozenset(flags)
    unknown = sorted(result - KNOWN_FLAGS.keys())
    if unknown:
        raise ConfigError(
            f"unknown default flag(s): {', '.join(unknown)} (known: {', '.join(sorted(KNOWN_FLAGS))})"
        )
    return result


@dataclass(frozen=True)
class RegistryConfig:
    """Settings of one registry."""

    base_url: str
    api_enabled: bool = False
    defaults: frozenset[str] = field(default_factory=frozenset)
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    format_version: int = FORMAT_VERSION

    @property
    def download_template(self) -> str:
        return _with_trailing_slash(self.base_url) + DOWNLOAD_SUFFIX

    @property
    def api_url(self) -> Optional[str]:
        return self.base_url.rstrip("/") if self.api_enabled else None

    @property
    def html_enabled(self) -> bool:
        return "html" in self.defaults

    @property
    def fsync_enabled(self) -> bool:
        return "fsync" in self.defaults

    def download_url(self, name: str, version: str, cksum: str = "") -> str:
        return expand_download_template(self.download_template, name, version, cksum)

    def to_config_json(self) -> dict:
        data = {"dl": self.download_template}
        if self.api_url is not None:
            data["api"] = self.api_url
        return data

    def to_settings(self) -> dict:
        return {
            "format_version": self.format_version,
            "base_url": self.base_url,
            "api_enabled": self.api_enabled,
            "defaults": sorted(self.defaults),
            "lock_timeout": self.lock_timeout,
        }

    @classmethod
    def from_settings(cls, data: dict) -> RegistryConfig:
        if not isinstance(data, dict):
            raise ConfigError(f"{paths.SETTINGS_FILE} must be a mapping")
        try:
            base_url = validate_base_url(data["base_url"])
        except KeyError:
            raise ConfigError(f"{paths.SETTINGS_FILE} is missing base_url") from None
        try:
            lock_timeout = float(data.get("lock_timeout", DEFAULT_LOCK_TIMEOUT))
        except (TypeError, ValueError):
            raise ConfigError(f"lock_timeout must be a number, got {data.get('lock_timeout')!r}") from None
        try:
            format_version = int(data.get("format_version", FORMAT_VERSION))
        except (TypeError, ValueError):
            raise ConfigError(
                f"format_version must be an integer, got {data.get('format_version')!r}"
            ) from None
        return cls(
            base_url=base_url,
            api_enabled=bool(data.get("api_enabled", False)),
            defaults=validate_flags(data.get("defaults") or []),
            lock_timeout=lock_timeout,
            format_version=format_version,
        )


def load_config(root: Path) -> RegistryConfig:
    """Load the settings of the registry at *root*."""
    root = Path(root)
    settings_path = root / paths.SETTINGS_FILE
    if not settings_path.is_file() or not (root / paths.CONFIG_JSON).is_file():
        raise RegistryNotInitialized(
            f"no registry at {root} (run 'pallet init' first)", path=root, step="load-config"
        )
    try:
        with open(settings_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigError(f"cannot parse {paths.SETTINGS_FILE}: {e}", path=settings_path) from e
    return RegistryConfig.from_settings(data)


def write_config(root: Path, config: RegistryConfig, force: bool = False) -> None:
    """Create *root* if needed and write both config documents.

    A non-empty *root* is refused unless *force* is set, in which case the
    documents are overwritten wholesale; Index Files and archives are left
    alone.
    """
    root = Path(root)
    if root.exists() and not root.is_dir():
        raise PathUnwritable(f"{root} exists and is not a directory", path=root, step="init")
    if root.is_dir() and any(root.iterdir()) and not force:
        raise PathNotEmpty(f"{root} is not empty (use --force to overwrite the config)", path=root, step="init")

    fsync = config.fsync_enabled
    try:
        root.mkdir(parents=True, exist_ok=True)
        config_json = json.dumps(config.to_config_json(), indent=2) + "\n"
        atomic_write_bytes(root / paths.CONFIG_JSON, config_json.encode("utf-8"), fsync=fsync)
        settings = yaml.safe_dump(config.to_settings(), sort_keys=False)
        atomic_write_bytes(root / paths.SETTINGS_FILE, settings.encode("utf-8"), fsync=fsync)
    except OSError as e:
        raise PathUnwritable(f"cannot write registry config: {e}", path=root, step="init") from e

    logger.info("Wrote registry config to %s (dl=%s)", root, config.download_template)
