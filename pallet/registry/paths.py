"""Path derivation shared with the cargo client.

Cargo computes the location of an Index File from the crate name alone, so
these rules must match its own derivation character for character:

- 1-character names: ``1/{name}``
- 2-character names: ``2/{name}``
- 3-character names: ``3/{first char}/{name}``
- longer names: ``{chars 0-2}/{chars 2-4}/{name}``

All components are lowercased.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from pallet.errors import InvalidName

CONFIG_JSON = "config.json"
SETTINGS_FILE = "pallet.yaml"
HTML_FILE = "index.html"
CRATES_DIR = "crates"
LOCKS_DIR = ".locks"

MAX_NAME_LENGTH = 64

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


def validate_name(name: str) -> str:
    """Return *name* unchanged if it is a publishable crate name."""
    if not name or len(name) > MAX_NAME_LENGTH or not _NAME_RE.match(name):
        raise InvalidName(
            f"invalid crate name {name!r}: must start with a letter, contain only "
            f"letters, digits, '-' or '_' and be at most {MAX_NAME_LENGTH} characters",
            name=name,
        )
    return name


def normalize_name(name: str) -> str:
    return name.lower()


def shard_prefix(name: str) -> str:
    """Directory part of the shard path, keeping the casing of *name*.

    This is what cargo substitutes for ``{prefix}`` in a download template.
    """
    validate_name(name)
    if len(name) == 1:
        return "1"
    if len(name) == 2:
        return "2"
    if len(name) == 3:
        return f"3/{name[0]}"
    return f"{name[0:2]}/{name[2:4]}"


def index_relpath(name: str) -> PurePosixPath:
    """Relative path of the Index File for *name*."""
    key = normalize_name(validate_name(name))
    return PurePosixPath(shard_prefix(key), key)


def crate_relpath(name: str, version: str) -> PurePosixPath:
    """Relative path of the stored archive for one version.

    Matches the ``crates/{crate}/{version}.crate`` download template.
    """
    validate_name(name)
    return PurePosixPath(CRATES_DIR, name, f"{version}.crate")


def lock_relpath(name: str) -> PurePosixPath:
    return PurePosixPath(LOCKS_DIR, *index_relpath(name).parts).with_suffix(".lock")


def is_shard_dir(part: str) -> bool:
    """True if a top-level directory name can hold Index Files."""
    if part in ("1", "2", "3"):
        return True
    return len(part) == 2 and part[0].isalpha() and not part.startswith(".")
