"""Checksum & Manifest Reader for ``.crate`` archives.

A ``.crate`` is a gzipped tarball with a single top-level directory named
``{name}-{version}`` containing the normalized ``Cargo.toml`` that
``cargo package`` writes. The registry treats everything else in the archive
as opaque.

The checksum is the SHA-256 of the archive bytes exactly as stored, which is
what cargo verifies after downloading.
"""

from __future__ import annotations

import hashlib
import logging
import tarfile
import tomllib
from pathlib import Path
from typing import Any, Optional

from pallet.crates.semver import is_valid_version, normalize_req
from pallet.errors import InvalidName, MalformedManifest, MissingManifest, UnreadableArchive
from pallet.registry.models import CRATES_IO_INDEX, CrateInfo, Dependency
from pallet.registry.paths import validate_name

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MANIFEST_NAME = "Cargo.toml"

# (table name, dependency kind); both spellings cargo accepts.
_DEP_TABLES = (
    ("dependencies", "normal"),
    ("dev-dependencies", "dev"),
    ("dev_dependencies", "dev"),
    ("build-dependencies", "build"),
    ("build_dependencies", "build"),
)


def sha256_file(path: Path) -> str:
    """Hex SHA-256 of a file, streamed."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def read_manifest(archive_path: Path) -> tuple[str, dict[str, Any]]:
    """Return ``(top-level directory, parsed Cargo.toml)`` from an archive."""
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = tar.getmembers()
            tops = {m.name.lstrip("./").split("/", 1)[0] for m in members if m.name.strip("./")}
            if len(tops) != 1:
                raise MissingManifest(
                    f"expected one top-level directory in the archive, found {len(tops)}",
                    path=archive_path,
                    step="inspect",
                )
            top = tops.pop()
            manifest_member = None
            for m in members:
                if m.name.lstrip("./") == f"{top}/{MANIFEST_NAME}":
                    manifest_member = m
                    break
            if manifest_member is None or not manifest_member.isfile():
                raise MissingManifest(f"archive has no {top}/{MANIFEST_NAME}", path=archive_path, step="inspect")
            fh = tar.extractfile(manifest_member)
            raw = fh.read() if fh is not None else b""
    except (tarfile.TarError, EOFError, OSError) as e:
        raise UnreadableArchive(f"cannot read archive: {e}", path=archive_path, step="inspect") from e

    try:
        return top, tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise MalformedManifest(f"cannot parse {MANIFEST_NAME}: {e}", path=archive_path, step="inspect") from e


def _string_list(value: Any, what: str, archive_path: Path) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedManifest(f"{what} must be a list of strings", path=archive_path, step="inspect")
    return list(value)


def _parse_dependency(
    dep_name: str,
    spec: Any,
    kind: str,
    target: Optional[str],
    archive_path: Path,
    own_index: Optional[str],
) -> Optional[Dependency]:
    if isinstance(spec, str):
        table: dict[str, Any] = {}
        req = spec
    elif isinstance(spec, dict):
        table = spec
        req = table.get("version")
    else:
        raise MalformedManifest(f"dependency {dep_name!r} has an invalid specification", path=archive_path, step="inspect")

    if req is None:
        # cargo package drops version-less dev-dependencies too.
        if kind == "dev":
            logger.debug("Skipping path/git-only dev-dependency %s", dep_name)
            return None
        raise MalformedManifest(
            f"dependency {dep_name!r} has no version requirement; path or git only "
            "dependencies cannot be published",
            path=archive_path,
            step="inspect",
        )
    try:
        req = normalize_req(str(req))
    except ValueError as e:
        raise MalformedManifest(f"dependency {dep_name!r}: {e}", path=archive_path, step="inspect") from e

    registry = table.get("registry-index") or CRATES_IO_INDEX
    if own_index and registry.rstrip("/") == own_index.rstrip("/"):
        registry = None

    return Dependency(
        name=dep_name,
        req=req,
        features=_string_list(table.get("features"), f"features of dependency {dep_name!r}", archive_path),
        optional=bool(table.get("optional", False)),
        default_features=bool(table.get("default-features", table.get("default_features", True))),
        target=target,
        kind=kind,
        registry=registry,
        package=table.get("package"),
    )


def _collect_dependencies(manifest: dict[str, Any], archive_path: Path, own_index: Optional[str]) -> list[Dependency]:
    scopes: list[tuple[Optional[str], dict[str, Any]]] = [(None, manifest)]
    targets = manifest.get("target") or {}
    if not isinstance(targets, dict):
        raise MalformedManifest("[target] must be a table", path=archive_path, step="inspect")
    scopes.extend(targets.items())

    deps: list[Dependency] = []
    for target, scope in scopes:
        if not isinstance(scope, dict):
            raise MalformedManifest(f"[target.{target!r}] must be a table", path=archive_path, step="inspect")
        for table_name, kind in _DEP_TABLES:
            table = scope.get(table_name)
            if table is None:
                continue
            if not isinstance(table, dict):
                raise MalformedManifest(f"[{table_name}] must be a table", path=archive_path, step="inspect")
            for dep_name, spec in table.items():
                dep = _parse_dependency(dep_name, spec, kind, target, archive_path, own_index)
                if dep is not None:
                    deps.append(dep)
    return deps


def _split_features(
    manifest: dict[str, Any], archive_path: Path
) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
    """Split features into the ``features`` / ``features2`` pair.

    Features using ``dep:`` or ``?/`` syntax go to ``features2`` so that
    older cargo versions reading ``features`` do not choke on them.
    """
    raw = manifest.get("features") or {}
    if not isinstance(raw, dict):
        raise MalformedManifest("[features] must be a table", path=archive_path, step="inspect")
    features: dict[str, list[str]] = {}
    features2: dict[str, list[str]] = {}
    for feature, values in raw.items():
        values = _string_list(values, f"feature {feature!r}", archive_path)
        if any(v.startswith("dep:") or "?/" in v for v in values):
            features2[feature] = values
        else:
            features[feature] = values
    return features, features2


def inspect(archive_path: str | Path, own_index: Optional[str] = None) -> CrateInfo:
    """Read an archive and derive everything needed for its Index Entry.

    Args:
        archive_path: Path to the ``.crate`` file.
        own_index: Index URL of the receiving registry; dependencies pointing
            at it are written without a ``registry`` field.

    Raises:
        UnreadableArchive: the file is missing or not a gzipped tarball.
        MissingManifest: no ``Cargo.toml`` in the expected place.
        MalformedManifest: the manifest does not describe a publishable crate.
    """
    path = Path(archive_path)
    try:
        cksum = sha256_file(path)
        size = path.stat().st_size
    except OSError as e:
        raise UnreadableArchive(f"cannot read archive: {e}", path=path, step="inspect") from e

    top, manifest = read_manifest(path)

    package = manifest.get("package") or manifest.get("project")
    if not isinstance(package, dict):
        raise MalformedManifest("manifest has no [package] table", path=path, step="inspect")
    name = package.get("name")
    version = package.get("version")
    if not isinstance(name, str) or not isinstance(version, str):
        raise MalformedManifest("package.name and package.version must be strings", path=path, step="inspect")
    try:
        validate_name(name)
    except InvalidName as e:
        raise MalformedManifest(e.message, name=name, version=version, path=path, step="inspect") from e
    if not is_valid_version(version):
        raise MalformedManifest(f"invalid semver version {version!r}", name=name, version=version, path=path, step="inspect")
    if top != f"{name}-{version}":
        raise MalformedManifest(
            f"archive directory {top!r} does not match {name}-{version}",
            name=name,
            version=version,
            path=path,
            step="inspect",
        )

    links = package.get("links")
    rust_version = package.get("rust-version")
    features, features2 = _split_features(manifest, path)

    info = CrateInfo(
        name=name,
        version=version,
        cksum=cksum,
        deps=_collect_dependencies(manifest, path, own_index),
        features=features,
        features2=features2,
        links=links if isinstance(links, str) else None,
        rust_version=rust_version if isinstance(rust_version, str) else None,
        size=size,
    )
    logger.debug("Inspected %s: %s@%s sha256=%s", path, name, version, cksum)
    return info
