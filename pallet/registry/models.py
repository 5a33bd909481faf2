"""Registry data models — index entries, dependency records, listing rows."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

# Written into dependency records that come from crates.io.
CRATES_IO_INDEX = "https://github.com/rust-lang/crates.io-index"

DEPENDENCY_KINDS = ("normal", "dev", "build")


@dataclass
class Dependency:
    """One dependency record of an index entry, in cargo's index shape."""

    name: str
    req: str
    features: list[str] = field(default_factory=list)
    optional: bool = False
    default_features: bool = True
    target: Optional[str] = None
    kind: str = "normal"
    registry: Optional[str] = None
    package: Optional[str] = None  # Real crate name when ``name`` is a rename

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "req": self.req,
            "features": list(self.features),
            "optional": self.optional,
            "default_features": self.default_features,
            "target": self.target,
            "kind": self.kind,
        }
        if self.registry is not None:
            data["registry"] = self.registry
        if self.package is not None:
            data["package"] = self.package
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        kind = data.get("kind") or "normal"
        if kind not in DEPENDENCY_KINDS:
            raise ValueError(f"unknown dependency kind {kind!r}")
        return cls(
            name=data["name"],
            req=data["req"],
            features=list(data.get("features") or []),
            optional=bool(data.get("optional", False)),
            default_features=bool(data.get("default_features", True)),
            target=data.get("target"),
            kind=kind,
            registry=data.get("registry"),
            package=data.get("package"),
        )


@dataclass
class IndexEntry:
    """A single published version: one line of an Index File.

    Immutable once written except for ``yanked``. Fields this version of
    pallet does not know about are kept in ``extra`` and written back
    unchanged.
    """

    name: str
    vers: str
    cksum: str
    deps: list[Dependency] = field(default_factory=list)
    features: dict[str, list[str]] = field(default_factory=dict)
    yanked: bool = False
    links: Optional[str] = None
    v: Optional[int] = None
    features2: Optional[dict[str, list[str]]] = None
    rust_version: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def version(self) -> str:
        return self.vers

    @property
    def qualified_id(self) -> str:
        return f"{self.name}@{self.vers}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "vers": self.vers,
            "deps": [d.to_dict() for d in self.deps],
            "cksum": self.cksum,
            "features": {k: list(v) for k, v in self.features.items()},
            "yanked": self.yanked,
            "links": self.links,
        }
        if self.v is not None:
            data["v"] = self.v
        if self.features2:
            data["features2"] = {k: list(v) for k, v in self.features2.items()}
        if self.rust_version is not None:
            data["rust_version"] = self.rust_version
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    def to_line(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexEntry:
        known = {
            "name", "vers", "deps", "cksum", "features", "yanked",
            "links", "v", "features2", "rust_version",
        }
        return cls(
            name=data["name"],
            vers=data["vers"],
            cksum=data["cksum"],
            deps=[Dependency.from_dict(d) for d in data.get("deps") or []],
            features={k: list(v) for k, v in (data.get("features") or {}).items()},
            yanked=bool(data.get("yanked", False)),
            links=data.get("links"),
            v=data.get("v"),
            features2=data.get("features2") or None,
            rust_version=data.get("rust_version"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    @classmethod
    def from_line(cls, line: str) -> IndexEntry:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("index line is not a JSON object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class ListRow:
    """One (name, version) pair as reported by ``list``."""

    name: str
    version: str
    yanked: bool = False


@dataclass
class CrateInfo:
    """What the registry learns from a ``.crate`` before publishing it."""

    name: str
    version: str
    cksum: str
    deps: list[Dependency] = field(default_factory=list)
    features: dict[str, list[str]] = field(default_factory=dict)
    features2: dict[str, list[str]] = field(default_factory=dict)
    links: Optional[str] = None
    rust_version: Optional[str] = None
    size: int = 0

    def to_entry(self) -> IndexEntry:
        return IndexEntry(
            name=self.name,
            vers=self.version,
            cksum=self.cksum,
            deps=list(self.deps),
            features=dict(self.features),
            yanked=False,
            links=self.links,
            v=2 if self.features2 else None,
            features2=dict(self.features2) or None,
            rust_version=self.rust_version,
        )


@dataclass(frozen=True)
class ConsistencyIssue:
    """A problem found by comparing Index Files against stored archives."""

    kind: str  # missing-blob | checksum-mismatch | orphan-blob | malformed-entry | misplaced-index
    path: str
    name: str = ""
    version: str = ""
    detail: str = ""

    def summary(self) -> str:
        ident = f"{self.name}@{self.version}" if self.version else self.name
        head = f"{self.kind}: {ident}" if ident else f"{self.kind}:"
        return f"{head} ({self.path}) {self.detail}".rstrip()
