"""Semantic version grammar used by cargo manifests and index entries.

Only what the registry needs: validating a published version, putting
dependency requirements into cargo's canonical form, and ordering versions
for display.
"""

from __future__ import annotations

import re

# semver.org 2.0.0 grammar.
_VERSION_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# One comparator of a version requirement: optional operator, then a
# partial version that may use wildcards (``1``, ``1.2``, ``1.*``, ``1.2.x``).
_COMPARATOR_RE = re.compile(
    r"^(?P<op>\^|~|=|>=|<=|>|<)?\s*"
    r"(?P<ver>\d+(?:\.(?:\d+|[*xX])(?:\.(?:\d+|[*xX]))?)?"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)

_WILDCARDS = {"*", "x", "X"}


def is_valid_version(version: str) -> bool:
    return bool(_VERSION_RE.match(version or ""))


def normalize_req(req: str) -> str:
    """Return *req* in the form cargo writes to the index.

    A bare version gets the implicit caret operator (``1.0`` -> ``^1.0``)
    and comparators are joined with ``", "``.

    Raises:
        ValueError: if any comparator is not a valid requirement.
    """
    text = (req or "").strip()
    if not text:
        raise ValueError("empty version requirement")

    out: list[str] = []
    for part in text.split(","):
        part = part.strip()
        if part in _WILDCARDS:
            out.append("*")
            continue
        m = _COMPARATOR_RE.match(part)
        if not m:
            raise ValueError(f"invalid version requirement: {req!r}")
        ver = m.group("ver")
        # Wildcard requirements have no implicit operator.
        core = ver.split("-", 1)[0].split("+", 1)[0]
        op = m.group("op") or ("" if any(c in core for c in "*xX") else "^")
        out.append(f"{op}{ver}")
    return ", ".join(out)


def sort_key(version: str) -> tuple:
    """Ordering key following semver precedence.

    Build metadata is ignored. Versions that do not parse sort first.
    """
    m = _VERSION_RE.match(version or "")
    if not m:
        return (-1,)
    core = (int(m.group("major")), int(m.group("minor")), int(m.group("patch")))
    pre = m.group("pre")
    if pre is None:
        return (0, core, 1, ())
    idents = tuple(
        (0, int(p), "") if p.isdigit() else (1, 0, p) for p in pre.split(".")
    )
    return (0, core, 0, idents)


def is_prerelease(version: str) -> bool:
    m = _VERSION_RE.match(version or "")
    return bool(m and m.group("pre"))
