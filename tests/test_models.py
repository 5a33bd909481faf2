"""Tests for index entry serialization."""

import json

import pytest

from pallet.registry.models import ConsistencyIssue, Dependency, IndexEntry

# A line in the shape crates.io writes.
CRATES_IO_LINE = (
    '{"name":"demo","vers":"0.2.1","deps":[{"name":"serde","req":"^1.0","features":["derive"],'
    '"optional":true,"default_features":false,"target":null,"kind":"normal"},'
    '{"name":"json","req":"^1","features":[],"optional":false,"default_features":true,'
    '"target":"cfg(windows)","kind":"dev","registry":"https://github.com/rust-lang/crates.io-index",'
    '"package":"serde_json"}],"cksum":"' + "ab" * 32 + '","features":{"default":["std"],"std":[]},'
    '"yanked":false,"links":null,"v":2,"features2":{"serde":["dep:serde"]},"rust_version":"1.65"}'
)


def test_line_round_trip_is_exact():
    entry = IndexEntry.from_line(CRATES_IO_LINE)
    assert entry.to_line() == CRATES_IO_LINE


def test_fields_survive_round_trip():
    entry = IndexEntry(
        name="demo",
        vers="1.0.0",
        cksum="cd" * 32,
        deps=[
            Dependency(name="log", req="^0.4", features=["std"], optional=True, default_features=False),
            Dependency(name="cc", req="^1", kind="build", target="cfg(unix)", registry=None),
        ],
        features={"default": ["log"]},
        yanked=True,
        links="demo",
    )
    again = IndexEntry.from_line(entry.to_line())
    assert again == entry
    assert again.deps[0].features == ["std"]
    assert again.deps[1].kind == "build"
    assert again.yanked
    assert again.links == "demo"


def test_unknown_fields_are_preserved():
    data = json.loads(CRATES_IO_LINE)
    data["pubtime"] = "2024-01-01T00:00:00Z"
    entry = IndexEntry.from_dict(data)
    assert entry.extra == {"pubtime": "2024-01-01T00:00:00Z"}
    entry.yanked = True
    out = entry.to_dict()
    assert out["pubtime"] == "2024-01-01T00:00:00Z"
    assert out["yanked"] is True


def test_optional_fields_omitted_when_unset():
    entry = IndexEntry(name="foo", vers="1.0.0", cksum="00" * 32)
    data = entry.to_dict()
    assert list(data) == ["name", "vers", "deps", "cksum", "features", "yanked", "links"]
    assert data["links"] is None


def test_dependency_omits_null_registry_and_package():
    data = Dependency(name="x", req="^1").to_dict()
    assert "registry" not in data
    assert "package" not in data
    assert data["target"] is None


def test_issue_summary():
    issue = ConsistencyIssue("missing-blob", "crates/foo/1.0.0.crate", "foo", "1.0.0")
    assert issue.summary() == "missing-blob: foo@1.0.0 (crates/foo/1.0.0.crate)"


def test_unknown_dependency_kind_rejected():
    with pytest.raises(ValueError):
        Dependency.from_dict({"name": "x", "req": "^1", "kind": "runtime"})
