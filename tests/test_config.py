"""Tests for registry initialization and config documents."""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from pallet.errors import ConfigError, PathNotEmpty, PathUnwritable, RegistryNotInitialized
from pallet.registry.config import RegistryConfig, expand_download_template, load_config
from pallet.registry.local_registry import Registry, initialize


def test_initialize_writes_config_json():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "registry"
        reg = initialize(root, "http://127.0.0.1:8000/")

        config = json.loads((root / "config.json").read_text())
        assert config == {"dl": "http://127.0.0.1:8000/crates/{crate}/{version}.crate"}
        assert reg.config.base_url == "http://127.0.0.1:8000/"
        assert reg.index_url == "sparse+http://127.0.0.1:8000/"


def test_base_url_without_trailing_slash():
    with tempfile.TemporaryDirectory() as tmpdir:
        reg = initialize(Path(tmpdir) / "r", "https://crates.example.com/reg", api_enabled=True)
        config = json.loads((reg.root / "config.json").read_text())
        assert config["dl"] == "https://crates.example.com/reg/crates/{crate}/{version}.crate"
        assert config["api"] == "https://crates.example.com/reg"
        # Stored verbatim.
        assert load_config(reg.root).base_url == "https://crates.example.com/reg"


def test_settings_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "r"
        initialize(root, "http://localhost:9000/", defaults=["html", "fsync"], lock_timeout=2.5)
        settings = yaml.safe_load((root / "pallet.yaml").read_text())
        assert settings["defaults"] == ["fsync", "html"]

        config = load_config(root)
        assert config.defaults == frozenset({"html", "fsync"})
        assert config.html_enabled and config.fsync_enabled
        assert config.lock_timeout == 2.5
        assert (root / "index.html").exists()


def test_non_empty_directory_is_refused():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "something").write_text("x")
        with pytest.raises(PathNotEmpty):
            initialize(root, "http://127.0.0.1:8000/")
        assert not (root / "config.json").exists()


def test_force_overwrites_wholesale():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "r"
        initialize(root, "http://old.example/", api_enabled=True, defaults=["html"])
        initialize(root, "http://new.example/", force=True)

        config = json.loads((root / "config.json").read_text())
        assert config == {"dl": "http://new.example/crates/{crate}/{version}.crate"}
        loaded = load_config(root)
        assert loaded.base_url == "http://new.example/"
        assert loaded.defaults == frozenset()
        assert not loaded.api_enabled


def test_root_that_is_a_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "file"
        target.write_text("x")
        with pytest.raises(PathUnwritable):
            initialize(target, "http://127.0.0.1:8000/")


@pytest.mark.parametrize("url", ["", "127.0.0.1:8000", "ftp://host/", "http://", "http://h/?q=1"])
def test_invalid_base_url(url):
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigError):
            initialize(Path(tmpdir) / "r", url)


def test_unknown_flag():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigError):
            initialize(Path(tmpdir) / "r", "http://127.0.0.1:8000/", defaults=["turbo"])


def test_open_uninitialized_directory():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(RegistryNotInitialized):
            Registry.open(tmpdir)


def test_malformed_settings():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "r"
        initialize(root, "http://127.0.0.1:8000/")
        (root / "pallet.yaml").write_text("base_url: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(root)

        (root / "pallet.yaml").write_text("api_enabled: true\n")
        with pytest.raises(ConfigError):
            load_config(root)


def test_download_url_substitution():
    config = RegistryConfig(base_url="http://127.0.0.1:8000/")
    assert config.download_url("foo", "1.0.0") == "http://127.0.0.1:8000/crates/foo/1.0.0.crate"


def test_download_template_markers():
    template = "https://dl.example/{prefix}/{lowerprefix}/{crate}/{version}/{sha256-checksum}"
    assert (
        expand_download_template(template, "Serde", "1.0.0", "ff00")
        == "https://dl.example/Se/rd/se/rd/Serde/1.0.0/ff00"
    )
    assert expand_download_template(template, "abc", "0.1.0") == "https://dl.example/3/a/3/a/abc/0.1.0/"


def test_bad_format_version_and_encoding():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "r"
        initialize(root, "http://127.0.0.1:8000/")
        settings = root / "pallet.yaml"
        settings.write_text("base_url: http://127.0.0.1:8000/\nformat_version: one\n")
        with pytest.raises(ConfigError):
            load_config(root)

        settings.write_bytes(b"base_url: http://127.0.0.1:8000/\n# \xff\xfe\n")
        with pytest.raises(ConfigError):
            load_config(root)
