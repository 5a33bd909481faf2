"""Tests for the browsable index page."""

import tempfile
from pathlib import Path

from helpers import build_crate

from pallet.registry.html import render_html, write_html
from pallet.registry.local_registry import initialize


def test_render_lists_latest_live_version():
    with tempfile.TemporaryDirectory() as tmpdir:
        reg = initialize(Path(tmpdir) / "registry", "http://127.0.0.1:8000/")
        for version in ("1.0.0", "1.2.0", "1.10.0"):
            reg.publish(build_crate(tmpdir, "zeta", version))
        reg.publish(build_crate(tmpdir, "Alpha", "0.1.0"))
        reg.yank("zeta", "1.10.0")

        page = render_html(reg)
        assert '<td>zeta</td><td>1.2.0</td>' in page
        assert 'class="yanked">1.10.0</a>' in page
        assert page.index("Alpha") < page.index("zeta")
        assert 'index = "sparse+http://127.0.0.1:8000/"' in page


def test_package_with_every_version_yanked():
    with tempfile.TemporaryDirectory() as tmpdir:
        reg = initialize(Path(tmpdir) / "registry", "http://127.0.0.1:8000/")
        reg.publish(build_crate(tmpdir, "foo", "1.0.0-alpha.1"))
        reg.yank("foo", "1.0.0-alpha.1")

        page = render_html(reg)
        assert "<em>all yanked</em>" in page


def test_write_html_creates_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        reg = initialize(Path(tmpdir) / "registry", "http://127.0.0.1:8000/")
        dest = write_html(reg)
        assert dest == reg.root / "index.html"
        assert "0 crate(s)" in dest.read_text()


def test_prerelease_is_latest_only_without_stable_release():
    with tempfile.TemporaryDirectory() as tmpdir:
        reg = initialize(Path(tmpdir) / "registry", "http://127.0.0.1:8000/")
        reg.publish(build_crate(tmpdir, "beta", "2.0.0-rc.1"))
        assert "<td>beta</td><td>2.0.0-rc.1</td>" in render_html(reg)

        reg.publish(build_crate(tmpdir, "beta", "1.4.0"))
        assert "<td>beta</td><td>1.4.0</td>" in render_html(reg)
