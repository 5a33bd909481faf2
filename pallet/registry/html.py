"""Browsable ``index.html`` for a registry.

A static page listing every package with its newest non-yanked version and
download links, so the registry can be browsed with the same file server
that cargo talks to.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pallet import __version__
from pallet.crates.semver import is_prerelease, sort_key
from pallet.registry import paths
from pallet.registry.index_store import atomic_write_bytes

if TYPE_CHECKING:
    from pallet.registry.local_registry import Registry

logger = logging.getLogger(__name__)

_PAGE_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; margin: 2em auto; max-width: 60em; }}
table {{ border-collapse: collapse; width: 100%; }}
th, td {{ text-align: left; padding: 0.3em 0.8em; border-bottom: 1px solid #ddd; }}
.yanked {{ text-decoration: line-through; color: #999; }}
code {{ background: #f4f4f4; padding: 0.1em 0.3em; }}
</style>
</head>
<body>
<h1>{title}</h1>
<p>Add this registry to <code>.cargo/config.toml</code>:</p>
<pre><code>[registries.{registry_name}]
index = "{index_url}"</code></pre>
<table>
<thead><tr><th>Crate</th><th>Latest</th><th>Versions</th></tr></thead>
<tbody>
{rows}
</tbody>
</table>
<p><small>{count} crate(s). Generated by pallet {pallet_version} at {timestamp}.</small></p>
</body>
</html>
"""

_ROW_TEMPLATE = "<tr><td>{name}</td><td>{latest}</td><td>{versions}</td></tr>"


def _version_link(registry: Registry, name: str, version: str, cksum: str, yanked: bool) -> str:
    url = registry.config.download_url(name, version, cksum)
    css = ' class="yanked"' if yanked else ""
    return f'<a href="{html.escape(url)}"{css}>{html.escape(version)}</a>'


def render_html(registry: Registry, registry_name: str = "pallet") -> str:
    """Render the index page from the current Index Files."""
    rows: list[tuple[str, str]] = []
    for entries in registry.packages():
        name = entries[-1].name
        ordered = sorted(entries, key=lambda e: sort_key(e.vers), reverse=True)
        live = [e for e in ordered if not e.yanked]
        # Prereleases only count as latest when nothing stable is live.
        stable = [e for e in live if not is_prerelease(e.vers)]
        newest = (stable or live)[:1]
        latest = html.escape(newest[0].vers) if newest else "<em>all yanked</em>"
        versions = " ".join(_version_link(registry, e.name, e.vers, e.cksum, e.yanked) for e in ordered)
        rows.append(
            (
                name.lower(),
                _ROW_TEMPLATE.format(name=html.escape(name), latest=latest, versions=versions),
            )
        )
    rows.sort()

    return _PAGE_TEMPLATE.format(
        title=html.escape(f"Crate registry at {registry.config.base_url}"),
        registry_name=html.escape(registry_name),
        index_url=html.escape(registry.index_url),
        rows="\n".join(r for _, r in rows),
        count=len(rows),
        pallet_version=__version__,
        timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
    )


def write_html(registry: Registry) -> Path:
    """Write ``index.html`` at the registry root."""
    dest = registry.root / paths.HTML_FILE
    atomic_write_bytes(dest, render_html(registry).encode("utf-8"), fsync=registry.config.fsync_enabled)
    logger.debug("Wrote %s", dest)
    return dest
