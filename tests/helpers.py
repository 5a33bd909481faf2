"""Shared helpers: build real .crate archives on disk."""

import gzip
import io
import tarfile
from pathlib import Path


def manifest_for(name: str, version: str, extra: str = "") -> str:
    return (
        "[package]\n"
        f'name = "{name}"\n'
        f'version = "{version}"\n'
        'edition = "2021"\n'
        f"{extra}"
    )


def build_crate(
    tmpdir,
    name: str = "foo",
    version: str = "1.0.0",
    extra: str = "",
    manifest: str | None = None,
    top: str | None = None,
    body: str = "pub fn hello() {}\n",
    filename: str | None = None,
) -> Path:
    """Write a gzipped tarball shaped like `cargo package` output.

    Output is deterministic: identical arguments give identical bytes.
    """
    top = top or f"{name}-{version}"
    files = {
        f"{top}/Cargo.toml": manifest if manifest is not None else manifest_for(name, version, extra),
        f"{top}/src/lib.rs": body,
    }

    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.GNU_FORMAT) as tar:
        for member_name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(member_name)
            info.size = len(data)
            info.mtime = 0
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))

    out = Path(tmpdir) / (filename or f"{name}-{version}.crate")
    with open(out, "wb") as f:
        with gzip.GzipFile(fileobj=f, mode="wb", mtime=0, filename="") as gz:
            gz.write(raw.getvalue())
    return out
