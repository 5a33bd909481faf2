"""Crates — reading ``.crate`` archives produced by ``cargo package``.

- ``archive``: checksum and embedded ``Cargo.toml`` extraction
- ``semver``: version validation, requirement normalization, ordering
"""
