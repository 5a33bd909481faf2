"""Registry — the on-disk Cargo sparse registry and its operations.

The registry provides:
- Layout: ``config.json``, sharded Index Files, ``crates/`` archive storage
- Publishing: archive inspection, duplicate detection, atomic index updates
- Queries: listing, per-package versions, single entries
- Maintenance: yank/unyank, removal, consistency checks, an HTML index
"""
