"""pallet — manage a self-hosted Cargo sparse registry as plain files."""

__version__ = "0.3.0"
