"""viewcounter: privacy-preserving per-app view and event analytics."""

__version__ = "2.0.0"
