"""symdex - Per-workspace symbol index daemon."""

__version__ = "0.1.0"
