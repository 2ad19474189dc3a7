"""vecdex - in-process embedding index with versioned SQLite persistence."""

__version__ = "0.1.0"
