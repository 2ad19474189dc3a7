"""Configuration system for vecdex."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    """vecdex configuration loaded from environment variables."""

    store_dir: Path = field(default_factory=lambda: Path(
        os.environ.get("VECDEX_STORE_DIR",
                       str(Path.home() / ".local" / "share" / "vecdex"))
    ))
    default_db: str = field(default_factory=lambda:
        os.environ.get("VECDEX_DEFAULT_DB", "defaultDB")
    )
    default_collection: str = field(default_factory=lambda:
        os.environ.get("VECDEX_DEFAULT_COLLECTION", "DefaultStore")
    )
    embedding_model: str = field(default_factory=lambda:
        os.environ.get("VECDEX_EMBEDDING_MODEL", "thenlper/gte-small")
    )
    embedding_precision: int = field(default_factory=lambda:
        int(os.environ.get("VECDEX_EMBEDDING_PRECISION", "7"))
    )
    similarity_precision: int = field(default_factory=lambda:
        int(os.environ.get("VECDEX_SIMILARITY_PRECISION", "6"))
    )
    top_k: int = field(default_factory=lambda:
        int(os.environ.get("VECDEX_TOP_K", "3"))
    )
    cache_size: int = field(default_factory=lambda:
        int(os.environ.get("VECDEX_CACHE_SIZE", "1024"))
    )

    def store_path(self, name: str) -> Path:
        """Return the SQLite file backing the named store."""
        return Path(self.store_dir) / f"{name}.db"

    def ensure_store_dir(self) -> None:
        """Create the store directory if it doesn't exist."""
        Path(self.store_dir).mkdir(parents=True, exist_ok=True)


_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton configuration."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the configuration singleton (useful for testing)."""
    global _config
    _config = None
