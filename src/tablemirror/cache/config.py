"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_CACHE_DIR = Path.home() / ".tablemirror_cache"


@dataclass
class CacheConfig:
    """Configuration for the local mirror.

    Attributes:
        cache_dir: Directory holding the SQLite database and lock files
        db_filename: Name of the SQLite database file inside cache_dir
        records_ttl: Time-to-live for table records in seconds (12 hours)
        metadata_ttl: Time-to-live for solutions, tables, schemas, members,
            teams and views in seconds (7 days)
        lock_timeout: Seconds to wait for a scope's refresh lock
        page_size: Records requested per page during a full-table fetch
        strict_operators: If True, unknown filter comparisons are rejected;
            if False, they fall back to equality and a warning is logged
    """

    cache_dir: Path = DEFAULT_CACHE_DIR
    db_filename: str = "mirror.sqlite3"
    records_ttl: int = 12 * 3600
    metadata_ttl: int = 7 * 24 * 3600
    lock_timeout: float = 30.0
    page_size: int = 1000
    strict_operators: bool = False

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path object."""
        if self.cache_dir is None:
            self.cache_dir = DEFAULT_CACHE_DIR
        self.cache_dir = Path(self.cache_dir).expanduser()
        if self.records_ttl <= 0 or self.metadata_ttl <= 0:
            raise ValueError("TTL values must be positive")

    @property
    def db_path(self) -> Path:
        """Full path of the SQLite database file."""
        return self.cache_dir / self.db_filename

    @property
    def lock_dir(self) -> Path:
        """Directory holding per-scope refresh locks."""
        return self.cache_dir / ".locks"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        if config_path is None:
            config_path = DEFAULT_CACHE_DIR / "config.json"

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses cache_dir/config.json.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "db_filename": self.db_filename,
            "records_ttl": self.records_ttl,
            "metadata_ttl": self.metadata_ttl,
            "lock_timeout": self.lock_timeout,
            "page_size": self.page_size,
            "strict_operators": self.strict_operators,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            TABLEMIRROR_CACHE_DIR: Cache directory path
            TABLEMIRROR_RECORDS_TTL: Record TTL in seconds
            TABLEMIRROR_METADATA_TTL: Metadata TTL in seconds
            TABLEMIRROR_LOCK_TIMEOUT: Refresh lock timeout in seconds
            TABLEMIRROR_PAGE_SIZE: Page size for full-table fetches
            TABLEMIRROR_STRICT_OPERATORS: Reject unknown comparisons (true/false)

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("TABLEMIRROR_CACHE_DIR"):
            config.cache_dir = Path(os.getenv("TABLEMIRROR_CACHE_DIR")).expanduser()

        if os.getenv("TABLEMIRROR_RECORDS_TTL"):
            config.records_ttl = int(os.getenv("TABLEMIRROR_RECORDS_TTL"))

        if os.getenv("TABLEMIRROR_METADATA_TTL"):
            config.metadata_ttl = int(os.getenv("TABLEMIRROR_METADATA_TTL"))

        if os.getenv("TABLEMIRROR_LOCK_TIMEOUT"):
            config.lock_timeout = float(os.getenv("TABLEMIRROR_LOCK_TIMEOUT"))

        if os.getenv("TABLEMIRROR_PAGE_SIZE"):
            config.page_size = int(os.getenv("TABLEMIRROR_PAGE_SIZE"))

        if os.getenv("TABLEMIRROR_STRICT_OPERATORS"):
            config.strict_operators = (
                os.getenv("TABLEMIRROR_STRICT_OPERATORS", "").lower() == "true"
            )

        return config


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        # File first, environment second
        if (DEFAULT_CACHE_DIR / "config.json").exists():
            _global_config = CacheConfig.load()
        else:
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: CacheConfig) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally
    """
    global _global_config
    _global_config = config
