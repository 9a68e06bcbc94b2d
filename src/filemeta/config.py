"""Configuration module for filemeta."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from filemeta import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the backup database
_USER_ENV = Path.home() / ".filemeta" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes")

# Smallest attribute slot that still fits a handful of tags
_MIN_ATTRIBUTE_BYTES = 64


class FileMetaConfig(BaseModel):
    """Configuration for the attribute store and its backup system."""

    # Base directory for the backup database and logs
    base_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("FILEMETA_BASE_DIR", str(Path.home() / ".filemeta"))
        )
    )
    # Backup database (relative paths resolve against base_dir)
    database_path: Path = Field(
        default_factory=lambda: Path(os.getenv("FILEMETA_DATABASE_PATH", "backups.db"))
    )
    log_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("FILEMETA_LOG_DIR", "logs"))
    )
    # Extended attribute names are attribute_prefix + key. Linux only lets
    # unprivileged processes write the "user." namespace.
    attribute_prefix: str = Field(
        default_factory=lambda: os.getenv("FILEMETA_ATTRIBUTE_PREFIX", "user.filemeta.")
    )
    # Encoded values larger than this are rejected, never truncated
    max_attribute_bytes: int = Field(
        default_factory=lambda: int(os.getenv("FILEMETA_MAX_ATTRIBUTE_BYTES", "4096"))
    )
    # Worker threads for background restore and sync
    restore_workers: int = Field(
        default_factory=lambda: int(os.getenv("FILEMETA_RESTORE_WORKERS", "4"))
    )
    # Upper bound on how long shutdown waits for in-flight single-file steps
    shutdown_timeout: float = Field(
        default_factory=lambda: float(os.getenv("FILEMETA_SHUTDOWN_TIMEOUT", "30"))
    )
    # Setting an xattr only changes ctime; mtime-driven backup tools skip the
    # file unless mtime moves too.
    touch_mtime_on_write: bool = Field(
        default_factory=lambda: os.getenv("FILEMETA_TOUCH_MTIME", "false").lower()
        in _TRUE_VALUES
    )
    recent_tags_limit: int = Field(
        default_factory=lambda: int(os.getenv("FILEMETA_RECENT_TAGS_LIMIT", "100"))
    )
    app_name: str = Field(default=os.getenv("FILEMETA_APP_NAME", "filemeta"))
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "FileMetaConfig":
        """Reject settings the attribute layer cannot work with."""
        if self.max_attribute_bytes < _MIN_ATTRIBUTE_BYTES:
            raise ValueError(
                f"max_attribute_bytes must be >= {_MIN_ATTRIBUTE_BYTES}"
            )
        if self.restore_workers < 1:
            raise ValueError("restore_workers must be >= 1")
        if self.recent_tags_limit < 1:
            raise ValueError("recent_tags_limit must be >= 1")
        if not self.attribute_prefix:
            raise ValueError("attribute_prefix cannot be empty")
        if not self.attribute_prefix.startswith("user."):
            logger.warning(
                "attribute_prefix %r is outside the user namespace; "
                "writes may need elevated privileges",
                self.attribute_prefix,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for the SQLite backup store."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_log_dir(self) -> Path:
        """Get the absolute log directory."""
        return self.get_absolute_path(self.log_dir)


# Create a global config instance
config = FileMetaConfig()
