"""Where ghexplorer keeps its SQLite database and the GitHub HTTP cache."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var

APP_DIR_NAME: Final[str] = "ghexplorer"
DEFAULT_DB_FILENAME: Final[str] = "ghexplorer.db"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"

DATA_DIR_ENV: Final[str] = "GHEXPLORER_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Local files live under ``data_dir``; ``database_uri_override`` moves the database."""

    data_dir: Path
    database_uri_override: str | None = None

    @classmethod
    def from_env(cls) -> StorageConfig:
        data_dir = optional_env_var(DATA_DIR_ENV)
        return cls(
            data_dir=Path(data_dir) if data_dir else _platform_data_dir(),
            database_uri_override=optional_env_var(DATABASE_URI_ENV),
        )

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def file_path(self, filename: str, *, ensure: bool = True) -> Path:
        data_dir = self.resolve_data_dir()
        if ensure:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / filename

    def database_uri(self) -> str:
        if self.database_uri_override is not None:
            return self.database_uri_override
        return f"sqlite+pysqlite:///{self.file_path(DEFAULT_DB_FILENAME)}"

    def http_cache_path(self) -> Path:
        return self.file_path(HTTP_CACHE_FILENAME)


def _platform_data_dir() -> Path:
    if os.name == "nt":
        local = os.getenv("LOCALAPPDATA")
        root = Path(local) if local else Path.home() / "AppData" / "Local"
    else:
        xdg = os.getenv("XDG_DATA_HOME")
        root = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return (root / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    return StorageConfig.from_env()


def get_database_uri() -> str:
    """``DATABASE_URI`` when set, otherwise a SQLite file in the data directory."""

    return get_storage_config().database_uri()


def get_http_cache_path() -> Path:
    return get_storage_config().http_cache_path()
