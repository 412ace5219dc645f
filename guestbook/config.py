from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MONGODB_URI = "mongodb://localhost:27017/simple-web-project"
_URI_SCHEMES = ("mongodb://", "mongodb+srv://")


def _scan_bare_mongodb_uri(env_file: Path) -> str | None:
    """Return the first line of ``env_file`` that looks like a pasted connection string."""

    if not env_file.is_file():
        return None

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("mongodb"):
            return line
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, ge=1, le=65535, alias="PORT")
    db_name: str = Field(default="hirishi-mirror", min_length=1, alias="DB_NAME")
    mongodb_uri: str = Field(default="", alias="MONGODB_URI")
    server_selection_timeout_ms: int = Field(default=5000, gt=0, alias="SERVER_SELECTION_TIMEOUT_MS")
    static_dir: str = Field(default="public", alias="STATIC_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("mongodb_uri")
    @classmethod
    def _strip_uri(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _resolve_mongodb_uri(self) -> "Settings":
        if not self.mongodb_uri:
            env_file = self.model_config.get("env_file")
            bare = _scan_bare_mongodb_uri(Path(env_file)) if isinstance(env_file, str) else None
            if bare:
                # Legacy form: a connection string pasted without a key.
                structlog.get_logger(__name__).warning("legacy_mongodb_uri_line", env_file=env_file)
                self.mongodb_uri = bare
            else:
                self.mongodb_uri = DEFAULT_MONGODB_URI

        if not self.mongodb_uri.startswith(_URI_SCHEMES):
            raise ValueError("MONGODB_URI must start with mongodb:// or mongodb+srv://")
        return self

    @property
    def static_path(self) -> Path:
        return Path(self.static_dir)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
