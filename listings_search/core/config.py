"""Configuration models and YAML loader for the listing search service."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/listings.db"


class SearchConfig(BaseModel):
    """Pagination settings for the search engine.

    ``max_page_size`` of None leaves ``limit`` uncapped.
    """

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def default_within_cap(self) -> "SearchConfig":
        if self.max_page_size is not None and self.default_page_size > self.max_page_size:
            msg = "default_page_size must not exceed max_page_size"
            raise ValueError(msg)
        return self


class ApiConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
