from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


def _validate_http_url(value: str, *, field_name: str) -> str:
    normalized = value.strip().rstrip("/")
    parts = urlsplit(normalized)
    if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
        raise ValueError(f"{field_name} must be an http(s) URL: {value!r}")
    return normalized


class TufConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return _validate_http_url(value, field_name="tuf.url")


class RepositoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    url: str
    tuf: TufConfig | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    allow_ssl_downgrade: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("repositories[].name must not be empty")
        return normalized

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return _validate_http_url(value, field_name="repositories[].url")

    @property
    def is_validated(self) -> bool:
        return self.tuf is not None


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: str = "data/cache/repo"
    read_only: bool = False


class TransportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0.0)
    backoff_seconds: float = Field(default=0.1, ge=0.0)
    user_agent: str = "tufguard/0.1.0"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vendor_dir: str = "vendor"
    cache: CacheConfig = Field(default_factory=CacheConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    repositories: list[RepositoryConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> AppConfig:
        names = [repo.name for repo in self.repositories]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate repository names: {', '.join(duplicates)}")
        return self

    def get_repository(self, name: str) -> RepositoryConfig:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        raise KeyError(name)


def load_config(path: str | Path) -> AppConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> dict[str, Any]:
    parsed = yaml.safe_load(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed
