from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_ATTEMPTS = 3


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TargetInfo(DTOBase):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    length: int = Field(ge=0)
    hashes: dict[str, str]

    @field_validator("hashes", mode="after")
    @classmethod
    def validate_hashes(cls, value: dict[str, str]) -> dict[str, str]:
        normalized = {name.lower(): digest.strip().lower() for name, digest in value.items()}
        if not normalized.get("sha256"):
            raise ValueError("target hashes must include sha256")
        return normalized

    @property
    def sha256(self) -> str:
        return self.hashes["sha256"]


class FetchOutcome(StrEnum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    DEGRADED = "degraded"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class Response:
    status_code: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(slots=True)
class FetchRequest:
    filename: str
    cache_key: str | None = None
    sha256: str | None = None
    store_last_modified: bool = False
    last_modified: str | None = None
    retries_remaining: int = MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if not self.filename.strip():
            raise ValueError("filename must not be empty")
        if self.sha256 is not None:
            self.sha256 = self.sha256.strip().lower() or None
        if self.retries_remaining < 1:
            raise ValueError("retries_remaining must be >= 1")


@dataclass(slots=True)
class FetchResult:
    filename: str
    outcome: FetchOutcome
    body: bytes = b""
    data: dict[str, Any] | None = None

    @property
    def degraded(self) -> bool:
        return self.outcome is FetchOutcome.DEGRADED


def decode_json_object(payload: bytes | str) -> dict[str, Any]:
    loaded = json.loads(payload)
    if not isinstance(loaded, dict):
        raise ValueError("metadata root must be a JSON object.")
    return loaded


def encode_json_object(data: Mapping[str, Any]) -> bytes:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
