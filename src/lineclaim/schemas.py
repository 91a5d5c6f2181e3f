from __future__ import annotations

import json
import math
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _render_line(item: Any) -> str:
    # scalars render the way JSON spells them: true, null, 3
    if isinstance(item, str):
        return item
    if item is None or isinstance(item, bool):
        return json.dumps(item)
    if isinstance(item, float) and item.is_integer():
        return str(int(item))
    if isinstance(item, (int, float)):
        return str(item)
    return json.dumps(item, separators=(",", ":"))


def _coerce_lines(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [_render_line(item) for item in value]


class ClaimRequest(BaseModel):
    lines: list[str] = Field(default_factory=list)
    limit: int | None = None

    @field_validator("lines", mode="before")
    @classmethod
    def _lines(cls, value: Any) -> list[str]:
        return _coerce_lines(value)

    @field_validator("limit", mode="before")
    @classmethod
    def _limit(cls, value: Any) -> int | None:
        # Unusable limits mean "no limit"; negative ones grant nothing.
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, int):
            return max(0, value)
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        if not math.isfinite(number):
            return None
        return max(0, math.ceil(number))


class ClaimResponse(BaseModel):
    claimed: list[str]
    rejected: list[str]
    error: str | None = None


class AppendRequest(BaseModel):
    lines: list[str] = Field(default_factory=list)

    @field_validator("lines", mode="before")
    @classmethod
    def _lines(cls, value: Any) -> list[str]:
        return _coerce_lines(value)


class AppendResponse(BaseModel):
    ok: bool
    added: int
    error: str | None = None


class HealthResponse(BaseModel):
    status: str
    queue_depth: int
    cycles_completed: int
    granted_path: str
