"""Pydantic schemas for storage API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from typing import Optional

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_serializer


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error body returned by every exception handler."""

    detail: str
    type: str
    timestamp: datetime
    request_id: Optional[str] = None

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat()


class ValidationErrorResponse(ErrorResponse):
    type: str = "validation_error"
    errors: list[ErrorDetail] = Field(default_factory=list)


class StatsEventRequest(BaseModel):
    """Body of ``POST /stats/event``.

    ``type`` is validated by the route so an unknown value yields a 400 with a
    helpful message rather than a generic validation error.
    """

    type: Any = None
    guild_id: Any = None
    community_id: Any = None
    date: Any = None
    latest: Any = None

    @property
    def scope_guild_id(self) -> str | None:
        guild_id = self.guild_id or self.community_id
        return str(guild_id) if guild_id else None

    @property
    def wants_latest(self) -> bool:
        return self.latest is True or self.latest == 1 or self.latest == "1"


class StatsCounters(BaseModel):
    views: int = 0
    guesses_total: int = 0
    guessed_correctly: int = 0
    active_players: int = 0
    completed_games: int = 0


class StatsResponse(StatsCounters):
    scope: str
    guild_id: Optional[str] = None
    date: Optional[str] = None
    played_all: int = 0


class StatsEventResponse(BaseModel):
    ok: bool = True
    guild_id: Optional[str] = None
    date: Optional[str] = None
    total: StatsCounters
    day: Optional[StatsCounters] = None


class IngestResponse(BaseModel):
    ok: bool = True
    stored: str


class MetadataResponse(BaseModel):
    ok: bool = True
    stored: list[str] = Field(default_factory=list)


class PuzzlesResponse(BaseModel):
    guild_id: str
    date: str
    puzzles: dict[str, Optional[dict[str, Any]]]
    names: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)
    allowed_usernames: list[Any] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool = True
    has_webhook_secret: bool
    allowed_origin: str
    version: str
