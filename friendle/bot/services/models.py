"""Data models for the puzzle pipeline.

These are plain dataclasses, independent of the Discord library, so the
acquisition engine, the builders and the metrics synthesizer can be exercised
with hand-made fixtures.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any

GAME_DAILY = "friendle_daily"
GAME_QUOTE = "quotele"
GAME_MEDIA = "mediale"
GAME_STAT = "statle"


@dataclass(frozen=True)
class Member:
    """Snapshot of a guild member taken once per run."""

    id: str
    display_name: str
    created_at: datetime


@dataclass(frozen=True)
class Attachment:
    url: str
    filename: str | None = None
    content_type: str | None = None
    size: int = 0


@dataclass(frozen=True)
class Message:
    """A chat message reduced to the fields the builders use."""

    id: int
    author_id: str
    created_at: datetime
    content: str = ""
    attachments: tuple[Attachment, ...] = ()
    mention_count: int = 0
    reaction_count: int = 0
    channel_category: str | None = None


def group_by_author(messages: list[Message]) -> dict[str, list[Message]]:
    """Group messages by author, preserving message order within each group."""
    grouped: dict[str, list[Message]] = {}
    for message in messages:
        grouped.setdefault(message.author_id, []).append(message)
    return grouped


@dataclass
class Sample:
    """Opted-in messages, newest first, labelled with the date they represent."""

    messages: list[Message]
    date_label: str

    def __bool__(self) -> bool:
        return bool(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def by_author(self) -> dict[str, list[Message]]:
        return group_by_author(self.messages)


@dataclass
class ActivityMetrics:
    """Per-member activity profile published alongside the puzzles."""

    message_count: int
    top_word: str | None
    active_window: str
    mentions: int
    first_message_bucket: str | None
    account_age_range: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageCount": self.message_count,
            "topWord": self.top_word,
            "activeWindow": self.active_window,
            "mentions": self.mentions,
            "firstMessageBucket": self.first_message_bucket,
            "accountAgeRange": self.account_age_range,
        }


@dataclass
class Puzzle:
    """Fields common to every game.

    ``solution_user_name`` is attached after construction, once the name map
    for the run is known.
    """

    date: str
    solution_user_id: str
    solution_user_name: str | None = field(default=None, kw_only=True)

    game = ""

    def clue_payload(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "game": self.game,
            "date": self.date,
            "solution_user_id": self.solution_user_id,
        }
        payload.update(self.clue_payload())
        payload["solution_user_name"] = self.solution_user_name
        return payload


@dataclass
class DailyIdentityPuzzle(Puzzle):
    clues: dict[str, Any] = field(default_factory=dict)
    solution_metrics: dict[str, Any] | None = field(default=None, kw_only=True)

    game = GAME_DAILY

    def clue_payload(self) -> dict[str, Any]:
        return {"clues": dict(self.clues)}

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["solution_metrics"] = self.solution_metrics
        return payload


@dataclass
class QuotePuzzle(Puzzle):
    quote_scrambled: str = ""
    quote_original: str = ""
    quote_hash: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    game = GAME_QUOTE

    def clue_payload(self) -> dict[str, Any]:
        return {
            "quote_scrambled": self.quote_scrambled,
            "quote_original": self.quote_original,
            "quote_hash": self.quote_hash,
            "meta": dict(self.meta),
        }


@dataclass
class MediaPuzzle(Puzzle):
    media: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    game = GAME_MEDIA

    def clue_payload(self) -> dict[str, Any]:
        return {"media": dict(self.media), "meta": dict(self.meta)}


@dataclass
class StatPuzzle(Puzzle):
    stats: dict[str, Any] = field(default_factory=dict)

    game = GAME_STAT

    def clue_payload(self) -> dict[str, Any]:
        return {"stats": dict(self.stats)}


@dataclass
class GenerationResult:
    """Outcome of one guild's generation run."""

    guild_id: str
    puzzles: list[Puzzle] = field(default_factory=list)
    generated: bool = False
    reason: str | None = None
    date: str | None = None
    metrics: dict[str, ActivityMetrics] = field(default_factory=dict)
    metrics_sample: Sample | None = field(default=None, repr=False)

    @property
    def games(self) -> list[str]:
        return [puzzle.game for puzzle in self.puzzles]
