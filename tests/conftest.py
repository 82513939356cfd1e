"""Shared fixtures and in-memory fakes for the Friendle test suite.

Fakes implement the pipeline's collaborator protocols (channels, guild
directory, opt-in registry, ingestion client) so the acquisition engine,
builders and generation service run without Discord or a storage service.
"""

from __future__ import annotations

import random
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from itertools import count

import pytest
from fastapi.testclient import TestClient

from friendle.bot.services.acquisition import MessageAcquisitionEngine
from friendle.bot.services.exceptions import ChannelUnreadable
from friendle.bot.services.models import Attachment
from friendle.bot.services.models import Member
from friendle.bot.services.models import Message
from friendle.shared.config import Settings
from friendle.shared.config import get_settings
from friendle.shared.signing import SIGNATURE_HEADER
from friendle.shared.signing import canonical_json
from friendle.shared.signing import sign_body
from friendle.web.api.app import api
from friendle.web.api.dependencies import get_kv_store
from friendle.web.kv_store import MemoryKeyValueStore

# Fixed "now": mid-afternoon UTC, so yesterday is 2024-01-01
NOW = datetime(2024, 1, 2, 15, 0, tzinfo=UTC)
YESTERDAY = datetime(2024, 1, 1, tzinfo=UTC)
TODAY = datetime(2024, 1, 2, tzinfo=UTC)

WEBHOOK_SECRET = "test-webhook-secret"

_message_ids = count(1000)


def make_message(
    author_id: str,
    created_at: datetime,
    content: str = "",
    *,
    message_id: int | None = None,
    attachments: tuple[Attachment, ...] = (),
    mention_count: int = 0,
    reaction_count: int = 0,
    channel_category: str | None = "general",
) -> Message:
    """Build a message; ids increase with creation time unless given."""
    if message_id is None:
        message_id = int(created_at.timestamp()) * 1000 + next(_message_ids) % 1000
    return Message(
        id=message_id,
        author_id=author_id,
        created_at=created_at,
        content=content,
        attachments=attachments,
        mention_count=mention_count,
        reaction_count=reaction_count,
        channel_category=channel_category,
    )


def image(filename: str = "cat_photo.png") -> Attachment:
    return Attachment(
        url=f"https://cdn.example/{filename}",
        filename=filename,
        content_type="image/png",
        size=2048,
    )


class FakeChannel:
    """In-memory channel serving newest-first pages, like the Discord API."""

    def __init__(
        self,
        channel_id: int,
        messages: list[Message],
        *,
        last_message_id: int | None = None,
        unreadable: bool = False,
        error: Exception | None = None,
    ):
        self.id = channel_id
        self._messages = sorted(messages, key=lambda m: m.id, reverse=True)
        if last_message_id is None and self._messages:
            last_message_id = self._messages[0].id
        self.last_message_id = last_message_id
        self.unreadable = unreadable
        self.error = error
        self.fetch_calls = 0

    async def fetch_page(self, *, before: int | None, limit: int) -> list[Message]:
        self.fetch_calls += 1
        if self.unreadable:
            raise ChannelUnreadable(self.id, "missing permissions")
        if self.error is not None:
            raise self.error
        page = [m for m in self._messages if before is None or m.id < before]
        return page[:limit]


class FakeDirectory:
    def __init__(
        self,
        members: dict[str, list[Member]],
        channels: dict[str, list[FakeChannel]],
        failing: set[str] | None = None,
    ):
        self._members = members
        self._channels = channels
        self._failing = failing or set()

    def guild_ids(self) -> list[str]:
        return list(self._members)

    async def fetch_members(self, guild_id: str) -> list[Member]:
        if guild_id in self._failing:
            raise RuntimeError(f"guild {guild_id} unavailable")
        return list(self._members[guild_id])

    async def fetch_channels(self, guild_id: str) -> list[FakeChannel]:
        return list(self._channels.get(guild_id, []))


class FakeRegistry:
    def __init__(self, member_ids: list[str]):
        self._ids = list(member_ids)
        self.guild_runs: dict[str, str | None] = {}
        self.run_count = 0

    def is_opted_in(self, member_id: str) -> bool:
        return member_id in self._ids

    def list(self) -> list[str]:
        return list(self._ids)

    def record_guild_run(self, guild_id: str, date_label: str | None) -> None:
        self.guild_runs[guild_id] = date_label

    def record_run(self) -> None:
        self.run_count += 1


class FakeIngestionClient:
    def __init__(self):
        self.puzzles: list[tuple[str, dict]] = []
        self.metadata: list[dict] = []
        self.closed = False

    async def post_puzzle(self, guild_id, puzzle) -> bool:
        self.puzzles.append((guild_id, puzzle.to_payload()))
        return True

    async def post_metadata(self, guild_id, date, names, metrics, allowed_usernames) -> bool:
        self.metadata.append(
            {
                "guild_id": guild_id,
                "date": date,
                "names": names,
                "metrics": metrics,
                "allowed_usernames": allowed_usernames,
            }
        )
        return True

    async def close(self) -> None:
        self.closed = True


def member(member_id: str, name: str | None = None, age_days: int = 900) -> Member:
    return Member(
        id=member_id,
        display_name=name or f"user-{member_id}",
        created_at=NOW - timedelta(days=age_days),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def engine() -> MessageAcquisitionEngine:
    return MessageAcquisitionEngine(clock=lambda: NOW, pacing=False)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def members() -> dict[str, Member]:
    return {
        "1": member("1", "Alice", age_days=200),
        "2": member("2", "Bob", age_days=500),
        "3": member("3", "Carol", age_days=1000),
        "4": member("4", "Dan", age_days=2000),
    }


# Storage service fixtures


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        _env_file=None,
        webhook_secret=WEBHOOK_SECRET,
        stats_write_key="",
        allowed_origin="*",
    )


@pytest.fixture
def client(kv_store, api_settings):
    """TestClient with the key-value store and settings overridden.

    The lifespan is not entered, so no database engine is created.
    """
    api.dependency_overrides[get_kv_store] = lambda: kv_store
    api.dependency_overrides[get_settings] = lambda: api_settings
    yield TestClient(api)
    api.dependency_overrides.clear()


def signed_post(client: TestClient, path: str, payload, secret: str = WEBHOOK_SECRET):
    body = canonical_json(payload)
    return client.post(
        path,
        content=body,
        headers={
            SIGNATURE_HEADER: sign_body(secret, body),
            "Content-Type": "application/json",
        },
    )
