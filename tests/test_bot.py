"""Tests for the bot wiring: Discord adapters, play links and scheduling."""

from datetime import UTC
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import hikari
import pytest

from friendle.bot.client import seconds_until_next_run
from friendle.bot.plugins.friendle import build_play_url
from friendle.bot.plugins.friendle import recent_date_labels
from friendle.bot.services.discord_source import DiscordChannel
from friendle.bot.services.discord_source import resolve_display_name
from friendle.bot.services.discord_source import to_message


def hikari_message(**overrides):
    attrs = dict(
        id=555,
        author=SimpleNamespace(id=12),
        created_at=datetime(2024, 1, 1, 9, 30, tzinfo=UTC),
        content="hello <@99>",
        attachments=[
            SimpleNamespace(
                url="https://cdn.example/a.png", filename="a.png", media_type="image/png", size=10
            )
        ],
        user_mentions_ids=[99],
        reactions=[object(), object()],
    )
    attrs.update(overrides)
    return SimpleNamespace(**attrs)


class TestDiscordSource:
    def test_display_name_precedence(self):
        user = SimpleNamespace(global_name="Global", username="user")

        assert resolve_display_name(SimpleNamespace(nickname="Nick", user=user)) == "Nick"
        assert resolve_display_name(SimpleNamespace(nickname=None, user=user)) == "Global"
        user.global_name = None
        assert resolve_display_name(SimpleNamespace(nickname=None, user=user)) == "user"

    def test_to_message(self):
        message = to_message(hikari_message(), "general")

        assert message.id == 555
        assert message.author_id == "12"
        assert message.mention_count == 1
        assert message.reaction_count == 2
        assert message.channel_category == "general"
        assert message.attachments[0].content_type == "image/png"

    def test_undefined_mentions_count_as_zero(self):
        message = to_message(
            hikari_message(user_mentions_ids=hikari.UNDEFINED, content=None), None
        )

        assert message.mention_count == 0
        assert message.content == ""

    @pytest.mark.asyncio
    async def test_channel_fetch_page(self):
        rest = MagicMock()
        rest.fetch_messages.return_value.limit = AsyncMock(return_value=[hikari_message()])
        channel = DiscordChannel(rest, 7, 555, "general")

        page = await channel.fetch_page(before=None, limit=100)

        rest.fetch_messages.assert_called_once_with(7, before=hikari.UNDEFINED)
        rest.fetch_messages.return_value.limit.assert_awaited_once_with(100)
        assert [m.id for m in page] == [555]


class TestPlayUrl:
    def test_builds_hash_route(self):
        assert (
            build_play_url("https://friendle.example/app?ref=x", "123")
            == "https://friendle.example/app/#/play?guild=123"
        )
        assert build_play_url("https://friendle.example", "9") == (
            "https://friendle.example/#/play?guild=9"
        )

    @pytest.mark.parametrize("frontend_url", [None, "", "not a url"])
    def test_missing_or_invalid(self, frontend_url):
        assert build_play_url(frontend_url, "123") is None


class TestScheduling:
    def test_seconds_until_later_today(self):
        now = datetime(2024, 1, 1, 0, 30, tzinfo=UTC)

        assert seconds_until_next_run(now, 1) == 30 * 60

    def test_on_the_hour_waits_a_full_day(self):
        now = datetime(2024, 1, 1, 1, 0, tzinfo=UTC)

        assert seconds_until_next_run(now, 1) == 24 * 60 * 60

    def test_recent_date_labels(self):
        assert recent_date_labels(datetime(2024, 3, 1, 8, tzinfo=UTC)) == (
            "2024-02-29",
            "2024-03-01",
        )
