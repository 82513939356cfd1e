"""hikari-backed implementations of the pipeline's collaborator protocols.

Maps Discord channels, members and messages into the library-independent
models in ``friendle.bot.services.models``. Only text, news and active thread
channels that are not marked NSFW are enumerated.
"""

from __future__ import annotations

import logging
from typing import Sequence

import hikari
import lightbulb

from friendle.bot.services.exceptions import ChannelUnreadable
from friendle.bot.services.models import Attachment
from friendle.bot.services.models import Member
from friendle.bot.services.models import Message

logger = logging.getLogger(__name__)

TEXT_CHANNEL_TYPES = (hikari.GuildTextChannel, hikari.GuildNewsChannel)


def resolve_display_name(member: hikari.Member) -> str:
    """Nickname, then global name, then username."""
    return member.nickname or member.user.global_name or member.user.username


def to_member(member: hikari.Member) -> Member:
    return Member(
        id=str(member.user.id),
        display_name=resolve_display_name(member),
        created_at=member.user.created_at,
    )


def to_message(message: hikari.Message, channel_category: str | None) -> Message:
    mention_ids = message.user_mentions_ids
    mention_count = 0 if mention_ids is hikari.UNDEFINED else len(mention_ids)

    return Message(
        id=int(message.id),
        author_id=str(message.author.id),
        created_at=message.created_at,
        content=message.content or "",
        attachments=tuple(
            Attachment(
                url=attachment.url,
                filename=attachment.filename,
                content_type=attachment.media_type,
                size=attachment.size,
            )
            for attachment in message.attachments
        ),
        mention_count=mention_count,
        reaction_count=len(message.reactions),
        channel_category=channel_category,
    )


class DiscordChannel:
    """A readable channel or thread, paged through the REST API."""

    def __init__(
        self,
        rest: hikari.api.RESTClient,
        channel_id: int,
        last_message_id: int | None,
        category_name: str | None = None,
    ):
        self._rest = rest
        self.id = channel_id
        self.last_message_id = last_message_id
        self.category_name = category_name

    async def fetch_page(self, *, before: int | None, limit: int) -> list[Message]:
        try:
            iterator = self._rest.fetch_messages(
                self.id, before=hikari.UNDEFINED if before is None else before
            )
            page = await iterator.limit(limit)
        except hikari.ForbiddenError as e:
            raise ChannelUnreadable(self.id, "missing permissions") from e
        except hikari.HTTPError as e:
            raise ChannelUnreadable(self.id, str(e)) from e

        return [to_message(message, self.category_name) for message in page]


class DiscordGuildDirectory:
    """Guild, member and channel enumeration for a running bot."""

    def __init__(self, bot: lightbulb.BotApp):
        self._bot = bot

    def guild_ids(self) -> Sequence[str]:
        return [str(guild_id) for guild_id in self._bot.cache.get_guilds_view()]

    async def fetch_members(self, guild_id: str) -> list[Member]:
        members = await self._bot.rest.fetch_members(int(guild_id))
        return [to_member(member) for member in members if not member.is_bot]

    def _parent_name(self, parent_id: hikari.Snowflake | None) -> str | None:
        if parent_id is None:
            return None
        parent = self._bot.cache.get_guild_channel(parent_id)
        return parent.name if parent else None

    async def fetch_channels(self, guild_id: str) -> list[DiscordChannel]:
        channels: dict[int, DiscordChannel] = {}
        rest = self._bot.rest

        cached = self._bot.cache.get_guild_channels_view_for_guild(int(guild_id))
        for channel in cached.values():
            if not isinstance(channel, TEXT_CHANNEL_TYPES) or channel.is_nsfw:
                continue
            channels[int(channel.id)] = DiscordChannel(
                rest,
                int(channel.id),
                int(channel.last_message_id) if channel.last_message_id else None,
                self._parent_name(channel.parent_id),
            )

        try:
            threads = await rest.fetch_active_threads(int(guild_id))
        except hikari.HTTPError as e:
            logger.warning(f"Could not fetch active threads for guild {guild_id}: {e}")
            threads = []

        for thread in threads:
            parent = self._bot.cache.get_guild_channel(thread.parent_id)
            if parent is not None and getattr(parent, "is_nsfw", False):
                continue
            channels[int(thread.id)] = DiscordChannel(
                rest,
                int(thread.id),
                int(thread.last_message_id) if thread.last_message_id else None,
                parent.name if parent else None,
            )

        logger.debug(f"Guild {guild_id}: {len(channels)} readable channel(s)")
        return list(channels.values())
