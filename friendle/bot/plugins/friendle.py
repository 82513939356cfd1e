"""Friendle slash commands: opt in/out, play link and admin generation controls."""

from __future__ import annotations

import logging
from datetime import UTC
from datetime import datetime
from urllib.parse import urlencode
from urllib.parse import urlsplit

import hikari
import lightbulb

from friendle.bot.services.acquisition import day_range_utc
from friendle.bot.services.generation_service import REASON_NO_OPTED_IN
from friendle.bot.services.generation_service import REASON_NO_OPTED_IN_MESSAGES

plugin = lightbulb.Plugin("friendle")

logger = logging.getLogger(__name__)


def build_play_url(frontend_url: str | None, guild_id: str) -> str | None:
    """Front-end link for a guild, e.g. ``https://site/#/play?guild=123``."""
    if not frontend_url:
        return None
    parts = urlsplit(frontend_url)
    if not parts.scheme or not parts.netloc:
        return None
    base = f"{parts.scheme}://{parts.netloc}{parts.path}"
    if not base.endswith("/"):
        base += "/"
    return f"{base}#/play?{urlencode({'guild': guild_id})}"


def recent_date_labels(now: datetime | None = None) -> tuple[str, str]:
    now = now or datetime.now(UTC)
    return day_range_utc(-1, now).date_label, day_range_utc(0, now).date_label


def _has_manage_guild(ctx: lightbulb.Context) -> bool:
    member = getattr(ctx.interaction, "member", None)
    if member is None:
        return False
    return bool(member.permissions & hikari.Permissions.MANAGE_GUILD)


async def _respond_ephemeral(ctx: lightbulb.Context, content: str) -> None:
    await ctx.respond(content, flags=hikari.MessageFlag.EPHEMERAL)


@plugin.command
@lightbulb.command("optin", "Opt in to Friendle puzzles (allow your public activity to be used)")
@lightbulb.implements(lightbulb.SlashCommand)
async def optin_command(ctx: lightbulb.Context) -> None:
    store = ctx.bot.d["opt_in_store"]
    store.opt_in(str(ctx.author.id))
    await _respond_ephemeral(
        ctx, "You are now opted in to Friendle puzzles. You can opt out with /optout"
    )


@plugin.command
@lightbulb.command("optout", "Opt out of Friendle puzzles")
@lightbulb.implements(lightbulb.SlashCommand)
async def optout_command(ctx: lightbulb.Context) -> None:
    store = ctx.bot.d["opt_in_store"]
    store.opt_out(str(ctx.author.id))
    await _respond_ephemeral(ctx, "You are now opted out of Friendle puzzles.")


@plugin.command
@lightbulb.command("play", "Get a Friendle play link for this server")
@lightbulb.implements(lightbulb.SlashCommand)
async def play_command(ctx: lightbulb.Context) -> None:
    if ctx.guild_id is None:
        await _respond_ephemeral(ctx, "This command can only be used inside a server.")
        return

    guild_id = str(ctx.guild_id)
    store = ctx.bot.d["opt_in_store"]
    service = ctx.bot.d["generation_service"]
    settings = ctx.bot.d["settings"]

    deferred = False
    if store.last_generated(guild_id) not in recent_date_labels():
        await ctx.respond(hikari.ResponseType.DEFERRED_MESSAGE_CREATE)
        deferred = True

        result = await service.generate_for_guild(guild_id)
        if result.reason == REASON_NO_OPTED_IN:
            await ctx.edit_last_response(
                "No one in this server has opted in yet. Use /optin to get started."
            )
            return
        if result.reason == REASON_NO_OPTED_IN_MESSAGES:
            await ctx.edit_last_response(
                "Could not find any messages from opted-in members in this server yet. "
                "Ask them to say something after opting in."
            )
            return

    play_url = build_play_url(settings.frontend_url, guild_id)
    if not play_url:
        content = "Play link is not configured. Ask the admin to set FRONTEND_URL for the bot."
        if deferred:
            await ctx.edit_last_response(content)
        else:
            await _respond_ephemeral(ctx, content)
        return

    content = f"Play Friendle for this server: {play_url}"
    if deferred:
        await ctx.edit_last_response(content)
    else:
        await ctx.respond(content)


@plugin.command
@lightbulb.command("force_generate", "Force puzzle generation now (admin only)")
@lightbulb.implements(lightbulb.SlashCommand)
async def force_generate_command(ctx: lightbulb.Context) -> None:
    if not _has_manage_guild(ctx):
        await _respond_ephemeral(ctx, "You must be a guild admin to use this.")
        return

    await _respond_ephemeral(ctx, "Forcing generation now...")
    logger.info(f"Forced generation requested by {ctx.author.id}")
    await ctx.bot.d["generation_service"].generate_all()


@plugin.command
@lightbulb.command("clear_history", "Clear local puzzle history for this server (admin only)")
@lightbulb.implements(lightbulb.SlashCommand)
async def clear_history_command(ctx: lightbulb.Context) -> None:
    if not _has_manage_guild(ctx):
        await _respond_ephemeral(ctx, "You must be a guild admin to use this.")
        return
    if ctx.guild_id is None:
        await _respond_ephemeral(ctx, "This command can only be used inside a server.")
        return

    ctx.bot.d["opt_in_store"].clear_history(str(ctx.guild_id))
    await _respond_ephemeral(ctx, "Cleared local puzzle history for this server.")


def load(bot: lightbulb.BotApp) -> None:
    """Load the friendle plugin."""
    bot.add_plugin(plugin)


def unload(bot: lightbulb.BotApp) -> None:
    """Unload the friendle plugin."""
    bot.remove_plugin(plugin)
