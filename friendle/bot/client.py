"""Discord bot client setup and configuration."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC
from datetime import datetime
from datetime import timedelta

import hikari
import lightbulb

from friendle.bot.services.discord_source import DiscordGuildDirectory
from friendle.bot.services.generation_service import PuzzleGenerationService
from friendle.bot.services.ingestion_client import IngestionClient
from friendle.bot.services.opt_in_store import JsonOptInStore
from friendle.shared.config import Settings
from friendle.shared.config import get_settings

logger = logging.getLogger(__name__)


def seconds_until_next_run(now: datetime, hour_utc: int) -> float:
    """Seconds from ``now`` until the next ``hour_utc``:00 UTC."""
    now = now.astimezone(UTC)
    next_run = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def start_daily_generation(bot: lightbulb.BotApp) -> None:
    """Start the background task that generates puzzles once a day.

    Args:
        bot: Bot application instance
    """
    settings = bot.d["settings"]
    service = bot.d["generation_service"]

    async def run_daily():
        """Sleep until the configured hour, generate, repeat."""
        while True:
            delay = seconds_until_next_run(datetime.now(UTC), settings.generation_hour_utc)
            logger.info(f"Next puzzle generation in {delay / 3600:.1f}h")
            await asyncio.sleep(delay)

            try:
                logger.info(f"Scheduled generation triggered at {datetime.now(UTC).isoformat()}")
                await service.generate_all()
            except Exception as e:
                logger.error(f"Scheduled generation failed: {e}")
                # Avoid a tight loop if the failure happened right on the hour
                await asyncio.sleep(60)

    bot.d["generation_task"] = asyncio.create_task(run_daily())
    logger.info(f"Scheduled daily generation at {settings.generation_hour_utc:02d}:00 UTC")


def create_bot(settings: Settings | None = None) -> lightbulb.BotApp:
    """Create and configure the Discord bot with Lightbulb v2 syntax.

    Returns:
        BotApp instance
    """
    if settings is None:
        settings = get_settings()

    intents = (
        hikari.Intents.GUILDS
        | hikari.Intents.GUILD_MEMBERS  # Member snapshot for display names
        | hikari.Intents.GUILD_MESSAGES
        | hikari.Intents.MESSAGE_CONTENT  # Message text for quotes and word clues
    )

    bot = lightbulb.BotApp(
        token=settings.discord_bot_token,
        intents=intents,
        logs={
            "version": 1,
            "incremental": True,
            "loggers": {
                "hikari": {"level": "INFO"},
                "hikari.ratelimits": {"level": "DEBUG"},
                "lightbulb": {"level": "INFO"},
                "friendle": {"level": "DEBUG"},
            },
        },
        banner=None,
    )

    return bot


async def setup_bot_services(bot: lightbulb.BotApp, settings: Settings | None = None) -> None:
    """Set up bot services and dependencies."""
    logger.info("Setting up bot services...")
    settings = settings or get_settings()

    logger.info(f"Posting puzzles to: {settings.api_base_url}")
    ingestion_client = IngestionClient(
        base_url=settings.api_base_url,
        webhook_secret=settings.webhook_secret,
    )
    opt_in_store = JsonOptInStore(settings.opt_in_storage_path)
    logger.info(f"Loaded {len(opt_in_store.list())} opted-in member(s)")

    generation_service = PuzzleGenerationService(
        DiscordGuildDirectory(bot),
        opt_in_store,
        ingestion_client,
        min_quote_length=settings.min_quote_length,
    )
    await generation_service.initialize()

    health = await generation_service.health_check()
    logger.info(
        f"Generation service health: {'healthy' if health.is_healthy else 'unhealthy'}"
    )

    bot.d["settings"] = settings
    bot.d["opt_in_store"] = opt_in_store
    bot.d["generation_service"] = generation_service

    logger.info("✓ Bot services setup complete")


async def cleanup_bot_services(bot: lightbulb.BotApp) -> None:
    """Clean up bot services and connections."""
    logger.info("Cleaning up bot services...")

    task = bot.d.get("generation_task")
    if task is not None:
        task.cancel()

    service = bot.d.get("generation_service")
    if service is not None:
        try:
            await service.cleanup()
        except Exception as e:
            logger.error(f"Error cleaning up generation service: {e}")

    logger.info("Bot services cleanup complete")


def load_plugins(bot: lightbulb.BotApp) -> None:
    """Load bot plugins using Lightbulb v2 syntax."""
    logger.info("Loading friendle plugin...")
    bot.load_extensions("friendle.bot.plugins.friendle")
    logger.info("✓ Loaded friendle plugin")


async def run_bot(run_now: bool = False) -> None:
    """Run the Discord bot.

    Args:
        run_now: Generate puzzles for every guild as soon as the bot has started
    """
    settings = get_settings()

    if not settings.discord_bot_token:
        logger.error("Discord bot token not provided")
        return

    if not settings.api_base_url:
        logger.error("Storage service URL (API_BASE_URL) not provided")
        return

    if not settings.frontend_url:
        logger.warning("FRONTEND_URL is not set. /play will not be available.")

    bot = create_bot(settings)

    @bot.listen()
    async def on_started(event: hikari.StartedEvent) -> None:
        """Handle bot started event."""
        bot_user = event.app.get_me()
        logger.info(f"Bot started as {bot_user.username}" if bot_user else "Bot started")

        await start_daily_generation(bot)

        if run_now:
            await bot.d["generation_service"].generate_all()

    @bot.listen()
    async def on_stopping(event: hikari.StoppingEvent) -> None:
        """Handle bot stopping event."""
        logger.info("Bot is stopping...")
        await cleanup_bot_services(bot)

    await setup_bot_services(bot, settings)
    load_plugins(bot)

    try:
        await bot.start()
        logger.info("Bot is now running. Press Ctrl+C to stop.")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            logger.info("Bot shutdown requested")
    finally:
        logger.info("Shutting down bot...")
        await bot.close()


def main() -> None:
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_bot(run_now="--run-now" in sys.argv))


if __name__ == "__main__":
    main()
