"""Message acquisition engine.

Collects a bounded, opted-in-only sample of recent messages for a guild. The
engine first tries to read yesterday's and then today's messages by calendar
range; when both are empty it falls back to a budgeted backward scan of the
most recently active channels, which makes the sample data-driven rather than
calendar-driven. Builders reuse the same scan with their own predicate and a
larger budget when the shared sample has nothing they can use.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from typing import Awaitable
from typing import Callable
from typing import Collection
from typing import Iterable

from friendle.bot.services.base import MessageChannel
from friendle.bot.services.exceptions import ChannelUnreadable
from friendle.bot.services.models import Message
from friendle.bot.services.models import Sample
from friendle.bot.services.text_utils import utc_date_label

logger = logging.getLogger(__name__)

MessagePredicate = Callable[[Message], bool]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ScanBudget:
    """Limits for a backward opted-in scan.

    The scan stops once ``min(min_message_count, total_limit)`` matches are
    collected, once ``max_total_fetches`` pages have been fetched across all
    channels, or once every channel is exhausted.
    """

    max_pages: int
    total_limit: int
    min_message_count: int
    max_total_fetches: int
    per_page: int = 100


SHARED_FALLBACK_BUDGET = ScanBudget(
    max_pages=25, total_limit=500, min_message_count=15, max_total_fetches=200
)


@dataclass(frozen=True)
class DayRange:
    start: datetime
    end: datetime
    date_label: str


def day_range_utc(offset_days: int, now: datetime) -> DayRange:
    """UTC midnight-to-midnight range ``offset_days`` away from ``now``."""
    today_start = now.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    start = today_start + timedelta(days=offset_days)
    end = start + timedelta(days=1) - timedelta(milliseconds=1)
    return DayRange(start=start, end=end, date_label=utc_date_label(start))


def newest_first(messages: Iterable[Message]) -> list[Message]:
    return sorted(messages, key=lambda m: (m.created_at, m.id), reverse=True)


def newest_date_label(messages: list[Message], fallback: str) -> str:
    """Calendar date of the newest message, or ``fallback`` when there are none."""
    if not messages:
        return fallback
    newest = max(messages, key=lambda m: m.created_at)
    return utc_date_label(newest.created_at)


def channel_scan_order(channels: Iterable[MessageChannel]) -> list[MessageChannel]:
    """Most recently active channels first; channels with no activity last."""
    return sorted(channels, key=lambda c: c.last_message_id or 0, reverse=True)


class MessageAcquisitionEngine:
    """Fetches and filters message history through ``MessageChannel`` objects."""

    PAGE_SIZE = 100

    # Courtesy delays to stay inside the platform's request budget (seconds)
    RANGE_PAGE_DELAY = 0.3
    SCAN_PAGE_DELAY = 0.15
    CHANNEL_DELAY = 0.15

    def __init__(
        self,
        *,
        sleep: Sleep | None = None,
        clock: Callable[[], datetime] | None = None,
        pacing: bool = True,
    ):
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        self._pacing = pacing

    def now(self) -> datetime:
        return self._clock()

    def today_label(self) -> str:
        return day_range_utc(0, self.now()).date_label

    async def _pause(self, seconds: float) -> None:
        if self._pacing and seconds > 0:
            await self._sleep(seconds)

    async def fetch_messages_in_range(
        self, channel: MessageChannel, start: datetime, end: datetime
    ) -> list[Message]:
        """Page backward through one channel, keeping messages in ``[start, end]``."""
        messages: list[Message] = []
        before: int | None = None

        try:
            while True:
                page = await channel.fetch_page(before=before, limit=self.PAGE_SIZE)
                if not page:
                    break

                reached_start = False
                for message in page:
                    if message.created_at < start:
                        reached_start = True
                        break
                    if message.created_at <= end:
                        messages.append(message)

                if reached_start:
                    break

                before = page[-1].id
                if len(page) < self.PAGE_SIZE:
                    break
                await self._pause(self.RANGE_PAGE_DELAY)

        except ChannelUnreadable as e:
            logger.warning(f"Skipping channel during range scan: {e}")
        except Exception as e:
            logger.error(f"Error reading channel {channel.id} during range scan: {e}")

        return messages

    async def collect_for_range(
        self, channels: Iterable[MessageChannel], day_range: DayRange
    ) -> list[Message]:
        """Messages from every channel inside ``day_range``, unfiltered."""
        collected: list[Message] = []
        for channel in channels:
            messages = await self.fetch_messages_in_range(
                channel, day_range.start, day_range.end
            )
            if not messages:
                continue
            collected.extend(messages)
            await self._pause(self.CHANNEL_DELAY)
        return collected

    async def collect_recent_opted_in(
        self,
        channels: Iterable[MessageChannel],
        opted_in: Collection[str],
        budget: ScanBudget,
        predicate: MessagePredicate | None = None,
    ) -> Sample:
        """Budgeted backward scan keeping only opted-in (and matching) messages."""
        collected: list[Message] = []
        min_target = min(budget.min_message_count, budget.total_limit)
        fetches = 0
        finished = False

        for channel in channel_scan_order(channels):
            before: int | None = None
            page_number = 0

            while page_number < budget.max_pages and len(collected) < budget.total_limit:
                if fetches >= budget.max_total_fetches:
                    finished = True
                    break

                try:
                    page = await channel.fetch_page(before=before, limit=budget.per_page)
                except ChannelUnreadable as e:
                    logger.warning(f"Skipping channel during opted-in scan: {e}")
                    break
                except Exception as e:
                    logger.error(f"Error reading channel {channel.id} during opted-in scan: {e}")
                    break

                fetches += 1
                if not page:
                    break

                for message in page:
                    if message.author_id not in opted_in:
                        continue
                    if predicate is not None and not predicate(message):
                        continue
                    collected.append(message)

                before = page[-1].id
                if len(page) < budget.per_page:
                    break
                if len(collected) >= min_target:
                    finished = True
                    break

                await self._pause(self.SCAN_PAGE_DELAY)
                page_number += 1

            if finished:
                break

        trimmed = newest_first(collected)[: budget.total_limit]
        logger.debug(
            f"Opted-in scan kept {len(trimmed)} message(s) after {fetches} page fetch(es)"
        )
        return Sample(
            messages=trimmed,
            date_label=newest_date_label(trimmed, self.today_label()),
        )

    async def acquire(
        self, channels: list[MessageChannel], opted_in: Collection[str]
    ) -> Sample:
        """Build the shared sample for a run.

        Tries yesterday, then today, then a bounded scan of recent activity.
        An empty sample labelled with today's date means there was no content.
        """
        now = self.now()
        for offset in (-1, 0):
            day_range = day_range_utc(offset, now)
            messages = await self.collect_for_range(channels, day_range)
            if not messages:
                continue

            filtered = [m for m in messages if m.author_id in opted_in]
            if not filtered:
                logger.debug(
                    f"{len(messages)} message(s) on {day_range.date_label}, none opted in"
                )
                continue

            logger.info(
                f"Acquired {len(filtered)} opted-in message(s) for {day_range.date_label}"
            )
            return Sample(messages=newest_first(filtered), date_label=day_range.date_label)

        fallback = await self.collect_recent_opted_in(
            channels, opted_in, SHARED_FALLBACK_BUDGET
        )
        if fallback:
            logger.info(
                f"Acquired {len(fallback)} opted-in message(s) from recent history "
                f"(newest {fallback.date_label})"
            )
            return fallback

        logger.info("No opted-in messages found by any acquisition strategy")
        return Sample(messages=[], date_label=day_range_utc(0, now).date_label)
