"""Per-member activity metrics computed alongside the daily puzzles."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from friendle.bot.services.models import ActivityMetrics
from friendle.bot.services.models import Member
from friendle.bot.services.models import Message
from friendle.bot.services.models import Sample
from friendle.bot.services.text_utils import NOT_ACTIVE
from friendle.bot.services.text_utils import account_age_range
from friendle.bot.services.text_utils import bucket_for_hour
from friendle.bot.services.text_utils import bucket_time
from friendle.bot.services.text_utils import top_non_common_word
from friendle.bot.services.text_utils import utc_hour


def active_window(messages: list[Message]) -> str:
    """Bucketed range between the earliest and latest UTC hour of activity."""
    if not messages:
        return NOT_ACTIVE
    hours = [utc_hour(m.created_at) for m in messages]
    return f"{bucket_for_hour(min(hours))} — {bucket_for_hour(max(hours))}"


def summarize_member(
    member: Member | None, messages: list[Message], now: datetime
) -> ActivityMetrics:
    age_range = account_age_range(member.created_at, now) if member else None

    if not messages:
        return ActivityMetrics(
            message_count=0,
            top_word=None,
            active_window=NOT_ACTIVE,
            mentions=0,
            first_message_bucket=None,
            account_age_range=age_range,
        )

    first_message = min(messages, key=lambda m: m.created_at)
    return ActivityMetrics(
        message_count=len(messages),
        top_word=top_non_common_word(messages),
        active_window=active_window(messages),
        mentions=sum(m.mention_count for m in messages),
        first_message_bucket=bucket_time(first_message.created_at),
        account_age_range=age_range,
    )


def build_metrics_map(
    members: Iterable[Member], sample: Sample, now: datetime
) -> dict[str, ActivityMetrics]:
    """One entry per member, neutral values for members with no messages."""
    by_author = sample.by_author
    return {
        member.id: summarize_member(member, by_author.get(member.id, []), now)
        for member in members
    }


def build_name_map(members: Iterable[Member]) -> dict[str, str]:
    return {member.id: member.display_name for member in members}
