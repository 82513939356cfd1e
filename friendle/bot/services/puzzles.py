"""Puzzle builders and the shared fallback escalation routine.

Every builder turns a ``Sample`` into one typed puzzle, or returns ``None``
when the sample has nothing it can use. Builders also declare an ordered list
of fallback strategies, each a (predicate, budget) pair; ``escalate`` tries
the shared sample first and then each strategy's private re-acquisition in
turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Collection

from friendle.bot.services.acquisition import MessageAcquisitionEngine
from friendle.bot.services.acquisition import MessagePredicate
from friendle.bot.services.acquisition import ScanBudget
from friendle.bot.services.base import MessageChannel
from friendle.bot.services.exceptions import AcquisitionExhausted
from friendle.bot.services.exceptions import BuilderInfeasible
from friendle.bot.services.metrics import summarize_member
from friendle.bot.services.models import GAME_DAILY
from friendle.bot.services.models import GAME_MEDIA
from friendle.bot.services.models import GAME_QUOTE
from friendle.bot.services.models import GAME_STAT
from friendle.bot.services.models import ActivityMetrics
from friendle.bot.services.models import DailyIdentityPuzzle
from friendle.bot.services.models import MediaPuzzle
from friendle.bot.services.models import Member
from friendle.bot.services.models import Message
from friendle.bot.services.models import Puzzle
from friendle.bot.services.models import QuotePuzzle
from friendle.bot.services.models import Sample
from friendle.bot.services.models import StatPuzzle
from friendle.bot.services.models import group_by_author
from friendle.bot.services.selection import RandomSource
from friendle.bot.services.selection import pick_uniform
from friendle.bot.services.text_utils import NOT_ACTIVE
from friendle.bot.services.text_utils import account_age_range
from friendle.bot.services.text_utils import anonymize_text
from friendle.bot.services.text_utils import bucket_time
from friendle.bot.services.text_utils import filename_keywords
from friendle.bot.services.text_utils import first_image_attachment
from friendle.bot.services.text_utils import has_image_attachment
from friendle.bot.services.text_utils import is_quote_candidate
from friendle.bot.services.text_utils import normalize_quote_for_hash
from friendle.bot.services.text_utils import scramble_words
from friendle.bot.services.text_utils import sha256_hex
from friendle.bot.services.text_utils import tokenize

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """Everything a builder needs besides the sample itself."""

    members: dict[str, Member]
    opted_in: frozenset[str]
    rng: RandomSource
    now: datetime
    min_quote_length: int = 40

    def is_eligible(self, author_id: str) -> bool:
        return author_id in self.opted_in


@dataclass(frozen=True)
class FallbackStrategy:
    name: str
    budget: ScanBudget
    predicate: MessagePredicate | None = None


@dataclass
class BuildOutcome:
    puzzle: Puzzle
    sample: Sample
    attempts: int = 1


class PuzzleBuilder:
    """Base class for the four game heuristics."""

    game = ""

    def build(self, sample: Sample, context: BuildContext) -> Puzzle | None:
        raise NotImplementedError

    def fallback_strategies(self, context: BuildContext) -> list[FallbackStrategy]:
        return []

    def eligible_messages(self, sample: Sample, context: BuildContext) -> list[Message]:
        return [m for m in sample.messages if context.is_eligible(m.author_id)]


def daily_clues(
    metrics: ActivityMetrics, member: Member | None, now: datetime, min_count: int
) -> dict:
    if metrics.account_age_range:
        age_range = metrics.account_age_range
    elif member:
        age_range = account_age_range(member.created_at, now)
    else:
        age_range = "Unknown"

    return {
        "messages_yesterday": f"{max(min_count, metrics.message_count)} messages",
        "top_word": metrics.top_word or "None",
        "active_window": metrics.active_window or NOT_ACTIVE,
        "mentions": metrics.mentions or 0,
        "first_message_bucket": metrics.first_message_bucket or NOT_ACTIVE,
        "account_age_range": age_range,
    }


class DailyIdentityBuilder(PuzzleBuilder):
    """Guess who: activity clues about one opted-in author."""

    game = GAME_DAILY

    def build(self, sample: Sample, context: BuildContext) -> DailyIdentityPuzzle | None:
        by_author = group_by_author(self.eligible_messages(sample, context))
        candidates = [uid for uid, messages in by_author.items() if messages]
        user_id = pick_uniform(candidates, context.rng)
        if user_id is None:
            return None

        member = context.members.get(user_id)
        metrics = summarize_member(member, by_author[user_id], context.now)
        return DailyIdentityPuzzle(
            date=sample.date_label,
            solution_user_id=user_id,
            clues=daily_clues(metrics, member, context.now, min_count=1),
        )

    def fallback_strategies(self, context: BuildContext) -> list[FallbackStrategy]:
        return [
            FallbackStrategy(
                name="daily_recent_history",
                budget=ScanBudget(
                    max_pages=50, total_limit=800, min_message_count=15, max_total_fetches=350
                ),
            )
        ]


def build_degraded_daily(
    opted_in_ids: list[str],
    metrics_map: dict[str, ActivityMetrics],
    context: BuildContext,
    date_label: str,
) -> DailyIdentityPuzzle | None:
    """Last-resort daily puzzle drawn straight from the metrics map.

    Any opted-in member qualifies, including one with no observed messages.
    """
    user_id = pick_uniform(opted_in_ids, context.rng)
    if user_id is None:
        return None

    member = context.members.get(user_id)
    metrics = metrics_map.get(user_id) or summarize_member(member, [], context.now)
    return DailyIdentityPuzzle(
        date=date_label,
        solution_user_id=user_id,
        clues=daily_clues(metrics, member, context.now, min_count=0),
    )


class QuoteBuilder(PuzzleBuilder):
    """Unscramble a quote and guess who said it."""

    game = GAME_QUOTE

    def build(self, sample: Sample, context: BuildContext) -> QuotePuzzle | None:
        candidates = [
            m
            for m in self.eligible_messages(sample, context)
            if is_quote_candidate(m, context.min_quote_length)
        ]
        message = pick_uniform(candidates, context.rng)
        if message is None:
            return None

        original = anonymize_text(message.content)
        normalized = normalize_quote_for_hash(original)

        return QuotePuzzle(
            date=sample.date_label,
            solution_user_id=message.author_id,
            quote_scrambled=scramble_words(original, context.rng),
            quote_original=original,
            quote_hash=sha256_hex(normalized),
            meta={
                "message_span": 1,
                "time_bucket": bucket_time(message.created_at),
                "channel_category": message.channel_category,
                "min_chars": len(normalized),
            },
        )

    def fallback_strategies(self, context: BuildContext) -> list[FallbackStrategy]:
        min_length = context.min_quote_length
        return [
            FallbackStrategy(
                name="quote_recent_history",
                budget=ScanBudget(
                    max_pages=50, total_limit=800, min_message_count=10, max_total_fetches=350
                ),
                predicate=lambda m: is_quote_candidate(m, min_length),
            )
        ]


class MediaBuilder(PuzzleBuilder):
    """Guess who posted an image."""

    game = GAME_MEDIA

    def build(self, sample: Sample, context: BuildContext) -> MediaPuzzle | None:
        candidates = [
            m for m in self.eligible_messages(sample, context) if has_image_attachment(m)
        ]
        message = pick_uniform(candidates, context.rng)
        if message is None:
            return None

        attachment = first_image_attachment(message)
        return MediaPuzzle(
            date=sample.date_label,
            solution_user_id=message.author_id,
            media={
                "url": attachment.url,
                "file_name": attachment.filename or None,
                "size": attachment.size or None,
                "keywords": filename_keywords(attachment.filename),
            },
            meta={
                "time_bucket": bucket_time(message.created_at),
                "channel_category": message.channel_category,
            },
        )

    def fallback_strategies(self, context: BuildContext) -> list[FallbackStrategy]:
        # One image is enough, so the result cap stays small
        return [
            FallbackStrategy(
                name="media_recent_history",
                budget=ScanBudget(
                    max_pages=60, total_limit=200, min_message_count=1, max_total_fetches=350
                ),
                predicate=has_image_attachment,
            )
        ]


class StatBuilder(PuzzleBuilder):
    """Guess who from a word only they used, or from their longest message."""

    game = GAME_STAT

    def build(self, sample: Sample, context: BuildContext) -> StatPuzzle | None:
        messages = self.eligible_messages(sample, context)
        if not messages:
            return None

        by_author = group_by_author(messages)

        longest_author: str | None = None
        longest_length = 0
        for message in messages:
            if message.content and len(message.content) > longest_length:
                longest_author = message.author_id
                longest_length = len(message.content)

        word_authors: dict[str, set[str]] = {}
        for author_id, author_messages in by_author.items():
            for message in author_messages:
                for word in tokenize(message.content):
                    word_authors.setdefault(word, set()).add(author_id)

        unique_words = [
            word
            for word, authors in word_authors.items()
            if len(authors) == 1 and len(word) > 3 and not any(ch.isdigit() for ch in word)
        ]
        unique_word = pick_uniform(unique_words, context.rng)

        def reactions(author_id: str) -> int:
            return sum(m.reaction_count for m in by_author[author_id])

        if unique_word is not None:
            (author_id,) = word_authors[unique_word]
            stats = {
                "unique_word": unique_word,
                "messages": len(by_author[author_id]),
                "reactions_received": reactions(author_id),
            }
        elif longest_author is not None:
            author_id = longest_author
            stats = {
                "messages": len(by_author[author_id]),
                "longest_message_length": longest_length,
                "reactions_received": reactions(author_id),
            }
        else:
            author_id = pick_uniform(list(by_author), context.rng)
            stats = {"messages": len(by_author[author_id])}

        return StatPuzzle(date=sample.date_label, solution_user_id=author_id, stats=stats)

    def fallback_strategies(self, context: BuildContext) -> list[FallbackStrategy]:
        return [
            FallbackStrategy(
                name="stat_recent_history",
                budget=ScanBudget(
                    max_pages=40, total_limit=800, min_message_count=50, max_total_fetches=350
                ),
            )
        ]


@dataclass
class PuzzleBuilders:
    daily: DailyIdentityBuilder = field(default_factory=DailyIdentityBuilder)
    quote: QuoteBuilder = field(default_factory=QuoteBuilder)
    media: MediaBuilder = field(default_factory=MediaBuilder)
    stat: StatBuilder = field(default_factory=StatBuilder)


async def _scan(
    engine: MessageAcquisitionEngine,
    channels: list[MessageChannel],
    opted_in: Collection[str],
    strategy: FallbackStrategy,
) -> Sample:
    sample = await engine.collect_recent_opted_in(
        channels, opted_in, strategy.budget, strategy.predicate
    )
    if not sample:
        raise AcquisitionExhausted(strategy.name)
    return sample


async def escalate(
    builder: PuzzleBuilder,
    shared_sample: Sample,
    engine: MessageAcquisitionEngine,
    channels: list[MessageChannel],
    context: BuildContext,
) -> BuildOutcome:
    """Build from the shared sample, then from each fallback strategy in order.

    Raises:
        BuilderInfeasible: If neither the shared sample nor any fallback yields a puzzle
    """
    attempts = 1
    puzzle = builder.build(shared_sample, context)
    if puzzle is not None:
        return BuildOutcome(puzzle=puzzle, sample=shared_sample, attempts=attempts)

    for strategy in builder.fallback_strategies(context):
        attempts += 1
        logger.debug(f"{builder.game}: escalating to '{strategy.name}'")
        try:
            sample = await _scan(engine, channels, context.opted_in, strategy)
        except AcquisitionExhausted as e:
            logger.info(f"{builder.game}: {e}")
            continue

        puzzle = builder.build(sample, context)
        if puzzle is not None:
            return BuildOutcome(puzzle=puzzle, sample=sample, attempts=attempts)

    raise BuilderInfeasible(builder.game, attempts)
