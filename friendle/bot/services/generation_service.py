"""Daily puzzle generation service.

Runs the whole pipeline for one guild: snapshot opted-in members, acquire the
shared sample, build the four puzzles (each escalating through its own
fallbacks), compute the name and metrics maps from the sample that backs the
daily puzzle, and post everything to the storage service.

All steps are awaited one after another to respect Discord's rate limits.
"""

from __future__ import annotations

import logging
import random
from typing import Protocol

from friendle.bot.services.acquisition import MessageAcquisitionEngine
from friendle.bot.services.base import BaseService
from friendle.bot.services.base import GuildDirectory
from friendle.bot.services.base import MessageChannel
from friendle.bot.services.base import OptInRegistry
from friendle.bot.services.exceptions import BuilderInfeasible
from friendle.bot.services.ingestion_client import IngestionClient
from friendle.bot.services.metrics import build_metrics_map
from friendle.bot.services.metrics import build_name_map
from friendle.bot.services.models import DailyIdentityPuzzle
from friendle.bot.services.models import GenerationResult
from friendle.bot.services.models import Puzzle
from friendle.bot.services.models import Sample
from friendle.bot.services.puzzles import BuildContext
from friendle.bot.services.puzzles import BuildOutcome
from friendle.bot.services.puzzles import PuzzleBuilder
from friendle.bot.services.puzzles import PuzzleBuilders
from friendle.bot.services.puzzles import build_degraded_daily
from friendle.bot.services.puzzles import escalate
from friendle.bot.services.selection import RandomSource

logger = logging.getLogger(__name__)

REASON_NO_OPTED_IN = "no_opted_in"
REASON_NO_OPTED_IN_MESSAGES = "no_opted_in_messages"


class RunHistory(OptInRegistry, Protocol):
    def record_guild_run(self, guild_id: str, date_label: str | None) -> None: ...

    def record_run(self) -> None: ...


class PuzzleGenerationService(BaseService):
    """Builds and publishes the daily puzzle set for every guild."""

    def __init__(
        self,
        directory: GuildDirectory,
        registry: RunHistory,
        ingestion_client: IngestionClient,
        *,
        engine: MessageAcquisitionEngine | None = None,
        builders: PuzzleBuilders | None = None,
        rng: RandomSource | None = None,
        min_quote_length: int = 40,
    ):
        super().__init__("PuzzleGenerationService")
        self._directory = directory
        self._registry = registry
        self._ingestion = ingestion_client
        self._engine = engine or MessageAcquisitionEngine()
        self._builders = builders or PuzzleBuilders()
        self._rng = rng or random.Random()
        self._min_quote_length = min_quote_length

    async def cleanup(self) -> None:
        await self._ingestion.close()
        await super().cleanup()

    async def generate_all(self) -> list[GenerationResult]:
        """Generate for every guild; one guild failing does not stop the others."""
        logger.info("Starting daily puzzle generation...")
        results = []
        for guild_id in self._directory.guild_ids():
            try:
                logger.info(f"Processing guild {guild_id}")
                results.append(await self.generate_for_guild(guild_id))
            except Exception as e:
                logger.error(f"Error processing guild {guild_id}: {e}")

        self._registry.record_run()
        logger.info("Daily generation finished.")
        return results

    async def _build(
        self,
        builder: PuzzleBuilder,
        shared_sample: Sample,
        channels: list[MessageChannel],
        context: BuildContext,
    ) -> BuildOutcome | None:
        try:
            outcome = await escalate(builder, shared_sample, self._engine, channels, context)
        except BuilderInfeasible as e:
            logger.info(f"Omitting {builder.game}: {e}")
            return None

        if outcome.attempts > 1:
            logger.info(f"Built {builder.game} from fallback attempt {outcome.attempts}")
        return outcome

    async def generate_for_guild(self, guild_id: str) -> GenerationResult:
        members = await self._directory.fetch_members(guild_id)
        members_by_id = {member.id: member for member in members}

        opted_in_ids = [uid for uid in self._registry.list() if uid in members_by_id]
        if not opted_in_ids:
            logger.info(f"No opted-in members for guild {guild_id}")
            return GenerationResult(guild_id=guild_id, reason=REASON_NO_OPTED_IN)

        opted_in = frozenset(opted_in_ids)
        snapshot = [members_by_id[uid] for uid in opted_in_ids]
        channels = await self._directory.fetch_channels(guild_id)

        now = self._engine.now()
        context = BuildContext(
            members=members_by_id,
            opted_in=opted_in,
            rng=self._rng,
            now=now,
            min_quote_length=self._min_quote_length,
        )

        shared = await self._engine.acquire(channels, opted_in)
        if not shared:
            logger.info(f"No recent opted-in messages available for guild {guild_id}")

        # Metrics must come from the same sample that backs the daily puzzle
        daily_outcome = await self._build(self._builders.daily, shared, channels, context)
        metrics_sample = daily_outcome.sample if daily_outcome else shared

        names = build_name_map(snapshot)
        metrics = build_metrics_map(snapshot, metrics_sample, now)

        degraded = daily_outcome is None
        if daily_outcome is not None:
            daily = daily_outcome.puzzle
        else:
            daily = build_degraded_daily(opted_in_ids, metrics, context, shared.date_label)
            logger.info(f"Using degraded {self._builders.daily.game} for guild {guild_id}")

        puzzles: list[Puzzle] = [daily] if daily else []
        for builder in (self._builders.quote, self._builders.media, self._builders.stat):
            outcome = await self._build(builder, shared, channels, context)
            if outcome is not None:
                puzzles.append(outcome.puzzle)

        for puzzle in puzzles:
            puzzle.solution_user_name = names.get(puzzle.solution_user_id)
            if isinstance(puzzle, DailyIdentityPuzzle):
                solution_metrics = metrics.get(puzzle.solution_user_id)
                puzzle.solution_metrics = solution_metrics.to_dict() if solution_metrics else None

        for puzzle in puzzles:
            await self._ingestion.post_puzzle(guild_id, puzzle)

        await self._ingestion.post_metadata(
            guild_id,
            metrics_sample.date_label,
            names,
            {uid: entry.to_dict() for uid, entry in metrics.items()},
            [names[uid] for uid in opted_in_ids if names.get(uid)],
        )

        self._registry.record_guild_run(
            guild_id, metrics_sample.date_label if daily else None
        )

        reason = None
        if degraded and len(puzzles) <= 1 and not shared:
            reason = REASON_NO_OPTED_IN_MESSAGES

        logger.info(f"Puzzles for {guild_id}: {[p.game for p in puzzles]}")
        return GenerationResult(
            guild_id=guild_id,
            puzzles=puzzles,
            generated=True,
            reason=reason,
            date=metrics_sample.date_label,
            metrics=metrics,
            metrics_sample=metrics_sample,
        )
