"""Storage operations for the Friendle service.

Wraps a ``KeyValueStore`` with the key layout used for puzzles, per-date
metadata and stats counters. All operations are async; failures from the
backend surface as ``DatabaseOperationError``.
"""

from __future__ import annotations

import logging
from typing import Any

from friendle.web.kv_store import KeyValueStore
from friendle.web.kv_store import get_json
from friendle.web.kv_store import put_json

logger = logging.getLogger(__name__)

GAME_KEYS = ("friendle_daily", "quotele", "mediale", "statle")
DAILY_GAME = "friendle_daily"

GLOBAL_GUILD = "global"

STAT_METRICS = (
    "views",
    "guesses_total",
    "guessed_correctly",
    "active_players",
    "completed_games",
)

EVENT_METRICS = {
    "view": "views",
    "guess": "guesses_total",
    "guess_correct": "guessed_correctly",
    "game_complete": "completed_games",
}

EVENT_ALIASES = {"game_completed": "game_complete"}


class DatabaseOperationError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(DatabaseOperationError):
    """Raised when a requested record is not stored."""
    pass


def puzzle_key(guild_id: str, date: str, game: str) -> str:
    return f"guild:{guild_id}:date:{date}:game:{game}"


def metadata_key(guild_id: str, date: str, kind: str) -> str:
    return f"guild:{guild_id}:date:{date}:{kind}"


def latest_date_key(guild_id: str) -> str:
    return f"guild:{guild_id}:latest_date"


def latest_game_key(guild_id: str, game: str) -> str:
    return f"guild:{guild_id}:latest_game:{game}"


def stats_total_scope(guild_id: str) -> str:
    return f"stats:guild:{guild_id}:total"


def stats_day_scope(guild_id: str, date: str) -> str:
    return f"stats:guild:{guild_id}:date:{date}"


def normalize_event_type(raw: Any) -> str | None:
    """Lower-case the event type and resolve aliases; ``None`` if unknown."""
    event_type = str(raw or "").lower()
    event_type = EVENT_ALIASES.get(event_type, event_type)
    return event_type if event_type in EVENT_METRICS else None


def attach_solution_info(
    puzzle: dict[str, Any], names: dict[str, Any], metrics: dict[str, Any]
) -> None:
    """Fill the solution name (and daily metrics) from the stored maps."""
    solution_id = puzzle.get("solution_user_id")
    if not solution_id:
        return
    puzzle["solution_user_name"] = names.get(solution_id) or None
    if puzzle.get("game") == DAILY_GAME:
        puzzle["solution_metrics"] = metrics.get(solution_id) or None


class PuzzleOperations:
    """Puzzle ingestion and retrieval."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def latest_date(self, guild_id: str) -> str | None:
        try:
            return await self.store.get(latest_date_key(guild_id))
        except Exception as e:
            raise DatabaseOperationError(f"Failed to read latest date: {e}") from e

    async def ingest(self, guild_id: str, puzzle: dict[str, Any]) -> str:
        """Store a puzzle under its date and move the latest pointers.

        Args:
            guild_id: Community identifier
            puzzle: Puzzle record with at least ``date`` and ``game``

        Returns:
            str: The key the puzzle was stored under
        """
        key = puzzle_key(guild_id, puzzle["date"], puzzle["game"])
        try:
            await put_json(self.store, key, puzzle)
            await self.store.put(latest_date_key(guild_id), str(puzzle["date"]))
            await put_json(self.store, latest_game_key(guild_id, puzzle["game"]), puzzle)
        except Exception as e:
            raise DatabaseOperationError(f"Failed to store puzzle: {e}") from e

        logger.info(f"Stored {key}")
        return key

    async def get_puzzles(
        self, guild_id: str, date: str, game: str | None = None
    ) -> dict[str, Any]:
        """Load puzzles for a date with names, metrics and allow-list joined in.

        Raises:
            NotFoundError: If ``game`` is given and nothing is stored for it
            DatabaseOperationError: If the store fails
        """
        metadata = MetadataOperations(self.store)
        names, metrics, allowed = await metadata.get_metadata(guild_id, date)

        try:
            if game:
                key = puzzle_key(guild_id, date, game)
                puzzle = await get_json(self.store, key)
                if puzzle is None:
                    raise NotFoundError(f"Not found: {key}")
                attach_solution_info(puzzle, names, metrics)
                puzzles = {game: puzzle}
            else:
                puzzles = {}
                for name in GAME_KEYS:
                    puzzle = await get_json(self.store, puzzle_key(guild_id, date, name))
                    if puzzle is not None:
                        attach_solution_info(puzzle, names, metrics)
                    puzzles[name] = puzzle
        except NotFoundError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to read puzzles: {e}") from e

        return {
            "guild_id": guild_id,
            "date": date,
            "puzzles": puzzles,
            "names": names,
            "metrics": metrics,
            "allowed_usernames": allowed,
        }


class MetadataOperations:
    """Per-date name map, metrics map and allowed-username list."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def store_metadata(
        self,
        guild_id: str,
        date: str,
        names: dict[str, Any] | None = None,
        metrics: dict[str, Any] | None = None,
        allowed_usernames: Any = None,
    ) -> list[str]:
        """Write whichever parts are present and return the keys written."""
        written = []
        try:
            if names:
                key = metadata_key(guild_id, date, "names")
                await put_json(self.store, key, names)
                written.append(key)
            if metrics:
                key = metadata_key(guild_id, date, "metrics")
                await put_json(self.store, key, metrics)
                written.append(key)
            if isinstance(allowed_usernames, list):
                key = metadata_key(guild_id, date, "allowed_usernames")
                await put_json(self.store, key, [name for name in allowed_usernames if name])
                written.append(key)
        except Exception as e:
            raise DatabaseOperationError(f"Failed to store metadata: {e}") from e

        logger.info(f"Stored metadata for guild {guild_id} on {date}: {len(written)} key(s)")
        return written

    async def get_metadata(
        self, guild_id: str, date: str
    ) -> tuple[dict[str, Any], dict[str, Any], list[str]]:
        try:
            names = await get_json(self.store, metadata_key(guild_id, date, "names"))
            metrics = await get_json(self.store, metadata_key(guild_id, date, "metrics"))
            allowed = await get_json(
                self.store, metadata_key(guild_id, date, "allowed_usernames")
            )
        except Exception as e:
            raise DatabaseOperationError(f"Failed to read metadata: {e}") from e

        return names or {}, metrics or {}, allowed or []


class StatsOperations:
    """Best-effort usage counters.

    Increments are a plain read followed by a write, so concurrent events on
    the same counter can be lost.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def read_stats(self, scope: str) -> dict[str, int]:
        try:
            values = {}
            for metric in STAT_METRICS:
                raw = await self.store.get(f"{scope}:{metric}")
                values[metric] = int(raw or 0)
            return values
        except Exception as e:
            raise DatabaseOperationError(f"Failed to read stats: {e}") from e

    async def bump(self, scope: str, event_type: str) -> None:
        metric = EVENT_METRICS.get(event_type)
        if metric is None:
            return

        key = f"{scope}:{metric}"
        try:
            current = int(await self.store.get(key) or 0)
            await self.store.put(key, str(current + 1))
        except Exception as e:
            raise DatabaseOperationError(f"Failed to update stats: {e}") from e

    async def record_event(
        self, guild_id: str, event_type: str, date: str | None = None
    ) -> dict[str, Any]:
        """Bump the guild total and, when a date is known, the guild-day counters.

        Returns:
            dict: ``total`` and ``day`` counter snapshots after the update
        """
        total_scope = stats_total_scope(guild_id)
        day_scope = stats_day_scope(guild_id, date) if date else None

        await self.bump(total_scope, event_type)
        if day_scope:
            await self.bump(day_scope, event_type)

        return {
            "total": await self.read_stats(total_scope),
            "day": await self.read_stats(day_scope) if day_scope else None,
        }
