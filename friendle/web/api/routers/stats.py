"""Usage counters: views, guesses, correct guesses and completed games."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Query
from fastapi import Request
from pydantic import ValidationError

from friendle.web.api.dependencies import get_kv_store
from friendle.web.api.dependencies import verify_stats_write_key
from friendle.web.api.exceptions import MalformedPayloadError
from friendle.web.api.schemas import StatsEventRequest
from friendle.web.api.schemas import StatsEventResponse
from friendle.web.api.schemas import StatsResponse
from friendle.web.crud import GLOBAL_GUILD
from friendle.web.crud import PuzzleOperations
from friendle.web.crud import StatsOperations
from friendle.web.crud import normalize_event_type
from friendle.web.crud import stats_day_scope
from friendle.web.crud import stats_total_scope
from friendle.web.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(
    guild_id: str | None = Query(default=None),
    community_id: str | None = Query(default=None),
    date: str | None = Query(default=None),
    latest: str | None = Query(default=None),
    store: KeyValueStore = Depends(get_kv_store),
) -> StatsResponse:
    """Read guild totals, or guild-day counters when a date is given or resolved."""
    guild_id = guild_id or community_id or GLOBAL_GUILD

    if latest == "1" and guild_id != GLOBAL_GUILD:
        latest_date = await PuzzleOperations(store).latest_date(guild_id)
        if latest_date:
            date = latest_date

    scope = stats_day_scope(guild_id, date) if date else stats_total_scope(guild_id)
    counters = await StatsOperations(store).read_stats(scope)

    return StatsResponse(
        scope="guild_day" if date else "guild_total",
        guild_id=None if guild_id == GLOBAL_GUILD else guild_id,
        date=date or None,
        played_all=counters["completed_games"],
        **counters,
    )


@router.post("/event", response_model=StatsEventResponse)
async def record_stats_event(
    request: Request,
    _: None = Depends(verify_stats_write_key),
    store: KeyValueStore = Depends(get_kv_store),
) -> StatsEventResponse:
    """Increment one counter in the guild total and (if dated) guild-day scope."""
    try:
        body = json.loads(await request.body())
        event = StatsEventRequest.model_validate(body)
    except (ValueError, ValidationError):
        raise MalformedPayloadError("Invalid JSON")

    event_type = normalize_event_type(event.type)
    if event_type is None:
        raise MalformedPayloadError(
            "Invalid type. Use view | guess | guess_correct | game_complete"
        )

    guild_id = event.scope_guild_id or GLOBAL_GUILD
    date = str(event.date) if event.date else None
    if not date and event.wants_latest and guild_id != GLOBAL_GUILD:
        date = await PuzzleOperations(store).latest_date(guild_id)

    counters = await StatsOperations(store).record_event(guild_id, event_type, date)
    logger.debug(f"Recorded {event_type} for guild {guild_id} ({date or 'no date'})")

    return StatsEventResponse(
        guild_id=None if guild_id == GLOBAL_GUILD else guild_id,
        date=date,
        total=counters["total"],
        day=counters["day"],
    )
