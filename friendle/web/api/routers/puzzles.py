"""Puzzle ingestion and read API.

The bot posts signed puzzles and per-day metadata here; the front-end reads
them back by guild and date.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Query

from friendle.web.api.dependencies import get_kv_store
from friendle.web.api.dependencies import get_signed_payload
from friendle.web.api.exceptions import MalformedPayloadError
from friendle.web.api.schemas import IngestResponse
from friendle.web.api.schemas import MetadataResponse
from friendle.web.api.schemas import PuzzlesResponse
from friendle.web.crud import MetadataOperations
from friendle.web.crud import PuzzleOperations
from friendle.web.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Puzzles"])


def _guild_id(payload: dict[str, Any]) -> str | None:
    guild_id = payload.get("guild_id") or payload.get("community_id")
    return str(guild_id) if guild_id else None


@router.post("/ingest", response_model=IngestResponse)
async def ingest_puzzle(
    payload: dict[str, Any] = Depends(get_signed_payload),
    store: KeyValueStore = Depends(get_kv_store),
) -> IngestResponse:
    """Store one signed puzzle.

    Body: ``{"guild_id": "...", "puzzle": {"date": "...", "game": "...", ...}}``
    """
    guild_id = _guild_id(payload)
    puzzle = payload.get("puzzle")

    if (
        not guild_id
        or not isinstance(puzzle, dict)
        or not puzzle.get("date")
        or not puzzle.get("game")
    ):
        raise MalformedPayloadError(
            "Missing required fields: guild_id, puzzle.date, puzzle.game"
        )

    key = await PuzzleOperations(store).ingest(guild_id, puzzle)
    return IngestResponse(stored=key)


@router.post("/metadata", response_model=MetadataResponse)
async def store_metadata(
    payload: dict[str, Any] = Depends(get_signed_payload),
    store: KeyValueStore = Depends(get_kv_store),
) -> MetadataResponse:
    """Store the name map, metrics map and allowed usernames for a date."""
    guild_id = _guild_id(payload)
    date = payload.get("date")

    if not guild_id or not date:
        raise MalformedPayloadError("Missing guild_id or date")

    stored = await MetadataOperations(store).store_metadata(
        guild_id,
        str(date),
        names=payload.get("names"),
        metrics=payload.get("metrics"),
        allowed_usernames=payload.get("allowed_usernames"),
    )
    return MetadataResponse(stored=stored)


@router.get("/puzzles", response_model=PuzzlesResponse)
async def get_puzzles(
    guild_id: str | None = Query(default=None),
    community_id: str | None = Query(default=None),
    date: str | None = Query(default=None),
    latest: str | None = Query(default=None),
    game: str | None = Query(default=None),
    store: KeyValueStore = Depends(get_kv_store),
) -> dict[str, Any]:
    """Fetch puzzles for a guild and date (or the latest stored date).

    Without ``game`` all four games are returned, ``null`` for the ones not
    stored. With ``game`` only that puzzle is returned, or 404.
    """
    guild_id = guild_id or community_id
    if not guild_id:
        raise MalformedPayloadError("Missing guild_id")

    operations = PuzzleOperations(store)
    if latest == "1":
        date = await operations.latest_date(guild_id)
    if not date:
        raise MalformedPayloadError("Missing date (or no latest stored yet)")

    return await operations.get_puzzles(guild_id, date, game)
