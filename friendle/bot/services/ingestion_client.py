"""Signed ingestion client for the storage service.

Each puzzle and the per-day metadata envelope is serialized once, signed over
the exact bytes sent, and posted independently. A failed post is logged and
reported as ``False``; it never blocks the remaining posts and is not retried
here, since the next scheduled run is the retry.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from friendle.bot.services.exceptions import IngestionError
from friendle.bot.services.models import Puzzle
from friendle.shared.signing import SIGNATURE_HEADER
from friendle.shared.signing import canonical_json
from friendle.shared.signing import sign_body

logger = logging.getLogger(__name__)


class IngestionClient:
    """Posts signed JSON payloads to ``/ingest`` and ``/metadata``."""

    def __init__(
        self,
        base_url: str,
        webhook_secret: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not webhook_secret:
            logger.warning("Webhook secret is empty; the storage service will reject posts")
        self.base_url = base_url.rstrip("/")
        self._secret = webhook_secret
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> IngestionClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _send_signed(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        body = canonical_json(payload)
        headers = {
            SIGNATURE_HEADER: sign_body(self._secret, body),
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(path, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise IngestionError(path, detail=str(e)) from e

        if not response.is_success:
            raise IngestionError(path, response.status_code, response.text[:200])
        return response

    async def post_puzzle(self, guild_id: str, puzzle: Puzzle) -> bool:
        payload = {"guild_id": guild_id, "puzzle": puzzle.to_payload()}
        try:
            await self._send_signed("/ingest", payload)
        except IngestionError as e:
            logger.error(f"Storage service rejected puzzle {puzzle.game}: {e}")
            return False

        logger.info(f"Posted puzzle {puzzle.game} for guild {guild_id} ({puzzle.date})")
        return True

    async def post_metadata(
        self,
        guild_id: str,
        date: str,
        names: dict[str, str],
        metrics: dict[str, dict[str, Any]],
        allowed_usernames: list[str],
    ) -> bool:
        payload = {
            "guild_id": guild_id,
            "date": date,
            "names": names,
            "metrics": metrics,
            "allowed_usernames": allowed_usernames,
        }
        try:
            await self._send_signed("/metadata", payload)
        except IngestionError as e:
            logger.error(f"Storage service rejected metadata for guild {guild_id}: {e}")
            return False

        logger.info(f"Posted metadata for guild {guild_id} ({date}, {len(names)} members)")
        return True
