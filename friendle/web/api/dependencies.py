"""FastAPI dependencies for storage access and request authentication."""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any

from fastapi import Depends
from fastapi import Header
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from friendle.shared.config import Settings
from friendle.shared.config import get_settings
from friendle.shared.database import get_db_session
from friendle.shared.signing import SIGNATURE_HEADER
from friendle.shared.signing import verify_signature
from friendle.web.api.exceptions import MalformedPayloadError
from friendle.web.api.exceptions import SignatureInvalidError
from friendle.web.api.exceptions import StorageUnavailableError
from friendle.web.api.exceptions import UnauthorizedError
from friendle.web.kv_store import KeyValueStore
from friendle.web.kv_store import SQLKeyValueStore

logger = logging.getLogger(__name__)


async def get_kv_store(session: AsyncSession = Depends(get_db_session)) -> KeyValueStore:
    """Key-value store bound to the request's database session."""
    return SQLKeyValueStore(session)


async def get_signed_payload(
    request: Request,
    signature: str | None = Header(default=None, alias=SIGNATURE_HEADER),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Verify the ``X-Signature`` header over the raw body, then parse it.

    Raises:
        SignatureInvalidError: Header missing (401) or digest mismatch (403)
        StorageUnavailableError: No webhook secret configured
        MalformedPayloadError: Body is not a JSON object
    """
    if not signature:
        raise SignatureInvalidError(f"Missing {SIGNATURE_HEADER}", status_code=401)

    body = await request.body()

    if not settings.webhook_secret:
        logger.error("Signed request received but WEBHOOK_SECRET is not configured")
        raise StorageUnavailableError("Missing WEBHOOK_SECRET")

    if not verify_signature(settings.webhook_secret, body, signature):
        logger.warning(f"Rejected request with invalid signature on {request.url.path}")
        raise SignatureInvalidError("Invalid signature", status_code=403)

    try:
        payload = json.loads(body)
    except ValueError:
        raise MalformedPayloadError("Invalid JSON")

    if not isinstance(payload, dict):
        raise MalformedPayloadError("Invalid JSON")

    return payload


async def verify_stats_write_key(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require ``Authorization: Bearer <STATS_WRITE_KEY>`` when a key is configured."""
    if not settings.stats_write_key:
        return

    expected = f"Bearer {settings.stats_write_key}"
    if not hmac.compare_digest(
        (authorization or "").encode("utf-8"), expected.encode("utf-8")
    ):
        raise UnauthorizedError("Unauthorized")
