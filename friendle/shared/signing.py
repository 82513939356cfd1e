"""HMAC-SHA256 signing shared by the ingestion client and the storage service.

The signature always covers the exact bytes sent on the wire, so the client
serializes once and signs that serialization, and the server verifies the raw
request body before it parses anything.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

SIGNATURE_HEADER = "X-Signature"


def canonical_json(payload: Any) -> bytes:
    """Serialize a payload deterministically as UTF-8 JSON."""
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def sign_body(secret: str, body: bytes) -> str:
    """Return the hex HMAC-SHA256 of ``body`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a hex signature against ``body`` in constant time."""
    if not signature:
        return False
    expected = sign_body(secret, body)
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8")
    )
