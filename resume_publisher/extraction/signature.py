"""Verification of signed webhook deliveries from the extraction service.

Deliveries carry ``webhook-id``, ``webhook-timestamp`` and ``webhook-signature``
headers. The signature is ``v1,<base64 HMAC-SHA256>`` over ``id.timestamp.body``,
keyed with the base64-decoded secret (``whsec_`` prefix stripped). Several
space-separated signatures may be present during secret rotation.
"""

import base64
import binascii
import hashlib
import hmac
import time
from collections.abc import Mapping

from resume_publisher.logging.logger import Log

_SECRET_PREFIX = "whsec_"


def sign_webhook(secret: str, webhook_id: str, timestamp: str, body: bytes) -> str:
    """Compute the base64 signature for a delivery."""
    key = _decode_secret(secret)
    signed_content = f"{webhook_id}.{timestamp}.".encode() + body
    digest = hmac.new(key, signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> bool:
    """Return True only for a fresh delivery signed with ``secret``."""
    lowered = {key.lower(): value for key, value in headers.items()}
    webhook_id = lowered.get("webhook-id")
    timestamp = lowered.get("webhook-timestamp")
    signature_header = lowered.get("webhook-signature")
    if not webhook_id or not timestamp or not signature_header:
        Log.warning("Webhook rejected: missing signature headers")
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        Log.warning("Webhook rejected: invalid timestamp")
        return False
    current = time.time() if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        Log.warning("Webhook rejected: timestamp outside tolerance")
        return False

    if not secret:
        Log.error("Webhook rejected: signing secret not configured")
        return False
    try:
        expected = sign_webhook(secret, webhook_id, timestamp, body)
    except (binascii.Error, ValueError):
        Log.error("Webhook rejected: signing secret is not valid base64")
        return False

    for candidate in signature_header.split():
        _, _, provided = candidate.partition(",")
        if provided and hmac.compare_digest(provided.encode(), expected.encode()):
            return True
    Log.warning("Webhook rejected: signature mismatch")
    return False


def _decode_secret(secret: str) -> bytes:
    key = secret[len(_SECRET_PREFIX):] if secret.startswith(_SECRET_PREFIX) else secret
    return base64.b64decode(key, validate=True)
