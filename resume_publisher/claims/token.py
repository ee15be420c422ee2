"""Signed upload tokens binding an anonymous upload to its content hash.

Wire format: ``key|hash|expires_ms|signature``, where ``signature`` is the
unpadded base64url HMAC-SHA256 of ``key|hash|expires_ms``.
"""

import base64
import hashlib
import hmac
import re
import time
from dataclasses import dataclass

from resume_publisher.exceptions import ConfigurationError, InvalidTokenError, ValidationError

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
TEMP_PREFIX = "temp/"


@dataclass(frozen=True)
class UploadToken:
    storage_key: str
    content_hash: str
    expires_at_ms: int


class UploadTokenSigner:
    def __init__(self, secret: str, ttl_seconds: int = 1800) -> None:
        if not secret:
            raise ConfigurationError("upload_token_secret is required")
        self._secret = secret.encode("utf-8")
        self._ttl_ms = ttl_seconds * 1000

    def issue(self, storage_key: str, content_hash: str, now_ms: int | None = None) -> str:
        """Sign a token for a file already written to ``storage_key``.

        Raises:
            ValidationError: for a key outside ``temp/`` or a malformed hash.
        """
        if not storage_key.startswith(TEMP_PREFIX) or "|" in storage_key:
            raise ValidationError("Storage key must be a temporary upload key")
        content_hash = content_hash.lower()
        if not _HASH_RE.match(content_hash):
            raise ValidationError("Content hash must be a SHA-256 hex digest")
        issued_ms = _now_ms() if now_ms is None else now_ms
        payload = f"{storage_key}|{content_hash}|{issued_ms + self._ttl_ms}"
        return f"{payload}|{self._sign(payload)}"

    def verify(self, token: str, now_ms: int | None = None) -> UploadToken:
        """Check signature and expiry.

        Raises:
            InvalidTokenError: if the token is malformed, tampered with or expired.
        """
        parts = token.split("|")
        if len(parts) != 4:
            raise InvalidTokenError("Malformed upload token")
        storage_key, content_hash, expires_raw, signature = parts
        payload = f"{storage_key}|{content_hash}|{expires_raw}"
        if not hmac.compare_digest(signature.encode(), self._sign(payload).encode()):
            raise InvalidTokenError("Upload token signature mismatch")
        try:
            expires_at_ms = int(expires_raw)
        except ValueError as exc:
            raise InvalidTokenError("Malformed upload token expiry") from exc
        current = _now_ms() if now_ms is None else now_ms
        if current > expires_at_ms:
            raise InvalidTokenError("Upload token expired")
        if not storage_key.startswith(TEMP_PREFIX) or not _HASH_RE.match(content_hash):
            raise InvalidTokenError("Upload token fields are invalid")
        return UploadToken(storage_key, content_hash, expires_at_ms)

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self._secret, payload.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _now_ms() -> int:
    return int(time.time() * 1000)
