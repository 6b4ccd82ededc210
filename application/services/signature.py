"""
Webhook signature verification.

Square signs `notification_url + raw_body` with HMAC-SHA1 using the
subscription's signature key and sends the base64 digest in
`X-Square-Signature`.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Optional, Union

from core.logging_config import get_logger


logger = get_logger(__name__)


def compute_signature(raw_body: bytes, notification_url: str, secret_key: Union[bytes, str]) -> str:
    if isinstance(secret_key, str):
        secret_key = secret_key.encode("utf-8")
    message = notification_url.encode("utf-8") + raw_body
    digest = hmac.new(secret_key, message, hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class SignatureVerifier:
    """Stateless HMAC check; returns False on any missing input."""

    def verify(
        self,
        raw_body: Optional[bytes],
        signature_header: Optional[str],
        notification_url: Optional[str],
        secret_key: Optional[Union[bytes, str]],
    ) -> bool:
        if raw_body is None or not signature_header or not notification_url or not secret_key:
            logger.warning(
                "webhook_signature_input_missing",
                has_body=raw_body is not None,
                has_signature=bool(signature_header),
                has_url=bool(notification_url),
                has_key=bool(secret_key),
            )
            return False
        expected = compute_signature(raw_body, notification_url, secret_key)
        return hmac.compare_digest(expected.encode("ascii"), signature_header.strip().encode("utf-8"))
