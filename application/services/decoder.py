"""
Turns an inbound request body into a NotificationEnvelope.

Two shapes are accepted:

1. the provider's JSON body posted directly;
2. a relay form (``application/x-www-form-urlencoded``) where an intermediary
   forwards the original request as two base64 fields: ``headers`` (a JSON
   object) and ``vars`` (the original body).

For relayed requests the decoded ``vars`` bytes are what the provider signed,
so they become ``raw_body``.
"""
from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs

from core.logging_config import get_logger
from domain.common.exceptions import DecodeError
from domain.webhook.envelope import NotificationEnvelope


logger = get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _b64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Relay field '{field}' is not valid base64") from exc


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("webhook_timestamp_unparsed", value=value)
        return None


class Decoder:
    def __init__(self, signature_header: str = "X-Square-Signature") -> None:
        self.signature_header = signature_header.lower()

    def decode(self, raw_body: bytes, headers: Mapping[str, str], gateway: str) -> NotificationEnvelope:
        lowered = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        relayed = False

        content_type = lowered.get("content-type", "")
        if content_type.startswith(FORM_CONTENT_TYPE):
            form = parse_qs(raw_body.decode("utf-8", errors="replace"), keep_blank_values=True)
            if "headers" in form and "vars" in form:
                raw_body, lowered = self._unwrap_relay(form)
                relayed = True

        try:
            data = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecodeError("Notification body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise DecodeError("Notification body is not a JSON object")

        event_id = data.get("event_id")
        event_type = data.get("type")
        payload = data.get("data")
        raw_object = payload.get("object") if isinstance(payload, dict) else None
        if not isinstance(raw_object, dict):
            raise DecodeError(
                "Notification has no object under data.object",
                details={"event_id": event_id, "event_type": event_type},
            )

        return NotificationEnvelope(
            id=str(event_id) if event_id is not None else "",
            type=str(event_type) if event_type is not None else "",
            gateway=gateway,
            raw_object=raw_object,
            raw_body=raw_body,
            signature_header=lowered.get(self.signature_header),
            created_at=_parse_timestamp(data.get("created_at")),
            headers=lowered,
            relayed=relayed,
        )

    def _unwrap_relay(self, form: dict[str, list[str]]) -> tuple[bytes, dict[str, str]]:
        body = _b64(form["vars"][0], "vars")
        try:
            relayed_headers = json.loads(_b64(form["headers"][0], "headers"))
        except ValueError as exc:
            raise DecodeError("Relay field 'headers' is not JSON") from exc
        if relayed_headers is None:
            relayed_headers = {}
        if not isinstance(relayed_headers, dict):
            raise DecodeError("Relay field 'headers' is not a JSON object")
        return body, {str(k).lower(): str(v) for k, v in relayed_headers.items()}
