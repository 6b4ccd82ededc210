"""
Immutable view of one inbound notification.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from domain.common.exceptions import DecodeError


@dataclass(frozen=True)
class NotificationEnvelope:
    id: str
    type: str
    gateway: str
    raw_object: Mapping[str, Any]
    raw_body: bytes
    signature_header: Optional[str] = None
    created_at: Optional[datetime] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    relayed: bool = False

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise DecodeError("Notification has no event id")
        if not self.type or not str(self.type).strip():
            raise DecodeError("Notification has no event type", details={"event_id": self.id})
