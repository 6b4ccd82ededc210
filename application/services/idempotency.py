"""
Per-event delivery deduplication on top of an IdempotencyStore.
"""
from __future__ import annotations

from application.ports.idempotency import IdempotencyStore
from core.logging_config import get_logger
from domain.common.exceptions import CollaboratorFailure
from shared.codes.payment_codes import WebhookCode


logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 3600


class IdempotencyGuard:
    def __init__(self, store: IdempotencyStore, gateway: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.store = store
        self.gateway = gateway
        self.ttl_seconds = ttl_seconds

    def key(self, event_id: str) -> str:
        return f"webhook:{self.gateway}:{event_id}"

    async def is_first_delivery(self, event_id: str) -> bool:
        """Atomically claim the event id; False means it was already seen."""
        try:
            return await self.store.claim(self.key(event_id), self.ttl_seconds)
        except CollaboratorFailure:
            raise
        except Exception as exc:
            logger.error("webhook_dedupe_failed", event_id=event_id, error=str(exc))
            raise CollaboratorFailure(
                "Idempotency store unavailable",
                collaborator="idempotency",
                code=WebhookCode.IDEMPOTENCY_STORE_FAILED,
                details={"event_id": event_id},
            ) from exc

    async def forget(self, event_id: str) -> None:
        """Release a claim so a redelivery of this event is processed again."""
        try:
            await self.store.release(self.key(event_id))
        except Exception as exc:
            # The claim expires on its own; the original failure is what matters.
            logger.error("webhook_dedupe_release_failed", event_id=event_id, error=str(exc))
