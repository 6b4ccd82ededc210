"""
Application service handling one inbound payment notification end to end:
decode, verify, parse, deduplicate, reconcile.

The boolean it returns is the acknowledgement the transport turns into an
HTTP status: True stops provider redelivery, False asks for it.
"""
from __future__ import annotations

from typing import Callable, Mapping, Optional

from structlog.contextvars import bound_contextvars

from application.dtos.webhooks import HandlerResult, WebhookEventVariant, parse_event
from application.ports.payment_gateway import GatewayConfig
from application.services.decoder import Decoder
from application.services.idempotency import IdempotencyGuard
from application.services.router import EventRouter
from application.services.signature import SignatureVerifier
from core.logging_config import get_logger
from domain.common.exceptions import (
    CollaboratorFailure,
    DecodeError,
    MalformedPayload,
    ReconciliationMismatch,
    VerificationFailure,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.envelope import NotificationEnvelope


logger = get_logger(__name__)

VERIFIED = "verified"
BYPASSED = "bypassed"
FAILED = "failed"


class WebhookService:
    def __init__(
        self,
        *,
        config: GatewayConfig,
        guard: IdempotencyGuard,
        router: EventRouter,
        uow_factory: Callable[[], AbstractUnitOfWork],
        decoder: Optional[Decoder] = None,
        verifier: Optional[SignatureVerifier] = None,
        test_mode: bool = False,
        test_query_param: str = "testhook",
    ) -> None:
        self.config = config
        self.guard = guard
        self.router = router
        self.uow_factory = uow_factory
        self.decoder = decoder or Decoder(config.signature_header())
        self.verifier = verifier or SignatureVerifier()
        self.test_mode = test_mode
        self.test_query_param = test_query_param

    async def process(
        self,
        gateway: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        query: Optional[Mapping[str, str]] = None,
    ) -> bool:
        try:
            envelope = self.decoder.decode(raw_body, headers, gateway)
        except DecodeError as exc:
            logger.warning("webhook_decode_failed", gateway=gateway, error=exc.message)
            self._audit(gateway=gateway, outcome="decode_error", acknowledged=False, note=exc.message)
            return False

        with bound_contextvars(event_id=envelope.id, event_type=envelope.type):
            return await self._process_envelope(envelope, query or {})

    async def _process_envelope(self, envelope: NotificationEnvelope, query: Mapping[str, str]) -> bool:
        verification = self._verify(envelope, query)
        if verification == FAILED:
            exc = VerificationFailure(event_id=envelope.id)
            logger.warning("webhook_signature_invalid", gateway=envelope.gateway, relayed=envelope.relayed)
            self._audit(envelope, outcome="verification_failed", verification=verification, acknowledged=False, note=exc.message)
            return False

        try:
            event = parse_event(envelope)
        except MalformedPayload as exc:
            logger.warning("webhook_payload_malformed", error=exc.message, field=exc.field)
            self._audit(envelope, outcome="malformed", verification=verification, acknowledged=False, note=exc.message)
            return False

        try:
            first = await self.guard.is_first_delivery(envelope.id)
        except CollaboratorFailure as exc:
            self._audit(envelope, outcome="collaborator_failure", verification=verification, acknowledged=False, note=exc.message)
            return False
        if not first:
            logger.info("webhook_duplicate_delivery")
            self._audit(envelope, outcome="duplicate", verification=verification, acknowledged=True)
            return True

        try:
            result = await self._reconcile(event)
        except ReconciliationMismatch as exc:
            # Nothing can be corrected automatically; redelivery would not help.
            logger.warning("webhook_reconciliation_mismatch", error=exc.message, details=exc.details)
            self._audit(
                envelope,
                outcome="mismatch",
                verification=verification,
                acknowledged=True,
                reference_id=exc.reference_id,
                note=exc.message,
            )
            return True
        except (CollaboratorFailure, MalformedPayload) as exc:
            await self.guard.forget(envelope.id)
            logger.error("webhook_processing_failed", error=exc.message, error_type=exc.error_type)
            self._audit(envelope, outcome="failed", verification=verification, acknowledged=False, note=exc.message)
            return False
        except Exception:
            await self.guard.forget(envelope.id)
            raise

        if not result.acknowledged:
            await self.guard.forget(envelope.id)
        self._audit(
            envelope,
            outcome="processed" if result.acknowledged else "not_acknowledged",
            verification=verification,
            acknowledged=result.acknowledged,
            order_id=result.order_id,
            reference_id=result.reference_id,
            verified=result.verified,
            note=result.note,
        )
        return result.acknowledged

    def _verify(self, envelope: NotificationEnvelope, query: Mapping[str, str]) -> str:
        if self.test_mode and self.test_query_param in query:
            logger.warning("webhook_signature_bypassed", gateway=envelope.gateway, status_msg="Testing Webhook")
            return BYPASSED
        ok = self.verifier.verify(
            envelope.raw_body,
            envelope.signature_header,
            self.config.notification_url(),
            self.config.secret_key(),
        )
        return VERIFIED if ok else FAILED

    async def _reconcile(self, event: WebhookEventVariant) -> HandlerResult:
        async with self.uow_factory() as uow:
            result = await self.router.route(event, uow)
            if not result.acknowledged:
                await uow.rollback()
        return result

    def _audit(
        self,
        envelope: Optional[NotificationEnvelope] = None,
        *,
        gateway: Optional[str] = None,
        outcome: str,
        acknowledged: bool,
        verification: Optional[str] = None,
        order_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        verified: bool = False,
        note: str = "",
    ) -> None:
        logger.info(
            "webhook_audit",
            gateway=envelope.gateway if envelope else gateway,
            event_id=envelope.id if envelope else None,
            event_type=envelope.type if envelope else None,
            outcome=outcome,
            verification=verification,
            acknowledged=acknowledged,
            order_id=order_id,
            reference_id=reference_id,
            verified=verified,
            note=note,
        )
