"""
Webhook API routes.

Keep this thin: the route hands the raw body to WebhookService and turns its
acknowledgement into the HTTP status the provider expects (2xx stops
redelivery, anything else asks for it).
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette import status as http_status
from structlog.contextvars import bind_contextvars

from api.dependencies import get_webhook_service
from api.middleware import get_request_id
from application.services.webhook_service import WebhookService
from core.response import error_response, success_response
from core.logging_config import get_logger
from shared.codes.payment_codes import WebhookCode


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/{gateway}")
async def receive_webhook(
    gateway: str,
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    bind_contextvars(gateway=gateway.lower())
    raw_body = await request.body()
    acknowledged = await service.process(
        gateway.lower(),
        raw_body,
        dict(request.headers),
        dict(request.query_params),
    )
    if not acknowledged:
        response = error_response(
            code=WebhookCode.NOT_ACKNOWLEDGED,
            message="Webhook not processed",
            error_type="NotAcknowledged",
            request_id=get_request_id(),
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode="json"),
        )
    return success_response(data={"acknowledged": True}, message="Webhook processed")
