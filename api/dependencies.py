"""
API依赖项 - 组装 webhook 处理所需的应用服务
"""
from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status

from application.ports.idempotency import IdempotencyStore
from application.services.idempotency import IdempotencyGuard
from application.services.reconciler import PaymentReconciler
from application.services.router import EventRouter
from application.services.webhook_service import WebhookService
from core.config import settings
from core.settings import gateway_settings
from infrastructure.adapters.currency import IsoCurrencyConverter
from infrastructure.adapters.gateway_config import get_gateway_config
from infrastructure.adapters.idempotency_store import InMemoryIdempotencyStore, RedisIdempotencyStore
from infrastructure.external.cache import get_redis_client
from infrastructure.external.payments import SUPPORTED_GATEWAYS, get_gateway_client
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# 未配置 Redis 时使用进程内幂等存储（单实例）
_memory_store: Optional[InMemoryIdempotencyStore] = None


async def get_idempotency_store() -> IdempotencyStore:
    global _memory_store
    if settings.redis.url:
        return RedisIdempotencyStore(await get_redis_client())
    if _memory_store is None:
        _memory_store = InMemoryIdempotencyStore()
    return _memory_store


async def get_webhook_service(
    gateway: str,
    store: IdempotencyStore = Depends(get_idempotency_store),
) -> AsyncGenerator[WebhookService, None]:
    """按网关构建 WebhookService；请求结束后关闭网关 HTTP 客户端"""
    name = gateway.lower()
    if name not in SUPPORTED_GATEWAYS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown gateway: {gateway}")

    config = get_gateway_config(name)
    client = get_gateway_client(name)
    reconciler = PaymentReconciler(config=config, client=client, currency=IsoCurrencyConverter())
    service = WebhookService(
        config=config,
        guard=IdempotencyGuard(store, name, ttl_seconds=gateway_settings.webhook.dedup_ttl_seconds),
        router=EventRouter.for_reconciler(reconciler),
        uow_factory=SQLAlchemyUnitOfWork,
        test_mode=settings.WEBHOOK_TEST_MODE,
        test_query_param=gateway_settings.webhook.test_query_param,
    )
    try:
        yield service
    finally:
        close = getattr(client, "aclose", None)
        if callable(close):
            await close()
