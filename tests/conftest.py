"""Pytest bootstrap configuration.

Environment variables are set before any module that reads settings is
imported. In-memory fakes for the order/payment stores and the gateway let
webhook flows run without a database or network.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SQUARE__WEBHOOK_SIGNATURE_KEY", "test-signature-key")
os.environ.setdefault("SQUARE__ACCESS_TOKEN", "test-access-token")
os.environ.setdefault("SITE_URL", "https://shop.example.com")
os.environ.pop("REDIS__URL", None)

import copy
import json
from decimal import Decimal
from typing import Optional

import pytest
import structlog

from application.dtos.payments import GatewayOrder
from application.services.fulfillment import OrderFulfillmentService
from application.services.idempotency import IdempotencyGuard
from application.services.reconciler import PaymentReconciler
from application.services.router import EventRouter
from application.services.signature import compute_signature
from application.services.webhook_service import WebhookService
from domain.common.exceptions import DuplicatePaymentReference
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderItem, OrderStatus
from domain.order.repository import OrderRepository
from domain.payment.entity import Payment
from domain.payment.repository import PaymentRepository
from infrastructure.adapters.currency import IsoCurrencyConverter
from infrastructure.adapters.idempotency_store import InMemoryIdempotencyStore


# structlog.testing.capture_logs only sees loggers that are not cached
structlog.configure(cache_logger_on_first_use=False)

SECRET = "test-signature-key"
NOTIFICATION_URL = "https://shop.example.com/api/v1/webhooks/square"


class FakeStore:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.payments: dict[str, Payment] = {}
        self.logs: dict[str, list[str]] = {}
        self.commits = 0
        self.rollbacks = 0
        self._next_id = 1

    def add_order(self, order_id: str, *prices: str, misc: str = "0", currency: str = "USD", status=OrderStatus.NEW) -> Order:
        order = Order(
            order_id=order_id,
            currency=currency,
            status=status,
            items=[OrderItem(sku=f"sku-{i}", quantity=1, price=Decimal(p)) for i, p in enumerate(prices)],
            misc_charges=Decimal(misc),
        )
        self.orders[order_id] = order
        return order

    def add_payment(self, reference_id: str, order_id: str, amount: str, *, is_complete: bool = False, currency: str = "USD") -> Payment:
        payment = Payment(
            id=self._next_id,
            reference_id=reference_id,
            order_id=order_id,
            gateway="square",
            amount=Decimal(amount),
            currency=currency,
            is_complete=is_complete,
        )
        self._next_id += 1
        self.payments[reference_id] = payment
        return payment

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    async def get_by_reference(self, reference_id: str) -> Optional[Payment]:
        payment = self.store.payments.get(reference_id)
        return copy.deepcopy(payment) if payment else None

    async def save(self, payment: Payment) -> Payment:
        stored = self.store.payments.get(payment.reference_id)
        if payment.is_new:
            if stored is not None:
                raise DuplicatePaymentReference(payment.reference_id)
            payment.id = self.store.next_id()
            self.store.payments[payment.reference_id] = copy.deepcopy(payment)
            return payment
        updated = copy.deepcopy(payment)
        if stored is not None and stored.is_complete:
            updated.is_complete = True
            updated.completed_at = stored.completed_at
        self.store.payments[payment.reference_id] = updated
        return payment

    async def mark_complete(self, payment: Payment) -> bool:
        stored = self.store.payments.get(payment.reference_id)
        if stored is None or stored.is_complete:
            return False
        stored.is_complete = True
        stored.status = payment.status
        stored.completed_at = payment.completed_at
        return True


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        if order is None:
            return None
        loaded = copy.deepcopy(order)
        loaded.amount_paid = sum(
            (p.amount for p in self.store.payments.values() if p.order_id == order_id and p.is_complete),
            Decimal("0"),
        )
        return loaded

    async def save(self, order: Order) -> Order:
        self.store.orders[order.order_id] = copy.deepcopy(order)
        return order

    async def log(self, order_id: str, message: str) -> None:
        self.store.logs.setdefault(order_id, []).append(message)


class FakeUnitOfWork(AbstractUnitOfWork):
    """Snapshots the store on enter and restores it on rollback."""

    def __init__(self, store: FakeStore) -> None:
        super().__init__()
        self.store = store
        self._snapshot = None

    async def __aenter__(self) -> "FakeUnitOfWork":
        await super().__aenter__()
        self._snapshot = copy.deepcopy((self.store.orders, self.store.payments, self.store.logs))
        self.orders = InMemoryOrderRepository(self.store)
        self.payments = InMemoryPaymentRepository(self.store)
        return self

    async def _commit(self) -> None:
        self.store.commits += 1

    async def _rollback(self) -> None:
        orders, payments, logs = self._snapshot
        for current, saved in ((self.store.orders, orders), (self.store.payments, payments), (self.store.logs, logs)):
            current.clear()
            current.update(saved)
        self.store.rollbacks += 1


class FakeGatewayClient:
    provider = "square"

    def __init__(self, references: Optional[dict[str, str]] = None) -> None:
        self.references = references or {}
        self.calls: list[str] = []

    async def lookup_order(self, provider_order_id: str) -> GatewayOrder:
        self.calls.append(provider_order_id)
        return GatewayOrder(id=provider_order_id, reference_id=self.references.get(provider_order_id))


class FakeGatewayConfig:
    name = "square"

    def secret_key(self) -> bytes:
        return SECRET.encode("utf-8")

    def complete_status(self) -> str:
        return "COMPLETED"

    def display_name(self) -> str:
        return "Square"

    def notification_url(self) -> str:
        return NOTIFICATION_URL

    def signature_header(self) -> str:
        return "X-Square-Signature"


class FulfillmentSpy:
    """Wraps the real fulfillment service and records every trigger."""

    def __init__(self) -> None:
        self.purchases: list[str] = []
        self.full_refunds: list[str] = []

    def factory(self, uow: AbstractUnitOfWork):
        spy = self
        inner = OrderFulfillmentService(uow.orders)

        class _Recorder:
            async def handle_purchase(self, order_id: str) -> bool:
                spy.purchases.append(order_id)
                return await inner.handle_purchase(order_id)

            async def handle_full_refund(self, order_id: str) -> bool:
                spy.full_refunds.append(order_id)
                return await inner.handle_full_refund(order_id)

        return _Recorder()


def make_body(event_type: str, key: Optional[str], obj: Optional[dict], event_id: str = "evt-1") -> bytes:
    data_object = {key: obj} if key is not None else {}
    return json.dumps(
        {
            "merchant_id": "M1",
            "type": event_type,
            "event_id": event_id,
            "created_at": "2024-03-01T10:00:00Z",
            "data": {"type": key or "unknown", "id": (obj or {}).get("id", "x"), "object": data_object},
        }
    ).encode("utf-8")


def signed_headers(body: bytes) -> dict[str, str]:
    return {
        "content-type": "application/json",
        "x-square-signature": compute_signature(body, NOTIFICATION_URL, SECRET),
    }


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow_factory(store):
    return lambda: FakeUnitOfWork(store)


@pytest.fixture
def gateway_client() -> FakeGatewayClient:
    return FakeGatewayClient({"sq-order-1": "ORD-1"})


@pytest.fixture
def gateway_config() -> FakeGatewayConfig:
    return FakeGatewayConfig()


@pytest.fixture
def fulfillment() -> FulfillmentSpy:
    return FulfillmentSpy()


@pytest.fixture
def reconciler(gateway_config, gateway_client, fulfillment) -> PaymentReconciler:
    return PaymentReconciler(
        config=gateway_config,
        client=gateway_client,
        currency=IsoCurrencyConverter(),
        fulfillment_factory=fulfillment.factory,
    )


@pytest.fixture
def idempotency_store() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore()


@pytest.fixture
def webhook_service(gateway_config, reconciler, uow_factory, idempotency_store) -> WebhookService:
    return WebhookService(
        config=gateway_config,
        guard=IdempotencyGuard(idempotency_store, "square"),
        router=EventRouter.for_reconciler(reconciler),
        uow_factory=uow_factory,
    )


@pytest.fixture
def square_event():
    """Builds a Square notification body: square_event(type, key, obj, event_id)."""
    return make_body


@pytest.fixture
def sign():
    """Headers carrying a valid X-Square-Signature for the given body."""
    return signed_headers
