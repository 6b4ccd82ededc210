from decimal import Decimal

import pytest

from application.dtos.webhooks import parse_event
from domain.common.exceptions import MalformedPayload, ReconciliationMismatch
from domain.order.entity import OrderStatus
from domain.webhook.envelope import NotificationEnvelope


def _event(event_type: str, key: str, obj: dict, event_id: str = "evt-1"):
    envelope = NotificationEnvelope(
        id=event_id, type=event_type, gateway="square", raw_object={key: obj}, raw_body=b"{}"
    )
    return parse_event(envelope)


def _invoice_payment(status: str, completed_minor: int, uid: str = "req-1"):
    return _event(
        "invoice.payment_made",
        "invoice",
        {
            "id": "inv-1",
            "invoice_number": "ORD-1",
            "status": status,
            "payment_requests": [
                {"uid": uid, "total_completed_amount_money": {"amount": completed_minor, "currency": "USD"}}
            ],
        },
    )


def _payment(event_type: str, status: str, amount: int, payment_id: str = "pay-1", **extra):
    obj = {
        "id": payment_id,
        "status": status,
        "order_id": "sq-order-1",
        "amount_money": {"amount": amount, "currency": "USD"},
        "created_at": "2024-03-01T10:00:00Z",
    }
    obj.update(extra)
    return _event(event_type, "payment", obj)


def _refund(amount: int, status: str = "COMPLETED", refund_id: str = "ref-1"):
    return _event(
        "refund.updated",
        "refund",
        {"id": refund_id, "payment_id": "pay-1", "status": status, "amount_money": {"amount": amount, "currency": "USD"}},
    )


def _lose_race(uow, reference_id: str, concurrent_writer) -> None:
    """The first lookup of `reference_id` misses while another delivery commits it."""
    lookup = uow.payments.get_by_reference
    raced = []

    async def racing_lookup(ref):
        if ref == reference_id and not raced:
            raced.append(ref)
            concurrent_writer()
            return None
        return await lookup(ref)

    uow.payments.get_by_reference = racing_lookup


# invoice.payment_made

@pytest.mark.asyncio
async def test_invoice_paid_records_balance_due(store, uow_factory, reconciler):
    store.add_order("ORD-1", "80.00", misc="20.00")
    async with uow_factory() as uow:
        result = await reconciler.invoice_payment_made(_invoice_payment("PAID", 10000), uow)

    assert result.acknowledged is True
    payment = store.payments["req-1"]
    assert payment.amount == Decimal("100.00")
    assert payment.is_complete is False
    assert payment.method == "Square"
    assert payment.comment == "Webhook evt-1"


@pytest.mark.asyncio
async def test_invoice_partially_paid_is_capped_at_balance(store, uow_factory, reconciler):
    store.add_order("ORD-1", "100.00")
    store.add_payment("earlier", "ORD-1", "70.00", is_complete=True)
    async with uow_factory() as uow:
        await reconciler.invoice_payment_made(_invoice_payment("PARTIALLY_PAID", 5000), uow)

    assert store.payments["req-1"].amount == Decimal("30.00")


@pytest.mark.asyncio
async def test_invoice_paid_below_balance_records_nothing(store, uow_factory, reconciler):
    store.add_order("ORD-1", "100.00")
    async with uow_factory() as uow:
        result = await reconciler.invoice_payment_made(_invoice_payment("PAID", 4000), uow)

    assert result.acknowledged is True
    assert result.note == "nothing paid"
    assert "req-1" not in store.payments


@pytest.mark.asyncio
async def test_invoice_payment_for_unknown_order_is_acknowledged(store, uow_factory, reconciler):
    async with uow_factory() as uow:
        result = await reconciler.invoice_payment_made(_invoice_payment("PAID", 10000), uow)

    assert result.acknowledged is True
    assert result.note == "order not found"
    assert store.payments == {}


@pytest.mark.asyncio
async def test_invoice_payment_recorded_concurrently_keeps_first_row(store, uow_factory, reconciler):
    store.add_order("ORD-1", "100.00")

    def other_delivery():
        winner = store.add_payment("req-1", "ORD-1", "100.00")
        winner.comment = "Webhook evt-0"

    async with uow_factory() as uow:
        _lose_race(uow, "req-1", other_delivery)
        result = await reconciler.invoice_payment_made(_invoice_payment("PAID", 10000), uow)

    assert result.acknowledged is True
    assert result.note == "payment already recorded"
    assert len(store.payments) == 1
    assert store.payments["req-1"].comment == "Webhook evt-0"


# payment.created

@pytest.mark.asyncio
async def test_completed_payment_is_recorded_and_fulfilled_once(store, uow_factory, reconciler, fulfillment, gateway_client):
    store.add_order("ORD-1", "25.00")
    async with uow_factory() as uow:
        result = await reconciler.payment_created(_payment("payment.created", "COMPLETED", 2500), uow)

    assert result.acknowledged is True
    assert result.verified is True
    assert result.order_id == "ORD-1"
    payment = store.payments["pay-1"]
    assert payment.amount == Decimal("25.00")
    assert payment.is_complete is True
    assert payment.completed_at is not None
    assert gateway_client.calls == ["sq-order-1"]
    assert fulfillment.purchases == ["ORD-1"]
    assert store.orders["ORD-1"].status is OrderStatus.PAID

    # Same payment reported again: no second row, no second fulfillment
    async with uow_factory() as uow:
        await reconciler.payment_created(_payment("payment.created", "COMPLETED", 2500), uow)
    assert fulfillment.purchases == ["ORD-1"]
    assert len(store.payments) == 1


@pytest.mark.asyncio
async def test_approved_payment_waits_for_completion(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "25.00")
    async with uow_factory() as uow:
        result = await reconciler.payment_created(_payment("payment.created", "APPROVED", 2500), uow)

    assert result.acknowledged is True
    assert result.verified is False
    payment = store.payments["pay-1"]
    assert payment.is_complete is False
    assert payment.completed_at is None
    assert fulfillment.purchases == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status,amount", [("FAILED", 2500), ("COMPLETED", 0), ("CANCELED", 2500)])
async def test_non_actionable_payment_is_acknowledged(store, uow_factory, reconciler, gateway_client, status, amount):
    store.add_order("ORD-1", "25.00")
    async with uow_factory() as uow:
        result = await reconciler.payment_created(_payment("payment.created", status, amount), uow)

    assert result.acknowledged is True
    assert store.payments == {}
    assert gateway_client.calls == []


@pytest.mark.asyncio
async def test_payment_without_provider_order_is_malformed(store, uow_factory, reconciler):
    event = _payment("payment.created", "COMPLETED", 2500, order_id=None)
    async with uow_factory() as uow:
        with pytest.raises(MalformedPayload):
            await reconciler.payment_created(event, uow)


@pytest.mark.asyncio
async def test_unreferenced_gateway_order_is_acknowledged(store, uow_factory, reconciler):
    event = _payment("payment.created", "COMPLETED", 2500, order_id="sq-order-unknown")
    async with uow_factory() as uow:
        result = await reconciler.payment_created(event, uow)

    assert result.acknowledged is True
    assert result.note == "gateway order has no reference"
    assert store.payments == {}


@pytest.mark.asyncio
async def test_payment_created_concurrently_is_fulfilled_once(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "25.00")

    def other_delivery():
        winner = store.add_payment("pay-1", "ORD-1", "25.00", is_complete=True)
        winner.comment = "Webhook evt-0"

    async with uow_factory() as uow:
        _lose_race(uow, "pay-1", other_delivery)
        result = await reconciler.payment_created(_payment("payment.created", "COMPLETED", 2500), uow)

    assert result.acknowledged is True
    assert result.verified is False
    assert fulfillment.purchases == []
    assert len(store.payments) == 1
    assert store.payments["pay-1"].comment == "Webhook evt-0"


# payment.updated

@pytest.mark.asyncio
async def test_payment_updated_completes_matching_payment(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "25.00")
    store.add_payment("pay-1", "ORD-1", "25.00")
    event = _payment("payment.updated", "COMPLETED", 2500, total_money={"amount": 2500, "currency": "USD"})
    async with uow_factory() as uow:
        result = await reconciler.payment_updated(event, uow)

    assert result.acknowledged is True
    assert result.verified is True
    assert store.payments["pay-1"].is_complete is True
    assert store.payments["pay-1"].status == "COMPLETED"
    assert fulfillment.purchases == ["ORD-1"]
    assert store.orders["ORD-1"].status is OrderStatus.PAID


@pytest.mark.asyncio
async def test_payment_updated_never_reverts_or_refulfills(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "25.00")
    store.add_payment("pay-1", "ORD-1", "25.00", is_complete=True)
    async with uow_factory() as uow:
        result = await reconciler.payment_updated(_payment("payment.updated", "COMPLETED", 2500), uow)

    assert result.note == "already complete"
    assert fulfillment.purchases == []

    async with uow_factory() as uow:
        await reconciler.payment_updated(_payment("payment.updated", "PENDING", 2500), uow)
    assert store.payments["pay-1"].is_complete is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "money",
    [
        {"amount": 2400, "currency": "USD"},
        {"amount": 2500, "currency": "EUR"},
    ],
)
async def test_payment_updated_mismatch_raises(store, uow_factory, reconciler, fulfillment, money):
    store.add_order("ORD-1", "25.00")
    store.add_payment("pay-1", "ORD-1", "25.00")
    event = _payment("payment.updated", "COMPLETED", 2500, total_money=money)
    async with uow_factory() as uow:
        with pytest.raises(ReconciliationMismatch) as exc_info:
            await reconciler.payment_updated(event, uow)

    assert exc_info.value.reference_id == "pay-1"
    assert store.payments["pay-1"].is_complete is False
    assert fulfillment.purchases == []


@pytest.mark.asyncio
async def test_payment_updated_for_unknown_payment_raises(store, uow_factory, reconciler):
    async with uow_factory() as uow:
        with pytest.raises(ReconciliationMismatch):
            await reconciler.payment_updated(_payment("payment.updated", "COMPLETED", 2500), uow)


# invoice.created / updated / published

@pytest.mark.asyncio
async def test_invoice_for_unknown_order_records_nothing(store, uow_factory, reconciler, fulfillment):
    event = _event("invoice.created", "invoice", {"id": "inv-9", "invoice_number": "ORD-100", "status": "UNPAID"})
    async with uow_factory() as uow:
        result = await reconciler.invoice_changed(event, uow)

    assert result.acknowledged is True
    assert result.note == "order not found"
    assert store.payments == {}
    assert fulfillment.purchases == []


@pytest.mark.asyncio
async def test_invoice_lifecycle_upserts_placeholder_payment(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "40.00")
    created = _event("invoice.created", "invoice", {"id": "inv-1", "invoice_number": "ORD-1", "status": "UNPAID"})
    async with uow_factory() as uow:
        result = await reconciler.invoice_changed(created, uow)

    assert result.acknowledged is True
    payment = store.payments["inv-1"]
    assert payment.amount == Decimal("0")
    assert payment.method == "Square Invoice"
    assert payment.comment == "inv-1"
    assert payment.status == "UNPAID"
    assert store.orders["ORD-1"].status is OrderStatus.IN_PROGRESS
    assert store.logs["ORD-1"] == ["Order accepted, balance due 40.00 USD"]

    published = _event(
        "invoice.published", "invoice", {"id": "inv-1", "invoice_number": "ORD-1", "status": "SCHEDULED"}, "evt-2"
    )
    async with uow_factory() as uow:
        await reconciler.invoice_changed(published, uow)

    assert len(store.payments) == 1
    assert store.payments["inv-1"].status == "SCHEDULED"
    assert fulfillment.purchases == ["ORD-1", "ORD-1"]
    assert len(store.logs["ORD-1"]) == 1


# refunds

@pytest.mark.asyncio
async def test_full_refund_marks_order_refunded(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "100.00", status=OrderStatus.PAID)
    store.add_payment("pay-1", "ORD-1", "100.00", is_complete=True)
    async with uow_factory() as uow:
        result = await reconciler.refund_updated(_refund(10000), uow)

    assert result.acknowledged is True
    assert fulfillment.full_refunds == ["ORD-1"]
    assert store.orders["ORD-1"].status is OrderStatus.REFUNDED
    refund = store.payments["ref-1"]
    assert refund.amount == Decimal("-100.00")
    assert refund.is_complete is True
    assert refund.method == "refund"


@pytest.mark.asyncio
async def test_partial_refund_records_negative_entry(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "100.00", status=OrderStatus.PAID)
    store.add_payment("pay-1", "ORD-1", "100.00", is_complete=True)
    async with uow_factory() as uow:
        await reconciler.refund_updated(_refund(5000), uow)

    assert fulfillment.full_refunds == []
    assert store.orders["ORD-1"].status is OrderStatus.PAID
    assert store.payments["ref-1"].amount == Decimal("-50.00")
    assert store.logs["ORD-1"] == ["Refunded 50.00 USD"]

    # Redelivered refund is not recorded twice
    async with uow_factory() as uow:
        result = await reconciler.refund_updated(_refund(5000), uow)
    assert result.note == "refund already recorded"
    assert store.logs["ORD-1"] == ["Refunded 50.00 USD"]


@pytest.mark.asyncio
async def test_refund_recorded_concurrently_is_not_applied_twice(store, uow_factory, reconciler, fulfillment):
    store.add_order("ORD-1", "100.00", status=OrderStatus.PAID)
    store.add_payment("pay-1", "ORD-1", "100.00", is_complete=True)

    def other_delivery():
        store.add_payment("ref-1", "ORD-1", "-100.00", is_complete=True)
        store.logs["ORD-1"] = ["Refunded 100.00 USD"]

    async with uow_factory() as uow:
        _lose_race(uow, "ref-1", other_delivery)
        result = await reconciler.refund_updated(_refund(10000), uow)

    assert result.acknowledged is True
    assert result.note == "refund already recorded"
    assert fulfillment.full_refunds == []
    assert store.logs["ORD-1"] == ["Refunded 100.00 USD"]
    assert store.orders["ORD-1"].status is OrderStatus.PAID
    assert [p.reference_id for p in store.payments.values()].count("ref-1") == 1


@pytest.mark.asyncio
async def test_pending_refund_or_incomplete_payment_is_ignored(store, uow_factory, reconciler):
    store.add_order("ORD-1", "100.00")
    store.add_payment("pay-1", "ORD-1", "100.00")
    async with uow_factory() as uow:
        pending = await reconciler.refund_updated(_refund(5000, status="PENDING"), uow)
        incomplete = await reconciler.refund_updated(_refund(5000), uow)

    assert pending.note == "refund not completed"
    assert incomplete.note == "no completed payment to refund"
    assert "ref-1" not in store.payments
