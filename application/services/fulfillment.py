"""
Order fulfillment triggered by reconciled payments.
"""
from __future__ import annotations

from core.logging_config import get_logger
from domain.order.entity import OrderStatus
from domain.order.repository import OrderRepository


logger = get_logger(__name__)


class OrderFulfillmentService:
    """FulfillmentTrigger backed by the order store of the current unit of work."""

    def __init__(self, orders: OrderRepository) -> None:
        self.orders = orders

    async def handle_purchase(self, order_id: str) -> bool:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            logger.warning("fulfillment_order_not_found", order_id=order_id)
            return False
        if order.status in (OrderStatus.PAID, OrderStatus.REFUNDED):
            logger.info("fulfillment_skipped", order_id=order_id, status=order.status.value)
            return True

        if order.balance_due <= 0:
            changed = order.mark_paid()
            message = "Order paid in full"
        else:
            # Net-terms invoices and partial payments are accepted provisionally.
            changed = order.mark_in_progress()
            message = f"Order accepted, balance due {order.balance_due} {order.currency}"

        if changed:
            await self.orders.save(order)
            await self.orders.log(order_id, message)
            logger.info("fulfillment_order_updated", order_id=order_id, status=order.status.value)
        return True

    async def handle_full_refund(self, order_id: str) -> bool:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            logger.warning("fulfillment_order_not_found", order_id=order_id)
            return False
        if order.mark_refunded():
            await self.orders.save(order)
            await self.orders.log(order_id, "Order fully refunded")
            logger.info("fulfillment_order_refunded", order_id=order_id)
        return True
