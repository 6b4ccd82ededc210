"""
Order aggregate as seen by payment reconciliation
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List


class OrderStatus(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in-progress"
    PAID = "paid"
    REFUNDED = "refunded"


@dataclass
class OrderItem:
    sku: str
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class Order:
    """
    Order owned by the order store.

    Reconciliation only reads totals and requests lifecycle transitions;
    `amount_paid` is whatever the store has already credited to the order.
    """

    order_id: str
    currency: str = "USD"
    status: OrderStatus = OrderStatus.NEW
    items: List[OrderItem] = field(default_factory=list)
    misc_charges: Decimal = field(default_factory=lambda: Decimal("0"))
    amount_paid: Decimal = field(default_factory=lambda: Decimal("0"))

    @property
    def item_subtotal(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @property
    def total_chargeable(self) -> Decimal:
        """Items plus shipping/handling/tax"""
        return self.item_subtotal + self.misc_charges

    @property
    def balance_due(self) -> Decimal:
        due = self.total_chargeable - self.amount_paid
        return due if due > 0 else Decimal("0")

    def mark_paid(self) -> bool:
        """Returns False when no transition happened"""
        if self.status in (OrderStatus.PAID, OrderStatus.REFUNDED):
            return False
        self.status = OrderStatus.PAID
        return True

    def mark_in_progress(self) -> bool:
        if self.status != OrderStatus.NEW:
            return False
        self.status = OrderStatus.IN_PROGRESS
        return True

    def mark_refunded(self) -> bool:
        if self.status == OrderStatus.REFUNDED:
            return False
        self.status = OrderStatus.REFUNDED
        return True
