"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderItemModel, OrderLogModel, OrderModel
from .payment import PaymentModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderItemModel",
    "OrderLogModel",
    "PaymentModel",
]
