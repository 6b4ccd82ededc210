"""
Order repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


class OrderRepository(ABC):

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """Load an order; None when no such order exists"""
        pass

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """Persist lifecycle changes"""
        pass

    @abstractmethod
    async def log(self, order_id: str, message: str) -> None:
        """Append a line to the order's history"""
        pass
