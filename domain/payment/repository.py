"""
Payment repository interface - what the reconciler may do with stored payments
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment


class PaymentRepository(ABC):
    """Abstract payment store; implementations decide how, not what"""

    @abstractmethod
    async def get_by_reference(self, reference_id: str) -> Optional[Payment]:
        """Find the payment recorded for a provider reference id"""
        pass

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        """Insert a new payment or update an existing one.

        Inserting a reference id that another writer already stored raises
        DuplicatePaymentReference.
        """
        pass

    @abstractmethod
    async def mark_complete(self, payment: Payment) -> bool:
        """Persist completion only if the stored row is still incomplete.

        Returns True when this call performed the transition.
        """
        pass
