"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary for one reconciled notification.

    Leaving the block normally commits unless the caller already committed or
    rolled back; leaving it with an exception rolls back.
    """

    orders: OrderRepository
    payments: PaymentRepository

    def __init__(self) -> None:
        self._committed = False
        self._rolled_back = False
        self.orders = None  # type: ignore[assignment]
        self.payments = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        self._committed = False
        self._rolled_back = False
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._committed and not self._rolled_back:
            await self.commit()

    @abstractmethod
    async def _commit(self) -> None:
        ...

    @abstractmethod
    async def _rollback(self) -> None:
        ...

    async def commit(self) -> None:
        await self._commit()
        self._committed = True

    async def rollback(self) -> None:
        await self._rollback()
        self._rolled_back = True
