"""
订单仓储实现 - 订单由外部商城维护，这里只读取金额并写入状态与日志
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from domain.order.entity import Order, OrderItem, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderLogModel, OrderModel
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _amount_paid(self, order_id: str) -> Decimal:
        """已完成支付（含负数退款）之和"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
                PaymentModel.order_id == order_id,
                PaymentModel.is_complete.is_(True),
            )
        )
        return Decimal(str(result.scalar_one()))

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        db_order = await self.session.get(OrderModel, order_id)
        if db_order is None:
            return None
        return Order(
            order_id=db_order.order_id,
            currency=db_order.currency,
            status=OrderStatus(db_order.status),
            items=[
                OrderItem(sku=item.sku, quantity=item.quantity, price=Decimal(str(item.price)))
                for item in db_order.items
            ],
            misc_charges=Decimal(str(db_order.misc_charges)),
            amount_paid=await self._amount_paid(order_id),
        )

    async def save(self, order: Order) -> Order:
        db_order = await self.session.get(OrderModel, order.order_id)
        if db_order is None:
            db_order = OrderModel(
                order_id=order.order_id,
                currency=order.currency,
                status=order.status.value,
                misc_charges=order.misc_charges,
                items=[
                    OrderItemModel(sku=item.sku, quantity=item.quantity, price=item.price)
                    for item in order.items
                ],
            )
            self.session.add(db_order)
        else:
            db_order.status = order.status.value
            db_order.misc_charges = order.misc_charges
            db_order.currency = order.currency
        await self.session.flush()
        logger.info("order_saved", order_id=order.order_id, status=order.status.value)
        return order

    async def log(self, order_id: str, message: str) -> None:
        self.session.add(OrderLogModel(order_id=order_id, message=message))
        await self.session.flush()

    async def history(self, order_id: str) -> list[str]:
        result = await self.session.execute(
            select(OrderLogModel.message)
            .where(OrderLogModel.order_id == order_id)
            .order_by(OrderLogModel.id)
        )
        return list(result.scalars().all())
