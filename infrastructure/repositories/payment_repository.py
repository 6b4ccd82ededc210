"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DuplicatePaymentReference
from domain.payment.entity import Payment
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            reference_id=model.reference_id,
            order_id=model.order_id,
            gateway=model.gateway,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            is_complete=bool(model.is_complete),
            status=model.status or "",
            method=model.method or "",
            comment=model.comment or "",
            txn_date=model.txn_date,
            created_at=model.created_at,
            completed_at=model.completed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            reference_id=entity.reference_id,
            order_id=entity.order_id,
            gateway=entity.gateway,
            amount=entity.amount,
            currency=entity.currency,
            is_complete=entity.is_complete,
            status=entity.status,
            method=entity.method,
            comment=entity.comment,
            txn_date=entity.txn_date,
            completed_at=entity.completed_at,
        )

    async def get_by_reference(self, reference_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.reference_id == reference_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def save(self, payment: Payment) -> Payment:
        if payment.is_new:
            return await self._insert(payment)

        db_payment = await self.session.get(PaymentModel, payment.id)
        if db_payment is None:
            return await self._insert(payment)
        db_payment.amount = payment.amount
        db_payment.status = payment.status
        db_payment.method = payment.method
        db_payment.comment = payment.comment
        db_payment.txn_date = payment.txn_date
        # 完成标记只会单向变化，这里不允许回退
        if payment.is_complete and not db_payment.is_complete:
            db_payment.is_complete = True
            db_payment.completed_at = payment.completed_at
        await self.session.flush()
        return self._to_entity(db_payment)

    async def _insert(self, payment: Payment) -> Payment:
        db_payment = self._to_model(payment)
        try:
            # SAVEPOINT：唯一键冲突只回滚本次插入，不影响外层事务
            async with self.session.begin_nested():
                self.session.add(db_payment)
        except IntegrityError as e:
            if "reference_id" in str(e).lower():
                logger.warning("payment_reference_conflict", reference_id=payment.reference_id)
                raise DuplicatePaymentReference(payment.reference_id) from e
            raise
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            reference_id=db_payment.reference_id,
            order_id=db_payment.order_id,
            amount=str(db_payment.amount),
            is_complete=db_payment.is_complete,
        )
        return self._to_entity(db_payment)

    async def mark_complete(self, payment: Payment) -> bool:
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.reference_id == payment.reference_id,
                PaymentModel.is_complete.is_(False),
            )
            .values(
                is_complete=True,
                status=payment.status,
                completed_at=payment.completed_at,
            )
            .execution_options(synchronize_session="evaluate")
        )
        flipped = result.rowcount == 1
        logger.info("payment_mark_complete", reference_id=payment.reference_id, flipped=flipped)
        return flipped
