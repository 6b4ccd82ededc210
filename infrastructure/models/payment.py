"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, Text
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 渠道交易号（唯一键，并发插入时由数据库保证只有一条）
    reference_id = Column(String(200), unique=True, index=True, nullable=False, comment="渠道交易/退款ID")
    order_id = Column(String(100), index=True, nullable=False, comment="订单ID")
    gateway = Column(String(50), nullable=False, comment="支付网关: square")

    # 金额信息（Numeric 存储精确金额；退款为负数）
    amount = Column(Numeric(precision=18, scale=4), nullable=False, comment="金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    # 状态：is_complete 只会从 False 变为 True
    is_complete = Column(Boolean, nullable=False, default=False, comment="是否已完成")
    status = Column(String(50), nullable=False, default="", comment="渠道返回的状态字符串")
    method = Column(String(100), nullable=False, default="", comment="支付方式描述")
    comment = Column(Text, nullable=False, default="", comment="备注")

    # 时间戳
    txn_date = Column(DateTime(timezone=True), nullable=True, comment="交易时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")

    __table_args__ = (
        Index("ix_payments_order_complete", "order_id", "is_complete"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, reference_id='{self.reference_id}', "
            f"order_id='{self.order_id}', amount={self.amount}, is_complete={self.is_complete})>"
        )
