"""
订单数据库模型 - 订单、订单明细与订单日志
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    order_id = Column(String(100), primary_key=True, comment="订单号")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    status = Column(String(20), nullable=False, default="new", index=True, comment="new/in-progress/paid/refunded")
    # 运费 + 手续费 + 税费
    misc_charges = Column(Numeric(precision=18, scale=4), nullable=False, default=0, comment="附加费用")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<OrderModel(order_id='{self.order_id}', status='{self.status}')>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(
        String(100),
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(precision=18, scale=4), nullable=False)

    order = relationship("OrderModel", back_populates="items")


class OrderLogModel(Base):
    """订单历史（追加写）"""
    __tablename__ = "order_log"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(100), index=True, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
