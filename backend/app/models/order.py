"""
订单模型

orders 表由订单模块维护，利润预测只读聚合。
order_status 使用 OrderStatus 中的状态码。
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class OrderStatus(str, enum.Enum):
    """运单状态"""
    NO_TRACKING = "no_tracking"          # 未有运单号
    HAS_TRACKING = "has_tracking"        # 已有运单号
    IN_TRANSIT = "in_transit"            # 运输中
    DELIVERED = "delivered"              # 已签收
    DELIVERY_FAILED = "delivery_failed"  # 派送失败 / 退回
    CANCELLED = "cancelled"              # 已取消


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    ad_group_id = Column(String(100), nullable=False, default="0", index=True)

    customer_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    production_status = Column(String(50), nullable=False, default="not_started")
    order_status = Column(String(30), nullable=False, default=OrderStatus.NO_TRACKING.value, index=True)
    tracking_number = Column(String(100), nullable=True)
    submit_link = Column(String(500), nullable=True)

    deposit_amount = Column(Float, default=0.0, nullable=False)
    cod_amount = Column(Float, default=0.0, nullable=False)      # 代收货款
    manual_payment = Column(Float, default=0.0, nullable=False)  # 手动收款
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index("idx_order_ad_group_created", "ad_group_id", "created_at"),
    )

    product = relationship("Product")
    agent = relationship("Agent", back_populates="orders")

    @property
    def observed_revenue(self) -> float:
        """已记录收入 = COD + 手动收款"""
        return float(self.cod_amount or 0.0) + float(self.manual_payment or 0.0)
