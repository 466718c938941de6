"""
订单Schema
"""
from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator

from app.models.order import OrderStatus


class OrderBase(BaseModel):
    """订单基础Schema"""
    customer_name: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    ad_group_id: str = "0"
    production_status: str = "not_started"
    order_status: OrderStatus = OrderStatus.NO_TRACKING
    tracking_number: Optional[str] = None
    submit_link: Optional[str] = None
    deposit_amount: float = Field(0.0, ge=0)
    cod_amount: float = Field(0.0, ge=0)
    manual_payment: float = Field(0.0, ge=0)


class OrderCreate(OrderBase):
    """创建订单"""
    product_id: int
    agent_id: int
    created_at: Optional[datetime] = None  # 补录历史订单时可指定

    @field_validator("created_at")
    @classmethod
    def _to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """带时区的时间转换为 UTC（数据库按 naive UTC 存储）"""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class OrderUpdate(BaseModel):
    """更新订单"""
    customer_name: Optional[str] = Field(None, min_length=1)
    quantity: Optional[int] = Field(None, ge=1)
    ad_group_id: Optional[str] = None
    production_status: Optional[str] = None
    order_status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = None
    submit_link: Optional[str] = None
    deposit_amount: Optional[float] = Field(None, ge=0)
    cod_amount: Optional[float] = Field(None, ge=0)
    manual_payment: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None


class OrderResponse(OrderBase):
    """订单响应"""
    id: int
    product_id: int
    agent_id: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
