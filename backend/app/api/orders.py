"""
订单API
创建/修改订单后自动计划该代理的 Google Sheet 同步（防抖）
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.agent import Agent
from app.models.order import Order
from app.models.product import Product
from app.schemas.orders import OrderCreate, OrderResponse, OrderUpdate
from app.services.google_sheet_sync import sheet_sync_debouncer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _get_order_or_404(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    return order


@router.get("", response_model=List[OrderResponse])
def list_orders(
    agent_id: Optional[int] = None,
    ad_group_id: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    """订单列表（按创建时间倒序）"""
    query = db.query(Order)
    if agent_id:
        query = query.filter(Order.agent_id == agent_id)
    if ad_group_id:
        query = query.filter(Order.ad_group_id == ad_group_id)
    if not include_inactive:
        query = query.filter(Order.is_active == True)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return _get_order_or_404(db, order_id)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    """创建订单"""
    if not db.query(Product.id).filter(Product.id == payload.product_id).first():
        raise HTTPException(status_code=404, detail="商品不存在")
    if not db.query(Agent.id).filter(Agent.id == payload.agent_id).first():
        raise HTTPException(status_code=404, detail="代理不存在")

    data = payload.model_dump(exclude_none=True)
    data["order_status"] = payload.order_status.value
    order = Order(**data)
    db.add(order)
    db.commit()
    db.refresh(order)

    sheet_sync_debouncer.schedule(order.agent_id)
    return order


@router.put("/{order_id}", response_model=OrderResponse)
def update_order(order_id: int, payload: OrderUpdate, db: Session = Depends(get_db)):
    """更新订单（只更新传入的字段）"""
    order = _get_order_or_404(db, order_id)
    changes = payload.model_dump(exclude_none=True)
    if "order_status" in changes:
        changes["order_status"] = payload.order_status.value
    for field, value in changes.items():
        setattr(order, field, value)
    db.commit()
    db.refresh(order)

    sheet_sync_debouncer.schedule(order.agent_id)
    return order
