"""
广告费用API
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.advertising_cost import AdvertisingCost
from app.schemas.advertising_cost import AdvertisingCostCreate, AdvertisingCostResponse

router = APIRouter(prefix="/advertising-costs", tags=["advertising-costs"])


@router.get("", response_model=List[AdvertisingCostResponse])
def list_advertising_costs(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    ad_group_id: Optional[str] = Query(None, alias="adGroupId"),
    db: Session = Depends(get_db),
):
    if from_date and to_date and from_date > to_date:
        raise HTTPException(status_code=400, detail="开始日期不能晚于结束日期")
    query = db.query(AdvertisingCost)
    if from_date:
        query = query.filter(AdvertisingCost.date >= from_date)
    if to_date:
        query = query.filter(AdvertisingCost.date <= to_date)
    if ad_group_id:
        query = query.filter(AdvertisingCost.ad_group_id == ad_group_id)
    return query.order_by(AdvertisingCost.date.desc(), AdvertisingCost.id.desc()).all()


@router.post("", response_model=AdvertisingCostResponse, status_code=status.HTTP_201_CREATED)
def create_advertising_cost(payload: AdvertisingCostCreate, db: Session = Depends(get_db)):
    """录入广告费用（日期默认今天）"""
    data = payload.model_dump()
    data["date"] = payload.date or date.today()
    data["ad_group_id"] = payload.ad_group_id.strip()
    cost = AdvertisingCost(**data)
    db.add(cost)
    db.commit()
    db.refresh(cost)
    return cost


@router.delete("/{cost_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_advertising_cost(cost_id: int, db: Session = Depends(get_db)):
    cost = db.query(AdvertisingCost).filter(AdvertisingCost.id == cost_id).first()
    if not cost:
        raise HTTPException(status_code=404, detail="广告费用记录不存在")
    db.delete(cost)
    db.commit()
