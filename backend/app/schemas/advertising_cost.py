"""
广告费用Schema
"""
from typing import Optional
from datetime import date as date_type, datetime
from pydantic import BaseModel, Field


class AdvertisingCostCreate(BaseModel):
    date: Optional[date_type] = None  # 默认今天
    ad_group_id: str = Field(..., min_length=1)
    spent_amount: float = Field(0.0, ge=0)
    cpm: float = Field(0.0, ge=0)
    cpc: float = Field(0.0, ge=0)
    frequency: Optional[float] = Field(None, ge=0)


class AdvertisingCostResponse(BaseModel):
    id: int
    date: date_type
    ad_group_id: str
    spent_amount: float
    cpm: float
    cpc: float
    frequency: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
