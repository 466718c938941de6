"""
商品 / 代理 / 广告组 Schema
"""
from typing import Optional
from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    total_cost: float = Field(0.0, ge=0)


class ProductResponse(ProductCreate):
    id: int

    class Config:
        from_attributes = True


class AgentCreate(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    google_drive_link: Optional[str] = None


class AgentResponse(AgentCreate):
    id: int
    is_active: bool

    class Config:
        from_attributes = True


class AdGroupCreate(BaseModel):
    ad_group_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class AdGroupResponse(AdGroupCreate):
    id: int
    is_active: bool

    class Config:
        from_attributes = True
