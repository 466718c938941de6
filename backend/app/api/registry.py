"""
商品 / 代理 / 广告组 API
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.ad_group import AdGroup
from app.models.agent import Agent
from app.models.product import Product
from app.schemas.registry import (
    AdGroupCreate,
    AdGroupResponse,
    AgentCreate,
    AgentResponse,
    ProductCreate,
    ProductResponse,
)

router = APIRouter(tags=["registry"])


@router.get("/products", response_model=List[ProductResponse])
def list_products(db: Session = Depends(get_db)):
    return db.query(Product).order_by(Product.id).all()


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.get("/agents", response_model=List[AgentResponse])
def list_agents(db: Session = Depends(get_db)):
    return db.query(Agent).order_by(Agent.id).all()


@router.post("/agents", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
def create_agent(payload: AgentCreate, db: Session = Depends(get_db)):
    agent = Agent(**payload.model_dump())
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


@router.get("/ad-groups", response_model=List[AdGroupResponse])
def list_ad_groups(db: Session = Depends(get_db)):
    return db.query(AdGroup).order_by(AdGroup.ad_group_id).all()


@router.post("/ad-groups", response_model=AdGroupResponse, status_code=status.HTTP_201_CREATED)
def create_ad_group(payload: AdGroupCreate, db: Session = Depends(get_db)):
    ad_group_id = payload.ad_group_id.strip()
    if db.query(AdGroup.id).filter(AdGroup.ad_group_id == ad_group_id).first():
        raise HTTPException(status_code=409, detail=f"广告组已存在: {ad_group_id}")
    ad_group = AdGroup(ad_group_id=ad_group_id, name=payload.name)
    db.add(ad_group)
    db.commit()
    db.refresh(ad_group)
    return ad_group
