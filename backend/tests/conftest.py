"""
Pytest configuration and shared fixtures.
"""
import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  注册所有模型
from app.database import Base
from app.models.ad_group import AdGroup
from app.models.advertising_cost import AdvertisingCost
from app.models.agent import Agent
from app.models.order import Order, OrderStatus
from app.models.product import Product


@pytest.fixture
def engine():
    """内存 SQLite，StaticPool 保证多线程（TestClient）共用同一连接"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def product(db):
    p = Product(name="Custom Mug", sku="MUG-01", total_cost=300000)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def agent(db):
    a = Agent(
        full_name="Agent One",
        email="agent1@example.com",
        google_drive_link="https://docs.google.com/spreadsheets/d/1AbCdEfGhIjKlMnOpQrStUvWxYz012345/edit#gid=0",
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


@pytest.fixture
def make_order(db, product, agent):
    """订单工厂：make_order(created_at, status, cod=..., ad_group_id=...)"""

    def _make(
        created_at: datetime,
        status: OrderStatus = OrderStatus.NO_TRACKING,
        cod: float = 0.0,
        manual_payment: float = 0.0,
        ad_group_id: str = "AG1",
        quantity: int = 1,
        product_id: int = None,
        customer_name: str = "Customer",
    ) -> Order:
        order = Order(
            product_id=product_id or product.id,
            agent_id=agent.id,
            ad_group_id=ad_group_id,
            customer_name=customer_name,
            quantity=quantity,
            order_status=status.value,
            cod_amount=cod,
            manual_payment=manual_payment,
            created_at=created_at,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def make_cost(db):
    def _make(day, ad_group_id: str, spent_amount: float) -> AdvertisingCost:
        cost = AdvertisingCost(date=day, ad_group_id=ad_group_id, spent_amount=spent_amount)
        db.add(cost)
        db.commit()
        return cost

    return _make


@pytest.fixture
def make_ad_group(db):
    def _make(ad_group_id: str, name: str = "Ad group") -> AdGroup:
        group = AdGroup(ad_group_id=ad_group_id, name=name)
        db.add(group)
        db.commit()
        return group

    return _make
