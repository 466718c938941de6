"""
广告费用模型

每条记录为某广告组某天的花费（手动录入或平台同步），同一天可有多条，查询时求和。
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Float, Index
from sqlalchemy.sql import func

from app.database import Base


class AdvertisingCost(Base):
    __tablename__ = "advertising_costs"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    ad_group_id = Column(String(100), nullable=False, index=True)

    spent_amount = Column(Float, default=0.0, nullable=False)
    cpm = Column(Float, default=0.0, nullable=False)
    cpc = Column(Float, default=0.0, nullable=False)
    frequency = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_advertising_cost_date_ad_group", "date", "ad_group_id"),
    )
