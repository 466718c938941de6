"""
利润预测快照模型

按 (date, ad_group_id) 唯一，model_version 单调递增：旧模型不会覆盖新模型计算的快照。
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Float, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class ProfitForecastSnapshot(Base):
    __tablename__ = "profit_forecast_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    ad_group_id = Column(String(100), nullable=False, index=True)
    model_version = Column(Integer, nullable=False)

    matured_revenue = Column(Float, default=0.0, nullable=False)
    matured_profit = Column(Float, default=0.0, nullable=False)
    matured_order_count = Column(Integer, default=0, nullable=False)
    projected_revenue = Column(Float, default=0.0, nullable=False)
    projected_profit = Column(Float, default=0.0, nullable=False)
    projected_order_count = Column(Integer, default=0, nullable=False)
    spend = Column(Float, default=0.0, nullable=False)
    blended_revenue = Column(Float, default=0.0, nullable=False)
    blended_profit = Column(Float, default=0.0, nullable=False)
    blended_roas = Column(Float, default=0.0, nullable=False)
    matured_roas = Column(Float, default=0.0, nullable=False)
    confidence = Column(Float, default=0.0, nullable=False)         # 0..1
    calibration_error = Column(Float, default=0.0, nullable=False)  # 0..1

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("date", "ad_group_id", name="uq_profit_forecast_snapshot_date_ad_group"),
    )
