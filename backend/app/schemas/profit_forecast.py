"""
利润预测 - Schemas

JSON 字段沿用前端使用的 camelCase 命名（adGroupId / blendedROAS ...）
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ForecastBaseRow(CamelModel):
    """按 日期 + 广告组 聚合的已成熟/预测订单数据（不含费用）"""
    date: date
    ad_group_id: str
    matured_revenue: float = 0.0
    matured_profit: float = 0.0
    matured_order_count: int = 0
    projected_revenue: float = 0.0
    projected_profit: float = 0.0
    projected_order_count: int = 0
    model_version: int


class ForecastRow(ForecastBaseRow):
    """DailyAdGroupForecastRow：加入广告费用后的混合指标"""
    spend: float = 0.0
    matured_roas: float = Field(0.0, alias="maturedROAS")
    blended_revenue: float = 0.0
    blended_profit: float = 0.0
    blended_roas: float = Field(0.0, alias="blendedROAS")
    confidence: float = Field(0.0, ge=0, le=1)
    calibration_error: float = Field(0.0, ge=0, le=1)


class SummaryDateRow(CamelModel):
    """按日期汇总（跨广告组）"""
    date: date
    matured_revenue: float = 0.0
    matured_profit: float = 0.0
    projected_revenue: float = 0.0
    projected_profit: float = 0.0
    spend: float = 0.0
    blended_revenue: float = 0.0
    blended_profit: float = 0.0
    matured_roas: float = Field(0.0, alias="maturedROAS")
    blended_roas: float = Field(0.0, alias="blendedROAS")
    blended_margin: float = 0.0


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_date: date = Field(alias="from")
    to_date: date = Field(alias="to")


class SummaryTotals(CamelModel):
    range: DateRange
    matured_revenue: float = 0.0
    matured_profit: float = 0.0
    projected_revenue: float = 0.0
    projected_profit: float = 0.0
    spend: float = 0.0
    blended_revenue: float = 0.0
    blended_profit: float = 0.0
    matured_roas: float = Field(0.0, alias="maturedROAS")
    blended_roas: float = Field(0.0, alias="blendedROAS")
    blended_margin: float = 0.0


class SummaryResponse(CamelModel):
    rows: List[SummaryDateRow]
    summary: Optional[SummaryTotals] = None


class RecommendedBudgetRow(CamelModel):
    ad_group_id: str
    period: DateRange
    avg_daily_spend: float
    blended_margin: float
    avg_confidence: float
    recommended_daily_spend: float
    adjustment_factor: float


class SnapshotRunResult(CamelModel):
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0  # 已存在更高 model_version 的快照，未覆盖
    model_version: int


class SnapshotOut(ForecastRow):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
