"""
利润预测计算工具函数
包含 ROAS / 利润率计算、单行混合、按日期汇总
"""
import math
from collections import OrderedDict
from typing import Iterable, List, Optional

import numpy as np

from app.schemas.profit_forecast import (
    DateRange,
    ForecastBaseRow,
    ForecastRow,
    SummaryDateRow,
    SummaryTotals,
)

RATIO_DIGITS = 3

_SUMMED_FIELDS = (
    "matured_revenue",
    "matured_profit",
    "projected_revenue",
    "projected_profit",
    "spend",
    "blended_revenue",
    "blended_profit",
)


def round_money(value: Optional[float]) -> float:
    """金额取整（四舍五入到整数货币单位，.5 向上）"""
    if value is None:
        return 0.0
    return float(math.floor(value + 0.5))


def safe_ratio(numerator: Optional[float], denominator: Optional[float], digits: int = RATIO_DIGITS) -> float:
    """
    计算比值，分母为0/空时返回0

    示例:
        >>> safe_ratio(1200000, 150000)
        8.0
        >>> safe_ratio(500000, 0)
        0.0
    """
    if numerator is None or denominator is None or denominator <= 0:
        return 0.0
    try:
        result = numerator / denominator
    except (ZeroDivisionError, TypeError, ValueError):
        return 0.0
    if np.isinf(result) or np.isnan(result):
        return 0.0
    return round(float(result), digits)


def calculate_roas(revenue: float, spend: float) -> float:
    """ROAS = 收入 / 广告费用（费用为0时返回0，不返回 Infinity/NaN）"""
    return safe_ratio(revenue, spend)


def calculate_margin(profit: float, revenue: float) -> float:
    """利润率 = 利润 / 收入（无收入时返回0）"""
    return safe_ratio(profit, revenue)


def clamp_unit(value: float) -> float:
    """限制在 0..1"""
    if value is None or np.isnan(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


def blend_row(
    base: ForecastBaseRow,
    spend: float,
    confidence: float,
    calibration_error: float,
) -> ForecastRow:
    """已成熟 + 预测 = 混合，并结合广告费用计算 ROAS"""
    spend = round_money(spend)
    blended_revenue = base.matured_revenue + base.projected_revenue
    blended_profit = base.matured_profit + base.projected_profit
    return ForecastRow(
        **base.model_dump(include=set(ForecastBaseRow.model_fields)),
        spend=spend,
        matured_roas=calculate_roas(base.matured_revenue, spend),
        blended_revenue=blended_revenue,
        blended_profit=blended_profit,
        blended_roas=calculate_roas(blended_revenue, spend),
        confidence=clamp_unit(confidence),
        calibration_error=clamp_unit(calibration_error),
    )


def aggregate_by_date(rows: Iterable[ForecastRow]) -> List[SummaryDateRow]:
    """跨广告组按日期汇总，比率由汇总后的金额重新计算"""
    buckets: "OrderedDict" = OrderedDict()
    for r in sorted(rows, key=lambda x: (x.date, x.ad_group_id)):
        agg = buckets.setdefault(r.date, {f: 0.0 for f in _SUMMED_FIELDS})
        for f in _SUMMED_FIELDS:
            agg[f] += getattr(r, f)

    result = []
    for d, agg in buckets.items():
        result.append(SummaryDateRow(
            date=d,
            **agg,
            matured_roas=calculate_roas(agg["matured_revenue"], agg["spend"]),
            blended_roas=calculate_roas(agg["blended_revenue"], agg["spend"]),
            blended_margin=calculate_margin(agg["blended_profit"], agg["blended_revenue"]),
        ))
    return result


def summarize_totals(date_rows: List[SummaryDateRow]) -> Optional[SummaryTotals]:
    """区间总计：金额求和，ROAS/利润率由总额计算（不对每行比率取平均）"""
    if not date_rows:
        return None
    total = {f: 0.0 for f in _SUMMED_FIELDS}
    for d in date_rows:
        for f in _SUMMED_FIELDS:
            total[f] += getattr(d, f)

    return SummaryTotals(
        range=DateRange(from_date=date_rows[0].date, to_date=date_rows[-1].date),
        **total,
        matured_roas=calculate_roas(total["matured_revenue"], total["spend"]),
        blended_roas=calculate_roas(total["matured_revenue"] + total["projected_revenue"], total["spend"]),
        blended_margin=calculate_margin(total["blended_profit"], total["blended_revenue"]),
    )
