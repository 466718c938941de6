"""
利润预测服务

按 日期 + 广告组 汇总订单：
- 已成熟订单（已签收 / 派送失败 / 已取消 / 超过成熟天数）计入 matured
- 未成熟订单按成交概率折算为 projected
再结合广告费用得到混合收入、利润、ROAS，并可写入快照表用于历史趋势。
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.ad_group import AdGroup
from app.models.advertising_cost import AdvertisingCost
from app.models.order import Order, OrderStatus
from app.models.product import Product
from app.models.profit_forecast_snapshot import ProfitForecastSnapshot
from app.schemas.profit_forecast import (
    DateRange,
    ForecastBaseRow,
    ForecastRow,
    RecommendedBudgetRow,
    SnapshotRunResult,
    SummaryResponse,
)
from app.services.forecast_strategies import (
    CalibrationStrategy,
    ConfidenceStrategy,
    ConversionModel,
    OrderMixConfidence,
    StatusAgeConversionModel,
    WeightedErrorCalibration,
    is_delivered,
    is_failed,
)
from app.utils.forecast_math import (
    aggregate_by_date,
    blend_row,
    calculate_margin,
    round_money,
    summarize_totals,
)

logger = logging.getLogger(__name__)

Key = Tuple[date, str]

# 快照中参与比较/写入的字段
SNAPSHOT_FIELDS = (
    "model_version",
    "matured_revenue",
    "matured_profit",
    "matured_order_count",
    "projected_revenue",
    "projected_profit",
    "projected_order_count",
    "spend",
    "blended_revenue",
    "blended_profit",
    "blended_roas",
    "matured_roas",
    "confidence",
    "calibration_error",
)

# 推荐预算策略
BUDGET_SCALE_UP_MARGIN = 0.25
BUDGET_SCALE_UP_CONFIDENCE = 0.6
BUDGET_SCALE_DOWN_MARGIN = 0.15
BUDGET_SCALE_UP_FACTOR = 1.2
BUDGET_SCALE_DOWN_FACTOR = 0.85
BUDGET_ROUNDING = 10000


class ProfitForecastError(Exception):
    """利润预测相关错误基类"""


class InvalidDateRangeError(ProfitForecastError):
    pass


class UnknownAdGroupError(ProfitForecastError):
    pass


class SnapshotPersistError(ProfitForecastError):
    """快照写入失败（已回滚，不自动重试）"""


def utc_now() -> datetime:
    """当前 UTC 时间（naive datetime，与数据库中的 created_at 一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProfitForecastService:
    def __init__(
        self,
        db: Session,
        conversion_model: Optional[ConversionModel] = None,
        confidence: Optional[ConfidenceStrategy] = None,
        calibration: Optional[CalibrationStrategy] = None,
        maturity_days: Optional[int] = None,
        model_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.maturity_days = maturity_days or settings.PROFIT_FORECAST_MATURITY_DAYS
        self.model_version = model_version or settings.PROFIT_FORECAST_MODEL_VERSION
        self.conversion_model = conversion_model or StatusAgeConversionModel(self.maturity_days)
        self.confidence = confidence or OrderMixConfidence()
        self.calibration = calibration or WeightedErrorCalibration()
        self._fixed_now = now

    # ------------------------------------------------------------------
    # 参数校验
    # ------------------------------------------------------------------
    def now(self) -> datetime:
        return self._fixed_now or utc_now()

    def today(self) -> date:
        return self.now().date()

    def resolve_range(
        self,
        from_date: Optional[date],
        to_date: Optional[date],
        lookback_days: Optional[int] = None,
    ) -> Tuple[date, date]:
        """补全默认区间并校验（from 不能晚于 to，跨度不能超过上限）"""
        end = to_date or self.today()
        if from_date is None:
            lookback = lookback_days if lookback_days is not None else settings.PROFIT_FORECAST_LOOKBACK_DAYS
            start = end - timedelta(days=lookback)
        else:
            start = from_date
        if start > end:
            raise InvalidDateRangeError(f"开始日期 {start.isoformat()} 不能晚于结束日期 {end.isoformat()}")
        max_days = settings.PROFIT_FORECAST_MAX_RANGE_DAYS
        if (end - start).days > max_days:
            raise InvalidDateRangeError(f"日期跨度不能超过 {max_days} 天")
        return start, end

    def ensure_ad_group(self, ad_group_id: Optional[str]) -> None:
        """广告组需已登记，或至少被订单/广告费用引用过"""
        if not ad_group_id:
            return
        if self.db.query(AdGroup.id).filter(AdGroup.ad_group_id == ad_group_id).first():
            return
        if self.db.query(Order.id).filter(Order.ad_group_id == ad_group_id).first():
            return
        if self.db.query(AdvertisingCost.id).filter(AdvertisingCost.ad_group_id == ad_group_id).first():
            return
        raise UnknownAdGroupError(f"未知的广告组: {ad_group_id}")

    # ------------------------------------------------------------------
    # 订单聚合
    # ------------------------------------------------------------------
    def _load_orders(self, start: date, end: date, ad_group_id: Optional[str]) -> List[Order]:
        query = self.db.query(Order).filter(
            Order.is_active == True,  # noqa: E712
            Order.created_at >= datetime.combine(start, time.min),
            Order.created_at < datetime.combine(end + timedelta(days=1), time.min),
        )
        if ad_group_id:
            query = query.filter(Order.ad_group_id == ad_group_id)
        return query.all()

    def _product_costs(self, orders: List[Order]) -> Dict[int, float]:
        product_ids = {o.product_id for o in orders}
        if not product_ids:
            return {}
        rows = self.db.query(Product.id, Product.total_cost).filter(Product.id.in_(product_ids)).all()
        return {r.id: float(r.total_cost or 0.0) for r in rows}

    def _age_days(self, order: Order) -> int:
        return (self.now() - order.created_at).days

    def _is_matured(self, order: Order) -> bool:
        if is_delivered(order.order_status) or is_failed(order.order_status):
            return True
        return self._age_days(order) >= self.maturity_days

    def _average_cod(self, orders: List[Order]) -> Dict[int, float]:
        """已成熟订单按商品计算平均 COD，用于尚未录入金额的订单"""
        sums: Dict[int, List[float]] = defaultdict(lambda: [0.0, 0])
        for o in orders:
            cod = float(o.cod_amount or 0.0)
            if cod > 0 and self._is_matured(o):
                sums[o.product_id][0] += cod
                sums[o.product_id][1] += 1
        return {pid: total / count for pid, (total, count) in sums.items() if count}

    def _aggregate(self, start: date, end: date, ad_group_id: Optional[str]) -> Dict[Key, ForecastBaseRow]:
        orders = self._load_orders(start, end, ad_group_id)
        if not orders:
            return {}

        cost_map = self._product_costs(orders)
        avg_cod = self._average_cod(orders)
        buckets: Dict[Key, Dict[str, float]] = {}

        for o in orders:
            key = (o.created_at.date(), o.ad_group_id)
            b = buckets.setdefault(key, defaultdict(float))
            quantity = o.quantity or 1
            total_cost = cost_map.get(o.product_id, 0.0) * quantity
            revenue = o.observed_revenue

            if self._is_matured(o):
                if is_delivered(o.order_status):
                    b["matured_revenue"] += revenue
                    b["matured_profit"] += revenue - total_cost
                b["matured_order_count"] += 1
                continue

            p = self.conversion_model.probability(o.order_status, self._age_days(o))
            expected_base = revenue if revenue > 0 else avg_cod.get(o.product_id, 0.0) * quantity
            expected_revenue = expected_base * p
            b["projected_revenue"] += expected_revenue
            b["projected_profit"] += expected_revenue - total_cost * p
            b["projected_order_count"] += 1

        result = {}
        for (d, group_id), b in buckets.items():
            result[(d, group_id)] = ForecastBaseRow(
                date=d,
                ad_group_id=group_id,
                matured_revenue=round_money(b["matured_revenue"]),
                matured_profit=round_money(b["matured_profit"]),
                matured_order_count=int(b["matured_order_count"]),
                projected_revenue=round_money(b["projected_revenue"]),
                projected_profit=round_money(b["projected_profit"]),
                projected_order_count=int(b["projected_order_count"]),
                model_version=self.model_version,
            )
        logger.debug("订单聚合完成: %s ~ %s, 订单 %s, 分组 %s", start, end, len(orders), len(result))
        return result

    def forecast_by_ad_group(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
    ) -> List[ForecastBaseRow]:
        """已成熟 / 预测收入利润（不含费用）"""
        start, end = self.resolve_range(from_date, to_date)
        self.ensure_ad_group(ad_group_id)
        rows = self._aggregate(start, end, ad_group_id)
        return [rows[k] for k in sorted(rows)]

    # ------------------------------------------------------------------
    # 费用 / 校准 / 混合
    # ------------------------------------------------------------------
    def _spend_map(self, start: date, end: date, ad_group_id: Optional[str]) -> Dict[Key, float]:
        query = self.db.query(
            AdvertisingCost.date,
            AdvertisingCost.ad_group_id,
            func.coalesce(func.sum(AdvertisingCost.spent_amount), 0.0).label("spend"),
        ).filter(
            AdvertisingCost.date >= start,
            AdvertisingCost.date <= end,
        )
        if ad_group_id:
            query = query.filter(AdvertisingCost.ad_group_id == ad_group_id)
        rows = query.group_by(AdvertisingCost.date, AdvertisingCost.ad_group_id).all()
        return {(r.date, r.ad_group_id): round_money(float(r.spend or 0.0)) for r in rows}

    def calibration_samples(self, ad_group_id: Optional[str] = None) -> List[Tuple[float, float]]:
        """
        回测：已成熟订单在创建当天（未有运单号、0天）的预测收入 vs 实际成熟收入，
        按 日期 + 广告组 汇总为 (预测, 实际)。
        """
        today = self.today()
        start = today - timedelta(days=self.maturity_days * 2)
        end = today - timedelta(days=self.maturity_days)
        orders = self._load_orders(start, end, ad_group_id)
        if not orders:
            return []

        avg_cod = self._average_cod(orders)
        initial_p = self.conversion_model.probability(OrderStatus.NO_TRACKING.value, 0)
        pairs: Dict[Key, List[float]] = defaultdict(lambda: [0.0, 0.0])
        for o in orders:
            if self._age_days(o) < self.maturity_days:
                continue
            quantity = o.quantity or 1
            revenue = o.observed_revenue
            base = revenue if revenue > 0 else avg_cod.get(o.product_id, 0.0) * quantity
            key = (o.created_at.date(), o.ad_group_id)
            pairs[key][0] += base * initial_p
            if is_delivered(o.order_status):
                pairs[key][1] += revenue
        return [(predicted, actual) for predicted, actual in pairs.values()]

    def compute_calibration(self, ad_group_id: Optional[str] = None) -> float:
        return self.calibration.calibration_error(self.calibration_samples(ad_group_id))

    def forecast_with_cost(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
    ) -> List[ForecastRow]:
        """DailyAdGroupForecastRow 列表：有费用无订单的广告组同样输出（ROAS 为 0）"""
        start, end = self.resolve_range(from_date, to_date)
        self.ensure_ad_group(ad_group_id)

        base = self._aggregate(start, end, ad_group_id)
        spend_map = self._spend_map(start, end, ad_group_id)
        for (d, group_id) in spend_map:
            if (d, group_id) not in base:
                base[(d, group_id)] = ForecastBaseRow(
                    date=d, ad_group_id=group_id, model_version=self.model_version,
                )
        if not base:
            return []

        calibration_error = self.compute_calibration(ad_group_id)
        rows = []
        for key in sorted(base):
            row = base[key]
            rows.append(blend_row(
                row,
                spend=spend_map.get(key, 0.0),
                confidence=self.confidence.score(row, calibration_error),
                calibration_error=calibration_error,
            ))
        return rows

    def summary_aggregate(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
    ) -> SummaryResponse:
        rows = self.forecast_with_cost(from_date, to_date, ad_group_id)
        date_rows = aggregate_by_date(rows)
        return SummaryResponse(rows=date_rows, summary=summarize_totals(date_rows))

    def recommended_budget(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
        days: int = 7,
    ) -> List[RecommendedBudgetRow]:
        """
        按最近 N 天混合利润率给出每日推荐预算：
        - 利润率 > 25% 且平均置信度 >= 0.6 → 增加 20%
        - 利润率 < 15% → 减少 15%
        - 其他保持不变
        日均花费 = 区间总花费 / 区间天数，结果取整到 10,000。
        """
        days = days or 7
        # 默认区间恰好 days 天（含 to 当天）
        start, end = self.resolve_range(from_date, to_date, lookback_days=days - 1)
        period_days = (end - start).days + 1
        rows = self.forecast_with_cost(start, end, ad_group_id)

        aggregates: Dict[str, Dict[str, float]] = {}
        for r in rows:
            agg = aggregates.setdefault(r.ad_group_id, defaultdict(float))
            agg["spend"] += r.spend
            agg["blended_profit"] += r.blended_profit
            agg["blended_revenue"] += r.blended_revenue
            agg["confidence_sum"] += r.confidence
            agg["count"] += 1

        result = []
        for group_id in sorted(aggregates):
            agg = aggregates[group_id]
            avg_confidence = agg["confidence_sum"] / agg["count"] if agg["count"] else 0.0
            blended_margin = calculate_margin(agg["blended_profit"], agg["blended_revenue"])
            daily_spend = agg["spend"] / period_days
            factor = 1.0
            if blended_margin > BUDGET_SCALE_UP_MARGIN and avg_confidence >= BUDGET_SCALE_UP_CONFIDENCE:
                factor = BUDGET_SCALE_UP_FACTOR
            elif blended_margin < BUDGET_SCALE_DOWN_MARGIN:
                factor = BUDGET_SCALE_DOWN_FACTOR
            recommended = round_money(daily_spend * factor / BUDGET_ROUNDING) * BUDGET_ROUNDING
            result.append(RecommendedBudgetRow(
                ad_group_id=group_id,
                period=DateRange(from_date=start, to_date=end),
                avg_daily_spend=round_money(daily_spend),
                blended_margin=blended_margin,
                avg_confidence=round(avg_confidence, 3),
                recommended_daily_spend=recommended,
                adjustment_factor=factor,
            ))
        return result

    # ------------------------------------------------------------------
    # 快照
    # ------------------------------------------------------------------
    def upsert_snapshots(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
    ) -> SnapshotRunResult:
        """
        按 (date, ad_group_id) UPSERT 快照。
        - 已存在更高 model_version 的快照：跳过（不被旧模型覆盖）
        - 数据完全相同：不写入（重复执行幂等）
        写入失败时回滚并抛出 SnapshotPersistError，不自动重试。
        """
        rows = self.forecast_with_cost(from_date, to_date, ad_group_id)
        result = SnapshotRunResult(model_version=self.model_version)
        if not rows:
            return result

        try:
            for row in rows:
                payload = {f: getattr(row, f) for f in SNAPSHOT_FIELDS}
                existing = self.db.query(ProfitForecastSnapshot).filter(
                    ProfitForecastSnapshot.date == row.date,
                    ProfitForecastSnapshot.ad_group_id == row.ad_group_id,
                ).first()
                if existing is None:
                    self.db.add(ProfitForecastSnapshot(date=row.date, ad_group_id=row.ad_group_id, **payload))
                    result.inserted += 1
                elif existing.model_version > row.model_version:
                    result.skipped += 1
                elif all(getattr(existing, f) == v for f, v in payload.items()):
                    result.unchanged += 1
                else:
                    for f, v in payload.items():
                        setattr(existing, f, v)
                    result.updated += 1
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("利润预测快照写入失败: %s", e, exc_info=True)
            raise SnapshotPersistError(f"快照写入失败: {e}") from e

        logger.info(
            "利润预测快照完成: 插入 %s, 更新 %s, 未变化 %s, 跳过 %s (model v%s)",
            result.inserted, result.updated, result.unchanged, result.skipped, self.model_version,
        )
        return result

    def list_snapshots(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        ad_group_id: Optional[str] = None,
    ) -> List[ProfitForecastSnapshot]:
        start, end = self.resolve_range(from_date, to_date)
        query = self.db.query(ProfitForecastSnapshot).filter(
            ProfitForecastSnapshot.date >= start,
            ProfitForecastSnapshot.date <= end,
        )
        if ad_group_id:
            query = query.filter(ProfitForecastSnapshot.ad_group_id == ad_group_id)
        return query.order_by(ProfitForecastSnapshot.date, ProfitForecastSnapshot.ad_group_id).all()
