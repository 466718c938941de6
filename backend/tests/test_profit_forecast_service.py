"""
测试利润预测服务：成熟/预测聚合、费用混合、汇总、推荐预算
"""
from datetime import date, datetime

import pytest

from app.models.order import OrderStatus
from app.services.forecast_strategies import ConversionModel
from app.services.profit_forecast_service import (
    InvalidDateRangeError,
    ProfitForecastService,
    UnknownAdGroupError,
)

NOW = datetime(2024, 1, 20, 12, 0)


class FixedConversion(ConversionModel):
    def __init__(self, p):
        self.p = p

    def probability(self, status, age_days):
        return self.p


def _service(db, now=NOW, **kwargs):
    return ProfitForecastService(db, now=now, **kwargs)


class TestDateRange:
    """测试日期区间校验"""

    def test_default_range(self, db):
        start, end = _service(db).resolve_range(None, None)
        assert end == date(2024, 1, 20)
        assert start == date(2024, 1, 6)

    def test_from_after_to(self, db):
        with pytest.raises(InvalidDateRangeError):
            _service(db).forecast_with_cost(date(2024, 1, 15), date(2024, 1, 10))

    def test_range_too_long(self, db):
        with pytest.raises(InvalidDateRangeError):
            _service(db).forecast_with_cost(date(2022, 1, 1), date(2024, 1, 10))

    def test_single_day(self, db):
        assert _service(db).forecast_with_cost(date(2024, 1, 10), date(2024, 1, 10)) == []


class TestAdGroupValidation:
    """测试广告组校验"""

    def test_unknown_ad_group(self, db):
        with pytest.raises(UnknownAdGroupError):
            _service(db).forecast_by_ad_group(date(2024, 1, 1), date(2024, 1, 10), "NOPE")

    def test_registered_ad_group_without_data(self, db, make_ad_group):
        make_ad_group("AG9")
        assert _service(db).forecast_with_cost(date(2024, 1, 1), date(2024, 1, 10), "AG9") == []

    def test_ad_group_known_from_costs(self, db, make_cost):
        make_cost(date(2024, 1, 5), "AG7", 1000)
        rows = _service(db).forecast_with_cost(date(2024, 1, 1), date(2024, 1, 10), "AG7")
        assert len(rows) == 1


class TestMaturedAggregation:
    """测试已成熟订单聚合"""

    def test_delivered_revenue_and_profit(self, db, make_order):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=800000, manual_payment=200000)
        rows = _service(db).forecast_by_ad_group(date(2024, 1, 10), date(2024, 1, 10))
        assert len(rows) == 1
        row = rows[0]
        assert row.matured_revenue == 1000000
        assert row.matured_profit == 700000
        assert row.matured_order_count == 1
        assert row.projected_order_count == 0

    def test_failed_and_cancelled_count_without_revenue(self, db, make_order):
        make_order(datetime(2024, 1, 18, 9), OrderStatus.DELIVERY_FAILED, cod=500000)
        make_order(datetime(2024, 1, 18, 10), OrderStatus.CANCELLED, cod=500000)
        row = _service(db).forecast_by_ad_group(date(2024, 1, 18), date(2024, 1, 18))[0]
        assert row.matured_order_count == 2
        assert row.matured_revenue == 0
        assert row.projected_order_count == 0
        assert row.projected_revenue == 0

    def test_old_pending_order_is_matured(self, db, make_order):
        """超过成熟天数仍未签收的订单视为已成熟，且无收入"""
        make_order(datetime(2024, 1, 5, 9), OrderStatus.IN_TRANSIT, cod=400000)
        row = _service(db).forecast_by_ad_group(date(2024, 1, 5), date(2024, 1, 5))[0]
        assert row.matured_order_count == 1
        assert row.matured_revenue == 0
        assert row.projected_order_count == 0

    def test_inactive_orders_ignored(self, db, make_order):
        order = make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=100000)
        order.is_active = False
        db.commit()
        assert _service(db).forecast_by_ad_group(date(2024, 1, 10), date(2024, 1, 10)) == []

    def test_grouped_by_date_and_ad_group(self, db, make_order):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=100000, ad_group_id="AG2")
        make_order(datetime(2024, 1, 10, 23, 59), OrderStatus.DELIVERED, cod=100000, ad_group_id="AG1")
        make_order(datetime(2024, 1, 11, 0, 0), OrderStatus.DELIVERED, cod=100000, ad_group_id="AG1")
        rows = _service(db).forecast_by_ad_group(date(2024, 1, 10), date(2024, 1, 11))
        assert [(r.date, r.ad_group_id) for r in rows] == [
            (date(2024, 1, 10), "AG1"),
            (date(2024, 1, 10), "AG2"),
            (date(2024, 1, 11), "AG1"),
        ]


class TestProjection:
    """测试未成熟订单预测"""

    def test_pending_order_projection(self, db, make_order):
        make_order(datetime(2024, 1, 18, 12), OrderStatus.IN_TRANSIT, cod=100000)
        row = _service(db).forecast_by_ad_group(date(2024, 1, 18), date(2024, 1, 18))[0]
        # 0.82 + 2 天 * 1.5%
        assert row.projected_revenue == 85000
        assert row.projected_profit == 85000 - 255000
        assert row.projected_order_count == 1
        assert row.matured_order_count == 0

    def test_average_cod_fallback(self, db, make_order):
        """未录入 COD 的订单用同商品已成熟订单的平均 COD"""
        make_order(datetime(2024, 1, 5, 9), OrderStatus.DELIVERED, cod=300000)
        make_order(datetime(2024, 1, 19, 12), OrderStatus.NO_TRACKING, cod=0)
        rows = _service(db).forecast_by_ad_group(date(2024, 1, 5), date(2024, 1, 20))
        pending = [r for r in rows if r.date == date(2024, 1, 19)][0]
        # 300000 * (0.45 + 0.015)
        assert pending.projected_revenue == 139500
        assert pending.projected_profit == 0

    def test_no_revenue_no_history(self, db, make_order):
        make_order(datetime(2024, 1, 19, 12), OrderStatus.HAS_TRACKING, cod=0)
        row = _service(db).forecast_by_ad_group(date(2024, 1, 19), date(2024, 1, 19))[0]
        assert row.projected_revenue == 0
        assert row.projected_order_count == 1

    def test_custom_conversion_model(self, db, make_order):
        make_order(datetime(2024, 1, 19, 12), OrderStatus.NO_TRACKING, cod=100000)
        service = _service(db, conversion_model=FixedConversion(0.25))
        row = service.forecast_by_ad_group(date(2024, 1, 19), date(2024, 1, 19))[0]
        assert row.projected_revenue == 25000


class TestForecastWithCost:
    """测试费用混合"""

    def test_blended_example(self, db, make_order, make_cost):
        now = datetime(2024, 1, 12, 12, 0)
        make_order(datetime(2024, 1, 10, 8), OrderStatus.DELIVERED, cod=1000000)
        make_order(datetime(2024, 1, 10, 9), OrderStatus.IN_TRANSIT, cod=400000)
        make_cost(date(2024, 1, 10), "AG1", 100000)
        make_cost(date(2024, 1, 10), "AG1", 50000)

        service = _service(db, now=now, conversion_model=FixedConversion(0.5))
        rows = service.forecast_with_cost(date(2024, 1, 10), date(2024, 1, 10), "AG1")

        assert len(rows) == 1
        row = rows[0]
        assert row.matured_revenue == 1000000
        assert row.projected_revenue == 200000
        assert row.spend == 150000
        assert row.blended_revenue == 1200000
        assert row.blended_profit == 700000 + 50000
        assert row.blended_roas == 8.0
        assert row.calibration_error == 0.2
        assert row.confidence == pytest.approx(0.416)

    def test_missing_spend(self, db, make_order):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=500000)
        row = _service(db).forecast_with_cost(date(2024, 1, 10), date(2024, 1, 10))[0]
        assert row.spend == 0
        assert row.blended_roas == 0
        assert row.matured_roas == 0

    def test_spend_without_orders(self, db, make_order, make_cost):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=500000)
        make_cost(date(2024, 1, 11), "AG2", 50000)
        rows = _service(db).forecast_with_cost(date(2024, 1, 10), date(2024, 1, 11))
        spend_only = [r for r in rows if r.ad_group_id == "AG2"][0]
        assert spend_only.blended_revenue == 0
        assert spend_only.blended_profit == 0
        assert spend_only.spend == 50000
        assert spend_only.blended_roas == 0

    def test_cost_outside_range_ignored(self, db, make_order, make_cost):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=500000)
        make_cost(date(2024, 1, 9), "AG1", 50000)
        rows = _service(db).forecast_with_cost(date(2024, 1, 10), date(2024, 1, 10))
        assert len(rows) == 1
        assert rows[0].spend == 0

    def test_blended_revenue_invariant(self, db, make_order, make_cost):
        make_order(datetime(2024, 1, 15, 9), OrderStatus.DELIVERED, cod=123457)
        make_order(datetime(2024, 1, 18, 7), OrderStatus.HAS_TRACKING, cod=98765)
        make_order(datetime(2024, 1, 19, 23), OrderStatus.NO_TRACKING, cod=55555, ad_group_id="AG2")
        make_cost(date(2024, 1, 18), "AG1", 33333)
        for row in _service(db).forecast_with_cost(date(2024, 1, 14), date(2024, 1, 20)):
            assert row.blended_revenue == row.matured_revenue + row.projected_revenue
            assert row.blended_profit == row.matured_profit + row.projected_profit
            assert 0 <= row.confidence <= 1


class TestCalibration:
    """测试回测校准误差"""

    def test_no_history(self, db):
        assert _service(db).compute_calibration() == 0.2

    def test_backtest_samples(self, db, make_order):
        # 回测窗口: 2024-01-06 ~ 2024-01-13，初始预测概率 0.45
        make_order(datetime(2024, 1, 8, 10), OrderStatus.DELIVERED, cod=100000)
        make_order(datetime(2024, 1, 8, 11), OrderStatus.DELIVERY_FAILED, cod=100000)
        service = _service(db)
        samples = service.calibration_samples()
        assert len(samples) == 1
        predicted, actual = samples[0]
        assert predicted == pytest.approx(90000)
        assert actual == pytest.approx(100000)
        assert service.compute_calibration() == 0.1

    def test_recent_orders_excluded(self, db, make_order):
        make_order(datetime(2024, 1, 18, 10), OrderStatus.DELIVERED, cod=100000)
        assert _service(db).calibration_samples() == []


class TestSummary:
    """测试按日期汇总"""

    def test_summary_totals(self, db, make_order, make_cost):
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=600000)
        make_order(datetime(2024, 1, 10, 9), OrderStatus.DELIVERED, cod=400000, ad_group_id="AG2")
        make_order(datetime(2024, 1, 11, 9), OrderStatus.DELIVERED, cod=500000)
        make_cost(date(2024, 1, 10), "AG1", 100000)
        make_cost(date(2024, 1, 10), "AG2", 100000)
        make_cost(date(2024, 1, 11), "AG1", 50000)

        service = _service(db)
        rows = service.forecast_with_cost(date(2024, 1, 10), date(2024, 1, 11))
        result = service.summary_aggregate(date(2024, 1, 10), date(2024, 1, 11))

        assert [r.date for r in result.rows] == [date(2024, 1, 10), date(2024, 1, 11)]
        assert result.rows[0].blended_revenue == 1000000
        assert result.rows[0].blended_roas == 5.0
        assert result.summary.blended_revenue == sum(r.blended_revenue for r in rows)
        assert result.summary.spend == 250000
        assert result.summary.blended_roas == 6.0

    def test_empty_summary(self, db):
        result = _service(db).summary_aggregate(date(2024, 1, 10), date(2024, 1, 11))
        assert result.rows == []
        assert result.summary is None


class TestRecommendedBudget:
    """测试推荐预算"""

    def test_scale_down_on_low_margin(self, db, make_order, make_cost):
        # 收入 = 成本，利润率 0
        make_order(datetime(2024, 1, 15, 9), OrderStatus.DELIVERED, cod=300000)
        # 1/13 在 7 天区间之外
        for day in range(13, 21):
            make_cost(date(2024, 1, day), "AG1", 100000)
        rows = _service(db).recommended_budget(ad_group_id="AG1", days=7)
        assert len(rows) == 1
        row = rows[0]
        assert row.period.from_date == date(2024, 1, 14)
        assert row.period.to_date == date(2024, 1, 20)
        assert row.avg_daily_spend == 100000
        assert row.adjustment_factor == 0.85
        assert row.recommended_daily_spend == 90000

    def test_keep_budget_on_low_confidence(self, db, make_order, make_cost):
        # 利润率高但置信度不足（校准误差默认 0.2）
        make_order(datetime(2024, 1, 15, 9), OrderStatus.DELIVERED, cod=1000000)
        make_cost(date(2024, 1, 15), "AG1", 700000)
        row = _service(db).recommended_budget(ad_group_id="AG1", days=7)[0]
        assert row.blended_margin == 0.7
        assert row.avg_confidence < 0.6
        assert row.adjustment_factor == 1.0
        assert row.recommended_daily_spend == 100000

    def test_explicit_range_averaged_over_its_days(self, db, make_order, make_cost):
        make_order(datetime(2024, 1, 15, 9), OrderStatus.DELIVERED, cod=300000)
        make_cost(date(2024, 1, 15), "AG1", 100000)
        row = _service(db).recommended_budget(date(2024, 1, 15), date(2024, 1, 15), "AG1")[0]
        assert row.avg_daily_spend == 100000

        make_cost(date(2024, 1, 16), "AG1", 300000)
        row = _service(db).recommended_budget(date(2024, 1, 15), date(2024, 1, 16), "AG1")[0]
        assert row.avg_daily_spend == 200000


class TestSpendRounding:
    """费用与其他金额一样取整，汇总与逐行求和一致"""

    def test_fractional_spend(self, db, make_cost):
        make_cost(date(2024, 1, 10), "AG1", 100.4)
        make_cost(date(2024, 1, 11), "AG1", 200.6)
        make_cost(date(2024, 1, 11), "AG2", 0.1)
        make_cost(date(2024, 1, 11), "AG2", 0.2)
        make_cost(date(2024, 1, 11), "AG2", 300.3)

        service = _service(db)
        rows = service.forecast_with_cost(date(2024, 1, 10), date(2024, 1, 11))
        assert [r.spend for r in rows] == [100, 201, 301]

        result = service.summary_aggregate(date(2024, 1, 10), date(2024, 1, 11))
        assert result.summary.spend == sum(r.spend for r in rows)
        assert [d.spend for d in result.rows] == [100, 502]
