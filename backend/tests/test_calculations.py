"""
测试利润预测计算公式
"""
from datetime import date

import pytest

from app.schemas.profit_forecast import ForecastBaseRow
from app.utils.forecast_math import (
    aggregate_by_date,
    blend_row,
    calculate_margin,
    calculate_roas,
    round_money,
    safe_ratio,
    summarize_totals,
)


def _base(day=date(2024, 1, 10), ad_group_id="AG1", **kwargs) -> ForecastBaseRow:
    return ForecastBaseRow(date=day, ad_group_id=ad_group_id, model_version=1, **kwargs)


class TestRatios:
    """测试比值计算"""

    def test_roas_normal(self):
        assert calculate_roas(1200000, 150000) == 8.0

    def test_roas_zero_spend(self):
        """费用为0时 ROAS 为0，而不是 Infinity/NaN"""
        assert calculate_roas(500000, 0) == 0.0

    def test_roas_none_input(self):
        assert calculate_roas(None, 100) == 0.0
        assert calculate_roas(100, None) == 0.0

    def test_ratio_rounded_to_three_digits(self):
        assert safe_ratio(1, 3) == 0.333

    def test_margin_without_revenue(self):
        assert calculate_margin(-50000, 0) == 0.0

    def test_round_money_half_up(self):
        assert round_money(2.5) == 3.0
        assert round_money(-2.5) == -2.0
        assert round_money(None) == 0.0


class TestBlendRow:
    """测试单行混合"""

    def test_blend_example(self):
        row = blend_row(
            _base(matured_revenue=1000000, projected_revenue=200000, matured_profit=400000, projected_profit=50000),
            spend=150000,
            confidence=0.7,
            calibration_error=0.1,
        )
        assert row.blended_revenue == 1200000
        assert row.blended_profit == 450000
        assert row.blended_roas == 8.0
        assert row.matured_roas == 6.667

    def test_blended_revenue_is_exact_sum(self):
        base = _base(matured_revenue=123457, projected_revenue=98766)
        row = blend_row(base, spend=1000, confidence=0.5, calibration_error=0.2)
        assert row.blended_revenue == base.matured_revenue + base.projected_revenue

    def test_zero_spend(self):
        row = blend_row(_base(matured_revenue=500000), spend=0, confidence=0.5, calibration_error=0.2)
        assert row.blended_roas == 0
        assert row.matured_roas == 0

    def test_confidence_clamped(self):
        row = blend_row(_base(), spend=0, confidence=1.7, calibration_error=-0.3)
        assert row.confidence == 1.0
        assert row.calibration_error == 0.0

    def test_json_aliases(self):
        row = blend_row(_base(matured_revenue=10), spend=5, confidence=0.5, calibration_error=0.2)
        data = row.model_dump(by_alias=True)
        assert data["adGroupId"] == "AG1"
        assert data["blendedROAS"] == 2.0
        assert data["maturedROAS"] == 2.0
        assert "calibrationError" in data


class TestSummary:
    """测试汇总：总额为逐行之和，比率由总额重新计算"""

    def _rows(self):
        return [
            blend_row(_base(date(2024, 1, 10), "AG1", matured_revenue=900, matured_profit=300), 100, 0.5, 0.2),
            blend_row(_base(date(2024, 1, 10), "AG2", matured_revenue=100, matured_profit=-50), 900, 0.5, 0.2),
            blend_row(_base(date(2024, 1, 11), "AG1", projected_revenue=400, projected_profit=100), 0, 0.5, 0.2),
        ]

    def test_aggregate_by_date(self):
        date_rows = aggregate_by_date(self._rows())
        assert [d.date for d in date_rows] == [date(2024, 1, 10), date(2024, 1, 11)]
        first = date_rows[0]
        assert first.blended_revenue == 1000
        assert first.spend == 1000
        # 1000 / 1000，而不是 (9.0 + 0.111) / 2
        assert first.blended_roas == 1.0
        assert first.blended_margin == 0.25
        assert date_rows[1].blended_roas == 0

    def test_totals_equal_row_sums(self):
        rows = self._rows()
        summary = summarize_totals(aggregate_by_date(rows))
        assert summary.blended_revenue == sum(r.blended_revenue for r in rows)
        assert summary.blended_profit == sum(r.blended_profit for r in rows)
        assert summary.spend == sum(r.spend for r in rows)
        assert summary.blended_roas == 1.4
        assert summary.range.from_date == date(2024, 1, 10)
        assert summary.range.to_date == date(2024, 1, 11)

    def test_empty_summary(self):
        assert summarize_totals([]) is None

    def test_summary_range_alias(self):
        summary = summarize_totals(aggregate_by_date(self._rows()))
        data = summary.model_dump(by_alias=True, mode="json")
        assert data["range"] == {"from": "2024-01-10", "to": "2024-01-11"}
        assert data["blendedROAS"] == pytest.approx(1.4)
