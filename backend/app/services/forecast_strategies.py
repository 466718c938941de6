"""
利润预测可插拔策略

- ConversionModel：未成熟订单的成交概率
- ConfidenceStrategy：单行预测的置信度
- CalibrationStrategy：历史预测与实际结果的偏差（校准误差）

ProfitForecastService 通过构造参数注入，默认实现如下。
"""
from abc import ABC, abstractmethod
from typing import Iterable, Tuple

from app.models.order import OrderStatus
from app.schemas.profit_forecast import ForecastBaseRow
from app.utils.forecast_math import clamp_unit

FAILED_STATUSES = {OrderStatus.DELIVERY_FAILED.value, OrderStatus.CANCELLED.value}


def normalize_status(status: str) -> str:
    return (status or "").strip().lower()


def is_delivered(status: str) -> bool:
    return normalize_status(status) == OrderStatus.DELIVERED.value


def is_failed(status: str) -> bool:
    return normalize_status(status) in FAILED_STATUSES


class ConversionModel(ABC):
    """订单最终成交（签收）概率"""

    @abstractmethod
    def probability(self, status: str, age_days: int) -> float:
        raise NotImplementedError


class StatusAgeConversionModel(ConversionModel):
    """
    按运单状态给出基础概率，订单越久概率越高（每天 +1.5%，最多累计 maturity_days 天）

    ProfitForecastService 把已签收订单直接计入 matured，不会用 delivered 查询概率；
    delivered 的基础概率与 DELIVERED_CAP 供单独调用本模型的场景使用（如按状态估算整批订单）。
    """

    BASE_PROBABILITY = {
        OrderStatus.DELIVERED.value: 0.98,
        OrderStatus.IN_TRANSIT.value: 0.82,
        OrderStatus.HAS_TRACKING.value: 0.68,
        OrderStatus.NO_TRACKING.value: 0.45,
        OrderStatus.DELIVERY_FAILED.value: 0.0,
        OrderStatus.CANCELLED.value: 0.0,
    }
    DEFAULT_PROBABILITY = 0.5
    DAILY_BOOST = 0.015
    CAP = 0.95
    DELIVERED_CAP = 0.995

    def __init__(self, maturity_days: int = 7):
        self.maturity_days = maturity_days

    def base_probability(self, status: str) -> float:
        return self.BASE_PROBABILITY.get(normalize_status(status), self.DEFAULT_PROBABILITY)

    def probability(self, status: str, age_days: int) -> float:
        p = self.base_probability(status)
        if p == 0:
            return 0.0
        boost = min(max(age_days, 0), self.maturity_days) * self.DAILY_BOOST
        cap = self.DELIVERED_CAP if is_delivered(status) else self.CAP
        return min(p + boost, cap)


class ConfidenceStrategy(ABC):
    @abstractmethod
    def score(self, row: ForecastBaseRow, calibration_error: float) -> float:
        raise NotImplementedError


class OrderMixConfidence(ConfidenceStrategy):
    """
    成熟订单占比越高置信度越高；已成熟部分利润率作为稳定性参考。
    结果再乘以 (1 - 校准误差)。
    """

    ORDER_WEIGHT = 0.6
    STABILITY_WEIGHT = 0.4
    PENDING_WEIGHT = 0.5
    NO_REVENUE_STABILITY = 0.3

    def score(self, row: ForecastBaseRow, calibration_error: float) -> float:
        m = row.matured_order_count
        p = row.projected_order_count
        order_component = m / (m + p * self.PENDING_WEIGHT + 1)
        if row.matured_revenue > 0:
            stability = min(1.0, row.matured_profit / (row.matured_revenue + 1))
        else:
            stability = self.NO_REVENUE_STABILITY
        raw = clamp_unit(self.ORDER_WEIGHT * order_component + self.STABILITY_WEIGHT * stability)
        return round(clamp_unit(raw * (1 - clamp_unit(calibration_error))), 3)


class CalibrationStrategy(ABC):
    @abstractmethod
    def calibration_error(self, samples: Iterable[Tuple[float, float]]) -> float:
        """samples: (当时预测的收入, 实际成熟收入)"""
        raise NotImplementedError


class WeightedErrorCalibration(CalibrationStrategy):
    """收入加权的绝对误差：sum|预测 - 实际| / sum(max(预测, 实际))，无历史数据时返回默认值"""

    def __init__(self, no_history_error: float = 0.2):
        self.no_history_error = no_history_error

    def calibration_error(self, samples: Iterable[Tuple[float, float]]) -> float:
        total_error = 0.0
        total_weight = 0.0
        for predicted, actual in samples:
            predicted = max(float(predicted or 0.0), 0.0)
            actual = max(float(actual or 0.0), 0.0)
            weight = max(predicted, actual)
            if weight <= 0:
                continue
            total_error += abs(predicted - actual)
            total_weight += weight
        if total_weight <= 0:
            return self.no_history_error
        return round(clamp_unit(total_error / total_weight), 3)
