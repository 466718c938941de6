"""
利润预测 API
预测 vs 实际：已成熟 / 预测 / 混合收入利润、ROAS、快照
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.profit_forecast import (
    ForecastBaseRow,
    ForecastRow,
    RecommendedBudgetRow,
    SnapshotOut,
    SnapshotRunResult,
    SummaryResponse,
)
from app.services.profit_forecast_service import (
    InvalidDateRangeError,
    ProfitForecastError,
    ProfitForecastService,
    SnapshotPersistError,
    UnknownAdGroupError,
)

router = APIRouter(prefix="/profit-forecast", tags=["profit-forecast"])

limiter = Limiter(key_func=get_remote_address)


class ForecastFilter:
    """公共查询参数 from / to / adGroupId"""

    def __init__(
        self,
        from_date: Optional[date] = Query(None, alias="from"),
        to_date: Optional[date] = Query(None, alias="to"),
        ad_group_id: Optional[str] = Query(None, alias="adGroupId"),
    ):
        self.from_date = from_date
        self.to_date = to_date
        self.ad_group_id = (ad_group_id or "").strip() or None


def _raise_http(exc: ProfitForecastError):
    if isinstance(exc, InvalidDateRangeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, UnknownAdGroupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SnapshotPersistError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/ad-group", response_model=List[ForecastBaseRow])
def forecast_ad_group(
    params: ForecastFilter = Depends(),
    db: Session = Depends(get_db),
):
    try:
        return ProfitForecastService(db).forecast_by_ad_group(params.from_date, params.to_date, params.ad_group_id)
    except ProfitForecastError as e:
        _raise_http(e)


@router.get("/ad-group-with-cost", response_model=List[ForecastRow])
def forecast_ad_group_with_cost(
    params: ForecastFilter = Depends(),
    db: Session = Depends(get_db),
):
    try:
        return ProfitForecastService(db).forecast_with_cost(params.from_date, params.to_date, params.ad_group_id)
    except ProfitForecastError as e:
        _raise_http(e)


@router.get("/summary", response_model=SummaryResponse)
def forecast_summary(
    params: ForecastFilter = Depends(),
    db: Session = Depends(get_db),
):
    try:
        return ProfitForecastService(db).summary_aggregate(params.from_date, params.to_date, params.ad_group_id)
    except ProfitForecastError as e:
        _raise_http(e)


@router.get("/snapshots", response_model=List[SnapshotOut])
def list_snapshots(
    params: ForecastFilter = Depends(),
    db: Session = Depends(get_db),
):
    try:
        return ProfitForecastService(db).list_snapshots(params.from_date, params.to_date, params.ad_group_id)
    except ProfitForecastError as e:
        _raise_http(e)


@router.get("/snapshot/run", response_model=SnapshotRunResult)
@limiter.limit("30/minute")  # 手动快照: 每分钟最多 30 次
def run_snapshot(
    request: Request,
    params: ForecastFilter = Depends(),
    db: Session = Depends(get_db),
):
    """手动触发快照（与每日定时任务相同的 UPSERT 逻辑）"""
    try:
        return ProfitForecastService(db).upsert_snapshots(params.from_date, params.to_date, params.ad_group_id)
    except ProfitForecastError as e:
        _raise_http(e)


@router.get("/recommended-budget", response_model=List[RecommendedBudgetRow])
def recommended_budget(
    params: ForecastFilter = Depends(),
    days: Optional[int] = Query(None, ge=1, le=90),
    db: Session = Depends(get_db),
):
    try:
        return ProfitForecastService(db).recommended_budget(
            params.from_date, params.to_date, params.ad_group_id, days=days or 7,
        )
    except ProfitForecastError as e:
        _raise_http(e)
