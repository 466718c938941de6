"""
定时任务调度器
用于执行每日利润预测快照
"""
import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.database import SessionLocal
from app.logging_config import AlertLevel, log_alert
from app.services.profit_forecast_service import ProfitForecastService

logger = logging.getLogger(__name__)

# 快照回看天数：晚到的订单状态变化仍可修正近两周的快照
SNAPSHOT_LOOKBACK_DAYS = 14

scheduler = BackgroundScheduler()


def profit_forecast_snapshot_job():
    """每日利润预测快照（最近14天，UPSERT 幂等）"""
    db = SessionLocal()
    try:
        service = ProfitForecastService(db)
        to_date = service.today()
        from_date = to_date - timedelta(days=SNAPSHOT_LOOKBACK_DAYS)
        logger.info("开始执行利润预测快照任务: %s ~ %s", from_date, to_date)
        result = service.upsert_snapshots(from_date, to_date)
        logger.info(
            "利润预测快照任务完成: 插入 %s, 更新 %s, 未变化 %s, 跳过 %s",
            result.inserted, result.updated, result.unchanged, result.skipped,
        )
    except Exception as e:
        log_alert(
            logger,
            AlertLevel.P1_URGENT,
            "利润预测快照任务失败",
            str(e),
            context={"lookback_days": SNAPSHOT_LOOKBACK_DAYS},
        )
    finally:
        db.close()


def start_scheduler():
    """启动定时任务调度器"""
    if not settings.SCHEDULER_ENABLED:
        logger.info("定时任务已禁用 (SCHEDULER_ENABLED=false)")
        return
    if scheduler.running:
        logger.warning("调度器已在运行")
        return

    scheduler.add_job(
        profit_forecast_snapshot_job,
        trigger=CronTrigger(hour=settings.SNAPSHOT_JOB_HOUR, minute=0),
        id='profit_forecast_snapshot',
        name=f'利润预测快照（{settings.SNAPSHOT_JOB_HOUR:02d}:00）',
        replace_existing=True,
        max_instances=1
    )
    scheduler.start()
    logger.info("定时任务调度器已启动: 利润预测快照 每天 %02d:00", settings.SNAPSHOT_JOB_HOUR)


def shutdown_scheduler():
    """关闭定时任务调度器"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
