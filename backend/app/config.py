"""
应用配置
"""
import json
from pathlib import Path
from typing import Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_str_list(value: Any) -> List[str]:
    """Parse list-like env values.

    Supports:
    - JSON list: '["http://a","http://b"]'
    - comma-separated: 'http://a,http://b'
    - already-a-list
    """
    if value is None:
        return []
    if isinstance(value, list):
        return [str(x).strip() for x in value if str(x).strip()]
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return []
        # try JSON first
        if (s.startswith("[") and s.endswith("]")) or (s.startswith('"') and s.endswith('"')):
            try:
                parsed = json.loads(s)
                if isinstance(parsed, list):
                    return [str(x).strip() for x in parsed if str(x).strip()]
                if isinstance(parsed, str) and parsed.strip():
                    return [parsed.strip()]
            except ValueError:
                pass
        # fallback: comma-separated
        return [part.strip() for part in s.split(",") if part.strip()]
    return [str(value).strip()] if str(value).strip() else []


class Settings(BaseSettings):
    # 数据库配置
    DATABASE_URL: str = "sqlite:///./profit_forecast.db"

    # CORS配置
    CORS_ORIGINS: List[str] = [
        # 本地前端（Angular dev server）
        "http://localhost:4200",
        "http://localhost:4201",
        "http://127.0.0.1:4200",
        # Local API
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # ===== 利润预测 =====
    # 订单创建超过该天数视为已成熟（结果已确定）
    PROFIT_FORECAST_MATURITY_DAYS: int = 7
    # 预测模型版本（单调递增，快照不会被旧版本覆盖）
    PROFIT_FORECAST_MODEL_VERSION: int = 1
    # 未传 from 时默认回看天数
    PROFIT_FORECAST_LOOKBACK_DAYS: int = 14
    # 单次查询允许的最大日期跨度
    PROFIT_FORECAST_MAX_RANGE_DAYS: int = 366

    # ===== 定时任务 =====
    SCHEDULER_ENABLED: bool = True
    SNAPSHOT_JOB_HOUR: int = 6  # 每日快照任务执行时间（小时）

    # ===== Google Sheets 同步 =====
    SHEET_SYNC_DEBOUNCE_SECONDS: float = 2.0
    SUMMARY_SHEET_NAME: str = "Summary4"
    GOOGLE_SHEETS_SERVICE_ACCOUNT_FILE: str = ""
    GOOGLE_SHEETS_SERVICE_ACCOUNT_JSON_BASE64: str = ""

    # 日志目录（相对 backend/）
    LOG_DIR: str = "logs"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _validate_cors_origins(cls, v: Any) -> List[str]:
        return _parse_str_list(v)

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),  # backend/.env
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
