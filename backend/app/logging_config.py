"""
日志配置

功能:
- 结构化 JSON 日志格式（便于日志分析）
- 分级日志文件（app.log, error.log）
- 日志轮转（避免文件过大）
- 定时任务告警辅助函数
"""
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from app.config import settings

_log_dir = Path(settings.LOG_DIR)
if not _log_dir.is_absolute():
    _log_dir = Path(__file__).resolve().parent.parent / _log_dir  # backend/logs
_log_dir.mkdir(parents=True, exist_ok=True)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'asctime', 'taskName',
}


class StructuredFormatter(logging.Formatter):
    """结构化 JSON 日志格式化器

    输出格式:
    {
        "timestamp": "2024-01-15T10:30:15.123Z",
        "level": "INFO",
        "logger": "app.services.profit_forecast_service",
        "message": "Snapshot run finished",
        "extra": { ... }  # 可选的额外字段
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.levelno <= logging.DEBUG:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # 通过 extra 参数传入的字段
        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                extra_fields[key] = value
            except (TypeError, ValueError):
                extra_fields[key] = str(value)

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """人类可读的日志格式化器（用于控制台）"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')

        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET if color else ''

        logger_name = record.name
        if logger_name.startswith('app.'):
            logger_name = logger_name[4:]

        formatted = f"{timestamp} {color}{record.levelname:8}{reset} [{logger_name}] {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


# 配置根日志记录器
root_logger = logging.getLogger()
root_logger.setLevel(logging.DEBUG)
root_logger.handlers.clear()

# 控制台处理器（人类可读格式）
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(ReadableFormatter())
root_logger.addHandler(console_handler)

# 文件处理器（JSON 格式，带轮转）
try:
    file_handler = logging.handlers.RotatingFileHandler(
        _log_dir / "app.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)
except OSError as e:
    root_logger.warning("无法创建文件日志处理器: %s", e)

# 错误日志文件（只记录 WARNING 及以上）
try:
    error_handler = logging.handlers.RotatingFileHandler(
        _log_dir / "error.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.WARNING)
    error_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(error_handler)
except OSError as e:
    root_logger.warning("无法创建错误日志处理器: %s", e)

# 第三方库降噪
logging.getLogger("uvicorn").setLevel(logging.INFO)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)
logging.getLogger("fastapi").setLevel(logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("googleapiclient").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


class AlertLevel:
    """告警级别常量"""
    P0_CRITICAL = "P0"  # 致命：服务宕机
    P1_URGENT = "P1"    # 紧急：功能异常
    P2_WARNING = "P2"   # 警告：需要关注


def log_alert(
    logger: logging.Logger,
    level: str,
    title: str,
    message: str,
    context: Optional[dict] = None,
):
    """记录告警日志

    Example:
        log_alert(
            logger,
            AlertLevel.P1_URGENT,
            "利润快照任务失败",
            "写入 profit_forecast_snapshots 失败",
            context={"from": "2024-01-01", "to": "2024-01-14"},
        )
    """
    extra = {
        "alert_level": level,
        "alert_title": title,
    }
    if context:
        extra["context"] = context

    if level == AlertLevel.P0_CRITICAL:
        logger.critical(f"[{level}] {title}: {message}", extra=extra)
    elif level == AlertLevel.P1_URGENT:
        logger.error(f"[{level}] {title}: {message}", extra=extra)
    else:
        logger.warning(f"[{level}] {title}: {message}", extra=extra)
