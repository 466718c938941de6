"""
Google Sheets 同步服务
将代理的订单汇总（Summary4）写入代理自己的 Google Sheet

订单编辑频繁，使用 SheetSyncDebouncer 合并短时间内的多次修改：
每次修改重置该代理的计时器，到期后只同步一次。同步失败只记日志，不影响触发请求。
"""
import base64
import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set
from urllib.parse import unquote

from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.database import SessionLocal
from app.models.agent import Agent
from app.models.order import Order

logger = logging.getLogger(__name__)

SHEET_MAX_RETRIES = 3
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

SHEET_HEADER = [
    "Order Date", "Customer", "Product", "Quantity", "Agent",
    "Ad Group ID", "Production Status", "Order Status", "Tracking Number",
    "Submit Link", "Deposit", "COD", "Manual Payment",
]


def _get_sheets_credentials():
    """加载 Sheets 服务账号（Base64 优先，其次文件）"""
    from google.oauth2 import service_account

    if settings.GOOGLE_SHEETS_SERVICE_ACCOUNT_JSON_BASE64:
        try:
            raw = base64.b64decode(settings.GOOGLE_SHEETS_SERVICE_ACCOUNT_JSON_BASE64).decode("utf-8")
            info = json.loads(raw)
            return service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
        except (ValueError, UnicodeDecodeError) as e:
            logger.error("Sheets 服务账号 Base64 解析失败: %s", e)
    path = settings.GOOGLE_SHEETS_SERVICE_ACCOUNT_FILE or ""
    if path:
        p = Path(path)
        if not p.is_absolute():
            p = Path(__file__).resolve().parents[2] / p
        if p.exists():
            try:
                return service_account.Credentials.from_service_account_file(str(p), scopes=SHEETS_SCOPES)
            except ValueError as e:
                logger.error("Sheets 服务账号文件加载失败: %s", e)
    return None


def build_sheets_service():
    """创建 Sheets API 客户端，未配置凭据时返回 None"""
    creds = _get_sheets_credentials()
    if not creds:
        return None
    from googleapiclient.discovery import build

    return build("sheets", "v4", credentials=creds, cache_discovery=False)


def extract_spreadsheet_id(link: str) -> Optional[str]:
    """
    从 Google Sheet / Drive 链接提取 spreadsheetId
    支持 /spreadsheets/d/<id>、?id=<id>，以及直接粘贴的 id（>= 20 个字符）
    """
    if not link:
        return None
    cleaned = re.sub(r"\s+", "", unquote(str(link)))
    m = re.search(r"spreadsheets/d/([a-zA-Z0-9_-]+)", cleaned)
    if m:
        return m.group(1)
    m = re.search(r"[?&]id=([a-zA-Z0-9_-]+)", cleaned)
    if m:
        return m.group(1)
    m = re.search(r"([a-zA-Z0-9_-]{20,})", cleaned)
    return m.group(1) if m else None


def _execute_with_retry(request) -> Any:
    """执行 Sheets 请求，429 时指数退避重试"""
    from googleapiclient.errors import HttpError

    for attempt in range(SHEET_MAX_RETRIES):
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status == 429 and attempt < SHEET_MAX_RETRIES - 1:
                wait = 5 * (2 ** attempt)
                logger.warning("Sheets API 限流，%ds 后重试", wait)
                time.sleep(wait)
            else:
                raise
    return None


def _format_date(value) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


class GoogleSheetSyncService:
    """把代理的订单写入其 Google Sheet 的 Summary4 标签页"""

    def __init__(
        self,
        db: Session,
        sheets_factory: Callable[[], Any] = build_sheets_service,
        sheet_name: Optional[str] = None,
    ):
        self.db = db
        self.sheets_factory = sheets_factory
        self.sheet_name = sheet_name or settings.SUMMARY_SHEET_NAME

    def build_rows_for_agent(self, agent_id: int) -> List[List[Any]]:
        orders = (
            self.db.query(Order)
            .options(joinedload(Order.product), joinedload(Order.agent))
            .filter(Order.agent_id == agent_id, Order.is_active == True)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
        logger.info("代理 %s 共 %s 条订单待同步", agent_id, len(orders))
        return [
            [
                _format_date(o.created_at),
                o.customer_name or "",
                o.product.name if o.product else "",
                o.quantity or 0,
                o.agent.full_name if o.agent else "",
                o.ad_group_id or "0",
                o.production_status or "",
                o.order_status or "",
                o.tracking_number or "",
                o.submit_link or "",
                o.deposit_amount or 0,
                o.cod_amount or 0,
                o.manual_payment or 0,
            ]
            for o in orders
        ]

    def ensure_sheet_exists(self, sheets, spreadsheet_id: str, title: str) -> None:
        """标签页不存在时创建"""
        meta = _execute_with_retry(sheets.spreadsheets().get(spreadsheetId=spreadsheet_id))
        exists = any(
            (s.get("properties") or {}).get("title") == title
            for s in (meta or {}).get("sheets", [])
        )
        if not exists:
            _execute_with_retry(sheets.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
            ))
            logger.info("已创建标签页 '%s' (spreadsheet %s)", title, spreadsheet_id)

    def write_rows(self, agent: Agent, rows: List[List[Any]]) -> Dict[str, Any]:
        """清空 A2:Z 后写入表头与数据；API 错误向上抛出"""
        spreadsheet_id = extract_spreadsheet_id(agent.google_drive_link or "")
        if not spreadsheet_id:
            logger.warning("代理 %s 未配置有效的 Google Sheet 链接", agent.id)
            return {"success": False, "skipped": True, "message": "未配置有效的 Google Sheet 链接"}

        sheets = self.sheets_factory()
        if sheets is None:
            logger.warning("未配置 Google Sheets 服务账号，跳过同步")
            return {"success": False, "skipped": True, "message": "未配置 Google Sheets 服务账号"}

        self.ensure_sheet_exists(sheets, spreadsheet_id, self.sheet_name)
        values_api = sheets.spreadsheets().values()
        _execute_with_retry(values_api.clear(spreadsheetId=spreadsheet_id, range=f"{self.sheet_name}!A2:Z"))
        if rows:
            _execute_with_retry(values_api.update(
                spreadsheetId=spreadsheet_id,
                range=f"{self.sheet_name}!A1",
                valueInputOption="RAW",
                body={"values": [SHEET_HEADER]},
            ))
            _execute_with_retry(values_api.update(
                spreadsheetId=spreadsheet_id,
                range=f"{self.sheet_name}!A2",
                valueInputOption="RAW",
                body={"values": rows},
            ))
        logger.info("已写入 %s 行到 %s (%s)", len(rows), self.sheet_name, spreadsheet_id)
        return {"success": True, "rows": len(rows)}

    def sync_agent(self, agent_id: int) -> Dict[str, Any]:
        agent = self.db.query(Agent).filter(Agent.id == agent_id).first()
        if agent is None:
            logger.warning("代理不存在: %s", agent_id)
            return {"success": False, "skipped": True, "message": f"代理不存在: {agent_id}"}
        rows = self.build_rows_for_agent(agent_id)
        try:
            return self.write_rows(agent, rows)
        except Exception as e:
            logger.exception("代理 %s 同步 Google Sheet 失败: %s", agent_id, e)
            return {"success": False, "message": str(e)}

    def sync_all_agents(self) -> Dict[str, Any]:
        """同步所有配置了 Google Sheet 链接的代理"""
        agents = self.db.query(Agent).filter(
            Agent.is_active == True,
            Agent.google_drive_link.isnot(None),
            Agent.google_drive_link != "",
        ).all()
        result = {"total": len(agents), "success": 0, "failed": 0, "errors": []}
        for agent in agents:
            r = self.sync_agent(agent.id)
            if r.get("success"):
                result["success"] += 1
            else:
                result["failed"] += 1
                result["errors"].append(f"Agent {agent.id}: {r.get('message')}")
        logger.info("Summary 同步完成: %s/%s 成功", result["success"], result["total"])
        return result


def sync_agent_in_new_session(agent_id: int) -> Dict[str, Any]:
    """计时器线程中使用独立会话"""
    db = SessionLocal()
    try:
        return GoogleSheetSyncService(db).sync_agent(agent_id)
    finally:
        db.close()


class SheetSyncDebouncer:
    """
    按代理合并同步请求：新的请求取消并重置计时器。
    同一代理同一时刻只有一个同步在执行；执行期间到期的计时器不会并发写表，
    而是在当前同步结束后再补跑一次。
    """

    def __init__(self, sync_fn: Callable[[int], Any], delay_seconds: Optional[float] = None):
        self.sync_fn = sync_fn
        self.delay_seconds = settings.SHEET_SYNC_DEBOUNCE_SECONDS if delay_seconds is None else delay_seconds
        self._pending: Dict[int, threading.Timer] = {}
        self._running: Set[int] = set()
        self._rerun: Set[int] = set()
        self._lock = threading.Lock()

    def schedule(self, agent_id: int, delay_seconds: Optional[float] = None) -> None:
        delay = self.delay_seconds if delay_seconds is None else delay_seconds
        timer = threading.Timer(delay, self._run, args=(agent_id,))
        timer.daemon = True
        with self._lock:
            previous = self._pending.get(agent_id)
            if previous is not None:
                previous.cancel()
            self._pending[agent_id] = timer
            timer.start()
        logger.info("已计划代理 %s 的 Sheet 同步（%.1fs 后）", agent_id, delay)

    def _run(self, agent_id: int) -> None:
        with self._lock:
            current = self._pending.get(agent_id)
            if current is not threading.current_thread():
                # 已被取消或被更新的计时器替换
                return
            del self._pending[agent_id]
            if agent_id in self._running:
                self._rerun.add(agent_id)
                logger.info("代理 %s 的 Sheet 同步仍在进行，结束后补跑", agent_id)
                return
            self._running.add(agent_id)
        try:
            self.sync_fn(agent_id)
        except Exception as e:
            logger.error("代理 %s 的 Sheet 同步失败: %s", agent_id, e, exc_info=True)
        finally:
            with self._lock:
                self._running.discard(agent_id)
                rerun = agent_id in self._rerun
                self._rerun.discard(agent_id)
            if rerun:
                self.schedule(agent_id)

    def cancel(self, agent_id: int) -> bool:
        with self._lock:
            timer = self._pending.pop(agent_id, None)
            self._rerun.discard(agent_id)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._pending.values())
            self._pending.clear()
            self._rerun.clear()
        for t in timers:
            t.cancel()

    def pending_agents(self) -> List[int]:
        with self._lock:
            return sorted(self._pending)


sheet_sync_debouncer = SheetSyncDebouncer(sync_agent_in_new_session)
