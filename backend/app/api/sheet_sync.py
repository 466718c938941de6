"""
Google Sheets 同步 API
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.agent import Agent
from app.services.google_sheet_sync import GoogleSheetSyncService, sheet_sync_debouncer

router = APIRouter(prefix="/sheet-sync", tags=["sheet-sync"])


@router.post("/agents/{agent_id}")
def sync_agent(agent_id: int, immediate: bool = False, db: Session = Depends(get_db)):
    """同步单个代理：默认加入防抖队列，immediate=true 时立即同步并返回结果"""
    if not db.query(Agent.id).filter(Agent.id == agent_id).first():
        raise HTTPException(status_code=404, detail="代理不存在")
    if immediate:
        return GoogleSheetSyncService(db).sync_agent(agent_id)
    sheet_sync_debouncer.schedule(agent_id)
    return {"scheduled": True, "agent_id": agent_id}


@router.post("/all")
def sync_all_agents(db: Session = Depends(get_db)):
    return GoogleSheetSyncService(db).sync_all_agents()
