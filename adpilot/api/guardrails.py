"""Guardrail settings and ad-hoc checks"""
from fastapi import APIRouter, Depends, HTTPException
from typing import Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.auth import require_user
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services import guardrails
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/guardrails", tags=["guardrails"])


class GuardrailSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    allow_pause_all: Optional[bool] = None
    allow_zero_budget: Optional[bool] = None
    max_budget_change_percent: Optional[float] = None
    warn_on_high_performer_pause: Optional[bool] = None
    high_performer_threshold: Optional[float] = None


class GuardrailCheck(BaseModel):
    action: str
    # pause: campaigns to pause ({id, ai_score?}) and every campaign of the account ({id, status})
    targets: List[Dict] = []
    campaigns: List[Dict] = []
    # budget: {id, budget} and the proposed daily budget
    campaign: Optional[Dict] = None
    new_budget: Optional[float] = None


@router.get("")
async def get_settings(db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"settings": guardrails.get_guardrail_settings(db, user.id)}


@router.put("")
async def update_settings(body: GuardrailSettingsUpdate, db: Session = Depends(get_db),
                          user: User = Depends(require_user)):
    updates = body.model_dump(exclude_none=True)
    if "max_budget_change_percent" in updates and updates["max_budget_change_percent"] <= 0:
        raise HTTPException(status_code=400, detail="max_budget_change_percent must be greater than 0")
    if "high_performer_threshold" in updates and not 0 <= updates["high_performer_threshold"] <= 100:
        raise HTTPException(status_code=400, detail="high_performer_threshold must be between 0 and 100")
    try:
        return {"success": True, "settings": guardrails.save_guardrail_settings(db, user.id, updates)}
    except Exception as e:
        db.rollback()
        log.error(f"Error saving guardrail settings: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/check")
async def check(body: GuardrailCheck, db: Session = Depends(get_db), user: User = Depends(require_user)):
    settings = guardrails.get_guardrail_settings(db, user.id)

    if body.action == "pause":
        if not body.targets:
            raise HTTPException(status_code=400, detail="targets are required for a pause check")
        return guardrails.check_pause_guardrails(body.targets, body.campaigns, settings)

    if body.action == "budget":
        if not body.campaign or body.new_budget is None:
            raise HTTPException(status_code=400, detail="campaign and new_budget are required for a budget check")
        return guardrails.check_budget_guardrails(body.campaign, body.new_budget, settings)

    raise HTTPException(status_code=400, detail="action must be pause or budget")
