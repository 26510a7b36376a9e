"""
Automated rules API

CRUD for rules, the template gallery, dry-run simulation and on-demand runs.
Scheduled evaluation lives in adpilot.scheduler.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.accounts import get_connector_factory, resolve_account
from adpilot.api.auth import require_user
from adpilot.models.automated_rule import AutomatedRule, RuleExecutionRecord
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services.rule_runner import RuleRunner
from adpilot.services.rules_engine import (
    ENTITY_TYPES,
    RULE_STATUSES,
    RULE_TEMPLATES,
    SCHEDULES,
    calculate_next_run,
    format_rule_for_display,
    validate_rule,
)
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/automated-rules", tags=["automated-rules"])

EDITABLE_FIELDS = ("name", "description", "entity_type", "entity_filter", "conditions", "actions",
                   "schedule", "enabled", "status")


def _validate(rule: Dict) -> None:
    errors = validate_rule(rule)
    if rule.get("entity_type") and rule["entity_type"] not in ENTITY_TYPES:
        errors.append(f"Entity type must be one of: {', '.join(ENTITY_TYPES)}")
    if rule.get("schedule") and rule["schedule"] not in SCHEDULES:
        errors.append(f"Schedule must be one of: {', '.join(SCHEDULES)}")
    if rule.get("status") and rule["status"] not in RULE_STATUSES:
        errors.append(f"Status must be one of: {', '.join(RULE_STATUSES)}")
    if errors:
        raise HTTPException(status_code=400, detail={"error": "Invalid rule configuration", "details": errors})


def _rule_out(rule: AutomatedRule) -> Dict:
    data = rule.to_dict()
    data["display"] = format_rule_for_display(data)
    return data


def _get_rule(db: Session, user: User, rule_id: int, account_id=None) -> AutomatedRule:
    query = db.query(AutomatedRule).filter(AutomatedRule.id == rule_id, AutomatedRule.user_id == user.id)
    if account_id is not None:
        account = resolve_account(db, user, account_id, require_token=False)
        query = query.filter(AutomatedRule.account_id == account.id)
    rule = query.first()
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


class RuleCreate(BaseModel):
    account_id: Optional[str] = None
    rule: Dict = {}


class RuleUpdate(BaseModel):
    account_id: Optional[str] = None
    rule_id: Optional[int] = None
    updates: Dict = {}


@router.get("")
async def list_rules(account_id: Optional[str] = Query(None), db: Session = Depends(get_db),
                     user: User = Depends(require_user)):
    if not account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    account = resolve_account(db, user, account_id, require_token=False)
    rules = db.query(AutomatedRule).filter(
        AutomatedRule.account_id == account.id,
        AutomatedRule.user_id == user.id,
    ).order_by(AutomatedRule.created_at.desc(), AutomatedRule.id.desc()).all()
    return {"rules": [_rule_out(r) for r in rules]}


@router.get("/templates")
async def get_templates(user: User = Depends(require_user)):
    return {
        "templates": [
            {**template, "display": format_rule_for_display({**template, "enabled": True})}
            for template in RULE_TEMPLATES
        ]
    }


@router.post("")
async def create_rule(body: RuleCreate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not body.account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    _validate(body.rule)
    account = resolve_account(db, user, body.account_id, require_token=False)

    try:
        data = body.rule
        rule = AutomatedRule(
            account_id=account.id,
            user_id=user.id,
            name=data["name"].strip(),
            description=data.get("description"),
            entity_type=data["entity_type"],
            entity_filter=data.get("entity_filter"),
            conditions=data["conditions"],
            actions=data["actions"],
            schedule=data["schedule"],
            enabled=data.get("enabled", True),
            status=data.get("status", "active"),
            next_run=calculate_next_run(data["schedule"]),
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        log.info(f"Created automated rule '{rule.name}' for account {account.google_account_id}")
        return {"success": True, "rule": _rule_out(rule)}

    except Exception as e:
        db.rollback()
        log.error(f"Error creating automated rule: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("")
async def update_rule(body: RuleUpdate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not body.account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    if body.rule_id is None:
        raise HTTPException(status_code=400, detail="rule_id is required")
    rule = _get_rule(db, user, body.rule_id, body.account_id)

    updates = {k: v for k, v in body.updates.items() if k in EDITABLE_FIELDS}
    merged = {**rule.to_dict(), **updates}
    _validate(merged)

    try:
        schedule_changed = "schedule" in updates and updates["schedule"] != rule.schedule
        for key, value in updates.items():
            setattr(rule, key, value.strip() if key == "name" else value)
        if schedule_changed:
            rule.next_run = calculate_next_run(rule.schedule)
        if updates.get("status") == "active":
            rule.last_error = None
        db.commit()
        db.refresh(rule)
        return {"success": True, "rule": _rule_out(rule)}

    except Exception as e:
        db.rollback()
        log.error(f"Error updating automated rule {body.rule_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("")
async def delete_rule(account_id: Optional[str] = Query(None), rule_id: Optional[int] = Query(None),
                      db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    if rule_id is None:
        raise HTTPException(status_code=400, detail="rule_id is required")
    rule = _get_rule(db, user, rule_id, account_id)
    db.delete(rule)
    db.commit()
    log.info(f"Deleted automated rule {rule_id}")
    return {"success": True}


def _account_for(db: Session, user: User, rule: AutomatedRule):
    return resolve_account(db, user, rule.account_id)


@router.post("/{rule_id}/simulate")
async def simulate_rule(rule_id: int, db: Session = Depends(get_db), user: User = Depends(require_user),
                        connector_factory: Callable = Depends(get_connector_factory)):
    """Evaluate against cached (or live) entities without changing anything"""
    rule = _get_rule(db, user, rule_id)
    account = _account_for(db, user, rule)
    try:
        result = await RuleRunner(db, connector_factory).simulate(rule, account)
        return {"success": True, "simulation": result}
    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error simulating rule {rule_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{rule_id}/run")
async def run_rule(rule_id: int, dry_run: bool = Query(False), db: Session = Depends(get_db),
                   user: User = Depends(require_user),
                   connector_factory: Callable = Depends(get_connector_factory)):
    rule = _get_rule(db, user, rule_id)
    account = _account_for(db, user, rule)
    try:
        record = await RuleRunner(db, connector_factory).run_rule(rule, account, dry_run=dry_run)
        return {"success": record.status != "failed", "execution": record.to_dict(), "rule": _rule_out(rule)}
    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error running rule {rule_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{rule_id}/executions")
async def list_executions(rule_id: int, limit: int = Query(20, ge=1, le=100), db: Session = Depends(get_db),
                          user: User = Depends(require_user)):
    rule = _get_rule(db, user, rule_id)
    records: List[RuleExecutionRecord] = db.query(RuleExecutionRecord).filter(
        RuleExecutionRecord.rule_id == rule.id
    ).order_by(RuleExecutionRecord.executed_at.desc(), RuleExecutionRecord.id.desc()).limit(limit).all()
    return {"executions": [r.to_dict() for r in records]}
