"""Audit trail writes and reads for changes pushed to Google Ads"""
from typing import Any, List, Optional
from sqlalchemy.orm import Session

from adpilot.models.activity_log import ActivityLog
from adpilot.utils.logger import log

MAX_LIMIT = 200


def log_activity(db: Session, action_type: str, *, user_id: Optional[int] = None,
                 account_id: Optional[int] = None, entity_type: Optional[str] = None,
                 entity_id: Optional[str] = None, entity_name: Optional[str] = None,
                 before_value: Any = None, after_value: Any = None, status: str = "success",
                 error_message: Optional[str] = None, source: str = "manual") -> ActivityLog:
    entry = ActivityLog(
        user_id=user_id,
        account_id=account_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_name=entity_name,
        before_value=before_value,
        after_value=after_value,
        status=status,
        error_message=error_message,
        source=source,
    )
    db.add(entry)
    db.commit()
    log.info(f"Activity: {action_type} {entity_type or ''} {entity_id or ''} ({status}, {source})")
    return entry


def list_activity(db: Session, account_id: Optional[int] = None, entity_type: Optional[str] = None,
                  user_id: Optional[int] = None, limit: int = 50) -> List[ActivityLog]:
    """Newest first, at most 200 rows"""
    query = db.query(ActivityLog)
    if account_id is not None:
        query = query.filter(ActivityLog.account_id == account_id)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    limit = max(1, min(int(limit), MAX_LIMIT))
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
