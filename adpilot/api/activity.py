"""Activity log of changes pushed to Google Ads"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.orm import Session

from adpilot.api.accounts import resolve_account
from adpilot.api.auth import require_user
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services.activity_log_service import MAX_LIMIT, list_activity

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("")
async def get_activity(
    account_id: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Newest first; limit is capped at 200"""
    internal_id = None
    if account_id:
        internal_id = resolve_account(db, user, account_id, require_token=False).id

    rows = list_activity(db, account_id=internal_id, entity_type=entity_type, user_id=user.id,
                         limit=min(limit, MAX_LIMIT))
    return {"activities": [r.to_dict() for r in rows]}
