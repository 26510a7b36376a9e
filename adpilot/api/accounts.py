"""
Google Ads account endpoints

Register, list and remove the Google Ads customers a user manages, plus the
account lookup every Google Ads route goes through.
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from adpilot.api.auth import require_user
from adpilot.connectors.google_ads import build_google_ads_connector
from adpilot.models.account import GoogleAdsAccount
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.config import get_settings
from adpilot.utils.helpers import normalize_customer_id
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def get_connector_factory():
    """Dependency: account -> Google Ads connector"""
    return build_google_ads_connector


def resolve_account(db: Session, user: User, account_id, require_token: bool = True) -> GoogleAdsAccount:
    """Owned account by internal id or Google customer id"""
    if account_id is None or str(account_id).strip() == "":
        raise HTTPException(status_code=400, detail="account_id is required")

    key = str(account_id).strip()
    filters = [GoogleAdsAccount.google_account_id == normalize_customer_id(key)]
    if key.isdigit() and len(key) < 10:
        filters.append(GoogleAdsAccount.id == int(key))

    account = db.query(GoogleAdsAccount).filter(
        GoogleAdsAccount.user_id == user.id,
        or_(*filters),
    ).first()
    if not account:
        raise HTTPException(status_code=404, detail="Google Ads account not found")

    if require_token and not (account.refresh_token or get_settings().google_ads_refresh_token):
        raise HTTPException(status_code=400, detail="No Google OAuth token found. Please re-authenticate.")
    return account


def _account_out(account: GoogleAdsAccount) -> dict:
    return {
        "id": account.id,
        "google_account_id": account.google_account_id,
        "account_name": account.account_name,
        "currency_code": account.currency_code,
        "is_manager": bool(account.is_manager),
        "parent_manager_id": account.parent_manager_id,
        "status": account.status,
        "has_token": bool(account.refresh_token),
        "last_sync_at": account.last_sync_at.isoformat() if account.last_sync_at else None,
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }


class AccountCreate(BaseModel):
    google_account_id: Optional[str] = None
    account_name: Optional[str] = None
    currency_code: str = "USD"
    is_manager: bool = False
    parent_manager_id: Optional[str] = None
    refresh_token: Optional[str] = None


@router.get("")
async def list_accounts(db: Session = Depends(get_db), user: User = Depends(require_user)):
    accounts = db.query(GoogleAdsAccount).filter(
        GoogleAdsAccount.user_id == user.id
    ).order_by(GoogleAdsAccount.account_name).all()
    return {"accounts": [_account_out(a) for a in accounts]}


@router.post("")
async def create_account(body: AccountCreate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not body.google_account_id or not body.google_account_id.strip():
        raise HTTPException(status_code=400, detail="google_account_id is required")

    customer_id = normalize_customer_id(body.google_account_id)
    existing = db.query(GoogleAdsAccount).filter(
        GoogleAdsAccount.user_id == user.id,
        GoogleAdsAccount.google_account_id == customer_id,
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Account already connected")

    try:
        account = GoogleAdsAccount(
            user_id=user.id,
            google_account_id=customer_id,
            account_name=body.account_name or customer_id,
            currency_code=body.currency_code,
            is_manager=body.is_manager,
            parent_manager_id=normalize_customer_id(body.parent_manager_id) if body.parent_manager_id else None,
            refresh_token=body.refresh_token,
            status="active",
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        log.info(f"Connected Google Ads account {customer_id} for user {user.id}")
        return {"success": True, "account": _account_out(account)}
    except Exception as e:
        db.rollback()
        log.error(f"Error connecting account {customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{account_id}")
async def delete_account(account_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    account = db.query(GoogleAdsAccount).filter(
        GoogleAdsAccount.id == account_id,
        GoogleAdsAccount.user_id == user.id,
    ).first()
    if not account:
        raise HTTPException(status_code=404, detail="Google Ads account not found")

    db.delete(account)
    db.commit()
    log.info(f"Removed Google Ads account {account.google_account_id}")
    return {"success": True}
