"""
Saved views API

Named filter/sort/column presets for the campaign, ad group and keyword tables.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adpilot.api.accounts import resolve_account
from adpilot.api.auth import require_user
from adpilot.models.base import get_db
from adpilot.models.saved_view import DEFAULT_COLUMNS, DEFAULT_SORTING, SavedView
from adpilot.models.user import User
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/saved-views", tags=["saved-views"])

DUPLICATE_NAME = "A view with this name already exists"


def normalize_sorting(sorting: Optional[Dict]) -> Dict:
    """Accept the legacy {field, direction} shape"""
    sorting = sorting or {}
    return {
        "column": sorting.get("column") or sorting.get("field") or DEFAULT_SORTING["column"],
        "direction": sorting.get("direction") or DEFAULT_SORTING["direction"],
    }


def _view_out(view: SavedView) -> Dict:
    data = view.to_dict()
    data["sorting"] = normalize_sorting(view.sorting)
    return data


def _get_owned(db: Session, user: User, view_id: int) -> SavedView:
    view = db.query(SavedView).filter(SavedView.id == view_id, SavedView.user_id == user.id).first()
    if not view:
        raise HTTPException(status_code=404, detail="View not found")
    return view


def _clear_defaults(db: Session, user_id: int, entity_type: str, keep_id: Optional[int] = None):
    query = db.query(SavedView).filter(
        SavedView.user_id == user_id,
        SavedView.entity_type == entity_type,
        SavedView.is_default == True,
    )
    if keep_id is not None:
        query = query.filter(SavedView.id != keep_id)
    query.update({"is_default": False}, synchronize_session=False)


class ViewCreate(BaseModel):
    name: Optional[str] = None
    entity_type: str = "campaign"
    filters: Dict = {}
    sorting: Optional[Dict] = None
    columns: Optional[List[str]] = None
    date_preset: Optional[str] = None
    is_default: bool = False
    is_pinned: bool = False
    icon: Optional[str] = None
    color: Optional[str] = None
    account_id: Optional[int] = None


class ViewUpdate(BaseModel):
    name: Optional[str] = None
    filters: Optional[Dict] = None
    sorting: Optional[Dict] = None
    columns: Optional[List[str]] = None
    date_preset: Optional[str] = None
    is_default: Optional[bool] = None
    is_pinned: Optional[bool] = None
    icon: Optional[str] = None
    color: Optional[str] = None


@router.get("")
async def list_views(
    entity_type: str = Query("campaign"),
    account_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Pinned first, then the default view, then most recently updated"""
    query = db.query(SavedView).filter(
        SavedView.user_id == user.id,
        SavedView.entity_type == entity_type,
    )
    if account_id is not None:
        query = query.filter(or_(SavedView.account_id.is_(None), SavedView.account_id == account_id))

    views = query.order_by(
        SavedView.is_pinned.desc(),
        SavedView.is_default.desc(),
        SavedView.updated_at.desc(),
        SavedView.id.desc(),
    ).all()
    return {"views": [_view_out(v) for v in views]}


@router.post("")
async def create_view(body: ViewCreate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    name = body.name.strip()

    existing = db.query(SavedView).filter(
        SavedView.user_id == user.id,
        SavedView.name == name,
        SavedView.entity_type == body.entity_type,
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail=DUPLICATE_NAME)

    account_id = None
    if body.account_id is not None:
        account_id = resolve_account(db, user, body.account_id, require_token=False).id

    try:
        if body.is_default:
            _clear_defaults(db, user.id, body.entity_type)

        view = SavedView(
            user_id=user.id,
            account_id=account_id,
            name=name,
            entity_type=body.entity_type,
            filters=body.filters or {},
            sorting=normalize_sorting(body.sorting),
            columns=body.columns or list(DEFAULT_COLUMNS),
            date_preset=body.date_preset,
            is_default=body.is_default,
            is_pinned=body.is_pinned,
            icon=body.icon,
            color=body.color,
        )
        db.add(view)
        db.commit()
        db.refresh(view)
        return {"view": _view_out(view)}

    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_NAME)
    except Exception as e:
        db.rollback()
        log.error(f"Error creating saved view: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{view_id}")
async def get_view(view_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return {"view": _view_out(_get_owned(db, user, view_id))}


@router.put("/{view_id}")
async def update_view(view_id: int, body: ViewUpdate, db: Session = Depends(get_db),
                      user: User = Depends(require_user)):
    view = _get_owned(db, user, view_id)
    updates = body.model_dump(exclude_unset=True)

    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Name is required")
        updates["name"] = name
    if "sorting" in updates:
        updates["sorting"] = normalize_sorting(updates["sorting"])

    try:
        if updates.get("is_default"):
            _clear_defaults(db, user.id, view.entity_type, keep_id=view.id)
        for key, value in updates.items():
            setattr(view, key, value)
        db.commit()
        db.refresh(view)
        return {"view": _view_out(view)}

    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_NAME)
    except Exception as e:
        db.rollback()
        log.error(f"Error updating saved view {view_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{view_id}")
async def delete_view(view_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    view = _get_owned(db, user, view_id)
    db.delete(view)
    db.commit()
    return {"success": True}
