"""Seller profile routes; pay type and team assignment are manager/admin only."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from salesdesk import crud
from salesdesk.auth import User
from salesdesk.database import get_session
from salesdesk.routers.auth import get_admin_user, get_current_user
from salesdesk.schemas import (
    ManagerAssignment,
    PayTypeUpdate,
    SellerProfileCreate,
    SellerProfileRead,
)

router = APIRouter(prefix="/sellers", tags=["Sellers"])


def _require_profile(db: Session, profile_id: int):
    profile = crud.get_profile(db, profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Seller profile not found")
    return profile


@router.get("/me", response_model=SellerProfileRead)
def my_profile(db: Session = Depends(get_session), user: User = Depends(get_current_user)):
    profile = crud.get_profile_by_user(db, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="No seller profile for this account")
    return profile


@router.get("", response_model=list[SellerProfileRead])
def list_sellers(
    office: str | None = None,
    db: Session = Depends(get_session),
    user: User = Depends(get_admin_user),  # noqa: ARG001 - ensure admin
):
    return crud.list_profiles(db, office=office)


@router.post("", response_model=SellerProfileRead, status_code=201)
def create_seller(
    payload: SellerProfileCreate,
    db: Session = Depends(get_session),
    user: User = Depends(get_admin_user),  # noqa: ARG001 - ensure admin
):
    try:
        return crud.create_profile(db, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/{profile_id}/pay-type", response_model=SellerProfileRead)
def update_pay_type(
    profile_id: int,
    payload: PayTypeUpdate,
    db: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """Admins may change anyone's pay type; managers only their direct reports'."""
    profile = _require_profile(db, profile_id)
    if not user.is_admin():
        if not user.is_manager() or profile.user_id not in crud.managed_owner_ids(db, user):
            raise HTTPException(status_code=403, detail="Only a manager or admin can change pay type")
    return crud.update_pay_type(db, profile, payload.pay_type)


@router.post("/{profile_id}/manager", response_model=SellerProfileRead)
def assign_manager(
    profile_id: int,
    payload: ManagerAssignment,
    db: Session = Depends(get_session),
    user: User = Depends(get_admin_user),  # noqa: ARG001 - ensure admin
):
    profile = _require_profile(db, profile_id)
    manager = _require_profile(db, payload.manager_id) if payload.manager_id is not None else None
    try:
        return crud.assign_manager(db, profile, manager)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
