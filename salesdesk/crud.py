"""Database access helpers for users and seller profiles."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.auth import User
from salesdesk.core.commission import normalize_pay_type
from salesdesk.models import SellerProfile
from salesdesk.schemas import SellerProfileCreate


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_profile(db: Session, profile_id: int) -> SellerProfile | None:
    return db.get(SellerProfile, profile_id)


def get_profile_by_user(db: Session, user_id: int) -> SellerProfile | None:
    stmt = select(SellerProfile).where(SellerProfile.user_id == user_id)
    return db.execute(stmt).scalars().first()


def list_profiles(db: Session, office: str | None = None) -> Sequence[SellerProfile]:
    stmt = select(SellerProfile)
    if office:
        stmt = stmt.where(SellerProfile.office == office)
    return db.execute(stmt.order_by(SellerProfile.display_name)).scalars().all()


def create_profile(db: Session, payload: SellerProfileCreate) -> SellerProfile:
    if get_user(db, payload.user_id) is None:
        raise ValueError(f"User {payload.user_id} does not exist.")
    if get_profile_by_user(db, payload.user_id) is not None:
        raise ValueError(f"User {payload.user_id} already has a seller profile.")
    if payload.manager_id is not None and get_profile(db, payload.manager_id) is None:
        raise ValueError(f"Manager profile {payload.manager_id} does not exist.")
    profile = SellerProfile(**payload.model_dump())
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def update_pay_type(db: Session, profile: SellerProfile, pay_type: str) -> SellerProfile:
    profile.pay_type = normalize_pay_type(pay_type)
    profile.updated_at = datetime.now()
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def assign_manager(db: Session, profile: SellerProfile, manager: SellerProfile | None) -> SellerProfile:
    if manager is not None and manager.id == profile.id:
        raise ValueError("A seller cannot manage themselves.")
    profile.manager_id = manager.id if manager is not None else None
    profile.updated_at = datetime.now()
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def list_direct_reports(db: Session, manager: SellerProfile) -> Sequence[SellerProfile]:
    stmt = (
        select(SellerProfile)
        .where(SellerProfile.manager_id == manager.id)
        .order_by(SellerProfile.display_name)
    )
    return db.execute(stmt).scalars().all()


def list_team(db: Session, manager: SellerProfile) -> list[SellerProfile]:
    """The manager followed by their direct reports."""

    return [manager, *list_direct_reports(db, manager)]


def managed_owner_ids(db: Session, user: User) -> frozenset[int]:
    """User ids of the sellers a manager may act for."""

    profile = get_profile_by_user(db, user.id)
    if profile is None:
        return frozenset()
    return frozenset(member.user_id for member in list_direct_reports(db, profile))
