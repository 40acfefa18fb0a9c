"""Shared FastAPI dependencies."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from salesdesk import crud
from salesdesk.auth import User
from salesdesk.core.lifecycle import Actor, LifecycleEngine
from salesdesk.database import get_session
from salesdesk.repository import RecordGateway, SqlRecordGateway
from salesdesk.routers.auth import get_current_user
from salesdesk.services import ReportService


def get_gateway(db: Session = Depends(get_session)) -> RecordGateway:
    return SqlRecordGateway(db)


def get_lifecycle(gateway: RecordGateway = Depends(get_gateway)) -> LifecycleEngine:
    return LifecycleEngine(gateway)


def get_report_service(
    db: Session = Depends(get_session),
    gateway: RecordGateway = Depends(get_gateway),
) -> ReportService:
    return ReportService(db, gateway)


def get_actor(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> Actor:
    """The signed-in user as a lifecycle actor, with their team for managers."""

    managed = crud.managed_owner_ids(db, user) if user.is_manager() else frozenset()
    return Actor(user_id=user.id, role=user.role, managed_owner_ids=managed)
