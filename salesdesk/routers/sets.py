"""Routes for appointment Sets and their conversion to Projects."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from salesdesk import crud
from salesdesk.core.lifecycle import Actor, LifecycleEngine
from salesdesk.database import get_session
from salesdesk.dependencies import get_actor, get_lifecycle
from salesdesk.schemas import (
    CloseSetRequest,
    ConvertSetRequest,
    ProjectRead,
    RescheduleRequest,
    SetCreate,
    SetRead,
)

router = APIRouter(prefix="/sets", tags=["Sets"])


@router.get("", response_model=list[SetRead])
def list_sets(
    owner_id: int | None = Query(default=None, description="Seller user id; defaults to the current user"),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return engine.list_sets(actor, owner_id if owner_id is not None else actor.user_id)


@router.post("", response_model=SetRead, status_code=201)
def create_set(
    payload: SetCreate,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    owner_id = payload.owner_id if payload.owner_id is not None else actor.user_id
    return engine.create_set(actor, owner_id, payload.customer_name, **payload.details())


@router.post("/{set_id}/reschedule", response_model=SetRead)
def reschedule_set(
    set_id: str,
    payload: RescheduleRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return engine.reschedule_set(actor, set_id, payload.appointment_date, payload.appointment_time)


@router.post("/{set_id}/cancel", response_model=SetRead)
def cancel_set(set_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return engine.cancel_set(actor, set_id)


@router.post("/{set_id}/reactivate", response_model=SetRead)
def reactivate_set(set_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return engine.reactivate_set(actor, set_id)


@router.post("/{set_id}/close", response_model=SetRead)
def mark_set_closed(
    set_id: str,
    payload: CloseSetRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return engine.mark_set_closed(actor, set_id, confirmed=payload.confirmed)


@router.post("/{set_id}/not-closed", response_model=SetRead)
def mark_set_not_closed(set_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return engine.mark_set_not_closed(actor, set_id)


@router.post("/{set_id}/convert", status_code=201)
def convert_set(
    set_id: str,
    payload: ConvertSetRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
    db: Session = Depends(get_session),
):
    """Move a closed Set to Projects and report the stamped tier payment."""
    source = engine.load_deal(actor, set_id)
    profile = crud.get_profile_by_user(db, source.owner_id)
    result = engine.convert_set(
        actor,
        set_id,
        payload.to_form(),
        verified=payload.verified,
        office=profile.office if profile is not None else None,
    )
    owner = crud.get_user(db, result.project.owner_id)
    return {
        "ok": True,
        "project": ProjectRead.model_validate(result.project).model_dump(),
        "deal_number": result.project.deal_number,
        "payment_amount": result.project.payment_amount,
        "rate_per_kw": result.tier.rate_per_kw,
        "tier": result.tier.name,
        # Admins keep their role title regardless of deal count.
        "rep_title": None if owner is not None and owner.is_admin() else result.rep_title,
        "recovered": result.recovered,
    }
