"""Project status, cancellation and commission routes."""
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from salesdesk import crud
from salesdesk.core.commission import calculate_commission
from salesdesk.core.deals import ProjectRecord
from salesdesk.core.lifecycle import Actor, LifecycleEngine
from salesdesk.database import get_session
from salesdesk.dependencies import get_actor, get_lifecycle
from salesdesk.schemas import (
    CommissionRead,
    MilestoneUpdate,
    ProjectRead,
    ProjectStatusUpdate,
    ResumeRequest,
)

router = APIRouter(prefix="/projects", tags=["Projects"])


def _read(project: ProjectRecord) -> ProjectRead:
    return ProjectRead.model_validate(project)


@router.get("", response_model=list[ProjectRead])
def list_projects(
    owner_id: int | None = Query(default=None, description="Seller user id; defaults to the current user"),
    include_cancelled: bool = Query(default=True),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    projects = engine.list_projects(
        actor, owner_id if owner_id is not None else actor.user_id, include_cancelled=include_cancelled
    )
    return [_read(project) for project in projects]


@router.get("/{project_id}", response_model=ProjectRead)
def get_project(project_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return _read(engine.get_project(actor, project_id))


@router.get("/{project_id}/commission", response_model=CommissionRead)
def project_commission(
    project_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
    db: Session = Depends(get_session),
):
    """Milestone commission recomputed from the stored project and the owner's pay type."""
    project = engine.get_project(actor, project_id)
    profile = crud.get_profile_by_user(db, project.owner_id)
    breakdown = calculate_commission(
        project.system_size_kw,
        project.gross_price_per_watt,
        project.adders,
        profile.pay_type if profile is not None else None,
    )
    return CommissionRead(
        **asdict(breakdown),
        payment_amount=project.payment_amount,
        deal_number=project.deal_number,
    )


@router.post("/{project_id}/status", response_model=ProjectRead)
def set_project_status(
    project_id: str,
    payload: ProjectStatusUpdate,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return _read(engine.set_project_status(actor, project_id, payload.status))


@router.post("/{project_id}/hold", response_model=ProjectRead)
def hold_project(project_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return _read(engine.put_project_on_hold(actor, project_id))


@router.post("/{project_id}/resume", response_model=ProjectRead)
def resume_project(
    project_id: str,
    payload: ResumeRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return _read(engine.resume_project(actor, project_id, payload.status))


@router.post("/{project_id}/cancel", response_model=ProjectRead)
def cancel_project(project_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)):
    return _read(engine.cancel_project(actor, project_id))


@router.post("/{project_id}/reactivate", response_model=ProjectRead)
def reactivate_project(
    project_id: str, actor: Actor = Depends(get_actor), engine: LifecycleEngine = Depends(get_lifecycle)
):
    return _read(engine.reactivate_project(actor, project_id))


@router.post("/{project_id}/milestones", response_model=ProjectRead)
def update_milestones(
    project_id: str,
    payload: MilestoneUpdate,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    return _read(engine.update_project_milestones(actor, project_id, **payload.model_dump(exclude_unset=True)))
