"""Application service layer for earnings reports."""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Iterable

from sqlalchemy.orm import Session

from salesdesk import crud
from salesdesk.core.aggregation import (
    SellerSummary,
    TeamMember,
    TeamSummary,
    active_projects_for_year,
    company_stats,
    filter_by_office,
    summarize_seller,
    summarize_team,
)
from salesdesk.core.deals import PROJECTS, SNAPSHOTS, ProjectRecord, utcnow_iso
from salesdesk.core.lifecycle import Actor, DealNotFoundError, PermissionDeniedError
from salesdesk.models import SellerProfile
from salesdesk.repository import RecordGateway, StorageError

logger = logging.getLogger(__name__)


class ReportService:
    """Builds seller, team and company summaries from stored projects.

    Figures are recomputed on every call. Each result is also written to the
    snapshots collection as a disposable cache; the lifecycle evicts those
    first when the store runs out of room.
    """

    def __init__(self, db: Session, gateway: RecordGateway) -> None:
        self.db = db
        self.gateway = gateway

    def projects_for(self, owner_ids: Iterable[int]) -> list[ProjectRecord]:
        projects: list[ProjectRecord] = []
        for owner_id in owner_ids:
            projects.extend(ProjectRecord.from_record(r) for r in self.gateway.list_by_owner(PROJECTS, owner_id))
        return projects

    def seller_report(self, actor: Actor, owner_id: int, year: int) -> tuple[SellerSummary, list[ProjectRecord]]:
        if not actor.can_act_for(owner_id):
            raise PermissionDeniedError("You do not have access to this seller's earnings.")
        profile = crud.get_profile_by_user(self.db, owner_id)
        pay_type = profile.pay_type if profile is not None else None
        projects = self.projects_for([owner_id])
        summary = summarize_seller(projects, pay_type, year, owner_id=owner_id)
        self._store_snapshot(owner_id, f"seller-{owner_id}-{year}", summary.to_dict())
        return summary, projects

    def team_report(
        self, actor: Actor, manager_profile_id: int, year: int
    ) -> tuple[TeamSummary, list[ProjectRecord]]:
        manager = crud.get_profile(self.db, manager_profile_id)
        if manager is None:
            raise DealNotFoundError(f"No seller profile with id {manager_profile_id}.")
        if not (actor.is_admin or actor.user_id == manager.user_id):
            raise PermissionDeniedError("Only the team's manager or an admin can view team earnings.")

        team = crud.list_team(self.db, manager)
        projects = self.projects_for(member.user_id for member in team)
        summary = summarize_team(projects, manager.manager_type, year, members=[_member(p) for p in team])
        self._store_snapshot(manager.user_id, f"team-{manager.id}-{year}", summary.to_dict())
        return summary, projects

    def company_report(self, actor: Actor, year: int, office: str | None = None) -> dict[str, Any]:
        if not actor.is_admin:
            raise PermissionDeniedError("Company-wide figures are restricted to admins.")
        projects = [ProjectRecord.from_record(r) for r in self.gateway.get_all(PROJECTS)]
        if office:
            projects = filter_by_office(projects, office)
        active = active_projects_for_year(projects, year)
        return {
            "year": year,
            "office": office,
            "deal_count": len(active),
            "sellers": len({p.owner_id for p in active}),
            "stats": asdict(company_stats(active)),
        }

    def _store_snapshot(self, owner_id: int, snapshot_id: str, summary: dict[str, Any]) -> None:
        record = {
            "id": snapshot_id,
            "owner_id": owner_id,
            "kind": "snapshot",
            "computed_at": utcnow_iso(),
            "summary": summary,
        }
        try:
            self.gateway.put(SNAPSHOTS, record)
        except StorageError as exc:
            # Snapshots are a convenience copy; the report itself is already computed.
            logger.warning("Skipping summary snapshot %s: %s", snapshot_id, exc)


def _member(profile: SellerProfile) -> TeamMember:
    return TeamMember(owner_id=profile.user_id, pay_type=profile.pay_type, display_name=profile.display_name)
