"""Earnings report routes for sellers, teams and the whole company."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response

from salesdesk.core.lifecycle import Actor
from salesdesk.dependencies import get_actor, get_report_service
from salesdesk.exporting.xlsx import export_seller_workbook, export_team_workbook
from salesdesk.services import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _year(value: int | None) -> int:
    return value if value is not None else date.today().year


@router.get("/seller")
def seller_report(
    owner_id: int | None = Query(default=None),
    year: int | None = Query(default=None, ge=2000, le=2100),
    actor: Actor = Depends(get_actor),
    service: ReportService = Depends(get_report_service),
):
    summary, _ = service.seller_report(actor, owner_id if owner_id is not None else actor.user_id, _year(year))
    return JSONResponse(summary.to_dict())


@router.get("/seller/export-xlsx")
def seller_report_xlsx(
    owner_id: int | None = Query(default=None),
    year: int | None = Query(default=None, ge=2000, le=2100),
    actor: Actor = Depends(get_actor),
    service: ReportService = Depends(get_report_service),
):
    summary, projects = service.seller_report(
        actor, owner_id if owner_id is not None else actor.user_id, _year(year)
    )
    content = export_seller_workbook(summary, projects)
    filename = f"earnings_{summary.owner_id}_{summary.year}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/team/{manager_profile_id}")
def team_report(
    manager_profile_id: int,
    year: int | None = Query(default=None, ge=2000, le=2100),
    actor: Actor = Depends(get_actor),
    service: ReportService = Depends(get_report_service),
):
    summary, _ = service.team_report(actor, manager_profile_id, _year(year))
    return JSONResponse(summary.to_dict())


@router.get("/team/{manager_profile_id}/export-xlsx")
def team_report_xlsx(
    manager_profile_id: int,
    year: int | None = Query(default=None, ge=2000, le=2100),
    actor: Actor = Depends(get_actor),
    service: ReportService = Depends(get_report_service),
):
    summary, projects = service.team_report(actor, manager_profile_id, _year(year))
    filename = f"team_{manager_profile_id}_{summary.year}.xlsx"
    return Response(
        content=export_team_workbook(summary, projects),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/company")
def company_report(
    year: int | None = Query(default=None, ge=2000, le=2100),
    office: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    service: ReportService = Depends(get_report_service),
):
    return JSONResponse(service.company_report(actor, _year(year), office=office))
