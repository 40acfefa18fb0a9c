from __future__ import annotations

from io import BytesIO
from typing import Iterable, Mapping

import pandas as pd

from salesdesk.core.aggregation import SellerSummary, TeamSummary, project_year
from salesdesk.core.commission import ADDER_LABELS, calculate_commission
from salesdesk.core.deals import ProjectRecord
from salesdesk.core.formatting import format_display_date, format_display_datetime

PROJECT_COLUMNS = [
    "deal_number",
    "project_id",
    "customer_name",
    "status",
    "install_date",
    "system_size_kw",
    "gross_price_per_watt",
    "adders",
    "contract_price",
    "total_cost",
    "milestone_commission",
    "payment_amount",
    "rate_per_kw",
    "payment_date",
    "cancelled_at",
]


def _projects_df(projects: Iterable[ProjectRecord], pay_types: Mapping[int, str], year: int | None) -> pd.DataFrame:
    rows = []
    for item in sorted(projects, key=lambda p: (p.owner_id, p.deal_number)):
        if year is not None and project_year(item) != year:
            continue
        breakdown = calculate_commission(
            item.system_size_kw, item.gross_price_per_watt, item.adders, pay_types.get(item.owner_id)
        )
        rows.append(
            {
                "deal_number": item.deal_number,
                "project_id": item.id,
                "owner_id": item.owner_id,
                "customer_name": item.customer_name,
                "status": item.status.replace("_", " ").title(),
                "install_date": format_display_date(item.install_date),
                "system_size_kw": item.system_size_kw,
                "gross_price_per_watt": item.gross_price_per_watt,
                "adders": ", ".join(ADDER_LABELS[name] for name, on in item.adders.items() if on),
                "contract_price": breakdown.contract_price if breakdown.priced else None,
                "total_cost": breakdown.total_cost if breakdown.priced else None,
                # Cancelled deals stay listed but earn nothing.
                "milestone_commission": 0.0 if item.is_cancelled else breakdown.milestone_commission,
                "payment_amount": item.payment_amount,
                "rate_per_kw": item.commission_rate_per_kw,
                "payment_date": format_display_date(item.payment_date),
                "cancelled_at": format_display_datetime(item.cancelled_at),
            }
        )
    if not rows:
        return pd.DataFrame(columns=["owner_id", *PROJECT_COLUMNS])
    return pd.DataFrame(rows)


def _seller_summary_df(summary: SellerSummary) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"metric": "Year", "value": summary.year},
            {"metric": "Pay type", "value": summary.pay_type},
            {"metric": "Active deals", "value": summary.deal_count},
            {"metric": "Cancelled deals", "value": summary.cancelled_count},
            {"metric": "Tier 1 deals", "value": summary.tier_1_deals},
            {"metric": "Tier 2 deals", "value": summary.tier_2_deals},
            {"metric": "Milestone commission", "value": round(summary.total_milestone_commission, 2)},
            {"metric": "Upfront pay", "value": round(summary.upfront_pay, 2)},
            {"metric": "Total earnings", "value": round(summary.total_earnings, 2)},
            {"metric": "Tier payments stamped", "value": round(summary.total_payment_amount, 2)},
            {"metric": "Average system size (kW)", "value": round(summary.company.avg_system_size_kw, 2)},
            {"metric": "Average contract value", "value": round(summary.company.avg_contract_value, 2)},
            {"metric": "Total revenue", "value": round(summary.company.total_revenue, 2)},
        ]
    )


def _team_members_df(summary: TeamSummary) -> pd.DataFrame:
    rows = [
        {
            "owner_id": member.owner_id,
            "pay_type": member.pay_type,
            "deals": member.deal_count,
            "milestone_commission": round(member.total_milestone_commission, 2),
            "upfront_pay": round(member.upfront_pay, 2),
            "total_earnings": round(member.total_earnings, 2),
        }
        for member in summary.members
    ]
    return pd.DataFrame(rows, columns=["owner_id", "pay_type", "deals", "milestone_commission", "upfront_pay", "total_earnings"])


def export_seller_workbook(summary: SellerSummary, projects: Iterable[ProjectRecord]) -> bytes:
    """Return an XLSX workbook (bytes) with a seller's yearly summary and deals."""

    df_summary = _seller_summary_df(summary)
    df_projects = _projects_df(projects, {summary.owner_id: summary.pay_type}, summary.year)

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df_summary.to_excel(writer, sheet_name="Summary", index=False)
        df_projects.to_excel(writer, sheet_name="Projects", index=False)
    buffer.seek(0)
    return buffer.getvalue()


def export_team_workbook(summary: TeamSummary, projects: Iterable[ProjectRecord]) -> bytes:
    """Return an XLSX workbook (bytes) with the manager override, members and team deals."""

    df_team = pd.DataFrame(
        [
            {"metric": "Year", "value": summary.year},
            {"metric": "Manager type", "value": summary.manager_type},
            {"metric": "Manager rate ($/kW)", "value": summary.manager_rate},
            {"metric": "Active deals", "value": summary.deal_count},
            {"metric": "Total system size (kW)", "value": round(summary.total_system_size_kw, 2)},
            {"metric": "Manager commission", "value": round(summary.manager_commission, 2)},
            {"metric": "Team revenue", "value": round(summary.team_revenue, 2)},
        ]
    )
    pay_types = {member.owner_id: member.pay_type for member in summary.members}

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df_team.to_excel(writer, sheet_name="Team", index=False)
        _team_members_df(summary).to_excel(writer, sheet_name="Members", index=False)
        _projects_df(projects, pay_types, summary.year).to_excel(writer, sheet_name="Projects", index=False)
    buffer.seek(0)
    return buffer.getvalue()
