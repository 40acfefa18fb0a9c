"""Fold a seller's or a team's projects into yearly earnings summaries."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from salesdesk.core.commission import (
    contract_price,
    is_priced,
    milestone_commission,
    normalize_pay_type,
    upfront_flat_rate,
)
from salesdesk.core.deals import ProjectRecord
from salesdesk.core.formatting import parse_date, parse_float
from salesdesk.core.tiers import count_deals_by_tier

DEFAULT_MANAGER_RATE = 175

MANAGER_RATES: Mapping[str, int] = MappingProxyType(
    {
        "AreaManager": 100,
        "Regional": 300,
        "default": DEFAULT_MANAGER_RATE,
    }
)


@dataclass(frozen=True)
class CompanyStats:
    priced_projects: int
    total_revenue: float
    avg_system_size_kw: float
    avg_contract_value: float


@dataclass(frozen=True)
class SellerSummary:
    owner_id: int
    year: int
    pay_type: str
    deal_count: int
    cancelled_count: int
    tier_1_deals: int
    tier_2_deals: int
    total_milestone_commission: float
    upfront_pay: float
    total_earnings: float
    total_payment_amount: float
    unpriced_projects: int
    company: CompanyStats

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TeamMember:
    owner_id: int
    pay_type: str = "Rookie"
    display_name: str = ""


@dataclass(frozen=True)
class TeamSummary:
    year: int
    manager_type: str
    manager_rate: int
    deal_count: int
    total_system_size_kw: float
    manager_commission: float
    team_revenue: float
    members: list[SellerSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def manager_rate(manager_type: Optional[str]) -> int:
    """Override rate per kW; unrecognised or missing types earn the default rate."""

    return MANAGER_RATES.get(manager_type or "default", DEFAULT_MANAGER_RATE)


def project_year(project: ProjectRecord) -> Optional[int]:
    """Reporting year of a project, taken from its install date."""

    install = parse_date(project.install_date)
    return install.year if install is not None else None


def active_projects_for_year(projects: Iterable[ProjectRecord], year: int) -> list[ProjectRecord]:
    return [p for p in projects if not p.is_cancelled and project_year(p) == year]


def filter_by_office(projects: Iterable[ProjectRecord], office: str) -> list[ProjectRecord]:
    return [p for p in projects if p.office == office]


def company_stats(projects: Iterable[ProjectRecord]) -> CompanyStats:
    """Averages over active projects carrying both size and price per watt.

    Unpriced projects are left out of the averages rather than counted as zero.
    """

    priced = [p for p in projects if not p.is_cancelled and is_priced(p)]
    if not priced:
        return CompanyStats(priced_projects=0, total_revenue=0.0, avg_system_size_kw=0.0, avg_contract_value=0.0)
    total_revenue = sum(contract_price(p.system_size_kw, p.gross_price_per_watt) for p in priced)
    total_size = sum(parse_float(p.system_size_kw) for p in priced)
    return CompanyStats(
        priced_projects=len(priced),
        total_revenue=total_revenue,
        avg_system_size_kw=total_size / len(priced),
        avg_contract_value=total_revenue / len(priced),
    )


def summarize_seller(
    projects: Sequence[ProjectRecord],
    pay_type: Optional[str],
    year: int,
    owner_id: Optional[int] = None,
) -> SellerSummary:
    """Milestone commission plus upfront pay for one seller's year."""

    canonical = normalize_pay_type(pay_type)
    in_year = [p for p in projects if project_year(p) == year]
    active = [p for p in in_year if not p.is_cancelled]

    milestone_total = 0.0
    unpriced = 0
    for project in active:
        if not is_priced(project):
            unpriced += 1
        milestone_total += milestone_commission(project, canonical)

    upfront = float(len(active) * upfront_flat_rate(canonical))
    tiers = count_deals_by_tier(active)
    if owner_id is None:
        owner_id = projects[0].owner_id if projects else 0

    return SellerSummary(
        owner_id=owner_id,
        year=year,
        pay_type=canonical,
        deal_count=len(active),
        cancelled_count=len(in_year) - len(active),
        tier_1_deals=tiers["tier_1"] + tiers["tier_1_fallback"],
        tier_2_deals=tiers["tier_2"],
        total_milestone_commission=milestone_total,
        upfront_pay=upfront,
        total_earnings=milestone_total + upfront,
        total_payment_amount=sum(p.payment_amount or 0.0 for p in active),
        unpriced_projects=unpriced,
        company=company_stats(active),
    )


def summarize_team(
    projects: Sequence[ProjectRecord],
    manager_type: Optional[str],
    year: int,
    members: Sequence[TeamMember] = (),
) -> TeamSummary:
    """Manager override and team revenue over every non-cancelled team project.

    ``projects`` must already include the manager's own deals.
    """

    active = active_projects_for_year(projects, year)
    rate = manager_rate(manager_type)

    total_size = 0.0
    for project in active:
        size = parse_float(project.system_size_kw)
        if size is not None and size > 0:
            total_size += size

    revenue = sum(contract_price(p.system_size_kw, p.gross_price_per_watt) for p in active)

    member_summaries = [
        summarize_seller(
            [p for p in projects if p.owner_id == member.owner_id],
            member.pay_type,
            year,
            owner_id=member.owner_id,
        )
        for member in members
    ]

    return TeamSummary(
        year=year,
        manager_type=manager_type if manager_type in MANAGER_RATES else "default",
        manager_rate=rate,
        deal_count=len(active),
        total_system_size_kw=total_size,
        manager_commission=total_size * rate,
        team_revenue=revenue,
        members=member_summaries,
    )
