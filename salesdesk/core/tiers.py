"""Deal numbering and the tiered upfront rate per kW."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from salesdesk.core.formatting import parse_float

FRIDAY = 4
AUTO_PAYMENT_DATE_LAST_DEAL = 20


@dataclass(frozen=True)
class DealTier:
    name: str
    first_deal: int
    last_deal: Optional[int]
    rate_per_kw: int

    def contains(self, deal_number: int) -> bool:
        if deal_number < self.first_deal:
            return False
        return self.last_deal is None or deal_number <= self.last_deal


DEAL_TIERS: tuple[DealTier, ...] = (
    DealTier("tier_1", 1, 10, 200),
    DealTier("tier_2", 11, 20, 250),
    # Deals past 20 fall back to the tier-1 rate.
    DealTier("tier_1_fallback", 21, None, 200),
)

REP_TITLES: tuple[tuple[int, str], ...] = (
    (21, "Pro Rep"),
    (11, "Veteran Rep"),
    (0, "Intern Rep"),
)


def resolve_tier(deal_number: int) -> DealTier:
    """Return the tier a 1-based deal number falls into."""

    if deal_number < 1:
        raise ValueError(f"Deal numbers start at 1, got {deal_number}.")
    for tier in DEAL_TIERS:
        if tier.contains(deal_number):
            return tier
    raise ValueError(f"No tier configured for deal number {deal_number}.")  # pragma: no cover


def next_deal_number(existing_projects: Iterable[Any]) -> int:
    """Deal number for a seller's next conversion: prior projects of any status + 1."""

    return sum(1 for _ in existing_projects) + 1


def upfront_payment_amount(deal_number: int, system_size_kw: Any) -> float:
    """Tier rate times system size, stamped on the project at conversion."""

    size = parse_float(system_size_kw)
    if size is None:
        return 0.0
    return resolve_tier(deal_number).rate_per_kw * size


def auto_payment_date(deal_number: int, today: date) -> Optional[date]:
    """Friday of the week after next for the first twenty deals, otherwise None.

    The upcoming Friday is skipped; from a Friday the result is one week out.
    """

    if deal_number > AUTO_PAYMENT_DATE_LAST_DEAL:
        return None
    days_until_friday = (FRIDAY - today.weekday()) % 7
    return today + timedelta(days=days_until_friday + 7)


def count_deals_by_tier(projects: Iterable[Any]) -> dict[str, int]:
    """Count projects per tier by their stamped deal number."""

    counts = {tier.name: 0 for tier in DEAL_TIERS}
    for project in projects:
        number = getattr(project, "deal_number", None) or 0
        if number < 1:
            # Legacy records without a deal number count toward the first tier.
            counts[DEAL_TIERS[0].name] += 1
            continue
        counts[resolve_tier(number).name] += 1
    return counts


def rep_title_for_deal_count(deal_count: int) -> str:
    for threshold, title in REP_TITLES:
        if deal_count >= threshold:
            return title
    return REP_TITLES[-1][1]  # pragma: no cover
