"""Milestone commission and upfront pay calculations.

Everything in this module is pure: functions take the physical and
financial attributes of a deal and return numbers, never touching stored
state. Reports call :func:`milestone_commission` on every read, so the
figure is always reproducible from the stored project alone.

Arithmetic uses binary floats evaluated in a fixed order:
contract price, then base cost, then the clamped margin times the rate.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

from salesdesk.core.formatting import parse_float

PAY_TYPE_ENUM = ("Rookie", "Vet", "Pro")
DEFAULT_PAY_TYPE = "Rookie"

WATTS_PER_KW = 1000
BASE_COST_PER_KW = 3500

ADDER_PRICES: Mapping[str, int] = MappingProxyType(
    {
        "ea_battery": 8000,
        "backup_battery": 13000,
        "mpu": 3500,
        "hti": 2500,
        "reroof": 15000,
    }
)

ADDER_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "ea_battery": "E/A Battery",
        "backup_battery": "Backup Battery",
        "mpu": "MPU",
        "hti": "HTI",
        "reroof": "Reroof",
    }
)

PAY_TYPE_RATES: Mapping[str, float] = MappingProxyType(
    {
        "Rookie": 0.24,
        "Vet": 0.39,
        "Pro": 0.50,
    }
)

UPFRONT_FLAT_RATES: Mapping[str, int] = MappingProxyType(
    {
        "Rookie": 300,
        "Vet": 600,
        "Pro": 800,
    }
)


@dataclass(frozen=True)
class CommissionBreakdown:
    """Every intermediate figure of one milestone commission calculation."""

    priced: bool
    system_size_kw: float
    contract_price: float
    base_cost: float
    adder_cost: float
    total_cost: float
    commission_amount: float
    rate: float
    milestone_commission: float
    pay_type: str


def normalize_pay_type(value: Optional[str]) -> str:
    """Return the canonical pay type label; ``None`` means the default Rookie tier."""

    if value is None or not str(value).strip():
        return DEFAULT_PAY_TYPE
    lookup = {label.lower(): label for label in PAY_TYPE_ENUM}
    canonical = lookup.get(str(value).strip().lower())
    if canonical is None:
        raise ValueError(f"Unknown pay type '{value}'. Expected Rookie, Vet, or Pro.")
    return canonical


def pay_type_rate(pay_type: Optional[str]) -> float:
    return PAY_TYPE_RATES[normalize_pay_type(pay_type)]


def upfront_flat_rate(pay_type: Optional[str]) -> int:
    """Flat amount a seller earns per active deal, independent of margin."""

    return UPFRONT_FLAT_RATES[normalize_pay_type(pay_type)]


def contract_price(system_size_kw: Any, gross_price_per_watt: Any) -> float:
    """Gross contract value; unpriced inputs give 0.0."""

    size = parse_float(system_size_kw)
    ppw = parse_float(gross_price_per_watt)
    if size is None or ppw is None:
        return 0.0
    return ppw * size * WATTS_PER_KW


def adder_cost(adders: Optional[Mapping[str, Any]]) -> int:
    """Sum the fixed price of every adder flagged true; unknown names are ignored."""

    if not adders:
        return 0
    return sum(price for name, price in ADDER_PRICES.items() if adders.get(name))


def calculate_commission(
    system_size_kw: Any,
    gross_price_per_watt: Any,
    adders: Optional[Mapping[str, Any]] = None,
    pay_type: Optional[str] = None,
) -> CommissionBreakdown:
    """Compute the milestone commission breakdown for one deal.

    Missing or non-numeric size/price never raise: the breakdown comes back
    with ``priced=False`` and a zero commission, which callers must not read
    as a genuine zero-margin deal.
    """

    canonical = normalize_pay_type(pay_type)
    rate = pay_type_rate(canonical)
    extras = adder_cost(adders)

    size = parse_float(system_size_kw)
    ppw = parse_float(gross_price_per_watt)
    if size is None or ppw is None:
        return CommissionBreakdown(
            priced=False,
            system_size_kw=size or 0.0,
            contract_price=0.0,
            base_cost=0.0,
            adder_cost=float(extras),
            total_cost=0.0,
            commission_amount=0.0,
            rate=rate,
            milestone_commission=0.0,
            pay_type=canonical,
        )

    price = ppw * size * WATTS_PER_KW
    base = size * BASE_COST_PER_KW
    total = base + extras
    margin = max(0.0, price - total)
    return CommissionBreakdown(
        priced=True,
        system_size_kw=size,
        contract_price=price,
        base_cost=base,
        adder_cost=float(extras),
        total_cost=total,
        commission_amount=margin,
        rate=rate,
        milestone_commission=margin * rate,
        pay_type=canonical,
    )


def is_priced(project: Any) -> bool:
    """True when a project carries both a usable system size and price per watt."""

    return (
        parse_float(getattr(project, "system_size_kw", None)) is not None
        and parse_float(getattr(project, "gross_price_per_watt", None)) is not None
    )


def milestone_commission(project: Any, pay_type: Optional[str] = None) -> float:
    """Recompute the milestone commission for a stored project."""

    return calculate_commission(
        getattr(project, "system_size_kw", None),
        getattr(project, "gross_price_per_watt", None),
        getattr(project, "adders", None),
        pay_type,
    ).milestone_commission


__all__ = [
    "ADDER_LABELS",
    "ADDER_PRICES",
    "CommissionBreakdown",
    "PAY_TYPE_ENUM",
    "PAY_TYPE_RATES",
    "UPFRONT_FLAT_RATES",
    "adder_cost",
    "calculate_commission",
    "contract_price",
    "is_priced",
    "milestone_commission",
    "normalize_pay_type",
    "pay_type_rate",
    "upfront_flat_rate",
]
