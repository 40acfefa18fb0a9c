"""Record shapes for the two variants of a deal: an appointment Set and a Project.

Both variants are stored as plain dictionaries in the record store. The
``kind`` tag travels with every stored record so a deal id can be resolved
to exactly one variant.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Optional, Union

from salesdesk.core.commission import ADDER_PRICES

SET_STATUS_ENUM = ("active", "not_closed", "closed")
PROJECT_STATUS_ENUM = ("site_survey", "install", "pto", "paid", "on_hold", "cancelled")

SETS = "sets"
PROJECTS = "projects"
SNAPSHOTS = "snapshots"

MILESTONE_FIELDS = (
    "site_survey_date",
    "site_survey_time",
    "permit_date",
    "install_date",
    "inspection_date",
    "pto_date",
    "payment_date",
)


def new_record_id() -> str:
    return uuid.uuid4().hex


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _known_fields(cls, record: dict[str, Any]) -> dict[str, Any]:
    names = {item.name for item in fields(cls)}
    return {key: value for key, value in record.items() if key in names}


@dataclass(frozen=True)
class SetRecord:
    """A scheduled customer appointment owned by one seller."""

    id: str
    owner_id: int
    customer_name: str
    address: str = ""
    phone_number: str = ""
    email: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    is_spanish_speaker: bool = False
    notes: str = ""
    document_ref: Optional[str] = None
    status: str = "active"
    created_at: str = field(default_factory=utcnow_iso)

    kind = "set"

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["kind"] = self.kind
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SetRecord:
        return cls(**_known_fields(cls, record))

    def with_status(self, status: str) -> SetRecord:
        return replace(self, status=status)


@dataclass(frozen=True)
class ProjectRecord:
    """A tracked installation; shares its id with the Set it was converted from."""

    id: str
    owner_id: int
    customer_name: str
    deal_number: int
    payment_amount: float
    commission_rate_per_kw: int
    address: str = ""
    phone_number: str = ""
    email: Optional[str] = None
    document_ref: Optional[str] = None
    office: Optional[str] = None
    system_size_kw: Optional[float] = None
    gross_price_per_watt: Optional[float] = None
    ea_battery: bool = False
    backup_battery: bool = False
    mpu: bool = False
    hti: bool = False
    reroof: bool = False
    finance_type: Optional[str] = None
    lender: Optional[str] = None
    panel_type: Optional[str] = None
    battery_type: Optional[str] = None
    battery_quantity: int = 0
    status: str = "site_survey"
    site_survey_date: Optional[str] = None
    site_survey_time: Optional[str] = None
    permit_date: Optional[str] = None
    install_date: Optional[str] = None
    inspection_date: Optional[str] = None
    pto_date: Optional[str] = None
    payment_date: Optional[str] = None
    created_at: str = field(default_factory=utcnow_iso)
    cancelled_at: Optional[str] = None

    kind = "project"

    @property
    def adders(self) -> dict[str, bool]:
        return {name: bool(getattr(self, name)) for name in ADDER_PRICES}

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["kind"] = self.kind
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ProjectRecord:
        return cls(**_known_fields(cls, record))


Deal = Union[SetRecord, ProjectRecord]


def deal_from_record(record: dict[str, Any]) -> Deal:
    """Rebuild the right variant from a stored record's ``kind`` tag."""

    kind = record.get("kind")
    if kind == SetRecord.kind:
        return SetRecord.from_record(record)
    if kind == ProjectRecord.kind:
        return ProjectRecord.from_record(record)
    raise ValueError(f"Stored record {record.get('id')!r} has unknown kind {kind!r}.")
