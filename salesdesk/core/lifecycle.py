"""Status transitions for Sets and Projects and the one-way Set to Project conversion.

Every mutation follows the same read, mutate in memory, write discipline
against an injected :class:`~salesdesk.repository.RecordGateway`. A write
rejected by the store is retried once after the owner's cached summaries
are evicted; a second rejection surfaces as :class:`StorageUnavailableError`
with nothing applied. Objects handed back to callers are built only after
their write succeeded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Mapping, Optional

from salesdesk.core.commission import ADDER_PRICES
from salesdesk.core.deals import (
    MILESTONE_FIELDS,
    PROJECT_STATUS_ENUM,
    PROJECTS,
    SETS,
    Deal,
    ProjectRecord,
    SetRecord,
    deal_from_record,
    new_record_id,
    utcnow_iso,
)
from salesdesk.core.formatting import parse_date, parse_float
from salesdesk.core.tiers import (
    DealTier,
    auto_payment_date,
    next_deal_number,
    rep_title_for_deal_count,
    resolve_tier,
    upfront_payment_amount,
)
from salesdesk.repository import RecordGateway, StorageError

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Could not save changes. Please try again."

# (operation, allowed source statuses, target status)
SET_TRANSITIONS: Mapping[str, tuple[tuple[str, ...], str]] = {
    "cancel": (("active",), "not_closed"),
    "reactivate": (("not_closed",), "active"),
    "mark_closed": (("active", "not_closed"), "closed"),
    "mark_not_closed": (("closed",), "not_closed"),
}

DIRECT_PROJECT_STATUSES = tuple(status for status in PROJECT_STATUS_ENUM if status != "cancelled")


class DealError(Exception):
    """Base class for lifecycle failures."""


class DealNotFoundError(DealError):
    pass


class InvalidTransitionError(DealError):
    pass


class PermissionDeniedError(DealError):
    pass


class StorageUnavailableError(DealError):
    """The store rejected a write twice; the mutation was not applied."""

    def __init__(self, message: str = RETRY_MESSAGE) -> None:
        super().__init__(message)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class DealValidationError(DealError):
    """One or more named fields are missing or malformed; nothing was written."""

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        super().__init__("; ".join(error.message for error in errors))


class ConversionValidationError(DealValidationError):
    pass


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    ``managed_owner_ids`` lists the sellers a manager may act for.
    """

    user_id: int
    role: str = "user"
    managed_owner_ids: frozenset[int] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_act_for(self, owner_id: int) -> bool:
        if self.is_admin or owner_id == self.user_id:
            return True
        return self.role == "manager" and owner_id in self.managed_owner_ids


@dataclass
class ConversionForm:
    """Closing details captured when a Set is moved to Projects.

    Numeric and date fields may arrive as raw form strings; they are checked
    by :meth:`LifecycleEngine.convert_set`.
    """

    customer_name: Optional[str] = None
    system_size_kw: Any = None
    gross_price_per_watt: Any = None
    site_survey_date: Any = None
    site_survey_time: Optional[str] = None
    adders: dict[str, bool] = field(default_factory=dict)
    install_date: Any = None
    permit_date: Any = None
    inspection_date: Any = None
    pto_date: Any = None
    payment_date: Any = None
    finance_type: Optional[str] = None
    lender: Optional[str] = None
    panel_type: Optional[str] = None
    battery_type: Optional[str] = None
    battery_quantity: int = 0


@dataclass(frozen=True)
class ConversionResult:
    project: ProjectRecord
    tier: DealTier
    rep_title: str
    recovered: bool = False


def _iso(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed is not None else None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _battery_quantity(value: Any) -> Optional[int]:
    """Whole, non-negative battery count; blank means none. Anything else gives None."""

    if _blank(value):
        return 0
    number = parse_float(value)
    if number is None or number < 0 or not number.is_integer():
        return None
    return int(number)


def validate_conversion(form: ConversionForm, verified: bool) -> list[FieldError]:
    """Collect one named error per missing or malformed closing field."""

    errors: list[FieldError] = []
    if not verified:
        errors.append(FieldError("verified", "Confirm the deal is closed before moving it to projects."))

    if _blank(form.customer_name):
        errors.append(FieldError("customer_name", "Customer name is required."))

    for name, label in (("system_size_kw", "System size"), ("gross_price_per_watt", "Gross price per watt")):
        raw = getattr(form, name)
        if _blank(raw):
            errors.append(FieldError(name, f"{label} is required."))
            continue
        number = parse_float(raw)
        if number is None or number <= 0:
            errors.append(FieldError(name, f"{label} must be a positive number."))

    if _blank(form.site_survey_date):
        errors.append(FieldError("site_survey_date", "Site survey date is required."))
    elif parse_date(form.site_survey_date) is None:
        errors.append(FieldError("site_survey_date", "Site survey date is not a valid date."))

    if _blank(form.site_survey_time):
        errors.append(FieldError("site_survey_time", "Site survey time is required."))

    if not isinstance(form.adders, Mapping):
        errors.append(FieldError("adders", "Adders must map each adder name to true or false."))
    else:
        unknown = sorted(name for name in form.adders if name not in ADDER_PRICES)
        if unknown:
            errors.append(FieldError("adders", f"Unknown adders: {', '.join(unknown)}."))

    if _battery_quantity(form.battery_quantity) is None:
        errors.append(FieldError("battery_quantity", "Battery quantity must be a whole number of zero or more."))
    return errors


class LifecycleEngine:
    """Applies Set and Project transitions against a record store."""

    def __init__(self, gateway: RecordGateway, today: Callable[[], date] = date.today) -> None:
        self.gateway = gateway
        self.today = today

    # -- reads -------------------------------------------------------------

    def load_deal(self, actor: Actor, deal_id: str) -> Deal:
        """Resolve an id to its live variant.

        A Set still present next to its Project means a conversion stopped
        half way, so the Set wins until the conversion is finished.
        """

        record = self.gateway.get(SETS, deal_id) or self.gateway.get(PROJECTS, deal_id)
        if record is None:
            raise DealNotFoundError(f"No set or project with id {deal_id!r}.")
        deal = deal_from_record(record)
        self._authorize(actor, deal.owner_id)
        return deal

    def get_project(self, actor: Actor, project_id: str) -> ProjectRecord:
        return self._require_project(actor, project_id)

    def list_sets(self, actor: Actor, owner_id: int) -> list[SetRecord]:
        self._authorize(actor, owner_id)
        records = self.gateway.list_by_owner(SETS, owner_id)
        return sorted((SetRecord.from_record(r) for r in records), key=lambda s: s.created_at)

    def list_projects(self, actor: Actor, owner_id: int, include_cancelled: bool = True) -> list[ProjectRecord]:
        self._authorize(actor, owner_id)
        projects = [ProjectRecord.from_record(r) for r in self.gateway.list_by_owner(PROJECTS, owner_id)]
        if not include_cancelled:
            projects = [p for p in projects if not p.is_cancelled]
        return sorted(projects, key=lambda p: p.deal_number)

    # -- sets --------------------------------------------------------------

    def create_set(self, actor: Actor, owner_id: int, customer_name: str, **details: Any) -> SetRecord:
        self._authorize(actor, owner_id)
        set_record = SetRecord(
            id=details.pop("id", None) or new_record_id(),
            owner_id=owner_id,
            customer_name=customer_name,
            **details,
        )
        self._persist(owner_id, lambda: self.gateway.put(SETS, set_record.to_record()))
        logger.info("Created set %s for owner %s", set_record.id, owner_id)
        return set_record

    def reschedule_set(self, actor: Actor, set_id: str, appointment_date: Any, appointment_time: str) -> SetRecord:
        current = self._require_set(actor, set_id)
        new_date = _iso(appointment_date)
        if new_date is None or _blank(appointment_time):
            raise DealValidationError(
                [FieldError("appointment_date", "A valid appointment date and time are required.")]
            )
        updated = replace(current, appointment_date=new_date, appointment_time=appointment_time.strip())
        self._persist(current.owner_id, lambda: self.gateway.put(SETS, updated.to_record()))
        return updated

    def cancel_set(self, actor: Actor, set_id: str) -> SetRecord:
        return self._transition_set(actor, set_id, "cancel")

    def reactivate_set(self, actor: Actor, set_id: str) -> SetRecord:
        return self._transition_set(actor, set_id, "reactivate")

    def mark_set_closed(self, actor: Actor, set_id: str, confirmed: bool = False) -> SetRecord:
        if not confirmed:
            raise InvalidTransitionError("Marking a set as closed must be confirmed.")
        return self._transition_set(actor, set_id, "mark_closed")

    def mark_set_not_closed(self, actor: Actor, set_id: str) -> SetRecord:
        return self._transition_set(actor, set_id, "mark_not_closed")

    def _transition_set(self, actor: Actor, set_id: str, operation: str) -> SetRecord:
        allowed, target = SET_TRANSITIONS[operation]
        current = self._require_set(actor, set_id)
        if current.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {operation.replace('_', ' ')} a set that is {current.status}."
            )
        updated = current.with_status(target)
        self._persist(current.owner_id, lambda: self.gateway.put(SETS, updated.to_record()))
        logger.info("Set %s moved %s -> %s", set_id, current.status, target)
        return updated

    # -- conversion --------------------------------------------------------

    def convert_set(
        self,
        actor: Actor,
        set_id: str,
        form: ConversionForm,
        verified: bool = False,
        office: Optional[str] = None,
    ) -> ConversionResult:
        """Move a closed Set to Projects, keeping its id.

        The Project is written first and the Set removed only afterwards, so
        a failure in between leaves both records; running the conversion
        again picks up the stored Project and finishes the removal.
        """

        current = self._require_set(actor, set_id)
        if current.status != "closed":
            raise InvalidTransitionError(
                f"Only closed sets can be moved to projects; set {set_id} is {current.status}."
            )
        errors = validate_conversion(form, verified)
        if errors:
            raise ConversionValidationError(errors)

        owner_id = current.owner_id
        owner_projects = self.gateway.list_by_owner(PROJECTS, owner_id)
        prior = [record for record in owner_projects if record.get("id") != set_id]
        stored = next((record for record in owner_projects if record.get("id") == set_id), None)

        recovered = stored is not None
        if recovered:
            project = ProjectRecord.from_record(stored)
            tier = resolve_tier(project.deal_number)
            logger.warning("Set %s already has a stored project; finishing an earlier conversion", set_id)
        else:
            project, tier = self._build_project(current, form, next_deal_number(prior), office)
            self._persist(owner_id, lambda: self.gateway.put(PROJECTS, project.to_record()))

        self._persist(owner_id, lambda: self.gateway.remove(SETS, set_id))

        logger.info(
            "Converted set %s to project: deal #%d, $%.2f at $%d/kW",
            set_id,
            project.deal_number,
            project.payment_amount,
            tier.rate_per_kw,
        )
        rep_title = rep_title_for_deal_count(project.deal_number)
        return ConversionResult(project=project, tier=tier, rep_title=rep_title, recovered=recovered)

    def _build_project(
        self,
        source: SetRecord,
        form: ConversionForm,
        deal_number: int,
        office: Optional[str],
    ) -> tuple[ProjectRecord, DealTier]:
        tier = resolve_tier(deal_number)
        system_size = parse_float(form.system_size_kw)
        payment_date = auto_payment_date(deal_number, self.today())
        project = ProjectRecord(
            id=source.id,
            owner_id=source.owner_id,
            customer_name=str(form.customer_name).strip(),
            deal_number=deal_number,
            payment_amount=upfront_payment_amount(deal_number, system_size),
            commission_rate_per_kw=tier.rate_per_kw,
            address=source.address,
            phone_number=source.phone_number,
            email=source.email,
            document_ref=source.document_ref,
            office=office,
            system_size_kw=system_size,
            gross_price_per_watt=parse_float(form.gross_price_per_watt),
            finance_type=form.finance_type,
            lender=form.lender,
            panel_type=form.panel_type,
            battery_type=form.battery_type,
            battery_quantity=_battery_quantity(form.battery_quantity) or 0,
            site_survey_date=_iso(form.site_survey_date),
            site_survey_time=str(form.site_survey_time).strip(),
            permit_date=_iso(form.permit_date),
            install_date=_iso(form.install_date),
            inspection_date=_iso(form.inspection_date),
            pto_date=_iso(form.pto_date),
            payment_date=payment_date.isoformat() if payment_date else _iso(form.payment_date),
            **{name: bool(form.adders.get(name)) for name in ADDER_PRICES},
        )
        return project, tier

    # -- projects ----------------------------------------------------------

    def set_project_status(self, actor: Actor, project_id: str, status: str) -> ProjectRecord:
        """Set any non-cancelled status directly; cancellation has its own operations."""

        status = (status or "").strip().lower()
        if status not in PROJECT_STATUS_ENUM:
            raise InvalidTransitionError(f"Unknown project status '{status}'.")
        current = self._require_project(actor, project_id)
        if status == "cancelled":
            raise InvalidTransitionError("Use the cancel operation to cancel a project.")
        if current.is_cancelled:
            raise InvalidTransitionError("Reactivate a cancelled project before changing its status.")
        if current.status == status:
            return current
        updated = replace(current, status=status)
        self._persist(current.owner_id, lambda: self.gateway.put(PROJECTS, updated.to_record()))
        logger.info("Project %s moved %s -> %s", project_id, current.status, status)
        return updated

    def put_project_on_hold(self, actor: Actor, project_id: str) -> ProjectRecord:
        return self.set_project_status(actor, project_id, "on_hold")

    def resume_project(self, actor: Actor, project_id: str, status: str = "site_survey") -> ProjectRecord:
        current = self._require_project(actor, project_id)
        if current.status != "on_hold":
            raise InvalidTransitionError(f"Project {project_id} is not on hold.")
        if status == "on_hold":
            raise InvalidTransitionError("Choose the status the project resumes at.")
        return self.set_project_status(actor, project_id, status)

    def cancel_project(self, actor: Actor, project_id: str) -> ProjectRecord:
        current = self._require_project(actor, project_id)
        if current.is_cancelled:
            raise InvalidTransitionError(f"Project {project_id} is already cancelled.")
        updated = replace(current, status="cancelled", cancelled_at=utcnow_iso())
        self._persist(current.owner_id, lambda: self.gateway.put(PROJECTS, updated.to_record()))
        logger.info("Cancelled project %s (deal #%d)", project_id, current.deal_number)
        return updated

    def reactivate_project(self, actor: Actor, project_id: str) -> ProjectRecord:
        current = self._require_project(actor, project_id)
        if not current.is_cancelled:
            raise InvalidTransitionError(f"Project {project_id} is not cancelled.")
        updated = replace(current, status="site_survey", cancelled_at=None)
        self._persist(current.owner_id, lambda: self.gateway.put(PROJECTS, updated.to_record()))
        logger.info("Reactivated project %s", project_id)
        return updated

    def update_project_milestones(self, actor: Actor, project_id: str, **dates: Any) -> ProjectRecord:
        """Record milestone dates; status and deal number are left alone."""

        unknown = sorted(name for name in dates if name not in MILESTONE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown milestone fields: {', '.join(unknown)}")
        current = self._require_project(actor, project_id)
        changes: dict[str, Any] = {}
        for name, value in dates.items():
            if name == "site_survey_time":
                changes[name] = None if _blank(value) else str(value).strip()
                continue
            if _blank(value):
                changes[name] = None
                continue
            parsed = _iso(value)
            if parsed is None:
                label = name.replace("_", " ").capitalize()
                raise DealValidationError([FieldError(name, f"{label} is not a valid date.")])
            changes[name] = parsed
        updated = replace(current, **changes)
        self._persist(current.owner_id, lambda: self.gateway.put(PROJECTS, updated.to_record()))
        return updated

    # -- helpers -----------------------------------------------------------

    def _authorize(self, actor: Actor, owner_id: int) -> None:
        if not actor.can_act_for(owner_id):
            raise PermissionDeniedError("You do not have access to this seller's deals.")

    def _require_set(self, actor: Actor, set_id: str) -> SetRecord:
        deal = self.load_deal(actor, set_id)
        if not isinstance(deal, SetRecord):
            raise InvalidTransitionError(f"{set_id} has already been moved to projects.")
        return deal

    def _require_project(self, actor: Actor, project_id: str) -> ProjectRecord:
        record = self.gateway.get(PROJECTS, project_id)
        if record is None:
            raise DealNotFoundError(f"No project with id {project_id!r}.")
        project = ProjectRecord.from_record(record)
        self._authorize(actor, project.owner_id)
        return project

    def _persist(self, owner_id: int, write: Callable[[], None]) -> None:
        """Run a write, retrying once after evicting the owner's cached summaries."""

        try:
            write()
            return
        except StorageError as exc:
            logger.warning("Write for owner %s rejected (%s); evicting cached summaries and retrying", owner_id, exc)
        try:
            evicted = self.gateway.evict_snapshots(owner_id)
            logger.info("Evicted %d cached summaries for owner %s", evicted, owner_id)
            write()
        except StorageError as exc:
            logger.error("Write for owner %s failed after retry: %s", owner_id, exc)
            raise StorageUnavailableError() from exc
