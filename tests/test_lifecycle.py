import pytest

from salesdesk.core.aggregation import TeamMember, summarize_seller, summarize_team
from salesdesk.core.deals import PROJECTS, SETS, SNAPSHOTS, ProjectRecord, SetRecord
from salesdesk.core.lifecycle import (
    Actor,
    ConversionForm,
    ConversionValidationError,
    DealNotFoundError,
    DealValidationError,
    InvalidTransitionError,
    LifecycleEngine,
    PermissionDeniedError,
    StorageUnavailableError,
    validate_conversion,
)
from salesdesk.repository import InMemoryRecordGateway, StorageError


def _form(**overrides):
    values = dict(
        customer_name="Dana Reyes",
        system_size_kw="4.0",
        gross_price_per_watt="6.5",
        site_survey_date="2025-03-18",
        site_survey_time="10:00",
        adders={"ea_battery": True},
    )
    values.update(overrides)
    return ConversionForm(**values)


def _closed_set(lifecycle, actor, owner_id=7, name="Dana Reyes"):
    created = lifecycle.create_set(actor, owner_id, name, address="12 Elm St", phone_number="555-0101")
    return lifecycle.mark_set_closed(actor, created.id, confirmed=True)


def _convert(lifecycle, actor, owner_id=7, **form_overrides):
    closed = _closed_set(lifecycle, actor, owner_id)
    return lifecycle.convert_set(actor, closed.id, _form(**form_overrides), verified=True)


# -- sets ------------------------------------------------------------------


def test_create_set_starts_active(lifecycle, seller, gateway):
    created = lifecycle.create_set(seller, 7, "Dana Reyes", appointment_date="2025-03-20", appointment_time="14:00")

    assert created.status == "active"
    assert gateway.get(SETS, created.id)["kind"] == "set"
    assert [s.id for s in lifecycle.list_sets(seller, 7)] == [created.id]


def test_set_transitions(lifecycle, seller):
    created = lifecycle.create_set(seller, 7, "Dana Reyes")

    cancelled = lifecycle.cancel_set(seller, created.id)
    assert cancelled.status == "not_closed"

    reactivated = lifecycle.reactivate_set(seller, created.id)
    assert reactivated.status == "active"

    closed = lifecycle.mark_set_closed(seller, created.id, confirmed=True)
    assert closed.status == "closed"

    reopened = lifecycle.mark_set_not_closed(seller, created.id)
    assert reopened.status == "not_closed"

    closed_again = lifecycle.mark_set_closed(seller, created.id, confirmed=True)
    assert closed_again.status == "closed"


def test_invalid_set_transitions_are_rejected(lifecycle, seller):
    created = lifecycle.create_set(seller, 7, "Dana Reyes")

    with pytest.raises(InvalidTransitionError):
        lifecycle.reactivate_set(seller, created.id)
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_set_not_closed(seller, created.id)

    lifecycle.mark_set_closed(seller, created.id, confirmed=True)
    with pytest.raises(InvalidTransitionError):
        lifecycle.cancel_set(seller, created.id)


def test_marking_closed_requires_confirmation(lifecycle, seller, gateway):
    created = lifecycle.create_set(seller, 7, "Dana Reyes")

    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_set_closed(seller, created.id)
    assert gateway.get(SETS, created.id)["status"] == "active"


def test_reschedule_set(lifecycle, seller):
    created = lifecycle.create_set(seller, 7, "Dana Reyes")

    moved = lifecycle.reschedule_set(seller, created.id, "03/25/2025", " 09:30 ")
    assert moved.appointment_date == "2025-03-25"
    assert moved.appointment_time == "09:30"

    with pytest.raises(DealValidationError):
        lifecycle.reschedule_set(seller, created.id, "not a date", "09:30")


def test_unknown_deal_id(lifecycle, seller):
    with pytest.raises(DealNotFoundError):
        lifecycle.load_deal(seller, "missing")
    with pytest.raises(DealNotFoundError):
        lifecycle.get_project(seller, "missing")


# -- conversion --------------------------------------------------------------


def test_conversion_keeps_id_and_removes_set(lifecycle, seller, gateway):
    closed = _closed_set(lifecycle, seller)

    result = lifecycle.convert_set(seller, closed.id, _form(), verified=True, office="Phoenix")

    project = result.project
    assert project.id == closed.id
    assert gateway.get(SETS, closed.id) is None
    assert gateway.get(PROJECTS, closed.id)["kind"] == "project"
    assert project.deal_number == 1
    assert project.commission_rate_per_kw == 200
    assert project.payment_amount == 800
    assert project.status == "site_survey"
    assert project.address == "12 Elm St"
    assert project.office == "Phoenix"
    assert project.ea_battery is True and project.mpu is False
    assert project.site_survey_date == "2025-03-18"
    assert project.payment_date == "2025-03-21"
    assert result.tier.name == "tier_1"
    assert result.rep_title == "Intern Rep"
    assert result.recovered is False
    assert isinstance(lifecycle.load_deal(seller, closed.id), ProjectRecord)


def test_only_closed_sets_convert(lifecycle, seller):
    created = lifecycle.create_set(seller, 7, "Dana Reyes")
    with pytest.raises(InvalidTransitionError):
        lifecycle.convert_set(seller, created.id, _form(), verified=True)


def test_converted_deal_cannot_convert_again(lifecycle, seller):
    result = _convert(lifecycle, seller)
    with pytest.raises(InvalidTransitionError):
        lifecycle.convert_set(seller, result.project.id, _form(), verified=True)


def test_eleventh_deal_moves_to_second_tier(lifecycle, seller):
    for _ in range(10):
        _convert(lifecycle, seller)

    result = _convert(lifecycle, seller, system_size_kw="4.0")

    assert result.project.deal_number == 11
    assert result.project.commission_rate_per_kw == 250
    assert result.project.payment_amount == 1000
    assert result.rep_title == "Veteran Rep"


def test_deal_numbers_are_per_owner(lifecycle, admin):
    _convert(lifecycle, admin, owner_id=7)
    _convert(lifecycle, admin, owner_id=7)
    other = _convert(lifecycle, admin, owner_id=8)
    assert other.project.deal_number == 1


def test_cancelled_projects_keep_their_number_and_count(lifecycle, seller):
    first = _convert(lifecycle, seller)
    lifecycle.cancel_project(seller, first.project.id)

    second = _convert(lifecycle, seller)

    assert second.project.deal_number == 2
    assert lifecycle.get_project(seller, first.project.id).deal_number == 1


def test_deals_past_twenty_get_no_auto_payment_date(lifecycle, seller):
    for _ in range(20):
        _convert(lifecycle, seller)

    result = _convert(lifecycle, seller, payment_date="2025-04-04")

    assert result.project.deal_number == 21
    assert result.project.commission_rate_per_kw == 200
    assert result.project.payment_date == "2025-04-04"
    assert result.rep_title == "Pro Rep"


def test_each_missing_field_is_named(lifecycle, seller, gateway):
    closed = _closed_set(lifecycle, seller)
    form = ConversionForm(customer_name=" ", system_size_kw="-2", gross_price_per_watt="abc", adders={"pool": True})

    with pytest.raises(ConversionValidationError) as excinfo:
        lifecycle.convert_set(seller, closed.id, form, verified=False)

    fields = {error.field for error in excinfo.value.errors}
    assert fields == {
        "verified",
        "customer_name",
        "system_size_kw",
        "gross_price_per_watt",
        "site_survey_date",
        "site_survey_time",
        "adders",
    }
    assert gateway.get(SETS, closed.id)["status"] == "closed"
    assert gateway.get(PROJECTS, closed.id) is None


def test_invalid_survey_date_is_reported(lifecycle, seller):
    closed = _closed_set(lifecycle, seller)
    with pytest.raises(ConversionValidationError) as excinfo:
        lifecycle.convert_set(seller, closed.id, _form(site_survey_date="someday"), verified=True)
    assert [e.message for e in excinfo.value.errors] == ["Site survey date is not a valid date."]


@pytest.mark.parametrize("raw", ["10:00", "March", "4.0", "next week"])
def test_free_form_survey_dates_are_rejected(raw):
    errors = validate_conversion(_form(site_survey_date=raw), verified=True)
    assert [(e.field, e.message) for e in errors] == [
        ("site_survey_date", "Site survey date is not a valid date.")
    ]


@pytest.mark.parametrize("raw, stored", [("2025-03-18", "2025-03-18"), ("03/18/2025", "2025-03-18")])
def test_iso_and_display_survey_dates_are_accepted(lifecycle, seller, raw, stored):
    closed = _closed_set(lifecycle, seller)
    result = lifecycle.convert_set(seller, closed.id, _form(site_survey_date=raw), verified=True)
    assert result.project.site_survey_date == stored


def test_malformed_adders_and_battery_quantity_are_named():
    errors = validate_conversion(_form(adders=None, battery_quantity="two"), verified=True)
    assert {e.field for e in errors} == {"adders", "battery_quantity"}

    errors = validate_conversion(_form(battery_quantity=-1), verified=True)
    assert [e.field for e in errors] == ["battery_quantity"]


def test_battery_quantity_from_form_text(lifecycle, seller):
    closed = _closed_set(lifecycle, seller)
    result = lifecycle.convert_set(seller, closed.id, _form(battery_quantity="2"), verified=True)
    assert result.project.battery_quantity == 2


# -- projects ----------------------------------------------------------------


def test_cancel_and_reactivate_project(lifecycle, seller):
    project = _convert(lifecycle, seller).project
    lifecycle.set_project_status(seller, project.id, "install")

    cancelled = lifecycle.cancel_project(seller, project.id)
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert lifecycle.list_projects(seller, 7, include_cancelled=False) == []

    reactivated = lifecycle.reactivate_project(seller, project.id)
    assert reactivated.status == "site_survey"
    assert reactivated.cancelled_at is None
    assert reactivated.deal_number == project.deal_number


def test_reactivated_project_counts_again_in_summaries(lifecycle, seller):
    project = _convert(lifecycle, seller).project
    lifecycle.update_project_milestones(seller, project.id, install_date="2025-05-02")
    expected = 960.0  # (26000 - 14000 - 8000) * 0.24

    def summaries():
        projects = lifecycle.list_projects(seller, 7)
        seller_summary = summarize_seller(projects, "Rookie", 2025, owner_id=7)
        team_summary = summarize_team(projects, "AreaManager", 2025, members=[TeamMember(owner_id=7)])
        return seller_summary, team_summary

    seller_summary, team_summary = summaries()
    assert seller_summary.deal_count == 1
    assert seller_summary.total_milestone_commission == pytest.approx(expected)

    lifecycle.cancel_project(seller, project.id)
    seller_summary, team_summary = summaries()
    assert seller_summary.deal_count == 0
    assert seller_summary.cancelled_count == 1
    assert seller_summary.total_milestone_commission == 0.0
    assert team_summary.deal_count == 0
    assert team_summary.manager_commission == 0.0

    lifecycle.reactivate_project(seller, project.id)
    seller_summary, team_summary = summaries()
    assert seller_summary.deal_count == 1
    assert seller_summary.cancelled_count == 0
    assert seller_summary.total_milestone_commission == pytest.approx(expected)
    assert seller_summary.upfront_pay == 300.0
    assert team_summary.deal_count == 1
    assert team_summary.manager_commission == pytest.approx(400.0)


def test_cancelled_projects_need_their_own_operations(lifecycle, seller):
    project = _convert(lifecycle, seller).project

    with pytest.raises(InvalidTransitionError):
        lifecycle.set_project_status(seller, project.id, "cancelled")
    with pytest.raises(InvalidTransitionError):
        lifecycle.reactivate_project(seller, project.id)

    lifecycle.cancel_project(seller, project.id)
    with pytest.raises(InvalidTransitionError):
        lifecycle.set_project_status(seller, project.id, "install")
    with pytest.raises(InvalidTransitionError):
        lifecycle.cancel_project(seller, project.id)


def test_direct_status_changes(lifecycle, seller):
    project = _convert(lifecycle, seller).project

    assert lifecycle.set_project_status(seller, project.id, "PTO").status == "pto"
    assert lifecycle.set_project_status(seller, project.id, "site_survey").status == "site_survey"
    with pytest.raises(InvalidTransitionError):
        lifecycle.set_project_status(seller, project.id, "shipped")


def test_hold_and_resume(lifecycle, seller):
    project = _convert(lifecycle, seller).project
    lifecycle.set_project_status(seller, project.id, "install")

    with pytest.raises(InvalidTransitionError):
        lifecycle.resume_project(seller, project.id)

    held = lifecycle.put_project_on_hold(seller, project.id)
    assert held.status == "on_hold"

    resumed = lifecycle.resume_project(seller, project.id, "install")
    assert resumed.status == "install"


def test_update_milestones(lifecycle, seller):
    project = _convert(lifecycle, seller).project

    updated = lifecycle.update_project_milestones(
        seller, project.id, install_date="2025-05-02", pto_date="", site_survey_time="08:00"
    )
    assert updated.install_date == "2025-05-02"
    assert updated.pto_date is None
    assert updated.site_survey_time == "08:00"
    assert updated.status == project.status
    assert updated.deal_number == project.deal_number

    with pytest.raises(DealValidationError):
        lifecycle.update_project_milestones(seller, project.id, permit_date="tomorrow-ish")
    with pytest.raises(ValueError):
        lifecycle.update_project_milestones(seller, project.id, deal_number=4)


def test_list_projects_sorted_by_deal_number(lifecycle, seller):
    for _ in range(3):
        _convert(lifecycle, seller)
    assert [p.deal_number for p in lifecycle.list_projects(seller, 7)] == [1, 2, 3]


# -- permissions ---------------------------------------------------------------


def test_sellers_cannot_touch_other_sellers_deals(lifecycle, seller, admin):
    theirs = lifecycle.create_set(admin, 8, "Other Customer")

    with pytest.raises(PermissionDeniedError):
        lifecycle.cancel_set(seller, theirs.id)
    with pytest.raises(PermissionDeniedError):
        lifecycle.create_set(seller, 8, "Sneaky")
    with pytest.raises(PermissionDeniedError):
        lifecycle.list_projects(seller, 8)


def test_managers_act_for_their_reports_only(lifecycle, admin):
    manager = Actor(user_id=3, role="manager", managed_owner_ids=frozenset({7}))
    report_set = lifecycle.create_set(admin, 7, "Report Customer")
    outside_set = lifecycle.create_set(admin, 9, "Outside Customer")

    assert lifecycle.cancel_set(manager, report_set.id).status == "not_closed"
    with pytest.raises(PermissionDeniedError):
        lifecycle.cancel_set(manager, outside_set.id)


# -- storage failures ------------------------------------------------------------


def _fill_snapshots(gateway, owner_id, count):
    for n in range(count):
        gateway.put(SNAPSHOTS, {"id": f"snap-{owner_id}-{n}", "owner_id": owner_id, "summary": {}})


def test_full_store_is_retried_after_evicting_snapshots(seller):
    gateway = InMemoryRecordGateway(capacity=3)
    lifecycle = LifecycleEngine(gateway)
    _fill_snapshots(gateway, 7, 3)

    created = lifecycle.create_set(seller, 7, "Dana Reyes")

    assert gateway.get(SETS, created.id) is not None
    assert gateway.list_by_owner(SNAPSHOTS, 7) == []


def test_second_failure_reports_storage_unavailable(seller):
    gateway = InMemoryRecordGateway(capacity=1)
    lifecycle = LifecycleEngine(gateway)
    closed = _closed_set(lifecycle, seller)

    with pytest.raises(StorageUnavailableError) as excinfo:
        lifecycle.convert_set(seller, closed.id, _form(), verified=True)

    assert str(excinfo.value) == "Could not save changes. Please try again."
    assert gateway.get(SETS, closed.id)["status"] == "closed"
    assert gateway.get(PROJECTS, closed.id) is None


class FlakyRemoveGateway(InMemoryRecordGateway):
    """Rejects Set removals while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def remove(self, collection, record_id):
        if collection == SETS and self.failing:
            raise StorageError("store offline")
        super().remove(collection, record_id)


def test_interrupted_conversion_is_finished_on_retry(seller):
    gateway = FlakyRemoveGateway()
    lifecycle = LifecycleEngine(gateway)
    _convert(lifecycle, seller)
    closed = _closed_set(lifecycle, seller)
    gateway.failing = True

    with pytest.raises(StorageUnavailableError):
        lifecycle.convert_set(seller, closed.id, _form(), verified=True)

    # Both variants exist; the Set is what the id resolves to.
    assert gateway.get(PROJECTS, closed.id)["deal_number"] == 2
    assert isinstance(lifecycle.load_deal(seller, closed.id), SetRecord)

    gateway.failing = False
    result = lifecycle.convert_set(seller, closed.id, _form(system_size_kw="9.0"), verified=True)

    assert result.recovered is True
    assert result.project.deal_number == 2
    assert result.project.system_size_kw == 4.0
    assert gateway.get(SETS, closed.id) is None
    assert len(lifecycle.list_projects(seller, 7)) == 2
