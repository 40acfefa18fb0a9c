from datetime import date

import pytest

from salesdesk.core.deals import ProjectRecord
from salesdesk.core.tiers import (
    auto_payment_date,
    count_deals_by_tier,
    next_deal_number,
    rep_title_for_deal_count,
    resolve_tier,
    upfront_payment_amount,
)


def test_tier_boundary_between_ten_and_eleven():
    assert resolve_tier(10).rate_per_kw == 200
    assert resolve_tier(11).rate_per_kw == 250


def test_tier_edges():
    assert resolve_tier(1).name == "tier_1"
    assert resolve_tier(20).rate_per_kw == 250
    assert resolve_tier(21).rate_per_kw == 200
    assert resolve_tier(21).name == "tier_1_fallback"
    assert resolve_tier(150).rate_per_kw == 200


def test_deal_numbers_start_at_one():
    with pytest.raises(ValueError):
        resolve_tier(0)


def test_upfront_payment_amount_for_eleventh_deal():
    assert upfront_payment_amount(11, 4.0) == 1000
    assert upfront_payment_amount(3, "6.5") == 1300
    assert upfront_payment_amount(3, None) == 0.0


def test_next_deal_number_counts_every_prior_project():
    assert next_deal_number([]) == 1
    assert next_deal_number(["a", "b", "c"]) == 4


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2025, 3, 12), date(2025, 3, 21)),  # Wednesday
        (date(2025, 3, 14), date(2025, 3, 21)),  # Friday
        (date(2025, 3, 15), date(2025, 3, 28)),  # Saturday
        (date(2025, 3, 16), date(2025, 3, 28)),  # Sunday
        (date(2025, 3, 13), date(2025, 3, 21)),  # Thursday
    ],
)
def test_auto_payment_date_skips_the_upcoming_friday(today, expected):
    assert auto_payment_date(5, today) == expected
    assert expected.weekday() == 4


def test_auto_payment_date_only_for_first_twenty_deals():
    assert auto_payment_date(20, date(2025, 3, 12)) == date(2025, 3, 21)
    assert auto_payment_date(21, date(2025, 3, 12)) is None


def test_count_deals_by_tier():
    projects = [
        ProjectRecord(id=str(n), owner_id=1, customer_name="C", deal_number=n, payment_amount=0, commission_rate_per_kw=200)
        for n in (1, 2, 10, 11, 20, 21)
    ]
    assert count_deals_by_tier(projects) == {"tier_1": 3, "tier_2": 2, "tier_1_fallback": 1}


def test_rep_titles_follow_deal_count():
    assert rep_title_for_deal_count(1) == "Intern Rep"
    assert rep_title_for_deal_count(10) == "Intern Rep"
    assert rep_title_for_deal_count(11) == "Veteran Rep"
    assert rep_title_for_deal_count(20) == "Veteran Rep"
    assert rep_title_for_deal_count(21) == "Pro Rep"
