from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from flocktrack.services.sales import compute_sales_summary, eggs_in_sale
from flocktrack.services.summary import (
    average_daily_eggs,
    brooding_count_from_events,
    classify_production,
    compute_flock_summary,
    expected_layers,
    is_laying_ready,
    mortality_rate,
    round_half_up,
)

TODAY = date(2026, 6, 15)


def batch(id=1, **kw):
    fields = dict(
        id=id,
        batch_name=f"Batch {id}",
        breed="Leghorn",
        type="hens",
        age_at_acquisition="adult",
        acquisition_date=date(2026, 1, 1),
        initial_count=10,
        current_count=10,
        hens_count=10,
        roosters_count=0,
        chicks_count=0,
        brooding_count=0,
        expected_laying_start_date=None,
        actual_laying_start_date=date(2026, 2, 1),
        is_active=True,
    )
    fields.update(kw)
    return SimpleNamespace(**fields)


def eggs(*counts, start=TODAY):
    return [SimpleNamespace(date=start - timedelta(days=i), count=c) for i, c in enumerate(counts)]


def death(batch_id, count, when=TODAY):
    return SimpleNamespace(batch_id=batch_id, count=count, date=when)


def test_expected_layers_subtract_brooding():
    assert expected_layers([batch(hens_count=10, brooding_count=2)]) == 8


def test_expected_layers_skip_batches_not_laying_and_clamp():
    assert expected_layers([batch(actual_laying_start_date=None)]) == 0
    assert expected_layers([batch(hens_count=3, brooding_count=5)]) == 0
    assert expected_layers([batch(hens_count=0, brooding_count=0)]) == 0


def test_brooding_count_replays_start_and_stop_events():
    def event(type, affected_count=None):
        return SimpleNamespace(type=type, affected_count=affected_count)

    assert brooding_count_from_events([]) == 0
    assert brooding_count_from_events([event("brooding_start", 3), event("brooding_stop")]) == 2
    assert brooding_count_from_events([event("brooding_start", 2), event("health_check", 9)]) == 2
    # more birds leave the nest than were recorded sitting
    assert brooding_count_from_events([event("brooding_start", 3), event("brooding_stop", 5)]) == 0


def test_mortality_rate():
    assert mortality_rate(3, 20) == 15.0
    assert mortality_rate(5, 0) == 0
    assert mortality_rate(1, 3) == 33.33


def test_average_daily_eggs_over_window():
    assert average_daily_eggs(eggs(10, 12, 11), TODAY) == 11
    assert average_daily_eggs([], TODAY) == 0
    # older than the window
    assert average_daily_eggs(eggs(50, start=TODAY - timedelta(days=31)), TODAY) == 0


def test_average_daily_eggs_sums_same_day_entries():
    rows = [SimpleNamespace(date=TODAY, count=4), SimpleNamespace(date=TODAY, count=6)]
    rows += eggs(20, start=TODAY - timedelta(days=1))
    assert average_daily_eggs(rows, TODAY) == 15


@pytest.mark.parametrize(
    "per_hen, status",
    [(0, "unknown"), (0.1, "poor"), (0.3, "fair"), (0.5, "good"), (0.69, "good"), (0.7, "excellent"), (1.2, "excellent")],
)
def test_production_bands(per_hen, status):
    assert classify_production(per_hen)[0] == status


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(13.75) == 14
    assert round_half_up(0.49) == 0


def test_summary_excellent_production():
    summary = compute_flock_summary([batch(hens_count=15, initial_count=15, current_count=15)], [], eggs(10, 12, 11), today=TODAY)
    assert summary.expected_layers == 15
    assert summary.avg_eggs_per_hen == 0.73
    assert summary.production_metrics.production_status == "excellent"
    assert summary.production_metrics.avg_daily_eggs == 11.0
    # 11 / 0.8 = 13.75
    assert summary.actual_layers == 14


def test_summary_mortality_counts_only_supplied_batches():
    summary = compute_flock_summary(
        [batch(initial_count=20, hens_count=20, current_count=17)],
        [death(1, 2), death(1, 1, when=TODAY - timedelta(days=90)), death(99, 7)],
        [],
        today=TODAY,
    )
    assert summary.total_deaths == 3
    assert summary.mortality_rate == 15.0
    assert summary.mortality_metrics.recent_deaths == 2


def test_summary_ignores_inactive_batches():
    summary = compute_flock_summary([batch(), batch(id=2, is_active=False)], [death(2, 4)], [], today=TODAY)
    assert summary.active_batches == 1
    assert summary.total_birds == 10
    assert summary.total_deaths == 0


def test_summary_with_no_data():
    summary = compute_flock_summary([], [], [], today=TODAY)
    assert summary.total_birds == 0
    assert summary.mortality_rate == 0
    assert summary.avg_eggs_per_hen == 0
    assert summary.actual_layers == 0
    assert summary.production_metrics.production_status == "unknown"
    assert summary.production_metrics.production_message == "No recent egg data available"


def test_summary_eggs_without_expected_layers_is_unknown():
    summary = compute_flock_summary([batch(actual_laying_start_date=None)], [], eggs(6), today=TODAY)
    assert summary.expected_layers == 0
    assert summary.avg_eggs_per_hen == 0
    assert summary.production_metrics.production_status == "unknown"


def test_laying_readiness_order():
    # actual date wins over everything else
    assert is_laying_ready(batch(age_at_acquisition="chick", acquisition_date=TODAY), TODAY)
    # then the expected date
    assert is_laying_ready(batch(actual_laying_start_date=None, expected_laying_start_date=TODAY), TODAY)
    assert not is_laying_ready(
        batch(actual_laying_start_date=None, expected_laying_start_date=TODAY + timedelta(days=1)), TODAY
    )
    # roosters never lay
    assert not is_laying_ready(batch(type="roosters"), TODAY)


@pytest.mark.parametrize(
    "age, weeks, ready",
    [
        ("adult", 0, True),
        ("juvenile", 7, False),
        ("juvenile", 8, True),
        ("chick", 17, False),
        ("chick", 18, True),
        ("hatchling", 100, False),
    ],
)
def test_laying_readiness_by_age(age, weeks, ready):
    b = batch(
        actual_laying_start_date=None,
        age_at_acquisition=age,
        acquisition_date=TODAY - timedelta(weeks=weeks),
    )
    assert is_laying_ready(b, TODAY) is ready


def test_laying_ready_and_too_young_totals():
    summary = compute_flock_summary(
        [
            batch(id=1, current_count=9),
            batch(id=2, current_count=6, actual_laying_start_date=None, age_at_acquisition="chick", acquisition_date=TODAY),
            batch(id=3, type="roosters", current_count=2, hens_count=0, roosters_count=2),
        ],
        [],
        [],
        today=TODAY,
    )
    assert summary.production_metrics.laying_ready == 9
    assert summary.production_metrics.too_young == 6
    assert [b.is_laying_age for b in summary.batch_summary] == [True, False, False]


def test_summary_accepts_iso_strings():
    b = batch(acquisition_date="2026-01-01", actual_laying_start_date="2026-02-01")
    summary = compute_flock_summary([b], [], [SimpleNamespace(date=TODAY.isoformat(), count=8)], today=TODAY)
    assert summary.batch_summary[0].acquisition_date == date(2026, 1, 1)
    assert summary.production_metrics.avg_daily_eggs == 8.0


def test_sales_summary():
    customers = [SimpleNamespace(id=1, name="Oakridge"), SimpleNamespace(id=2, name="Sue")]
    sales = [
        SimpleNamespace(customer_id=1, dozen_count=2, individual_count=0, total_amount=9.0),
        SimpleNamespace(customer_id=2, dozen_count=3, individual_count=6, total_amount=0),
        SimpleNamespace(customer_id=None, dozen_count=0, individual_count=6, total_amount=2.5),
    ]
    summary = compute_sales_summary(customers, sales)
    assert summary.customer_count == 2
    assert summary.total_sales == 3
    assert summary.total_revenue == 11.5
    assert summary.total_eggs_sold == 30
    assert summary.free_eggs_given == 42
    assert summary.top_customer == "Sue"
    assert eggs_in_sale(sales[1]) == 42
