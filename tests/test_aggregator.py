"""Tests for the ledger aggregator."""
import random
from datetime import date, datetime, timedelta, timezone
import pytest
from finance_tracker.models import Budget, Category, Transaction
from finance_tracker.services.aggregator import (
    ContractViolation,
    LedgerAggregator,
    aggregate,
    filter_transactions,
    recent_transactions,
)


def tx(amount, when, type_, category_id, tx_id=None):
    return Transaction(
        id=tx_id,
        amount=amount,
        date=when,
        type=type_,
        category_id=category_id,
        description="",
        owner_id="u1",
    )


def cat(cat_id, type_, name=None):
    return Category(id=cat_id, name=name or cat_id, type=type_, owner_id="u1")


def budget(category_id, amount, start, end=None, type_="EXPENSE", budget_id="b1"):
    return Budget(
        id=budget_id,
        name=f"{category_id} budget",
        amount=amount,
        type=type_,
        category_id=category_id,
        period_start=start,
        period_end=end,
        owner_id="u1",
    )


@pytest.fixture
def categories():
    return [cat("salary", "INCOME"), cat("food", "EXPENSE"), cat("rent", "EXPENSE")]


@pytest.fixture
def scenario():
    """Three transactions over January and February 2024."""
    return [
        tx(100, "2024-01-05T00:00:00Z", "INCOME", "salary"),
        tx(50, "2024-01-10T00:00:00Z", "EXPENSE", "food"),
        tx(30, "2024-02-01T00:00:00Z", "EXPENSE", "food"),
    ]


AS_OF = datetime(2024, 2, 15, tzinfo=timezone.utc)


def test_reference_scenario(scenario, categories):
    report = aggregate(scenario, categories, [budget("food", 100, date(2024, 1, 1))], AS_OF)

    assert report.totals.income == 100
    assert report.totals.expense == 80
    assert report.expense_by_category == {"food": 80}
    assert report.income_by_category == {"salary": 100}
    assert [(b.year, b.month, b.income, b.expense) for b in report.monthly_series] == [
        (2024, 1, 100, 50),
        (2024, 2, 0, 30),
    ]
    assert len(report.budget_progress) == 1
    assert report.budget_progress[0].budget_id == "b1"
    assert report.budget_progress[0].spent == 80
    assert report.budget_progress[0].progress_percent == 80
    assert report.skipped_count == 0
    assert report.warnings == []


def test_empty_ledger_is_a_valid_report(categories):
    report = aggregate([], categories, [], AS_OF)

    assert report.totals.income == 0
    assert report.totals.expense == 0
    assert report.expense_by_category == {}
    assert report.monthly_series == []
    assert report.skipped_count == 0


def test_type_decides_sign(categories):
    # Same expense stored signed and unsigned
    transactions = [
        tx(-40, "2024-01-02T00:00:00Z", "EXPENSE", "food"),
        tx(60, "2024-01-03T00:00:00Z", "EXPENSE", "food"),
        tx(-10, "2024-01-04T00:00:00Z", "INCOME", "salary"),
    ]
    report = aggregate(transactions, categories, [], AS_OF)

    assert report.totals.expense == 100
    assert report.totals.income == 10
    assert report.totals.balance == -90
    assert report.expense_by_category == {"food": 100}


def test_totals_match_sum_of_magnitudes(categories):
    rng = random.Random(42)
    transactions = [
        tx(
            round(rng.uniform(-500, 500), 2),
            datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(days=rng.randint(0, 200)),
            rng.choice(["INCOME", "EXPENSE"]),
            rng.choice(["salary", "food", "rent"]),
        )
        for _ in range(300)
    ]
    totals = LedgerAggregator().totals(transactions)

    expected_expense = sum(abs(t.amount) for t in transactions if t.type.value == "EXPENSE")
    expected_income = sum(abs(t.amount) for t in transactions if t.type.value == "INCOME")
    assert totals.expense == pytest.approx(expected_expense, abs=0.01)
    assert totals.income == pytest.approx(expected_income, abs=0.01)


def test_report_does_not_depend_on_input_order(categories):
    transactions = [
        tx(0.1, "2024-03-01T00:00:00Z", "EXPENSE", "food"),
        tx(0.2, "2023-11-15T00:00:00Z", "EXPENSE", "food"),
        tx(0.3, "2024-01-20T00:00:00Z", "EXPENSE", "rent"),
        tx(1000.55, "2023-12-31T00:00:00Z", "INCOME", "salary"),
        tx(333.33, "2024-02-29T00:00:00Z", "INCOME", "salary"),
    ]
    budgets = [budget("food", 1, date(2023, 1, 1))]
    baseline = aggregate(transactions, categories, budgets, AS_OF).model_dump_json()

    rng = random.Random(7)
    for _ in range(10):
        shuffled = transactions[:]
        rng.shuffle(shuffled)
        assert aggregate(shuffled, categories, budgets, AS_OF).model_dump_json() == baseline


def test_monthly_series_sorted_by_calendar_not_label(categories):
    # Alphabetically "December" < "February" < "January" < "November"
    transactions = [
        tx(5, "2024-01-10T00:00:00Z", "EXPENSE", "food"),
        tx(5, "2023-11-10T00:00:00Z", "EXPENSE", "food"),
        tx(5, "2024-02-10T00:00:00Z", "EXPENSE", "food"),
        tx(5, "2023-12-10T00:00:00Z", "EXPENSE", "food"),
        tx(5, "2022-12-10T00:00:00Z", "INCOME", "salary"),
    ]
    series = LedgerAggregator().monthly_series(transactions)

    assert [(b.year, b.month) for b in series] == [
        (2022, 12), (2023, 11), (2023, 12), (2024, 1), (2024, 2),
    ]
    assert [b.label for b in series][0] == "2022-12"


def test_monthly_bucketing_uses_report_timezone(categories):
    eastern = timezone(timedelta(hours=-5))
    # 23:30 on Jan 31 in UTC-5 is already Feb 1 in UTC
    late_evening = datetime(2024, 1, 31, 23, 30, tzinfo=eastern)
    transactions = [tx(20, late_evening, "EXPENSE", "food")]

    utc_series = LedgerAggregator(timezone.utc).monthly_series(transactions)
    local_series = LedgerAggregator(eastern).monthly_series(transactions)

    assert [(b.year, b.month) for b in utc_series] == [(2024, 2)]
    assert [(b.year, b.month) for b in local_series] == [(2024, 1)]


def test_naive_dates_are_utc(categories):
    transactions = [tx(20, datetime(2024, 1, 31, 23, 30), "EXPENSE", "food")]
    series = aggregate(transactions, categories, [], datetime(2024, 2, 15)).monthly_series

    assert [(b.year, b.month) for b in series] == [(2024, 1)]


def test_unresolved_category_is_counted_not_dropped(categories):
    transactions = [
        tx(50, "2024-01-10T00:00:00Z", "EXPENSE", "food"),
        tx(70, "2024-01-11T00:00:00Z", "EXPENSE", "deleted-category"),
    ]
    report = aggregate(transactions, categories, [], AS_OF)

    assert report.expense_by_category == {"food": 50}
    assert report.skipped_count == 1
    assert any("unknown category" in w for w in report.warnings)
    # Still part of the ledger totals
    assert report.totals.expense == 120
    assert report.monthly_series[0].expense == 120


def test_category_maps_split_by_transaction_type(categories):
    transactions = [
        tx(15, "2024-01-10T00:00:00Z", "INCOME", "food"),
        tx(25, "2024-01-10T00:00:00Z", "EXPENSE", "food"),
    ]
    report = aggregate(transactions, categories, [], AS_OF)

    assert report.expense_by_category == {"food": 25}
    assert report.income_by_category == {"food": 15}


def test_category_maps_keyed_by_name(categories):
    named = [cat("c-1", "EXPENSE", name="Groceries")]
    report = aggregate([tx(9, "2024-01-01T00:00:00Z", "EXPENSE", "c-1")], named, [], AS_OF)

    assert report.expense_by_category == {"Groceries": 9}


def test_zero_amount_budget_has_zero_progress(scenario, categories):
    report = aggregate(scenario, categories, [budget("food", 0, date(2024, 1, 1))], AS_OF)

    progress = report.budget_progress[0]
    assert progress.progress_percent == 0
    assert progress.spent == 80
    assert report.skipped_count == 1
    assert any("zero amount" in w for w in report.warnings)


def test_negative_budget_is_zeroed_not_raised(scenario, categories):
    report = aggregate(scenario, categories, [budget("food", -100, date(2024, 1, 1))], AS_OF)

    assert report.budget_progress[0].progress_percent == 0
    assert report.skipped_count == 1


def test_over_budget_is_not_clamped(categories):
    transactions = [tx(150, "2024-01-10T00:00:00Z", "EXPENSE", "food")]
    report = aggregate(transactions, categories, [budget("food", 100, date(2024, 1, 1))], AS_OF)

    assert report.budget_progress[0].progress_percent == 150


def test_budget_not_started_yet(categories):
    transactions = [
        tx(40, "2024-02-10T00:00:00Z", "EXPENSE", "food"),
        tx(40, "2024-03-10T00:00:00Z", "EXPENSE", "food"),
    ]
    future = budget("food", 100, date(2024, 3, 1), end=date(2024, 3, 31))
    report = aggregate(transactions, categories, [future], AS_OF)

    assert report.budget_progress[0].spent == 0
    assert report.budget_progress[0].progress_percent == 0


def test_open_ended_budget_runs_until_as_of(categories):
    transactions = [
        tx(10, "2024-01-05T00:00:00Z", "EXPENSE", "food"),
        tx(20, "2024-01-20T00:00:00Z", "EXPENSE", "food"),
    ]
    budgets = [budget("food", 100, date(2024, 1, 1))]

    mid_january = aggregate(transactions, categories, budgets, datetime(2024, 1, 15, tzinfo=timezone.utc))
    end_of_january = aggregate(transactions, categories, budgets, datetime(2024, 1, 31, tzinfo=timezone.utc))

    assert mid_january.budget_progress[0].spent == 10
    assert end_of_january.budget_progress[0].spent == 30


def test_closed_budget_window_is_inclusive(categories):
    transactions = [
        tx(1, "2023-12-31T23:59:00Z", "EXPENSE", "food"),
        tx(2, "2024-01-01T00:00:00Z", "EXPENSE", "food"),
        tx(4, "2024-01-31T18:00:00Z", "EXPENSE", "food"),
        tx(8, "2024-02-01T00:00:00Z", "EXPENSE", "food"),
    ]
    january = budget("food", 10, date(2024, 1, 1), end=date(2024, 1, 31))
    report = aggregate(transactions, categories, [january], AS_OF)

    assert report.budget_progress[0].spent == 6
    assert report.budget_progress[0].progress_percent == 60


def test_budget_ignores_other_type_and_category(categories):
    transactions = [
        tx(30, "2024-01-10T00:00:00Z", "EXPENSE", "food"),
        tx(500, "2024-01-10T00:00:00Z", "INCOME", "food"),
        tx(900, "2024-01-10T00:00:00Z", "EXPENSE", "rent"),
    ]
    report = aggregate(transactions, categories, [budget("food", 60, date(2024, 1, 1))], AS_OF)

    assert report.budget_progress[0].spent == 30
    assert report.budget_progress[0].progress_percent == 50


def test_income_budget_tracks_income(categories):
    transactions = [
        tx(300, "2024-01-10T00:00:00Z", "INCOME", "salary"),
        tx(100, "2024-01-10T00:00:00Z", "EXPENSE", "salary"),
    ]
    goal = budget("salary", 1200, date(2024, 1, 1), type_="SAVING")
    report = aggregate(transactions, categories, [goal], AS_OF)

    assert report.budget_progress[0].spent == 300
    assert report.budget_progress[0].progress_percent == 25


def test_aggregate_is_idempotent_and_leaves_inputs_alone(scenario, categories):
    budgets = [budget("food", 100, date(2024, 1, 1))]
    before = [t.model_dump() for t in scenario]
    order = [t.id for t in scenario]

    first = aggregate(scenario, categories, budgets, AS_OF)
    second = aggregate(scenario, categories, budgets, AS_OF)

    assert first.model_dump_json() == second.model_dump_json()
    assert [t.model_dump() for t in scenario] == before
    assert [t.id for t in scenario] == order


def test_accepts_tuples_and_generators(scenario, categories):
    report = aggregate(tuple(scenario), (c for c in categories), [], AS_OF)

    assert report.expense_by_category == {"food": 80}


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"transactions": None}, "transactions"),
        ({"categories": None}, "categories"),
        ({"budgets": None}, "budgets"),
        ({"as_of": None}, "as_of"),
        ({"as_of": "2024-02-15"}, "as_of"),
        ({"transactions": [{"amount": 1}]}, "transactions[0]"),
        ({"categories": "food"}, "categories"),
        ({"budgets": 42}, "budgets"),
    ],
)
def test_contract_violations_fail_fast(scenario, categories, kwargs, message):
    args = {
        "transactions": scenario,
        "categories": categories,
        "budgets": [],
        "as_of": AS_OF,
    }
    args.update(kwargs)

    with pytest.raises(ContractViolation, match=message.replace("[", r"\[").replace("]", r"\]")):
        aggregate(**args)


def test_contract_violation_is_a_value_error():
    assert issubclass(ContractViolation, ValueError)


def test_month_stats(scenario):
    stats = LedgerAggregator().month_stats(scenario, datetime(2024, 1, 20, tzinfo=timezone.utc))

    assert (stats.year, stats.month) == (2024, 1)
    assert stats.income == 100
    assert stats.expenses == 50
    assert stats.balance == 50


def test_filter_transactions(scenario):
    january = filter_transactions(scenario, start=date(2024, 1, 1), end=date(2024, 1, 31))
    food = filter_transactions(scenario, category_id="food")

    assert [t.amount for t in january] == [100, 50]
    assert [t.amount for t in food] == [50, 30]


def test_filter_end_date_covers_the_whole_day():
    ledger = [
        tx(10, "2024-01-31T15:00:00Z", "EXPENSE", "food"),
        tx(20, "2024-02-01T00:00:00Z", "EXPENSE", "food"),
    ]

    assert [t.amount for t in filter_transactions(ledger, end=date(2024, 1, 31))] == [10]
    # 23:30 UTC on Jan 31 is already Feb 1 in UTC+1
    plus_one = timezone(timedelta(hours=1))
    late = [tx(5, "2024-01-31T23:30:00Z", "EXPENSE", "food")]
    assert filter_transactions(late, end=date(2024, 1, 31), tz=plus_one) == []
    assert filter_transactions(late, start=date(2024, 2, 1), tz=plus_one) == late


def test_recent_transactions_newest_first(scenario):
    latest = recent_transactions(scenario, limit=2)

    assert [t.amount for t in latest] == [30, 50]
