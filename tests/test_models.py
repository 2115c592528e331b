"""Tests for model validation at the API boundary."""
from datetime import date, datetime, timezone
import pytest
from pydantic import ValidationError
from finance_tracker.models import (
    Budget,
    BudgetCreate,
    CategoryCreate,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)


def test_transaction_type_is_case_insensitive():
    tx = TransactionCreate(amount=10, date="2024-01-01", type="expense", category_id="food")

    assert tx.type is TransactionType.EXPENSE


def test_transaction_rejects_unknown_type():
    with pytest.raises(ValidationError):
        TransactionCreate(amount=10, date="2024-01-01", type="transfer", category_id="food")


def test_transaction_date_parsing():
    tx = Transaction(amount=1, date="2024-03-05", type="INCOME", category_id="c")
    naive = Transaction(amount=1, date=datetime(2024, 3, 5, 12), type="INCOME", category_id="c")

    assert tx.date == datetime(2024, 3, 5, tzinfo=timezone.utc)
    assert naive.date.tzinfo is timezone.utc


def test_transaction_rejects_bad_date():
    with pytest.raises(ValidationError):
        TransactionCreate(amount=10, date="not a date", type="INCOME", category_id="food")


@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
def test_amounts_must_be_finite(amount):
    with pytest.raises(ValidationError):
        Transaction(amount=amount, date="2024-01-01", type="EXPENSE", category_id="food")
    with pytest.raises(ValidationError):
        TransactionUpdate(amount=amount)
    with pytest.raises(ValidationError):
        Budget(name="Food", amount=amount, type="EXPENSE", category_id="food", period_start="2024-01-01")


def test_saving_budget_is_income():
    budget = Budget(
        name="Holiday fund",
        amount=500,
        type="SAVING",
        category_id="salary",
        period_start="2024-01-01",
    )

    assert budget.type is TransactionType.INCOME
    assert budget.period_end is None


def test_budget_accepts_legacy_period_names():
    budget = Budget(
        name="Food",
        amount=100,
        type="EXPENSE",
        category_id="food",
        startDate="2024-01-01T00:00:00.000Z",
        endDate="2024-01-31",
    )

    assert budget.period_start == date(2024, 1, 1)
    assert budget.period_end == date(2024, 1, 31)


def test_budget_create_rejects_negative_amount():
    with pytest.raises(ValidationError):
        BudgetCreate(name="Food", amount=-1, type="EXPENSE", category_id="food", period_start="2024-01-01")


def test_budget_create_rejects_inverted_period():
    with pytest.raises(ValidationError):
        BudgetCreate(
            name="Food",
            amount=100,
            type="EXPENSE",
            category_id="food",
            period_start="2024-02-01",
            period_end="2024-01-01",
        )


def test_budget_create_allows_zero_amount():
    budget = BudgetCreate(name="Food", amount=0, type="EXPENSE", category_id="food", period_start="2024-01-01")

    assert budget.amount == 0


def test_category_create_defaults_icon():
    category = CategoryCreate(name="Books", color="#123456", type="expense")

    assert category.icon == "FiTag"
    assert category.type is TransactionType.EXPENSE
