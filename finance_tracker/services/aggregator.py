"""Ledger aggregation: totals, category breakdowns, monthly series and budget progress."""
import logging
import math
from collections import defaultdict
from datetime import date, datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from finance_tracker.models.budget import Budget
from finance_tracker.models.category import Category
from finance_tracker.models.report import MonthlyBucket, MonthStats, Report, Totals
from finance_tracker.models.transaction import Transaction, TransactionType
from finance_tracker.services.budgets import BudgetEvaluator, index_by_category
from finance_tracker.utils.timestamp import ensure_utc, local_date, month_key

logger = logging.getLogger(__name__)


class ContractViolation(ValueError):
    """Raised when the aggregator is called with arguments no caller should pass."""


def _money(values: Iterable[float]) -> float:
    # fsum is exactly rounded, so the result does not depend on input order
    return round(math.fsum(values), 2)


def _check_sequence(name: str, value, model: type) -> tuple:
    if value is None:
        raise ContractViolation(f"{name} is required (got None)")
    if isinstance(value, (str, bytes, dict)):
        raise ContractViolation(f"{name} must be a sequence of {model.__name__}")
    try:
        items = tuple(value)
    except TypeError:
        raise ContractViolation(f"{name} must be a sequence of {model.__name__}") from None
    for i, item in enumerate(items):
        if not isinstance(item, model):
            raise ContractViolation(
                f"{name}[{i}] must be a {model.__name__}, got {type(item).__name__}"
            )
    return items


class LedgerAggregator:
    """Turns a transaction ledger plus category and budget metadata into a Report.
    
    Pure: no I/O, no clock reads, inputs are never modified. Bad rows are
    counted and reported through `skipped_count` and `warnings`; only
    caller bugs raise (ContractViolation).
    """
    
    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz
    
    def totals(self, transactions: Sequence[Transaction]) -> Totals:
        income = _money(tx.magnitude for tx in transactions if tx.type == TransactionType.INCOME)
        expense = _money(tx.magnitude for tx in transactions if tx.type == TransactionType.EXPENSE)
        return Totals(income=income, expense=expense)
    
    def by_category(
        self,
        transactions: Sequence[Transaction],
        categories: Sequence[Category],
    ) -> Tuple[Dict[str, float], Dict[str, float], int]:
        """
        Sum magnitudes per category name, split by transaction type.
        
        Returns:
            (expense_by_category, income_by_category, unresolved_count)
        """
        names = {c.id: c.name for c in categories if c.id is not None}
        buckets: Dict[TransactionType, Dict[str, List[float]]] = {
            TransactionType.EXPENSE: defaultdict(list),
            TransactionType.INCOME: defaultdict(list),
        }
        unresolved = 0
        for tx in transactions:
            name = names.get(tx.category_id)
            if name is None:
                unresolved += 1
                continue
            buckets[tx.type][name].append(tx.magnitude)
        
        expense = {k: _money(v) for k, v in sorted(buckets[TransactionType.EXPENSE].items())}
        income = {k: _money(v) for k, v in sorted(buckets[TransactionType.INCOME].items())}
        return expense, income, unresolved
    
    def monthly_series(self, transactions: Sequence[Transaction]) -> List[MonthlyBucket]:
        """Income/expense per calendar month, oldest month first."""
        months: Dict[Tuple[int, int], Dict[TransactionType, List[float]]] = defaultdict(
            lambda: {TransactionType.INCOME: [], TransactionType.EXPENSE: []}
        )
        for tx in transactions:
            months[month_key(tx.date, self.tz)][tx.type].append(tx.magnitude)
        
        return [
            MonthlyBucket(
                year=year,
                month=month,
                income=_money(flows[TransactionType.INCOME]),
                expense=_money(flows[TransactionType.EXPENSE]),
            )
            for (year, month), flows in sorted(months.items())
        ]
    
    def aggregate(
        self,
        transactions: Sequence[Transaction],
        categories: Sequence[Category],
        budgets: Sequence[Budget],
        as_of: datetime,
    ) -> Report:
        transactions = _check_sequence("transactions", transactions, Transaction)
        categories = _check_sequence("categories", categories, Category)
        budgets = _check_sequence("budgets", budgets, Budget)
        if as_of is None:
            raise ContractViolation("as_of is required; pass the evaluation time explicitly")
        if not isinstance(as_of, datetime):
            raise ContractViolation(f"as_of must be a datetime, got {type(as_of).__name__}")
        as_of = ensure_utc(as_of)
        
        warnings: List[str] = []
        skipped = 0
        
        totals = self.totals(transactions)
        expense_by_category, income_by_category, unresolved = self.by_category(transactions, categories)
        if unresolved:
            skipped += unresolved
            warnings.append(f"{unresolved} transaction(s) reference an unknown category and were left out of the category breakdown.")
            logger.warning("Excluded %d transaction(s) with unresolved category", unresolved)
        
        monthly = self.monthly_series(transactions)
        
        evaluator = BudgetEvaluator(index_by_category(transactions), as_of, self.tz)
        progress = []
        zero, negative = [], []
        for budget in budgets:
            if budget.amount == 0:
                zero.append(budget.name)
                logger.warning("Budget %s has zero amount", budget.id)
            elif budget.amount < 0:
                negative.append(budget.name)
                logger.warning("Budget %s has negative amount %s", budget.id, budget.amount)
            progress.append(evaluator.evaluate(budget))
        if zero:
            skipped += len(zero)
            warnings.append(f"Budget(s) with a zero amount, progress reported as 0%: {', '.join(zero)}.")
        if negative:
            skipped += len(negative)
            warnings.append(f"Budget(s) with a negative amount, progress reported as 0%: {', '.join(negative)}.")
        
        logger.debug(
            "Aggregated %d transactions, %d budgets into %d months (skipped=%d)",
            len(transactions), len(budgets), len(monthly), skipped,
        )
        
        return Report(
            totals=totals,
            expense_by_category=expense_by_category,
            income_by_category=income_by_category,
            monthly_series=monthly,
            budget_progress=progress,
            skipped_count=skipped,
            warnings=warnings,
        )
    
    def month_stats(self, transactions: Sequence[Transaction], as_of: datetime) -> MonthStats:
        """Income, expenses and balance for the calendar month containing `as_of`."""
        if as_of is None:
            raise ContractViolation("as_of is required")
        year, month = month_key(as_of, self.tz)
        current = [tx for tx in transactions if month_key(tx.date, self.tz) == (year, month)]
        totals = self.totals(current)
        return MonthStats(
            year=year,
            month=month,
            income=totals.income,
            expenses=totals.expense,
            balance=totals.balance,
        )


def aggregate(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    budgets: Sequence[Budget],
    as_of: datetime,
    tz: tzinfo = timezone.utc,
) -> Report:
    """Build a Report. `as_of` pins the evaluation time for open-ended budgets."""
    return LedgerAggregator(tz).aggregate(transactions, categories, budgets, as_of)


def filter_transactions(
    transactions: Iterable[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
    category_id: Optional[str] = None,
    tz: tzinfo = timezone.utc,
) -> List[Transaction]:
    """Caller-side pre-filter: inclusive calendar days in `tz` and/or a single category."""
    return [
        tx
        for tx in transactions
        if (start is None or local_date(tx.date, tz) >= start)
        and (end is None or local_date(tx.date, tz) <= end)
        and (category_id is None or tx.category_id == category_id)
    ]


def recent_transactions(transactions: Iterable[Transaction], limit: int = 5) -> List[Transaction]:
    """Newest transactions first."""
    return sorted(transactions, key=lambda tx: tx.date, reverse=True)[:limit]
