from .aggregator import (
    ContractViolation,
    LedgerAggregator,
    aggregate,
    filter_transactions,
    recent_transactions,
)
from .budgets import BudgetEvaluator, index_by_category
from .transfer import parse_upload, DEFAULT_CATEGORIES

__all__ = [
    "ContractViolation",
    "LedgerAggregator",
    "aggregate",
    "filter_transactions",
    "recent_transactions",
    "BudgetEvaluator",
    "index_by_category",
    "parse_upload",
    "DEFAULT_CATEGORIES",
]
