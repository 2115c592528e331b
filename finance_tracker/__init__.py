"""Personal finance tracker: ledger storage, budgets and reports."""

__version__ = "1.0.0"
