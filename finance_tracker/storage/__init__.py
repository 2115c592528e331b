from .database import (
    Database,
    CategoryStore,
    TransactionStore,
    BudgetStore,
    CategoryInUseError,
    get_db,
)

__all__ = [
    "Database",
    "CategoryStore",
    "TransactionStore",
    "BudgetStore",
    "CategoryInUseError",
    "get_db",
]
