from .transaction import Transaction, TransactionCreate, TransactionUpdate, TransactionType
from .category import Category, CategoryCreate, CategoryUpdate
from .budget import Budget, BudgetCreate, BudgetUpdate
from .report import (
    Totals,
    MonthlyBucket,
    BudgetProgress,
    Report,
    MonthStats,
    ReportResponse,
    BalancePoint,
    BudgetWithProgress,
    UploadResponse,
    ExportDocument,
    ImportResponse,
)

__all__ = [
    "Transaction",
    "TransactionCreate",
    "TransactionUpdate",
    "TransactionType",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "Budget",
    "BudgetCreate",
    "BudgetUpdate",
    "Totals",
    "MonthlyBucket",
    "BudgetProgress",
    "Report",
    "MonthStats",
    "ReportResponse",
    "BalancePoint",
    "BudgetWithProgress",
    "UploadResponse",
    "ExportDocument",
    "ImportResponse",
]
