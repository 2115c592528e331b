"""Derived report models. None of these are persisted."""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, computed_field
from finance_tracker.models.budget import Budget
from finance_tracker.models.category import Category
from finance_tracker.models.transaction import Transaction


class Totals(BaseModel):
    """Income and expense magnitudes over the ledger."""
    
    income: float = 0.0
    expense: float = 0.0
    
    @computed_field
    @property
    def balance(self) -> float:
        return round(self.income - self.expense, 2)


class MonthlyBucket(BaseModel):
    """Income/expense for one calendar month."""
    
    year: int
    month: int = Field(..., ge=1, le=12)
    income: float = 0.0
    expense: float = 0.0
    
    @property
    def label(self) -> str:
        """Presentation label; never used for ordering."""
        return f"{self.year:04d}-{self.month:02d}"


class BudgetProgress(BaseModel):
    """Consumption of one budget."""
    
    budget_id: Optional[str]
    name: str = ""
    category_id: str
    limit: float
    spent: float = 0.0
    progress_percent: float = Field(0.0, description="spent / limit * 100; not clamped at 100")


class Report(BaseModel):
    """Output of one aggregation pass."""
    
    totals: Totals
    expense_by_category: Dict[str, float] = Field(default_factory=dict)
    income_by_category: Dict[str, float] = Field(default_factory=dict)
    monthly_series: List[MonthlyBucket] = Field(default_factory=list)
    budget_progress: List[BudgetProgress] = Field(default_factory=list)
    skipped_count: int = Field(0, ge=0, description="Rows excluded or zeroed because of bad data")
    warnings: List[str] = Field(default_factory=list)


class MonthStats(BaseModel):
    """Income, expenses and balance for a single calendar month."""
    
    year: int
    month: int
    income: float
    expenses: float
    balance: float


class ReportResponse(BaseModel):
    """Report endpoint payload."""
    
    user_id: str
    as_of: datetime
    report: Report
    recent_transactions: List[Transaction] = Field(default_factory=list)


class BalancePoint(BaseModel):
    """Monthly balance row for charting."""
    
    label: str
    year: int
    month: int
    income: float
    expense: float


class BudgetWithProgress(Budget):
    """Budget enriched with its current consumption."""
    
    spent: float = 0.0
    progress_percent: float = 0.0


class UploadResponse(BaseModel):
    """Response from transaction upload."""
    
    user_id: str
    transaction_count: int
    skipped_rows: int = 0
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    message: str


class ExportDocument(BaseModel):
    """A user's full data set as plain JSON."""
    
    user_id: Optional[str] = None
    exported_at: Optional[datetime] = None
    categories: List[Category] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)
    budgets: List[Budget] = Field(default_factory=list)


class ImportResponse(BaseModel):
    """Counts of rows loaded by an import."""
    
    user_id: str
    categories: int
    transactions: int
    budgets: int
    message: str
