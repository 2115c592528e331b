"""Budget data models."""
from datetime import date, datetime
from typing import Annotated, Any, Optional
from pydantic import AliasChoices, BaseModel, BeforeValidator, Field, model_validator
from finance_tracker.models.transaction import TransactionType
from finance_tracker.utils.timestamp import parse_timestamp


def _normalize_budget_type(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip().upper()
        # Saving goals track money coming in
        if v == "SAVING":
            return TransactionType.INCOME.value
    return v


def _coerce_date(v: Any) -> Any:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str) and len(v.strip()) > 10:
        return parse_timestamp(v).date()
    return v


BudgetType = Annotated[TransactionType, BeforeValidator(_normalize_budget_type)]
PeriodDate = Annotated[date, BeforeValidator(_coerce_date)]


class Budget(BaseModel):
    """A cap (EXPENSE) or goal (INCOME/SAVING) for one category over an inclusive date range."""
    
    id: Optional[str] = None
    name: str
    amount: float = Field(..., allow_inf_nan=False, description="Limit or goal")
    type: BudgetType
    category_id: str
    period_start: PeriodDate = Field(..., validation_alias=AliasChoices("period_start", "startDate"))
    period_end: Optional[PeriodDate] = Field(
        None,
        validation_alias=AliasChoices("period_end", "endDate"),
        description="Open-ended when absent",
    )
    owner_id: Optional[str] = None


class BudgetCreate(BaseModel):
    """Budget creation payload."""
    
    name: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0, allow_inf_nan=False, description="Limit or goal; must not be negative")
    type: BudgetType
    category_id: str
    period_start: PeriodDate = Field(..., validation_alias=AliasChoices("period_start", "startDate"))
    period_end: Optional[PeriodDate] = Field(None, validation_alias=AliasChoices("period_end", "endDate"))
    
    @model_validator(mode="after")
    def check_period(self) -> "BudgetCreate":
        if self.period_end is not None and self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class BudgetUpdate(BaseModel):
    """Partial budget update payload."""
    
    name: Optional[str] = Field(None, min_length=1)
    amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    type: Optional[BudgetType] = None
    category_id: Optional[str] = None
    period_start: Optional[PeriodDate] = None
    period_end: Optional[PeriodDate] = None
