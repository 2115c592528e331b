"""Transaction data models."""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional
from pydantic import AfterValidator, BaseModel, BeforeValidator, Field
from finance_tracker.utils.timestamp import ensure_utc, parse_timestamp


class TransactionType(str, Enum):
    """Direction of money flow. Authoritative for the sign of an amount."""
    
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


def _normalize_type(v: Any) -> Any:
    # Older rows carry "income"/"expense"
    if isinstance(v, str):
        return v.strip().upper()
    return v


def _coerce_datetime(v: Any) -> Any:
    if isinstance(v, str):
        return parse_timestamp(v)
    return v


FlowType = Annotated[TransactionType, BeforeValidator(_normalize_type)]
UtcDatetime = Annotated[datetime, BeforeValidator(_coerce_datetime), AfterValidator(ensure_utc)]


class Transaction(BaseModel):
    """Transaction model."""
    
    id: Optional[str] = None
    amount: float = Field(..., allow_inf_nan=False, description="Stored amount; may be signed or unsigned, type decides direction")
    date: UtcDatetime = Field(..., description="When the transaction happened (naive values are UTC)")
    type: FlowType
    category_id: str = Field(..., description="Category reference")
    description: str = Field(default="", description="Free text description")
    owner_id: Optional[str] = Field(None, description="Owning user")
    
    @property
    def magnitude(self) -> float:
        return abs(self.amount)
    
    class Config:
        json_schema_extra = {
            "example": {
                "amount": 45.99,
                "date": "2024-01-15T10:30:00Z",
                "type": "EXPENSE",
                "category_id": "food",
                "description": "Groceries",
            }
        }


class TransactionCreate(BaseModel):
    """Transaction creation payload."""
    
    amount: float = Field(..., allow_inf_nan=False, description="Amount; only the magnitude is used")
    date: UtcDatetime
    type: FlowType
    category_id: str
    description: str = ""


class TransactionUpdate(BaseModel):
    """Partial transaction update payload."""
    
    amount: Optional[float] = Field(None, allow_inf_nan=False)
    date: Optional[UtcDatetime] = None
    type: Optional[FlowType] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
