"""Category data models."""
from typing import Optional
from pydantic import BaseModel, Field
from finance_tracker.models.transaction import FlowType


class Category(BaseModel):
    """Category model. Its type constrains which transactions may reference it."""
    
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    color: str = Field(default="#999999", description="Display colour")
    icon: str = Field(default="FiTag", description="Icon identifier")
    type: FlowType
    owner_id: Optional[str] = None


class CategoryCreate(BaseModel):
    """Category creation payload."""
    
    name: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    icon: str = "FiTag"
    type: FlowType


class CategoryUpdate(BaseModel):
    """Partial category update payload."""
    
    name: Optional[str] = Field(None, min_length=1)
    color: Optional[str] = None
    icon: Optional[str] = None
    type: Optional[FlowType] = None
