from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class CategoryOut(BaseModel):
    id: int
    name: str
    created_by: int
    created_at: str
    updated_at: str


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    type: TransactionType
    description: Optional[str] = Field(default=None, max_length=255)
    # Blank on update keeps the stored date.
    transaction_date: str = ""
    category_id: Optional[int] = None


class TransactionOut(BaseModel):
    id: int
    user_id: int
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    amount: Decimal
    type: TransactionType
    description: Optional[str] = None
    transaction_date: str
    created_at: str
    updated_at: str


class DailySummaryOut(BaseModel):
    transaction_date: str
    type: TransactionType
    total_amount: Decimal


class CategorySummaryOut(BaseModel):
    category_name: str
    type: TransactionType
    total_amount: Decimal
