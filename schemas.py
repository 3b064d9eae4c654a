from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import ProjectStatus, RecurrenceType, ScheduledStatus, TransactionType

HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icon: Optional[str] = Field(default=None, max_length=40)
    order: Optional[int] = Field(default=None, ge=0)


class PaymentMethodIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    order: Optional[int] = Field(default=None, ge=0)


class ReorderIn(BaseModel):
    dragged_id: int
    target_id: int


class ProjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field(default="#4f46e5", pattern=HEX_COLOR)
    icon: Optional[str] = Field(default=None, max_length=40)
    status: ProjectStatus = ProjectStatus.active
    locked: bool = False


class TransactionIn(BaseModel):
    type: TransactionType
    amount: int = Field(..., ge=0)
    description: str = Field(default="", max_length=200)
    category_id: int
    payment_method_id: Optional[int] = None
    project_id: Optional[int] = None
    occurred_at: datetime
    memo: Optional[str] = None


class TransactionMemoIn(BaseModel):
    memo: Optional[str] = None


class ProjectStatusIn(BaseModel):
    status: ProjectStatus


class ActiveIn(BaseModel):
    is_active: bool


class RecurringExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount: int = Field(..., ge=0)
    category_id: Optional[int] = None
    day_of_month: int = Field(..., ge=1, le=31)
    recurrence_type: RecurrenceType = RecurrenceType.regular
    months: list[int] = Field(default_factory=list)
    memo: Optional[str] = None
    is_active: bool = True

    @field_validator("months")
    @classmethod
    def _valid_months(cls, value: list[int]) -> list[int]:
        if any(m < 1 or m > 12 for m in value):
            raise ValueError("Months must be between 1 and 12")
        return sorted(set(value))


class ScheduledExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount: int = Field(..., ge=0)
    category_id: Optional[int] = None
    scheduled_date: date
    memo: Optional[str] = None


class BankAccountIn(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_alias: Optional[str] = Field(default=None, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=64)
    memo: Optional[str] = None
    is_active: bool = True
    is_favorite: bool = False


class AccountBalanceIn(BaseModel):
    account_id: int
    amount: int
    memo: Optional[str] = Field(default=None, max_length=200)
    recorded_at: datetime


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: Optional[str]
    icon: Optional[str] = None
    order: int


class PaymentMethodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: Optional[str]
    order: int


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    color: str
    icon: Optional[str]
    status: ProjectStatus
    locked: bool
    created_at: datetime
    updated_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: int
    description: str
    category_id: Optional[int]
    payment_method_id: Optional[int]
    project_id: Optional[int]
    occurred_at: datetime
    memo: Optional[str]
    created_at: datetime
    updated_at: datetime


class RecurringExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount: int
    category_id: Optional[int]
    day_of_month: int
    recurrence_type: RecurrenceType
    months: list[int]
    memo: Optional[str]
    is_active: bool
    last_posted_on: Optional[date]


class ScheduledExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount: int
    category_id: Optional[int]
    scheduled_date: date
    memo: Optional[str]
    status: ScheduledStatus
    transaction_id: Optional[int]


class BankAccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_name: str
    account_alias: Optional[str]
    account_number: Optional[str]
    memo: Optional[str]
    is_active: bool
    is_favorite: bool
    created_at: datetime


class AccountBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    amount: int
    memo: Optional[str]
    recorded_at: datetime
