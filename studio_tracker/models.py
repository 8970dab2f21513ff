# studio_tracker/models.py
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .errors import ValidationError


class JobStatus(str, Enum):
    PENDING = "Pending"
    READY = "Ready"
    COMPLETED = "Completed"


class PayMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"


class BalancePayMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    NONE = "None"


class NotificationKind(str, Enum):
    JOB_UPDATED = "JOB_UPDATED"
    READY_NOTIFY = "READY_NOTIFY"
    RECEIPT = "RECEIPT"


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Outcome(str, Enum):
    SUCCESS = "success"
    NOTIFICATION_WARNING = "notification_warning"
    VALIDATION_REJECTED = "validation_rejected"
    FAILED = "failed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _title_case(value: Any) -> Any:
    if isinstance(value, str) and value.strip():
        return value.strip().title()
    return _blank_to_none(value)


# ──────────────────────────────────────────────────────────────────────────────
# Stored entities (canonical shape, camelCase on the wire and in storage)
# ──────────────────────────────────────────────────────────────────────────────
class Job(_CamelModel):
    id: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    description: Optional[str] = None
    total_cost: float = 0
    advance: float = 0
    balance: float = 0
    balance_paid: Optional[float] = None
    pay_method: Optional[PayMethod] = None
    balance_pay_method: Optional[BalancePayMethod] = None
    status: JobStatus = JobStatus.PENDING
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @computed_field(alias="needsDetails")
    @property
    def needs_details(self) -> bool:
        """Self-registered by a customer, still waiting for product and price."""
        return not self.product_code or not self.total_cost

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id", "needs_details"}, exclude_none=True)


class Product(_CamelModel):
    id: str
    code: str
    name: str
    price: float = 0
    description: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)


class Actor(BaseModel):
    id: str
    email: Optional[str] = None
    role: Role = Role.STAFF

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class LedgerStats(_CamelModel):
    total_jobs: int = 0
    pending: int = 0
    ready: int = 0
    completed: int = 0
    cash_income: float = 0
    card_income: float = 0
    due_balance: float = 0


# ──────────────────────────────────────────────────────────────────────────────
# Inputs
# ──────────────────────────────────────────────────────────────────────────────
class JobIn(_CamelModel):
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    product_id: Optional[str] = None
    description: Optional[str] = None
    total_cost: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    advance: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    pay_method: PayMethod = PayMethod.CASH
    due_date: Optional[date] = None
    # only meaningful when editing a completed job
    balance_pay_method: Optional[BalancePayMethod] = None

    @field_validator("customer_name", mode="before")
    @classmethod
    def _require_name(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Customer name is required")
        return v

    @field_validator(
        "customer_email", "customer_phone", "product_id", "description",
        "total_cost", "advance", "due_date",
        mode="before",
    )
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("pay_method", mode="before")
    @classmethod
    def _pay_method(cls, v: Any) -> Any:
        v = _title_case(v)
        return PayMethod.CASH if v is None else v

    @field_validator("balance_pay_method", mode="before")
    @classmethod
    def _balance_method(cls, v: Any) -> Any:
        return _title_case(v)


class IntakeIn(BaseModel):
    """The public registration form: who the customer is, nothing else."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _require_name(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Name is required")
        return v

    @field_validator("email", "phone", mode="before")
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)


class CompleteIn(_CamelModel):
    balance_pay_method: Optional[BalancePayMethod] = None

    @field_validator("balance_pay_method", mode="before")
    @classmethod
    def _method(cls, v: Any) -> Any:
        return _title_case(v)


class ProductIn(_CamelModel):
    code: str
    name: str
    price: float = Field(gt=0, allow_inf_nan=False)
    description: Optional[str] = None

    @field_validator("code", "name", mode="before")
    @classmethod
    def _required(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Fill all fields")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)


M = TypeVar("M", bound=BaseModel)


def parse_input(model: Type[M], data: Union[M, Mapping[str, Any]]) -> M:
    """Accept a model instance or a raw mapping; bad input becomes ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(problems) from e
