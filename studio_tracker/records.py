# studio_tracker/records.py
"""
Read-time normalization of stored documents.

Jobs written by older versions of the dashboard (and by the first customer
form) used ``name``/``email``/``phone``, kept numbers as strings, and carried
Firestore ``{"seconds": ...}`` timestamps. Everything that reads the jobs
collection goes through ``normalize_job`` once, so the rest of the code only
ever sees the canonical ``Job`` shape.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .models import BalancePayMethod, Job, JobStatus, PayMethod, Product

_LEGACY_KEYS = {
    "customerName": "name",
    "customerEmail": "email",
    "customerPhone": "phone",
}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _enum(enum_cls, value: Any):
    value = _text(value)
    if value is None:
        return None
    for member in enum_cls:
        if member.value.lower() == value.lower():
            return member
    return None


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        return datetime.fromtimestamp(_amount(seconds), tz=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def normalize_job(doc_id: str, record: Mapping[str, Any]) -> Job:
    fields: Dict[str, Any] = {}
    for key, legacy in _LEGACY_KEYS.items():
        fields[key] = _text(record.get(key)) or _text(record.get(legacy))

    status = _enum(JobStatus, record.get("status")) or JobStatus.PENDING
    balance_paid = record.get("balancePaid")

    return Job(
        id=doc_id,
        customer_name=fields["customerName"] or "",
        customer_email=fields["customerEmail"],
        customer_phone=fields["customerPhone"],
        product_code=_text(record.get("productCode")),
        product_name=_text(record.get("productName")),
        description=_text(record.get("description")),
        total_cost=_amount(record.get("totalCost")),
        advance=_amount(record.get("advance")),
        balance=_amount(record.get("balance")),
        balance_paid=None if balance_paid is None else _amount(balance_paid),
        pay_method=_enum(PayMethod, record.get("payMethod")),
        balance_pay_method=_enum(BalancePayMethod, record.get("balancePayMethod")),
        status=status,
        due_date=_date(record.get("dueDate")),
        created_at=_timestamp(record.get("createdAt")),
        completed_at=_timestamp(record.get("completedAt")),
    )


def normalize_product(doc_id: str, record: Mapping[str, Any]) -> Product:
    return Product(
        id=doc_id,
        code=_text(record.get("code")) or "",
        name=_text(record.get("name")) or "",
        price=_amount(record.get("price")),
        description=_text(record.get("description")),
    )
