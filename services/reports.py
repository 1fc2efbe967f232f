"""Chart-ready aggregations over a snapshot of invoice records.

Every function here is pure: it takes the invoices it should summarize and
never touches the store. Malformed records degrade to zero values instead of
raising.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from utils.dates import parse_iso, utcnow

INVOICES = "invoices"
UNKNOWN_CLIENT = "Unknown Client"
PAYMENT_STATUSES = ("paid", "pending", "overdue")
TOP_CLIENTS_LIMIT = 10

# period -> (bucket count, bucket unit)
PERIOD_BUCKETS = {
    "week": (7, "day"),
    "month": (4, "week"),
    "quarter": (3, "month"),
    "year": (12, "month"),
}

ZERO = Decimal("0")


def _to_amount(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    # Totals must survive the float conversion used for JSON output.
    if not amount.is_finite() or not math.isfinite(float(amount)):
        return ZERO
    return amount


def _as_float(amount: Decimal) -> float:
    """Convert a summed amount for JSON, clamping sums beyond the float range."""

    value = float(amount)
    if math.isinf(value):
        return math.copysign(sys.float_info.max, value)
    return value


def _to_status(value: Any) -> str:
    status = str(value or "").strip().lower()
    return status if status in PAYMENT_STATUSES else "pending"


@dataclass(frozen=True)
class InvoiceRecord:
    client_name: str
    total: Decimal
    status: str
    issued_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "InvoiceRecord":
        """Normalize a raw ``invoices`` document."""

        client_name = data.get("clientName")
        if not client_name and isinstance(data.get("client"), Mapping):
            client_name = data["client"].get("name")
        issued = data.get("date") or data.get("issueDate") or data.get("createdAt")
        return cls(
            client_name=str(client_name).strip() if client_name else UNKNOWN_CLIENT,
            total=_to_amount(data.get("total")),
            status=_to_status(data.get("status")),
            issued_at=parse_iso(issued),
        )


def _records(invoices: Iterable[Any]) -> list[InvoiceRecord]:
    records = []
    for invoice in invoices or ():
        if isinstance(invoice, InvoiceRecord):
            records.append(invoice)
        elif isinstance(invoice, Mapping):
            records.append(InvoiceRecord.from_document(invoice))
        else:
            records.append(InvoiceRecord.from_document({}))
    return records


@dataclass
class ClientSummary:
    name: str
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    unpaid_amount: Decimal = ZERO
    invoice_count: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "total_amount": _as_float(self.total_amount),
            "paid_amount": _as_float(self.paid_amount),
            "unpaid_amount": _as_float(self.unpaid_amount),
            "invoice_count": self.invoice_count,
        }


def summarize_clients(invoices: Iterable[Any]) -> list[ClientSummary]:
    """Return the top clients by invoiced total, highest first."""

    summaries: dict[str, ClientSummary] = {}
    for record in _records(invoices):
        summary = summaries.setdefault(record.client_name, ClientSummary(record.client_name))
        summary.total_amount += record.total
        summary.invoice_count += 1
        if record.status == "paid":
            summary.paid_amount += record.total
        else:
            summary.unpaid_amount += record.total

    # sorted() is stable, so equal totals keep first-seen order.
    ranked = sorted(summaries.values(), key=lambda s: s.total_amount, reverse=True)
    return ranked[:TOP_CLIENTS_LIMIT]


def summarize_payment_status(invoices: Iterable[Any]) -> dict[str, int]:
    """Count invoices per payment status; all three keys are always present."""

    counts = {status: 0 for status in PAYMENT_STATUSES}
    for record in _records(invoices):
        counts[record.status] += 1
    return counts


def _bucket_start(moment: date, unit: str) -> date:
    if unit == "day":
        return moment
    if unit == "week":
        return moment - timedelta(days=moment.weekday())
    return moment.replace(day=1)


def _previous_bucket(start: date, unit: str) -> date:
    if unit == "day":
        return start - timedelta(days=1)
    if unit == "week":
        return start - timedelta(days=7)
    return (start - timedelta(days=1)).replace(day=1)


def _bucket_labels(period: str, now: Optional[datetime]) -> tuple[list[date], str]:
    if period not in PERIOD_BUCKETS:
        raise ValueError(f"period must be one of: {', '.join(PERIOD_BUCKETS)}")
    count, unit = PERIOD_BUCKETS[period]
    current = _bucket_start((now or utcnow()).date(), unit)
    starts = [current]
    while len(starts) < count:
        starts.append(_previous_bucket(starts[-1], unit))
    starts.reverse()
    return starts, unit


def _bucketed(invoices: Iterable[Any], starts: list[date], unit: str):
    """Yield ``(bucket position, record)`` for dated records inside the window."""

    index = {start: position for position, start in enumerate(starts)}
    for record in _records(invoices):
        if record.issued_at is None:
            continue
        position = index.get(_bucket_start(record.issued_at.date(), unit))
        if position is not None:
            yield position, record


def summarize_revenue(
    invoices: Iterable[Any], period: str = "month", now: Optional[datetime] = None
) -> list[dict]:
    """Invoiced totals per bucket for the requested period, oldest first."""

    starts, unit = _bucket_labels(period, now)
    points = [
        {"label": start.isoformat(), "revenue": ZERO, "invoice_count": 0} for start in starts
    ]
    for position, record in _bucketed(invoices, starts, unit):
        points[position]["revenue"] += record.total
        points[position]["invoice_count"] += 1
    for point in points:
        point["revenue"] = _as_float(point["revenue"])
    return points


def summarize_cashflow(
    invoices: Iterable[Any], period: str = "month", now: Optional[datetime] = None
) -> list[dict]:
    """Paid versus outstanding totals per bucket, oldest first."""

    starts, unit = _bucket_labels(period, now)
    points = [
        {"label": start.isoformat(), "inflow": ZERO, "outstanding": ZERO} for start in starts
    ]
    for position, record in _bucketed(invoices, starts, unit):
        key = "inflow" if record.status == "paid" else "outstanding"
        points[position][key] += record.total
    for point in points:
        point["inflow"] = _as_float(point["inflow"])
        point["outstanding"] = _as_float(point["outstanding"])
    return points
