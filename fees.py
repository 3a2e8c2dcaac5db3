"""
Monthly fee ledger.

Each student embeds a list of FeePayment records (month, year, status,
amount, paidAt, reason). At most one record exists per (month, year).
Reads always present a full January..December view; months without a
record show up as virtual Pending entries that are never stored.

Status may move freely between Pending, Unpaid and Paid, but moving away
from Paid or Unpaid to a different status needs a non-empty reason, kept
on the record as an audit note.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

PAID = "Paid"
UNPAID = "Unpaid"
PENDING = "Pending"
FEE_STATUSES = (PAID, UNPAID, PENDING)
SETTLED_STATUSES = (PAID, UNPAID)
MONTHS = range(1, 13)


class FeeStatusError(ValueError):
    pass


def monthly_fee_status(payments: Optional[List[Dict[str, Any]]], year: int) -> List[Dict[str, Any]]:
    by_month = {p["month"]: p for p in (payments or []) if p.get("year") == year}
    view = []
    for month in MONTHS:
        record = by_month.get(month)
        if record:
            view.append({
                "month": month,
                "year": year,
                "status": record.get("status"),
                "amount": record.get("amount"),
                "paidAt": record.get("paidAt"),
                "reason": record.get("reason"),
            })
        else:
            view.append({"month": month, "year": year, "status": PENDING,
                         "amount": None, "paidAt": None, "reason": None})
    return view


def apply_fee_status(payments: Optional[List[Dict[str, Any]]], month: int, year: int, status: str,
                     amount: Optional[float] = None, paid_at: Optional[datetime] = None,
                     reason: Optional[str] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Return a copy of the ledger with the (month, year) record set to `status`."""
    if month not in MONTHS:
        raise FeeStatusError("month must be between 1 and 12.")
    if status not in FEE_STATUSES:
        raise FeeStatusError(f"status must be one of {', '.join(FEE_STATUSES)}.")
    now = now or datetime.now(timezone.utc)
    ledger = [dict(p) for p in (payments or [])]
    record = next((p for p in ledger if p.get("month") == month and p.get("year") == year), None)

    if record is None:
        ledger.append({
            "month": month,
            "year": year,
            "status": status,
            "amount": amount,
            "paidAt": (paid_at or now) if status == PAID else None,
            "reason": None,
        })
        return ledger

    if record.get("status") in SETTLED_STATUSES and record.get("status") != status:
        if not reason or not reason.strip():
            raise FeeStatusError("Reason is required to change status from Paid/Unpaid.")
        record["reason"] = reason.strip()

    record["status"] = status
    if amount is not None:
        record["amount"] = amount
    if paid_at is not None:
        record["paidAt"] = paid_at
    if status == PAID and not record.get("paidAt"):
        record["paidAt"] = now
    if status != PAID:
        record["paidAt"] = None
    if status == PENDING:
        record["reason"] = None
    return ledger


def effective_fee_amount(record: Optional[Dict[str, Any]], class_fee: Optional[Dict[str, Any]]) -> Optional[float]:
    """The record's own amount, else the class fee schedule's amount."""
    if record and record.get("amount") is not None:
        return record["amount"]
    if class_fee:
        return class_fee.get("amount")
    return None


def latest_class_fee(database, class_name: Optional[str]) -> Optional[Dict[str, Any]]:
    if not class_name:
        return None
    return database["fees"].find_one({"className": class_name}, sort=[("createdAt", DESCENDING)])


def fee_status_view(database, student: Dict[str, Any], year: int) -> List[Dict[str, Any]]:
    class_fee = latest_class_fee(database, student.get("class"))
    view = monthly_fee_status(student.get("feePayments"), year)
    for entry in view:
        entry["effectiveAmount"] = effective_fee_amount(entry, class_fee)
    return view
