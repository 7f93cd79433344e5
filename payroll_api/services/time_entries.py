# payroll_api/services/time_entries.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.models.time_entry import TimeEntry, TIME_ENTRY_SOURCES, TIME_ENTRY_STATUSES
from payroll_api.models.payroll.payroll import PayrollTimeEntry
from payroll_api.common.errors import (
    ResourceNotFound, InvalidHours, InvalidDateRange, InvalidRequest, DuplicateEntry,
    EntryLocked, InvalidStatusTransition, Unavailable,
)
from payroll_api.services.compensation import get_employee

log = logging.getLogger(__name__)

HOURS_STEP = Decimal("0.01")
MAX_HOURS = Decimal("9999.99")

# Approved/Rejected stay open for re-review until a payroll consumes the entry.
ALLOWED_TRANSITIONS = {
    ("PENDING", "APPROVED"),
    ("PENDING", "REJECTED"),
    ("APPROVED", "REJECTED"),
    ("REJECTED", "APPROVED"),
}


def _hours(value, field: str) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        h = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidHours(f"{field} must be a number", payload={"field": field, "value": value})
    if not h.is_finite() or h < 0:
        raise InvalidHours(f"{field} must be zero or positive", payload={"field": field, "value": str(value)})
    # stored as NUMERIC(6,2); never let the database round or overflow
    if h > MAX_HOURS:
        raise InvalidHours(f"{field} must not exceed {MAX_HOURS}",
                           payload={"field": field, "value": str(value)})
    if h != h.quantize(HOURS_STEP):
        raise InvalidHours(f"{field} allows at most 2 decimal places",
                           payload={"field": field, "value": str(value)})
    return h


def _clock_duration(clock_in: Optional[datetime], clock_out: Optional[datetime]) -> Optional[Decimal]:
    if clock_in is None or clock_out is None:
        return None
    minutes = int((clock_out - clock_in).total_seconds() // 60)
    if minutes <= 0:
        return Decimal("0")
    return (Decimal(minutes) / Decimal(60)).quantize(Decimal("0.01"))


def normalize_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip().upper()
    if s not in TIME_ENTRY_STATUSES:
        raise InvalidRequest(f"status must be one of {', '.join(TIME_ENTRY_STATUSES)}",
                             payload={"status": value})
    return s


def _normalize_source(value: Optional[str]) -> str:
    s = (str(value).strip().upper() if value else "MANUAL")
    if s not in TIME_ENTRY_SOURCES:
        raise InvalidRequest(f"source must be one of {', '.join(TIME_ENTRY_SOURCES)}",
                             payload={"source": value})
    return s


def _check_range(start: date, end: date):
    if start is None or end is None:
        raise InvalidDateRange("start and end dates are required")
    if end < start:
        raise InvalidDateRange("end must be >= start",
                               payload={"start": start.isoformat(), "end": end.isoformat()})


def is_locked(entry_id: int) -> bool:
    """An entry is locked iff a payroll consumed it."""
    return db.session.query(
        PayrollTimeEntry.query.filter(PayrollTimeEntry.time_entry_id == entry_id).exists()
    ).scalar()


def _build_entry(employee_id: int, entry_date: date, regular_hours=None, overtime_hours=None,
                 source: Optional[str] = None, notes: Optional[str] = None,
                 source_reference: Optional[str] = None,
                 clock_in: Optional[datetime] = None, clock_out: Optional[datetime] = None) -> TimeEntry:
    if entry_date is None:
        raise InvalidRequest("entry_date is required")
    get_employee(employee_id)

    regular = _hours(regular_hours, "regular_hours") if regular_hours not in (None, "") else None
    overtime = _hours(overtime_hours, "overtime_hours")
    if regular is None:
        regular = _clock_duration(clock_in, clock_out) or Decimal("0")

    return TimeEntry(
        employee_id=employee_id,
        entry_date=entry_date,
        regular_hours=regular,
        overtime_hours=overtime,
        source=_normalize_source(source),
        source_reference=source_reference,
        clock_in=clock_in,
        clock_out=clock_out,
        notes=notes,
        status="PENDING",
        imported_at=datetime.utcnow(),
    )


def _flush_new(entries: List[TimeEntry]):
    try:
        db.session.add_all(entries)
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        first = entries[0] if len(entries) == 1 else None
        detail = ({"employee_id": first.employee_id, "entry_date": first.entry_date.isoformat(),
                   "source": first.source} if first is not None else None)
        log.warning("duplicate time entry rejected: %s", detail or e.orig)
        raise DuplicateEntry("A time entry already exists for this employee, date and source",
                             payload=detail)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise Unavailable("Could not store time entry", payload=str(e))


def record_entry(employee_id: int, entry_date: date, regular_hours=None, overtime_hours=None,
                 source: Optional[str] = None, notes: Optional[str] = None, **extra) -> TimeEntry:
    entry = _build_entry(employee_id, entry_date, regular_hours, overtime_hours, source, notes, **extra)
    _flush_new([entry])
    db.session.commit()
    return entry


def import_entries(rows: Iterable[Dict[str, Any]]) -> List[TimeEntry]:
    """Record many entries in one transaction; any failure rejects the whole batch."""
    rows = list(rows or [])
    if not rows:
        return []
    try:
        entries = [_build_entry(**r) for r in rows]
    except TypeError as e:
        raise InvalidRequest(f"invalid time entry row: {e}")
    _flush_new(entries)
    db.session.commit()
    log.info("imported %d time entries", len(entries))
    return entries


def _load_for_update(entry_id: int) -> TimeEntry:
    entry = (TimeEntry.query
             .filter(TimeEntry.id == entry_id)
             .with_for_update(of=TimeEntry)
             .first())
    if entry is None:
        raise ResourceNotFound("TimeEntry", "id", entry_id)
    if is_locked(entry_id):
        db.session.rollback()
        raise EntryLocked(f"Time entry {entry_id} was consumed by a processed payroll",
                          payload={"time_entry_id": entry_id})
    return entry


def set_status(entry_id: int, new_status: str, approved_by: Optional[str] = None) -> TimeEntry:
    target = normalize_status(new_status)
    entry = _load_for_update(entry_id)

    if (entry.status, target) not in ALLOWED_TRANSITIONS:
        db.session.rollback()
        raise InvalidStatusTransition(
            f"Cannot move time entry from {entry.status} to {target}",
            payload={"time_entry_id": entry_id, "from": entry.status, "to": target},
        )

    entry.status = target
    if target == "APPROVED":
        entry.approved_by = (approved_by or "").strip() or None
        entry.approved_at = datetime.utcnow()
    else:
        entry.approved_by = None
        entry.approved_at = None

    db.session.commit()
    return entry


def query_entries(employee_id: int, start: date, end: date, status: Optional[str] = None) -> List[TimeEntry]:
    _check_range(start, end)
    q = (TimeEntry.query
         .filter(TimeEntry.employee_id == employee_id)
         .filter(TimeEntry.entry_date >= start)
         .filter(TimeEntry.entry_date <= end))
    status = normalize_status(status)
    if status:
        q = q.filter(TimeEntry.status == status)
    return q.order_by(TimeEntry.entry_date.asc(), TimeEntry.id.asc()).all()


def delete_entry(entry_id: int) -> None:
    entry = _load_for_update(entry_id)
    db.session.delete(entry)
    db.session.commit()
