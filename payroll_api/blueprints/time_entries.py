# payroll_api/blueprints/time_entries.py
from __future__ import annotations

from datetime import datetime

from flask import Blueprint, request

from payroll_api.common.http import ok
from payroll_api.common.paging import iso_date, arg
from payroll_api.common.errors import InvalidRequest, InvalidDateRange
from payroll_api.models.time_entry import TimeEntry
from payroll_api.services import time_entries as ledger

bp = Blueprint("time_entries", __name__, url_prefix="/api/v1/time-entries")


# ---------- row shape ----------
def _row(x: TimeEntry):
    return {
        "id": x.id,
        "employeeId": x.employee_id,
        "entryDate": x.entry_date.isoformat(),
        "clockIn": x.clock_in.isoformat() if x.clock_in else None,
        "clockOut": x.clock_out.isoformat() if x.clock_out else None,
        "regularHours": float(x.regular_hours or 0),
        "overtimeHours": float(x.overtime_hours or 0),
        "source": x.source,
        "sourceReference": x.source_reference,
        "status": x.status,
        "notes": x.notes,
        "approvedBy": x.approved_by,
        "approvedAt": x.approved_at.isoformat() if x.approved_at else None,
        "importedAt": x.imported_at.isoformat() if x.imported_at else None,
    }


def _dt(payload, *names):
    raw = arg(payload, *names)
    if raw is None:
        return None
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError:
        raise InvalidRequest(f"{names[0]} must be an ISO datetime", payload={names[0]: raw})


def _entry_kwargs(payload: dict) -> dict:
    """Request body (camelCase or snake_case) -> ledger.record_entry kwargs."""
    raw_emp = arg(payload, "employeeId", "employee_id")
    try:
        employee_id = int(raw_emp)
    except (TypeError, ValueError):
        raise InvalidRequest("employeeId is required and must be an integer", payload={"employeeId": raw_emp})

    raw_date = arg(payload, "entryDate", "entry_date", "date")
    entry_date = iso_date(raw_date)
    if entry_date is None:
        raise InvalidRequest("entryDate must be YYYY-MM-DD", payload={"entryDate": raw_date})

    return {
        "employee_id": employee_id,
        "entry_date": entry_date,
        "regular_hours": arg(payload, "regularHours", "regular_hours"),
        "overtime_hours": arg(payload, "overtimeHours", "overtime_hours"),
        "source": arg(payload, "source"),
        "notes": arg(payload, "notes"),
        "source_reference": arg(payload, "sourceReference", "source_reference"),
        "clock_in": _dt(payload, "clockIn", "clock_in"),
        "clock_out": _dt(payload, "clockOut", "clock_out"),
    }


# ---------- routes ----------
@bp.post("")
def record():
    payload = request.get_json(silent=True) or {}
    entry = ledger.record_entry(**_entry_kwargs(payload))
    return ok(_row(entry), 201)


@bp.post("/import")
def import_entries():
    payload = request.get_json(silent=True)
    rows = payload.get("entries") if isinstance(payload, dict) else payload
    if not isinstance(rows, list) or not rows:
        raise InvalidRequest("Body must be a non-empty list of entries (or {\"entries\": [...]})")
    if not all(isinstance(r, dict) for r in rows):
        raise InvalidRequest("Every entry must be an object")
    entries = ledger.import_entries([_entry_kwargs(r) for r in rows])
    return ok([_row(e) for e in entries], 201, imported=len(entries))


@bp.get("/employee/<int:employee_id>")
def by_employee(employee_id: int):
    start, end = iso_date(request.args.get("start")), iso_date(request.args.get("end"))
    if start is None or end is None:
        raise InvalidDateRange("start and end must be YYYY-MM-DD")
    status = (request.args.get("status") or "APPROVED").strip().upper()
    entries = ledger.query_entries(employee_id, start, end, None if status == "ALL" else status)
    return ok([_row(e) for e in entries], total=len(entries))


@bp.put("/<int:entry_id>/status")
def set_status(entry_id: int):
    payload = request.get_json(silent=True) or {}
    status = arg(payload, "status") or request.args.get("status")
    if not status:
        raise InvalidRequest("status is required")
    approved_by = arg(payload, "approvedBy", "approved_by") or request.args.get("approvedBy")
    entry = ledger.set_status(entry_id, status, approved_by)
    return ok(_row(entry))


@bp.delete("/<int:entry_id>")
def delete(entry_id: int):
    ledger.delete_entry(entry_id)
    return ok({"id": entry_id, "deleted": True})
