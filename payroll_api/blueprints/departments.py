# payroll_api/blueprints/departments.py
from __future__ import annotations

from flask import Blueprint, request

from payroll_api.common.http import ok
from payroll_api.common.paging import iso_date, arg
from payroll_api.common.errors import InvalidDateRange
from payroll_api.services.department_summary import get_payroll_summary, get_all_payroll_summaries

bp = Blueprint("departments", __name__, url_prefix="/api/v1/departments")


def _range():
    # ?start&end (also accepts startDate/endDate)
    raw_start = arg(request.args, "start", "startDate")
    raw_end = arg(request.args, "end", "endDate")
    start, end = iso_date(raw_start), iso_date(raw_end)
    if start is None or end is None:
        raise InvalidDateRange("start and end must be YYYY-MM-DD",
                               payload={"start": raw_start, "end": raw_end})
    return start, end


@bp.get("/<int:department_id>/summary")
def summary(department_id: int):
    start, end = _range()
    return ok(get_payroll_summary(department_id, start, end).to_dict())


@bp.get("/summary")
def all_summaries():
    start, end = _range()
    items = [s.to_dict() for s in get_all_payroll_summaries(start, end)]
    return ok(items, total=len(items))
