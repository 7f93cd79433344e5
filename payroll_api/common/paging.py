# payroll_api/common/paging.py
from datetime import date
from typing import Optional

from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100


def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size


def paginate(query):
    """Apply ?page/&size to a query; returns (rows, meta)."""
    page, size = page_limit()
    total = query.count()
    rows = query.offset((page - 1) * size).limit(size).all()
    return rows, {"page": page, "size": size, "total": total}


def iso_date(s) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except (TypeError, ValueError):
        return None


def arg(payload: dict, *names):
    """First present key among `names` (accepts camelCase and snake_case)."""
    for n in names:
        if n in payload and payload[n] not in (None, ""):
            return payload[n]
    return None
