# payroll_api/common/paging.py
from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except (TypeError, ValueError):
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except (TypeError, ValueError):
        size = DEFAULT_SIZE
    return page, size

def sort_params(allowed: dict[str, object]):
    """
    allowed: {"period_start": PayrollEntry.period_start, ...}
    ?sort=period_start,-net_pay  => returns list of column expressions
    Unknown keys ignored.
    """
    raw = request.args.get("sort", "")
    items = []
    for part in [p.strip() for p in raw.split(",") if p.strip()]:
        asc = True
        key = part
        if part.startswith("-"):
            asc = False
            key = part[1:]
        col = allowed.get(key)
        if col is not None:
            items.append(col.asc() if asc else col.desc())
    return items

def paginate(query):
    """Apply ?page/&size to a query; returns (rows, meta)."""
    page, size = page_limit()
    total = query.order_by(None).count()
    rows = query.limit(size).offset((page - 1) * size).all()
    return rows, {"page": page, "size": size, "total": total}
