# campushare_app/pagination.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app, request


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def page_args() -> tuple[int, int]:
    """(page, limit) from the query string, limit capped at PAGE_MAX_LIMIT."""
    page = max(1, _int_arg("page", 1))
    limit = _int_arg("limit", int(current_app.config.get("PAGE_DEFAULT_LIMIT", 20)))
    limit = min(max(1, limit), int(current_app.config.get("PAGE_MAX_LIMIT", 100)))
    return page, limit


def paginate(query):
    page, limit = page_args()
    p = query.paginate(page=page, per_page=limit, error_out=False)
    meta = {"page": page, "limit": limit, "total": p.total, "pages": p.pages}
    return p.items, meta
