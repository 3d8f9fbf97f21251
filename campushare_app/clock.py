# campushare_app/clock.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timedelta, timezone

DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def expiry_from(start: datetime, days: int) -> datetime:
    return start + days * DAY


def human_bytes(n) -> str:
    n = int(n or 0)
    if n == 0:
        return "0 Bytes"
    size = float(n)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    return f"{round(size, 2):g} {unit}"


def expires_in(expires_at: datetime, now: datetime | None = None) -> str:
    diff = expires_at - (now or utcnow())
    if diff.total_seconds() <= 0:
        return "Expired"
    days = diff.days
    hours = diff.seconds // 3600
    if days > 0:
        return f"{days}d {hours}h"
    return f"{hours}h"
