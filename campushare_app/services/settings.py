# campushare_app/services/settings.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app
from ..extensions import db
from ..models import Setting

def get_setting(key: str, group: str = "general", default: str = "") -> str:
    s = Setting.query.filter_by(group=group, key=key).first()
    return s.value if s else default

def set_setting(key: str, value: str, group: str = "general") -> None:
    s = Setting.query.filter_by(group=group, key=key).first()
    if not s:
        s = Setting(group=group, key=key, value=value)
        db.session.add(s)
    else:
        s.value = value
    db.session.commit()

# ---------------- retention ----------------
def retention_days() -> int:
    """Runtime override if an admin set one, else RETENTION_DAYS."""
    default = int(current_app.config.get("RETENTION_DAYS", 7))
    s = Setting.query.filter_by(group="retention", key="days").first()
    days = s.as_int(default) if s else default
    return days if days > 0 else default

def set_retention_days(days: int) -> None:
    set_setting("days", str(int(days)), group="retention")
