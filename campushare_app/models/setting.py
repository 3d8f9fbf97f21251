# campushare_app/models/setting.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..clock import utcnow
from ..extensions import db

class Setting(db.Model):
    """Runtime overrides editable by admins (retention) and the last sweep report."""
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    group = db.Column(db.String(50), index=True, nullable=False, default="general")  # retention, sweeper
    key = db.Column(db.String(100), index=True, nullable=False)
    value = db.Column(db.Text, default="")
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("group", "key", name="uq_settings_group_key"),
    )

    def as_int(self, default: int) -> int:
        try:
            return int(self.value)
        except (TypeError, ValueError):
            return default
