# campushare_app/models/user_quota.py
from __future__ import annotations
from flask import current_app
from ..clock import utcnow
from ..extensions import db


def _default_limit():
    return int(current_app.config.get("MAX_STORAGE_PER_USER", 500 * 1024 * 1024))


class UserQuota(db.Model):
    """Storage ledger row. Written only by services.quota_ledger."""
    __tablename__ = "user_quotas"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    files_count = db.Column(db.Integer, nullable=False, default=0)          # files currently stored
    storage_bytes = db.Column(db.BigInteger, nullable=False, default=0)     # committed bytes
    limit_bytes = db.Column(db.BigInteger, nullable=False, default=_default_limit)

    # admitted but not yet committed uploads
    reserved_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    reserved_at = db.Column(db.DateTime)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
