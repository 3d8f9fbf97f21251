# campushare_app/blueprints/core.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db

bp = Blueprint("core", __name__)

@bp.route("/")
def index():
    return jsonify({"success": True, "message": "Campus Share API", "version": current_app.config.get("APP_VERSION")})

@bp.route("/api/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Health check: database unavailable")
        db_ok = False
    sched = current_app.extensions.get("sweep_scheduler")
    body = {
        "success": db_ok,
        "database": "ok" if db_ok else "unavailable",
        "scheduler": "running" if sched and sched.running else "stopped",
        "startedAt": current_app.config.get("STARTED_AT"),
    }
    return jsonify(body), 200 if db_ok else 503
