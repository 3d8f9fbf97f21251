# campushare_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import os, platform, socket, time
from datetime import timedelta
from pathlib import Path

from flask import request, jsonify, current_app
from sqlalchemy import text, func

from ..admin import admin_bp
from ...clock import utcnow
from ...decorators import admin_required
from ...errors import InvalidRequest
from ...extensions import db
from ...models import User, ContentEntry, KIND_FILE, KIND_CLIP
from ...pagination import paginate
from ...services import accounts, expiry_index, quota_ledger, sweeper
from ...services.settings import retention_days, set_retention_days


def _system_snapshot():
    # Database
    try:
        db.session.execute(text("SELECT 1"))
        db_ok, db_detail = True, "Connection OK"
    except Exception as e:
        db.session.rollback()
        db_ok, db_detail = False, str(e)

    # Upload folder
    root = Path(current_app.config.get("UPLOAD_FOLDER", "./uploads"))
    fs_ok = root.is_dir() and os.access(root, os.W_OK)
    fs_detail = str(root) if fs_ok else f"{root} is not writable"

    # Scheduler
    sched = current_app.extensions.get("sweep_scheduler")
    sc_ok = bool(sched and sched.running)
    sc_detail = "Running" if sc_ok else "Not running"

    statuses = [
        dict(name="Database", ok=db_ok, detail=db_detail),
        dict(name="Uploads", ok=fs_ok, detail=fs_detail),
        dict(name="Scheduler", ok=sc_ok, detail=sc_detail),
    ]

    # Server info
    server = dict(
        hostname=socket.gethostname(),
        os=f"{platform.system()} {platform.release()}",
        python=platform.python_version(),
        timezone=time.tzname[0] if time.tzname else "UTC",
        started_at=current_app.config.get("STARTED_AT"),
        pid=os.getpid()
    )
    return statuses, server

# ---------------- ADMIN: System ----------------
@admin_bp.route("/system", methods=["GET"])
@admin_required
def system():
    statuses, server = _system_snapshot()
    return jsonify({"success": True, "data": {"statuses": statuses, "server": server,
                                              "expiryIndex": expiry_index.verify()}})

# ---------------- ADMIN: Cleanup ----------------
@admin_bp.route("/cleanup", methods=["POST"])
@admin_required
def cleanup():
    orphans = request.args.get("orphans") == "true" or bool((request.get_json(silent=True) or {}).get("orphans"))
    sched = current_app.extensions.get("sweep_scheduler")
    if sched is not None:
        report = sched.run_now(orphan_scan=orphans)
    else:
        report = sweeper.run_sweep(orphan_scan=orphans)
    return jsonify({"success": True, "message": "Cleanup completed", "data": report.to_dict()})

@admin_bp.route("/cleanup/last", methods=["GET"])
@admin_required
def cleanup_last():
    return jsonify({"success": True, "data": sweeper.last_report()})

# ---------------- ADMIN: Storage ----------------
@admin_bp.route("/storage", methods=["GET"])
@admin_required
def storage():
    now = utcnow()
    nxt = expiry_index.next_expiry()
    live = ContentEntry.query.filter(ContentEntry.expires_at > now)
    top_types = (
        db.session.query(ContentEntry.mime_type, func.count(ContentEntry.id), func.coalesce(func.sum(ContentEntry.size_bytes), 0))
        .filter(ContentEntry.kind == KIND_FILE)
        .group_by(ContentEntry.mime_type)
        .order_by(func.sum(ContentEntry.size_bytes).desc())
        .limit(10)
        .all()
    )
    return jsonify({"success": True, "data": {
        "ledger": quota_ledger.totals(),
        "files": live.filter(ContentEntry.kind == KIND_FILE).count(),
        "clips": live.filter(ContentEntry.kind == KIND_CLIP).count(),
        "expiring24h": expiry_index.expiring_within(timedelta(hours=24), now),
        "due": expiry_index.count_due(now),
        "nextExpiry": nxt.isoformat() if nxt else None,
        "byMimeType": [{"mimeType": m, "count": int(c), "size": int(s)} for m, c, s in top_types],
    }})

# ---------------- ADMIN: Users ----------------
@admin_bp.route("/users", methods=["GET"])
@admin_required
def users():
    q = User.query
    search = (request.args.get("search") or "").strip().lower()
    if search:
        q = q.filter((User.username.ilike(f"%{search}%")) | (User.email.ilike(f"%{search}%")))
    items, meta = paginate(q.order_by(User.created_at.desc(), User.id.desc()))
    return jsonify({"success": True, "data": {"users": [accounts.account(u) for u in items], "pagination": meta}})

@admin_bp.route("/users/<int:user_id>/ban", methods=["PUT"])
@admin_required
def ban(user_id):
    data = request.get_json(silent=True) or {}
    banned = bool(data.get("banned", True))
    u = accounts.set_ban(user_id, banned, data.get("reason"))
    msg = "User has been banned" if banned else "User has been unbanned"
    return jsonify({"success": True, "message": msg, "data": {"user": u.to_dict()}})

@admin_bp.route("/users/<int:user_id>/storage", methods=["PUT"])
@admin_required
def set_storage(user_id):
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("storageLimit"))
    except (TypeError, ValueError):
        raise InvalidRequest("storageLimit must be a number of bytes")
    accounts.get_user(user_id)
    quota_ledger.set_limit(user_id, limit)
    return jsonify({"success": True, "message": "Storage limit updated", "data": {"storage": quota_ledger.snapshot(user_id)}})

@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    result = accounts.purge_user(user_id)
    return jsonify({"success": True, "message": "User and all their data have been deleted", "data": result})

# ---------------- ADMIN: Settings ----------------
@admin_bp.route("/settings/retention", methods=["GET"])
@admin_required
def get_retention():
    return jsonify({"success": True, "data": {"days": retention_days(),
                                              "default": int(current_app.config.get("RETENTION_DAYS", 7))}})

@admin_bp.route("/settings/retention", methods=["PUT"])
@admin_required
def put_retention():
    data = request.get_json(silent=True) or request.form
    try:
        days = int(data.get("days"))
    except (TypeError, ValueError):
        raise InvalidRequest("days must be a whole number")
    max_days = int(current_app.config.get("MAX_EXTEND_DAYS", 30))
    if days < 1 or days > max_days:
        raise InvalidRequest(f"days must be between 1 and {max_days}")
    set_retention_days(days)
    current_app.logger.info("Retention set to %s days", days)
    return jsonify({"success": True, "message": "Retention updated", "data": {"days": days}})
