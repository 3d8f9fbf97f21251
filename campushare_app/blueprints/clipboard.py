# campushare_app/blueprints/clipboard.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, current_app, request, jsonify, g
from sqlalchemy import or_

from ..clock import utcnow
from ..decorators import login_required
from ..errors import InvalidRequest
from ..models import ContentEntry, KIND_CLIP
from ..pagination import paginate
from ..services import content_store

bp = Blueprint("clipboard", __name__, url_prefix="/api/clipboard")


@bp.route("", methods=["GET"])
@login_required
def list_clips():
    q = content_store.live_query(g.user.id, KIND_CLIP)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(ContentEntry.title.ilike(like), ContentEntry.content.ilike(like)))
    q = q.order_by(ContentEntry.is_pinned.desc(), ContentEntry.created_at.desc(), ContentEntry.id.asc())
    items, meta = paginate(q)
    now = utcnow()
    return jsonify({"success": True, "data": {"clips": [c.to_dict(now) for c in items], "pagination": meta}})


@bp.route("", methods=["POST"])
@login_required
def create():
    data = request.get_json(silent=True) or {}
    clip = content_store.create(
        g.user.id, KIND_CLIP, data.get("content") or "",
        title=data.get("title"), content_type=data.get("contentType"), language=data.get("language"),
    )
    return jsonify({"success": True, "message": "Text saved to clipboard", "data": {"clip": clip.to_dict()}}), 201


@bp.route("/<content_id>", methods=["GET"])
@login_required
def get_clip(content_id):
    clip = content_store.get(content_id, g.user.id, kind=KIND_CLIP)
    return jsonify({"success": True, "data": {"clip": clip.to_dict()}})


@bp.route("/<content_id>", methods=["PUT"])
@login_required
def update(content_id):
    data = request.get_json(silent=True) or {}
    clip = content_store.update_clip(
        content_id, g.user.id,
        title=data.get("title"),
        content=data.get("content"),
        content_type=data.get("contentType"),
        language=data["language"] if "language" in data else content_store.UNSET,
    )
    return jsonify({"success": True, "message": "Clipboard updated", "data": {"clip": clip.to_dict()}})


@bp.route("/<content_id>/pin", methods=["PUT"])
@login_required
def pin(content_id):
    pinned = content_store.toggle_pin(content_id, g.user.id)
    return jsonify({"success": True, "data": {"isPinned": pinned}})


@bp.route("/<content_id>/copy", methods=["POST"])
@login_required
def copy(content_id):
    count = content_store.record_copy(content_id, g.user.id)
    return jsonify({"success": True, "data": {"copyCount": count}})


@bp.route("/<content_id>/extend", methods=["POST"])
@login_required
def extend(content_id):
    data = request.get_json(silent=True) or {}
    days = data.get("days", current_app.config.get("RETENTION_DAYS", 7))
    clip = content_store.extend_expiry(content_id, g.user.id, days, kind=KIND_CLIP)
    return jsonify({"success": True, "message": "Expiry extended", "data": {"clip": clip.to_dict()}})


@bp.route("/<content_id>", methods=["DELETE"])
@login_required
def delete(content_id):
    content_store.remove(content_id, user_id=g.user.id, kind=KIND_CLIP)
    return jsonify({"success": True, "message": "Clipboard item deleted"})


@bp.route("", methods=["DELETE"])
@login_required
def delete_many():
    ids = (request.get_json(silent=True) or {}).get("clipIds")
    if not isinstance(ids, list) or not ids:
        raise InvalidRequest("clipIds must be a non-empty list")
    removed, _ = content_store.remove_many(ids, g.user.id, KIND_CLIP)
    return jsonify({"success": True, "message": f"{removed} clip(s) deleted", "data": {"deleted": removed}})
