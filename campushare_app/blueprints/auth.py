# campushare_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re

from flask import Blueprint, request, session, jsonify, g
from sqlalchemy import or_

from ..clock import utcnow
from ..decorators import login_required
from ..errors import InvalidRequest, Conflict, Unauthorized, Forbidden
from ..extensions import db
from ..models import User
from ..services import accounts, quota_ledger

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_USERNAME_RE = re.compile(r"^[a-z0-9_]{3,30}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _body() -> dict:
    return request.get_json(silent=True) or request.form.to_dict() or {}


@bp.route("/signup", methods=["POST"])
def signup():
    data = _body()
    username = (data.get("username") or "").strip().lower()
    email = (data.get("email") or "").strip().lower()
    pwd = data.get("password") or ""

    if not _USERNAME_RE.match(username):
        raise InvalidRequest("Username must be 3-30 characters: letters, numbers and underscores")
    if not _EMAIL_RE.match(email):
        raise InvalidRequest("Please provide a valid email")
    if len(pwd) < 6:
        raise InvalidRequest("Password must be at least 6 characters")
    if User.query.filter_by(username=username).first():
        raise Conflict("Username already taken")
    if User.query.filter_by(email=email).first():
        raise Conflict("Email already registered")

    u = User(username=username, email=email)
    u.set_password(pwd)
    db.session.add(u)
    db.session.commit()
    quota_ledger.get_quota(u.id)

    session["user"] = u.session_payload()
    return jsonify({"success": True, "message": "Account created successfully", "data": {"user": u.to_dict()}}), 201


@bp.route("/login", methods=["POST"])
def login():
    data = _body()
    ident = (data.get("username") or data.get("email") or "").strip().lower()
    pwd = data.get("password") or ""

    u = User.query.filter(or_(User.username == ident, User.email == ident)).first() if ident else None
    if not u or not u.check_password(pwd):
        raise Unauthorized("Invalid username or password")
    if u.is_banned:
        raise Forbidden("Your account has been banned", reason=u.ban_reason)

    u.last_login = utcnow()
    db.session.commit()
    session["user"] = u.session_payload()
    return jsonify({"success": True, "message": "Login successful", "data": {"user": u.to_dict()}})


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"success": True, "message": "Logged out successfully"})


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "data": {"user": accounts.account(g.user)}})
