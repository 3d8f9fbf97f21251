# campushare_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session, g

from .errors import Unauthorized, Forbidden
from .extensions import db
from .models import User


def current_user():
    data = session.get("user")
    if not data or not data.get("id"):
        return None
    return db.session.get(User, data["id"])


def _load_user():
    user = current_user()
    if user is None:
        session.pop("user", None)
        raise Unauthorized()
    if user.is_banned:
        session.pop("user", None)
        raise Forbidden("Your account has been banned", reason=user.ban_reason)
    g.user = user
    return user


def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        _load_user()
        return view_func(*args, **kwargs)
    return wrapper

def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = _load_user()
        if not user.is_admin:
            raise Forbidden("Admin access required")
        return view_func(*args, **kwargs)
    return wrapper
