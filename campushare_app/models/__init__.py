# campushare_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User
from .setting import Setting
from .user_quota import UserQuota
from .folder import Folder
from .content import ContentEntry, AuditLog, KIND_FILE, KIND_CLIP


__all__ = [
    "User",
    "Setting",
    "UserQuota",
    "Folder",
    "ContentEntry",
    "AuditLog",
    "KIND_FILE",
    "KIND_CLIP",
]
