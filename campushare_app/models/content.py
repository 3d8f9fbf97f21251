# campushare_app/models/content.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from uuid import uuid4
from ..clock import utcnow, human_bytes, expires_in
from ..extensions import db

KIND_FILE = "file"
KIND_CLIP = "clip"


def new_content_id() -> str:
    return uuid4().hex


class ContentEntry(db.Model):
    """One uploaded file or clipboard snippet. ``expires_at`` is the expiry index."""
    __tablename__ = "content_entries"

    id = db.Column(db.String(32), primary_key=True, default=new_content_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    kind = db.Column(db.String(8), nullable=False, index=True)            # file | clip
    size_bytes = db.Column(db.BigInteger, nullable=False, default=0)      # 0 for clips
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    # files
    original_name = db.Column(db.String(255))
    blob_key = db.Column(db.String(80), unique=True)                      # stored filename
    storage_path = db.Column(db.String(512))                              # absolute path on the FS
    mime_type = db.Column(db.String(120))
    extension = db.Column(db.String(20))
    md5 = db.Column(db.String(32), index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey("folders.id"), index=True)
    description = db.Column(db.String(500), default="")
    is_starred = db.Column(db.Boolean, nullable=False, default=False)
    downloads = db.Column(db.Integer, nullable=False, default=0)
    last_downloaded = db.Column(db.DateTime)

    # clips
    title = db.Column(db.String(100))
    content = db.Column(db.Text)
    content_type = db.Column(db.String(10))                               # text|code|link|json
    language = db.Column(db.String(30))
    is_pinned = db.Column(db.Boolean, nullable=False, default=False)
    copy_count = db.Column(db.Integer, nullable=False, default=0)

    @property
    def is_file(self) -> bool:
        return self.kind == KIND_FILE

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or utcnow())

    def to_dict(self, now=None) -> dict:
        d = {
            "id": self.id,
            "kind": self.kind,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "expiresIn": expires_in(self.expires_at, now) if self.expires_at else None,
        }
        if self.is_file:
            d.update({
                "originalName": self.original_name,
                "mimeType": self.mime_type,
                "extension": self.extension,
                "size": int(self.size_bytes or 0),
                "formattedSize": human_bytes(self.size_bytes),
                "folderId": self.folder_id,
                "description": self.description or "",
                "isStarred": bool(self.is_starred),
                "downloads": int(self.downloads or 0),
                "lastDownloaded": self.last_downloaded.isoformat() if self.last_downloaded else None,
            })
        else:
            d.update({
                "title": self.title,
                "content": self.content,
                "contentType": self.content_type,
                "language": self.language,
                "isPinned": bool(self.is_pinned),
                "copyCount": int(self.copy_count or 0),
            })
        return d


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    action = db.Column(db.String(80), nullable=False)   # upload, delete, expire, extend, purge
    ref = db.Column(db.String(120))                     # e.g., content:<id>
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
