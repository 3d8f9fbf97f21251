# campushare_app/services/content_store.py
# -*- coding: utf-8 -*-
"""
Content store: files and clipboard snippets as ``ContentEntry`` rows.

Byte accounting goes through ``quota_ledger`` only. A file is admitted
(reserve), written, then its row and the reserved->used conversion commit in
one transaction. Removal always goes through ``discard`` so that payload
deletion and the ledger decrement happen exactly once per entry.
"""
from __future__ import annotations
import io
import json
import re
from datetime import datetime, timedelta
from pathlib import Path
from flask import current_app
from sqlalchemy import delete, func

from ..clock import utcnow, expiry_from
from ..errors import NotFound, InvalidRequest, ClipLimitReached
from ..extensions import db
from ..models import ContentEntry, AuditLog, Folder, KIND_FILE, KIND_CLIP
from ..models.content import new_content_id
from . import payloads, quota_ledger
from .settings import retention_days as _retention_days

_NOT_FOUND = {
    KIND_FILE: "File not found",
    KIND_CLIP: "Clipboard item not found",
    None: "Not found",
}

TYPE_FILTERS = {
    "image": ("image/",),
    "video": ("video/",),
    "audio": ("audio/",),
    "document": ("application/pdf", "application/msword", "application/vnd.openxmlformats"),
}

CONTENT_TYPES = ("text", "code", "link", "json")

UNSET = object()


def _cfg(key, default):
    return current_app.config.get(key, default)


def _not_found(kind=None):
    return NotFound(_NOT_FOUND.get(kind, _NOT_FOUND[None]))


# ---------------- create ----------------
def create(user_id: int, kind: str, payload, size_bytes: int | None = None,
           retention_days: int | None = None, now: datetime | None = None, **attrs) -> ContentEntry:
    now = now or utcnow()
    days = retention_days if retention_days is not None else _retention_days()
    if days <= 0:
        raise InvalidRequest("Retention must be at least one day")
    if kind == KIND_FILE:
        return _create_file(user_id, payload, size_bytes, days, now, **attrs)
    if kind == KIND_CLIP:
        return _create_clip(user_id, payload, days, now, **attrs)
    raise InvalidRequest(f"Unknown content kind: {kind}")


def _stream_size(stream) -> int:
    try:
        pos = stream.tell()
        stream.seek(0, io.SEEK_END)
        size = stream.tell() - pos
        stream.seek(pos)
    except (AttributeError, OSError, io.UnsupportedOperation):
        raise InvalidRequest("Upload size is unknown")
    return size


def _check_folder(folder_id, user_id: int):
    if folder_id in (None, "", "root"):
        return None
    try:
        folder = Folder.query.filter_by(id=int(folder_id), user_id=user_id).first()
    except (TypeError, ValueError):
        folder = None
    if not folder:
        raise NotFound("Folder not found")
    return folder.id


def _create_file(user_id, payload, size_bytes, days, now, original_name=None, mime_type=None,
                 folder_id=None, description=None) -> ContentEntry:
    stream = io.BytesIO(payload) if isinstance(payload, (bytes, bytearray)) else payload
    size = _stream_size(stream) if size_bytes is None else int(size_bytes)
    if size < 0:
        raise InvalidRequest("Size must not be negative")
    folder_id = _check_folder(folder_id, user_id)
    safe_name, ext = payloads.split_name(original_name)
    blob_key = payloads.new_blob_key(safe_name)
    target = payloads.user_dir(user_id) / blob_key

    quota_ledger.reserve(user_id, size, now=now)
    try:
        md5 = payloads.write_stream(stream, target, size, int(_cfg("UPLOAD_CHUNK_SIZE", 65536)))
    except BaseException:
        _release_quietly(user_id, size)
        raise

    entry_id = new_content_id()
    try:
        entry = ContentEntry(
            id=entry_id,
            user_id=user_id,
            kind=KIND_FILE,
            size_bytes=size,
            created_at=now,
            expires_at=expiry_from(now, days),
            original_name=(original_name or safe_name)[:255],
            blob_key=blob_key,
            storage_path=str(target),
            mime_type=mime_type or "application/octet-stream",
            extension=ext,
            md5=md5,
            folder_id=folder_id,
            description=(description or "")[:500],
        )
        db.session.add(entry)
        quota_ledger.commit(user_id, size, files_delta=1, reserved=size, now=now)
        db.session.add(AuditLog(user_id=user_id, action="upload", ref=f"content:{entry_id}",
                                description=entry.original_name))
        db.session.commit()
    except BaseException:
        db.session.rollback()
        try:
            payloads.delete_payload(target)
        except OSError as e:
            current_app.logger.warning("Could not remove payload %s after failed insert: %s", target, e)
        _release_quietly(user_id, size)
        raise
    return entry


def _release_quietly(user_id: int, size: int) -> None:
    try:
        quota_ledger.release(user_id, size)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Could not release %s reserved bytes for user %s", size, user_id)


def _create_clip(user_id, payload, days, now, title=None, content_type=None, language=None) -> ContentEntry:
    content = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
    _validate_clip_content(content)
    if content_type and content_type not in CONTENT_TYPES:
        raise InvalidRequest("Invalid content type")

    limit = int(_cfg("CLIP_MAX_COUNT", 50))
    live = ContentEntry.query.filter(
        ContentEntry.user_id == user_id,
        ContentEntry.kind == KIND_CLIP,
        ContentEntry.expires_at > now,
    ).count()
    if live >= limit:
        raise ClipLimitReached(limit=limit)

    entry = ContentEntry(
        id=new_content_id(),
        user_id=user_id,
        kind=KIND_CLIP,
        size_bytes=0,
        created_at=now,
        expires_at=expiry_from(now, days),
        title=(str(title or "").strip() or "Untitled")[:100],
        content=content,
        content_type=content_type or detect_content_type(content),
        language=str(language)[:30] if language else None,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def _validate_clip_content(content) -> None:
    if not isinstance(content, str) or not content.strip():
        raise InvalidRequest("Content is required")
    max_len = int(_cfg("CLIP_MAX_LENGTH", 10000))
    if len(content) > max_len:
        raise InvalidRequest(f"Content cannot exceed {max_len} characters")


_URL_RE = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w .-]*)/?$", re.IGNORECASE)
_CODE_RES = [
    re.compile(p) for p in (
        r"function\s*\w*\s*\(",
        r"const\s+\w+\s*=",
        r"let\s+\w+\s*=",
        r"var\s+\w+\s*=",
        r"import\s+.*\s+from",
        r"class\s+\w+",
        r"def\s+\w+\(",
        r"public\s+(static\s+)?void",
    )
]


def detect_content_type(text: str) -> str:
    """Guess link / json / code / text for a clip."""
    stripped = (text or "").strip()
    if _URL_RE.match(stripped):
        return "link"
    try:
        if isinstance(json.loads(stripped), (dict, list)):
            return "json"
    except ValueError:
        pass
    if any(p.search(text) for p in _CODE_RES):
        return "code"
    return "text"


# ---------------- read ----------------
def live_query(user_id: int, kind: str, now: datetime | None = None):
    return ContentEntry.query.filter(
        ContentEntry.user_id == user_id,
        ContentEntry.kind == kind,
        ContentEntry.expires_at > (now or utcnow()),
    )


def get(content_id: str, user_id: int | None, kind: str | None = None,
        now: datetime | None = None) -> ContentEntry:
    """Absent, foreign and expired entries all look the same: NotFound."""
    entry = db.session.get(ContentEntry, content_id) if content_id else None
    if (
        entry is None
        or (user_id is not None and entry.user_id != user_id)
        or (kind is not None and entry.kind != kind)
        or entry.is_expired(now)
    ):
        raise _not_found(kind)
    return entry


def open_payload(entry: ContentEntry) -> Path:
    p = Path(entry.storage_path or "")
    if not entry.is_file or not p.is_file():
        raise NotFound("File not found on server")
    return p


# ---------------- delete ----------------
def discard(entry: ContentEntry, action: str = "delete",
            as_of: datetime | None = None) -> tuple[int, OSError | None]:
    """
    Remove one entry: payload first, then the row and the ledger decrement in a
    single transaction. Returns (bytes freed, payload error or None).
    Raises NotFound if another caller already removed the row.

    With ``as_of`` the row is claimed first and only while it is still expired
    at that instant; an entry extended meanwhile is left alone (NotFound).
    """
    entry_id, user_id, kind = entry.id, entry.user_id, entry.kind
    size = int(entry.size_bytes or 0) if kind == KIND_FILE else 0
    label = entry.original_name if kind == KIND_FILE else entry.title
    storage_path = entry.storage_path

    if as_of is not None:
        _delete_row(entry_id, kind, ContentEntry.expires_at <= as_of)

    payload_error = None
    if kind == KIND_FILE:
        try:
            payloads.delete_payload(storage_path)
        except OSError as e:
            payload_error = e
            current_app.logger.warning("Payload delete failed for %s (%s): %s", entry_id, storage_path, e)

    if as_of is None:
        _delete_row(entry_id, kind)
    if entry in db.session:
        db.session.expunge(entry)
    if kind == KIND_FILE:
        quota_ledger.commit(user_id, -size, files_delta=-1)
    db.session.add(AuditLog(user_id=user_id, action=action, ref=f"content:{entry_id}", description=label))
    db.session.commit()
    return size, payload_error


def _delete_row(entry_id: str, kind: str, *conditions) -> None:
    res = db.session.execute(
        delete(ContentEntry)
        .where(ContentEntry.id == entry_id, *conditions)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.session.rollback()
        raise _not_found(kind)


def remove(content_id: str, user_id: int | None = None, kind: str | None = None,
           action: str = "delete") -> int:
    """Delete an entry (expired ones included). Returns bytes freed; a second call is NotFound."""
    entry = db.session.get(ContentEntry, content_id) if content_id else None
    if entry is None or (user_id is not None and entry.user_id != user_id) or (kind and entry.kind != kind):
        raise _not_found(kind)
    freed, _ = discard(entry, action=action)
    return freed


def remove_many(ids, user_id: int, kind: str) -> tuple[int, int]:
    """Bulk delete for one owner. Returns (entries removed, bytes freed); unknown ids are skipped."""
    removed, freed = 0, 0
    for content_id in ids or []:
        try:
            freed += remove(str(content_id), user_id=user_id, kind=kind)
            removed += 1
        except NotFound:
            continue
    return removed, freed


# ---------------- update ----------------
def extend_expiry(content_id: str, user_id: int, days: int, kind: str | None = None,
                  now: datetime | None = None) -> ContentEntry:
    now = now or utcnow()
    max_days = int(_cfg("MAX_EXTEND_DAYS", 30))
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise InvalidRequest("Days must be a number")
    if days < 1 or days > max_days:
        raise InvalidRequest(f"Days must be between 1 and {max_days}")
    entry = get(content_id, user_id, kind=kind, now=now)
    entry.expires_at = expiry_from(now, days)
    db.session.add(AuditLog(user_id=user_id, action="extend", ref=f"content:{entry.id}",
                            description=f"+{days}d"))
    db.session.commit()
    return entry


def update_file(content_id: str, user_id: int, original_name=None, description=None,
                folder_id=UNSET, is_starred=None) -> ContentEntry:
    entry = get(content_id, user_id, kind=KIND_FILE)
    if original_name is not None:
        name = str(original_name).strip()
        if not name:
            raise InvalidRequest("File name cannot be empty")
        entry.original_name = name[:255]
    if description is not None:
        entry.description = str(description)[:500]
    if folder_id is not UNSET:
        entry.folder_id = _check_folder(folder_id, user_id)
    if is_starred is not None:
        entry.is_starred = bool(is_starred)
    db.session.commit()
    return entry


def update_clip(content_id: str, user_id: int, title=None, content=None, content_type=None,
                language=UNSET) -> ContentEntry:
    entry = get(content_id, user_id, kind=KIND_CLIP)
    if title is not None:
        entry.title = (str(title).strip() or "Untitled")[:100]
    if content is not None:
        _validate_clip_content(content)
        entry.content = content
        if not content_type:
            entry.content_type = detect_content_type(content)
    if content_type:
        if content_type not in CONTENT_TYPES:
            raise InvalidRequest("Invalid content type")
        entry.content_type = content_type
    if language is not UNSET:
        entry.language = str(language)[:30] if language else None
    db.session.commit()
    return entry


def toggle_star(content_id: str, user_id: int) -> bool:
    entry = get(content_id, user_id, kind=KIND_FILE)
    entry.is_starred = not entry.is_starred
    db.session.commit()
    return entry.is_starred


def toggle_pin(content_id: str, user_id: int) -> bool:
    entry = get(content_id, user_id, kind=KIND_CLIP)
    entry.is_pinned = not entry.is_pinned
    db.session.commit()
    return entry.is_pinned


def record_download(entry: ContentEntry, now: datetime | None = None) -> None:
    entry.downloads = (entry.downloads or 0) + 1
    entry.last_downloaded = now or utcnow()
    db.session.commit()


def record_copy(content_id: str, user_id: int) -> int:
    entry = get(content_id, user_id, kind=KIND_CLIP)
    entry.copy_count = (entry.copy_count or 0) + 1
    db.session.commit()
    return entry.copy_count


# ---------------- stats ----------------
def user_stats(user_id: int, now: datetime | None = None) -> dict:
    now = now or utcnow()
    files = live_query(user_id, KIND_FILE, now)
    total_files, total_size = files.with_entities(
        func.count(ContentEntry.id), func.coalesce(func.sum(ContentEntry.size_bytes), 0)
    ).one()
    by_type = {}
    for name, prefixes in TYPE_FILTERS.items():
        by_type[name] = files.filter(
            db.or_(*[ContentEntry.mime_type.startswith(p) for p in prefixes])
        ).count()
    return {
        "totalFiles": int(total_files),
        "totalSize": int(total_size),
        "starred": files.filter(ContentEntry.is_starred.is_(True)).count(),
        "expiringSoon": files.filter(ContentEntry.expires_at <= now + timedelta(hours=24)).count(),
        "byType": by_type,
        "clips": live_query(user_id, KIND_CLIP, now).count(),
        "storage": quota_ledger.snapshot(user_id),
    }
