# campushare_app/services/folders.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, InvalidRequest, Conflict
from ..extensions import db
from ..models import Folder, ContentEntry, KIND_FILE
from . import content_store

DEFAULT_COLOR = "#6366f1"
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_UNSET = object()


def _parent_id(value):
    if value in (None, "", "root", "null"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise NotFound("Folder not found")


def get_folder(folder_id, user_id: int) -> Folder:
    fid = _parent_id(folder_id)
    folder = Folder.query.filter_by(id=fid, user_id=user_id).first() if fid is not None else None
    if not folder:
        raise NotFound("Folder not found")
    return folder


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidRequest("Folder name is required")
    name = name.strip()
    if len(name) > 50:
        raise InvalidRequest("Folder name cannot exceed 50 characters")
    return name


def _clean_color(color) -> str:
    if not isinstance(color, str) or not _COLOR_RE.match(color):
        raise InvalidRequest("Color must be a hex value like #6366f1")
    return color


def _assert_unique(user_id: int, parent_id, name: str, exclude_id=None) -> None:
    q = Folder.query.filter(
        Folder.user_id == user_id,
        Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id,
        func.lower(Folder.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(Folder.id != exclude_id)
    if q.first():
        raise Conflict("A folder with this name already exists")


def list_folders(user_id: int, parent_id=None) -> list[Folder]:
    pid = _parent_id(parent_id)
    q = Folder.query.filter_by(user_id=user_id, parent_id=pid)
    return q.order_by(Folder.name.asc()).all()


def tree(user_id: int) -> list[dict]:
    folders = Folder.query.filter_by(user_id=user_id).order_by(Folder.name.asc()).all()
    nodes = {f.id: dict(f.to_dict(), children=[]) for f in folders}
    roots = []
    for f in folders:
        node = nodes[f.id]
        if f.parent_id is not None and f.parent_id in nodes:
            nodes[f.parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots


def breadcrumb(folder: Folder) -> list[dict]:
    path, seen = [], set()
    cur = folder
    while cur is not None and cur.id not in seen:
        seen.add(cur.id)
        path.insert(0, {"id": cur.id, "name": cur.name})
        cur = db.session.get(Folder, cur.parent_id) if cur.parent_id is not None else None
    return path


def create_folder(user_id: int, name, parent_id=None, color=None) -> Folder:
    name = _clean_name(name)
    pid = get_folder(parent_id, user_id).id if _parent_id(parent_id) is not None else None
    color = _clean_color(color) if color else DEFAULT_COLOR
    _assert_unique(user_id, pid, name)
    folder = Folder(user_id=user_id, name=name, parent_id=pid, color=color)
    db.session.add(folder)
    db.session.commit()
    return folder


def _is_descendant(candidate_id: int, ancestor_id: int, user_id: int) -> bool:
    """Walk up from ``candidate_id``; True if ``ancestor_id`` is on the chain."""
    seen = set()
    cur = candidate_id
    while cur is not None and cur not in seen:
        if cur == ancestor_id:
            return True
        seen.add(cur)
        row = Folder.query.filter_by(id=cur, user_id=user_id).first()
        cur = row.parent_id if row else None
    return False


def update_folder(folder_id, user_id: int, name=None, color=None, parent_id=_UNSET) -> Folder:
    folder = get_folder(folder_id, user_id)
    new_name = _clean_name(name) if name is not None else folder.name
    new_parent = folder.parent_id
    if parent_id is not _UNSET:
        if _parent_id(parent_id) is None:
            new_parent = None
        else:
            target = get_folder(parent_id, user_id)
            if _is_descendant(target.id, folder.id, user_id):
                raise InvalidRequest("Cannot move a folder into itself or one of its subfolders")
            new_parent = target.id
    if new_name != folder.name or new_parent != folder.parent_id:
        _assert_unique(user_id, new_parent, new_name, exclude_id=folder.id)
    folder.name = new_name
    folder.parent_id = new_parent
    if color:
        folder.color = _clean_color(color)
    db.session.commit()
    return folder


def folder_contents(folder: Folder, now=None) -> dict:
    subfolders = Folder.query.filter_by(user_id=folder.user_id, parent_id=folder.id).order_by(Folder.name.asc()).all()
    files = (
        content_store.live_query(folder.user_id, KIND_FILE, now)
        .filter(ContentEntry.folder_id == folder.id)
        .order_by(ContentEntry.created_at.desc())
        .all()
    )
    return {
        "folder": folder.to_dict(),
        "path": breadcrumb(folder),
        "subfolders": [f.to_dict() for f in subfolders],
        "files": [f.to_dict(now) for f in files],
    }


def delete_folder(folder_id, user_id: int, keep_files: bool = False) -> dict:
    """
    Depth-first removal of a folder and its subfolders. Files go through the
    content store (freeing quota) or, with ``keep_files``, move to the root.
    """
    folder = get_folder(folder_id, user_id)
    order = _postorder(folder.id, user_id)
    ids = [f.id for f in order]
    result = {"folders_deleted": 0, "files_deleted": 0, "files_moved": 0, "bytes_freed": 0}

    files = ContentEntry.query.filter(
        ContentEntry.user_id == user_id,
        ContentEntry.kind == KIND_FILE,
        ContentEntry.folder_id.in_(ids),
    )
    if keep_files:
        result["files_moved"] = files.update({ContentEntry.folder_id: None}, synchronize_session=False)
        db.session.commit()
    else:
        # rows may vanish between discards
        for (content_id,) in files.with_entities(ContentEntry.id).all():
            entry = db.session.get(ContentEntry, content_id)
            if entry is None:
                continue
            try:
                freed, _ = content_store.discard(entry)
            except NotFound:
                continue
            result["files_deleted"] += 1
            result["bytes_freed"] += freed

    for f in order:
        db.session.delete(f)
        db.session.flush()
    db.session.commit()
    result["folders_deleted"] = len(order)
    current_app.logger.info("Deleted folder %s of user %s: %s", folder_id, user_id, result)
    return result


def _postorder(root_id: int, user_id: int) -> list[Folder]:
    """Children before parents."""
    out, stack, seen = [], [(db.session.get(Folder, root_id), False)], set()
    while stack:
        node, expanded = stack.pop()
        if node is None or (node.id in seen and not expanded):
            continue
        if expanded:
            out.append(node)
            continue
        seen.add(node.id)
        stack.append((node, True))
        for child in Folder.query.filter_by(user_id=user_id, parent_id=node.id).all():
            stack.append((child, False))
    return out
