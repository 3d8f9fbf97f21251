# campushare_app/services/payloads.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import hashlib
import os
from pathlib import Path
from uuid import uuid4
from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import PayloadIOError

PART_SUFFIX = ".part"


def upload_root() -> Path:
    return Path(current_app.config.get("UPLOAD_FOLDER", "./uploads"))


def user_dir(user_id: int) -> Path:
    d = upload_root() / str(user_id)
    d.mkdir(parents=True, exist_ok=True)
    return d


def split_name(filename: str) -> tuple[str, str]:
    """Return (safe original name, lowercase extension with dot)."""
    safe = secure_filename(filename or "") or "file"
    ext = os.path.splitext(safe)[1].lower()
    return safe, ext


def new_blob_key(filename: str) -> str:
    _, ext = split_name(filename)
    return f"{uuid4().hex}{ext}"


def write_stream(stream, target: Path, expected_size: int, chunk_size: int = 65536) -> str:
    """
    Copy ``stream`` to ``target`` through a ``.part`` file and return its md5.
    The final name only appears once every byte is on disk. Any failure leaves
    nothing behind.
    """
    part = target.with_name(target.name + PART_SUFFIX)
    h = hashlib.md5()
    written = 0
    try:
        with open(part, "wb") as fh:
            for chunk in iter(lambda: stream.read(chunk_size), b""):
                written += len(chunk)
                if written > expected_size:
                    break
                h.update(chunk)
                fh.write(chunk)
            if written != expected_size:
                raise PayloadIOError(f"Upload size mismatch: declared {expected_size} bytes")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(part, target)
    except OSError as e:
        _unlink_quietly(part)
        current_app.logger.warning("Payload write failed for %s: %s", target, e)
        raise PayloadIOError() from e
    except BaseException:
        _unlink_quietly(part)
        raise
    return h.hexdigest()


def delete_payload(path) -> bool:
    """Unlink a payload. False when it was already gone; other OS errors propagate."""
    if not path:
        return False
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    return True


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        current_app.logger.warning("Could not remove partial payload %s: %s", path, e)


def iter_payloads(root: Path | None = None):
    """Yield (owner directory name, path) for every file under ``UPLOAD_FOLDER/<user_id>/``."""
    root = root or upload_root()
    if not root.is_dir():
        return
    for owner in sorted(root.iterdir()):
        if not owner.is_dir():
            continue
        for p in sorted(owner.iterdir()):
            if p.is_file():
                yield owner.name, p
