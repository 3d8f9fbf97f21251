# campushare_app/services/sweeper.py
# -*- coding: utf-8 -*-
"""
Reconciliation sweep: expired content, orphan payloads, ledger repair.

Runs unattended from the scheduler, the admin API and ``flask sweep``. A
failure on one entry is recorded and the run moves on; ``run_sweep`` never
raises.
"""
from __future__ import annotations
import json
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from flask import current_app
from sqlalchemy import func

from ..clock import utcnow
from ..errors import NotFound
from ..extensions import db
from ..models import ContentEntry, UserQuota, KIND_FILE
from . import content_store, expiry_index, payloads, quota_ledger
from .settings import get_setting, set_setting

REPORT_GROUP = "sweeper"
REPORT_KEY = "last_report"
MAX_REPORTED_ERRORS = 50


@dataclass
class SweepReport:
    started_at: str = ""
    entries_deleted: int = 0
    files_deleted: int = 0
    clips_deleted: int = 0
    bytes_freed: int = 0
    orphans_deleted: int = 0
    orphan_bytes_freed: int = 0
    reservations_released: int = 0
    ledger_repairs: int = 0
    duration_ms: int = 0
    errors: list = field(default_factory=list)

    def error(self, where: str, exc) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(f"{where}: {exc}")

    def to_dict(self) -> dict:
        return asdict(self)


def run_sweep(now: datetime | None = None, orphan_scan: bool | None = None,
              grace: timedelta | None = None) -> SweepReport:
    now = now or utcnow()
    t0 = time.monotonic()
    report = SweepReport(started_at=now.isoformat())
    if grace is None:
        grace = timedelta(minutes=int(current_app.config.get("ORPHAN_GRACE_MINUTES", 10)))

    for name, step in (
        ("expiry", lambda: _expire_pass(now, report)),
        ("orphans", lambda: _orphan_pass(now, grace, report) if orphan_scan else None),
        ("ledger", lambda: _ledger_pass(now, report)),
    ):
        try:
            step()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Sweep %s pass aborted", name)
            report.error(name, e)

    report.duration_ms = int((time.monotonic() - t0) * 1000)
    _store_report(report)
    current_app.logger.info(
        "Sweep done: %s entries (%s files, %s clips), %s bytes freed, %s orphans, %s reservations released, "
        "%s ledger repairs, %s errors in %sms",
        report.entries_deleted, report.files_deleted, report.clips_deleted, report.bytes_freed,
        report.orphans_deleted, report.reservations_released, report.ledger_repairs,
        len(report.errors), report.duration_ms,
    )
    return report


def last_report() -> dict | None:
    raw = get_setting(REPORT_KEY, group=REPORT_GROUP, default="")
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _store_report(report: SweepReport) -> None:
    try:
        set_setting(REPORT_KEY, json.dumps(report.to_dict()), group=REPORT_GROUP)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Could not store sweep report")


# ---------------- expiry ----------------
def _expire_pass(now: datetime, report: SweepReport) -> None:
    batch = int(current_app.config.get("SWEEP_BATCH_SIZE", 500))
    for content_id in expiry_index.due_entries(now, batch_size=batch):
        try:
            entry = db.session.get(ContentEntry, content_id)
            if entry is None or not entry.is_expired(now):
                # removed or extended since it was listed
                continue
            kind = entry.kind
            freed, payload_error = content_store.discard(entry, action="expire", as_of=now)
        except NotFound:
            continue
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Sweep could not remove %s", content_id)
            report.error(f"content:{content_id}", e)
            continue
        report.entries_deleted += 1
        report.bytes_freed += freed
        if kind == KIND_FILE:
            report.files_deleted += 1
        else:
            report.clips_deleted += 1
        if payload_error is not None:
            report.error(f"payload:{content_id}", payload_error)


# ---------------- orphans ----------------
def _orphan_pass(now: datetime, grace: timedelta, report: SweepReport) -> None:
    cutoff = (now - grace).replace(tzinfo=timezone.utc).timestamp()
    for owner, path in payloads.iter_payloads():
        try:
            st = path.stat()
            if st.st_mtime > cutoff:
                continue
            if not path.name.endswith(payloads.PART_SUFFIX):
                known = owner.isdigit() and db.session.query(ContentEntry.id).filter_by(
                    user_id=int(owner), blob_key=path.name,
                ).first()
                if known:
                    continue
            if payloads.delete_payload(path):
                report.orphans_deleted += 1
                report.orphan_bytes_freed += st.st_size
                current_app.logger.info("Removed orphan payload %s/%s (%s bytes)", owner, path.name, st.st_size)
        except OSError as e:
            current_app.logger.warning("Orphan scan could not handle %s: %s", path, e)
            report.error(f"orphan:{owner}/{path.name}", e)


# ---------------- ledger ----------------
def _ledger_pass(now: datetime, report: SweepReport) -> None:
    ttl = timedelta(minutes=int(current_app.config.get("RESERVATION_TTL_MINUTES", 60)))
    released = quota_ledger.release_stale(now - ttl)
    db.session.commit()
    if released:
        current_app.logger.warning("Released %s stale upload reservations", released)
    report.reservations_released = released

    # ledger first: an upload committing in between then fails the reconcile precondition
    rows = db.session.query(UserQuota.user_id, UserQuota.storage_bytes, UserQuota.files_count).all()
    actual = {
        uid: (int(size), int(count))
        for uid, size, count in db.session.query(
            ContentEntry.user_id,
            func.coalesce(func.sum(ContentEntry.size_bytes), 0),
            func.count(ContentEntry.id),
        ).filter(ContentEntry.kind == KIND_FILE).group_by(ContentEntry.user_id)
    }
    for user_id, used, files in rows:
        size, count = actual.get(user_id, (0, 0))
        if (int(used), int(files)) == (size, count):
            continue
        try:
            if quota_ledger.reconcile(user_id, size, count, observed_bytes=used, observed_files=files):
                db.session.commit()
                report.ledger_repairs += 1
                current_app.logger.warning(
                    "Ledger repaired for user %s: used %s -> %s, files %s -> %s", user_id, used, size, files, count
                )
            else:
                db.session.rollback()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Ledger repair failed for user %s", user_id)
            report.error(f"ledger:{user_id}", e)
