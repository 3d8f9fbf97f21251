# campushare_app/services/scheduler_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import atexit
from datetime import timedelta
from apscheduler.schedulers.background import BackgroundScheduler


class SweepScheduler:
    """
    Owns the BackgroundScheduler for one app: daily expiry sweep, weekly
    orphan scan and a daily storage-stats log. Built by ``create_app`` and
    kept in ``app.extensions["sweep_scheduler"]``.
    """

    def __init__(self, app):
        self.app = app
        cfg = app.config
        self.scheduler = BackgroundScheduler(daemon=True, timezone=cfg.get("SCHEDULER_TIMEZONE", "UTC"))
        self.scheduler.add_job(
            self._job, "cron", args=[self.sweep], id="expiry_sweep",
            hour=cfg.get("SWEEP_CRON_HOUR", 2), minute=0,
            max_instances=1, coalesce=True, replace_existing=True,
        )
        self.scheduler.add_job(
            self._job, "cron", args=[self.orphan_scan], id="orphan_scan",
            day_of_week=cfg.get("ORPHAN_CRON_DAY_OF_WEEK", "sun"), hour=cfg.get("ORPHAN_CRON_HOUR", 3), minute=0,
            max_instances=1, coalesce=True, replace_existing=True,
        )
        self.scheduler.add_job(
            self._job, "cron", args=[self.log_stats], id="storage_stats",
            hour=cfg.get("STATS_CRON_HOUR", 0), minute=0,
            max_instances=1, coalesce=True, replace_existing=True,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            atexit.register(self.shutdown)
            self.app.logger.info("Sweep scheduler started: %s", ", ".join(j.id for j in self.scheduler.get_jobs()))

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def run_now(self, orphan_scan: bool = False):
        """Synchronous sweep, same path as the cron job."""
        from .sweeper import run_sweep
        with self.app.app_context():
            return run_sweep(orphan_scan=orphan_scan)

    # ---------------- jobs ----------------
    def _job(self, fn):
        with self.app.app_context():
            try:
                return fn()
            except Exception:
                self.app.logger.exception("Scheduled job %s failed", getattr(fn, "__name__", fn))

    def sweep(self):
        from .sweeper import run_sweep
        return run_sweep(orphan_scan=False)

    def orphan_scan(self):
        from .sweeper import run_sweep
        return run_sweep(orphan_scan=True)

    def log_stats(self) -> dict:
        from . import expiry_index, quota_ledger
        from ..models import User
        totals = quota_ledger.totals()
        stats = {
            "users": User.query.count(),
            "files": totals["files_count"],
            "storage_used_bytes": totals["storage_used_bytes"],
            "expiring_24h": expiry_index.expiring_within(timedelta(hours=24)),
        }
        self.app.logger.info(
            "Storage stats: users=%(users)s files=%(files)s used=%(storage_used_bytes)s expiring_24h=%(expiring_24h)s",
            stats,
        )
        return stats
