# tests/test_scheduler_service.py
# -*- coding: utf-8 -*-
from datetime import timedelta

from campushare_app.clock import utcnow
from campushare_app.services.scheduler_service import SweepScheduler

from conftest import put_file, put_clip


def test_scheduler_is_built_but_not_started_in_tests(app):
    sched = app.extensions["sweep_scheduler"]
    assert isinstance(sched, SweepScheduler)
    assert sched.running is False


def test_jobs_registered(app):
    sched = SweepScheduler(app)
    jobs = {j.id: j for j in sched.scheduler.get_jobs()}
    assert set(jobs) == {"expiry_sweep", "orphan_scan", "storage_stats"}
    assert all(j.max_instances == 1 and j.coalesce for j in jobs.values())


def test_run_now_sweeps_expired(app, db_session, user_normal):
    put_clip(user_normal.id, now=utcnow() - timedelta(days=30))
    report = app.extensions["sweep_scheduler"].run_now()
    assert report.clips_deleted == 1
    assert report.orphans_deleted == 0


def test_failing_job_is_logged_not_raised(app, caplog):
    sched = SweepScheduler(app)

    def broken():
        raise RuntimeError("disk gone")

    with caplog.at_level("ERROR"):
        assert sched._job(broken) is None
    assert "Scheduled job broken failed" in caplog.text


def test_log_stats(app, db_session, user_normal, caplog):
    put_file(user_normal.id, b"x" * 9, now=utcnow() - timedelta(days=6, hours=12))
    sched = SweepScheduler(app)
    with caplog.at_level("INFO"):
        stats = sched._job(sched.log_stats)
    assert stats == {"users": 1, "files": 1, "storage_used_bytes": 9, "expiring_24h": 1}
    assert "Storage stats" in caplog.text
