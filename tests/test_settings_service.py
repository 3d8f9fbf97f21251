# tests/test_settings_service.py
from __future__ import annotations

from campushare_app.services.settings import get_setting, set_setting, retention_days, set_retention_days
from campushare_app.models.setting import Setting


def test_get_setting_returns_default_when_missing(app, db_session):
    assert get_setting("days", group="retention", default="") == ""
    assert get_setting("missing", group="anything", default="DEFAULT") == "DEFAULT"


def test_set_then_get_creates_record(app, db_session):
    assert db_session.query(Setting).count() == 0

    set_setting("motd", "welcome back", group="general")

    row = db_session.query(Setting).filter_by(group="general", key="motd").first()
    assert row is not None
    assert row.value == "welcome back"
    assert get_setting("motd", default="x") == "welcome back"


def test_set_setting_updates_existing_value(app, db_session):
    set_setting("motd", "one")
    assert get_setting("motd") == "one"

    set_setting("motd", "two")
    assert get_setting("motd") == "two"

    # one row per (group, key)
    rows = db_session.query(Setting).filter_by(group="general", key="motd").all()
    assert len(rows) == 1


def test_groups_are_isolated(app, db_session):
    set_setting("days", "3", group="retention")
    set_setting("days", "99", group="other")
    assert get_setting("days", group="retention") == "3"
    assert get_setting("days", group="other") == "99"


def test_set_setting_accepts_empty_and_unicode(app, db_session):
    set_setting("motd", "", group="general")
    assert get_setting("motd", default="FALLBACK") == ""

    set_setting("motd", "Campus Share 🌟 café", group="general")
    assert get_setting("motd") == "Campus Share 🌟 café"


def test_retention_days_falls_back_to_config(app, db_session):
    assert retention_days() == app.config["RETENTION_DAYS"]

    set_retention_days(3)
    assert retention_days() == 3

    # garbage or non-positive values are ignored
    set_setting("days", "abc", group="retention")
    assert retention_days() == app.config["RETENTION_DAYS"]
    set_setting("days", "0", group="retention")
    assert retention_days() == app.config["RETENTION_DAYS"]
