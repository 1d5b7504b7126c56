from sqlalchemy.exc import OperationalError

from backend.app.models import SystemLog
from backend.app.services import system_log_service


def test_record_error_persists_meta(sqlite_session):
    row = system_log_service.record_error(
        sqlite_session, "Failed to save new report", error="disk full", user_id="u1", report_id=None
    )
    assert row is not None
    stored = sqlite_session.query(SystemLog).one()
    assert stored.level == "error"
    assert stored.meta == {"error": "disk full", "user_id": "u1"}


def test_unknown_level_falls_back_to_info(sqlite_session):
    row = system_log_service.record(sqlite_session, "VERBOSE", "hello")
    assert row.level == "info"


def test_recent_filters_by_level(sqlite_session):
    system_log_service.record(sqlite_session, "info", "started")
    system_log_service.record(sqlite_session, "error", "render failed")
    system_log_service.record(sqlite_session, "warning", "cleanup skipped")

    assert [r.message for r in system_log_service.recent(sqlite_session, level="error")] == ["render failed"]
    assert len(system_log_service.recent(sqlite_session)) == 3


def test_record_never_raises(sqlite_session, monkeypatch):
    def _broken_commit():
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(sqlite_session, "commit", _broken_commit)
    assert system_log_service.record(sqlite_session, "error", "lost") is None
