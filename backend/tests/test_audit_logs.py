from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from backend.app.models import AuditLog
from backend.app.services import audit_service
from backend.app.services.audit_service import AuditEvent, SqlAuditEmitter


def _create_audit_log(
    db_session,
    *,
    audit_id: str,
    created_at: datetime,
    action: str = audit_service.CREATE_REPORT,
    actor_id: str = "user-1",
    resource_id: str = "report-1",
):
    row = AuditLog(
        id=audit_id,
        actor_id=actor_id,
        action=action,
        resource_type=audit_service.RESOURCE_REPORT,
        resource_id=resource_id,
        details={"division": "Divisi Humas", "month": "2024-01"},
        created_at=created_at,
    )
    db_session.add(row)
    db_session.commit()
    return row


def test_emitter_writes_row_and_logs(sqlite_session, caplog):
    emitter = SqlAuditEmitter(sqlite_session)
    with caplog.at_level("INFO", logger="backend.app.services.audit_service"):
        emitter.emit(
            AuditEvent(
                actor_id="user-1",
                action=audit_service.DELETE_REPORT,
                resource_type=audit_service.RESOURCE_REPORT,
                resource_id="report-9",
                details={"division": "Divisi Humas", "month": "2024-01", "has_attachment": False},
            )
        )

    row = sqlite_session.query(AuditLog).one()
    assert row.action == "DELETE_REPORT"
    assert row.resource_id == "report-9"
    assert row.details["has_attachment"] is False
    assert any("AUDIT: DELETE_REPORT" in r.getMessage() for r in caplog.records)


def test_emitter_swallows_database_errors(sqlite_session, monkeypatch):
    def _broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("no such table: audit_logs"))

    monkeypatch.setattr(audit_service, "log_audit_event", _broken)
    SqlAuditEmitter(sqlite_session).emit(
        AuditEvent(actor_id=None, action="CREATE_REPORT", resource_type="report", resource_id="r1")
    )
    assert sqlite_session.query(AuditLog).count() == 0


def test_audit_log_ordering(sqlite_session):
    _create_audit_log(
        sqlite_session,
        audit_id="00000000-0000-0000-0000-000000000001",
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        action=audit_service.CREATE_REPORT,
    )
    _create_audit_log(
        sqlite_session,
        audit_id="00000000-0000-0000-0000-000000000002",
        created_at=datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc),
        action=audit_service.UPDATE_REPORT,
    )
    _create_audit_log(
        sqlite_session,
        audit_id="00000000-0000-0000-0000-000000000003",
        created_at=datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc),
        action=audit_service.DELETE_REPORT,
    )

    result = audit_service.list_audit_events(sqlite_session, limit=10)
    assert [item["action"] for item in result["items"]] == [
        "DELETE_REPORT",
        "UPDATE_REPORT",
        "CREATE_REPORT",
    ]


def test_audit_log_filters(sqlite_session):
    _create_audit_log(
        sqlite_session,
        audit_id="00000000-0000-0000-0000-000000000011",
        created_at=datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc),
        action=audit_service.CREATE_REPORT,
        actor_id="user-1",
        resource_id="report-1",
    )
    _create_audit_log(
        sqlite_session,
        audit_id="00000000-0000-0000-0000-000000000012",
        created_at=datetime(2024, 2, 2, 9, 0, tzinfo=timezone.utc),
        action=audit_service.UPDATE_REPORT,
        actor_id="user-2",
        resource_id="report-2",
    )

    result = audit_service.list_audit_events(sqlite_session, action="UPDATE_REPORT")
    assert [item["action"] for item in result["items"]] == ["UPDATE_REPORT"]

    result = audit_service.list_audit_events(sqlite_session, actor_id="user-1")
    assert [item["actor_id"] for item in result["items"]] == ["user-1"]

    result = audit_service.list_audit_events(sqlite_session, resource_id="report-2")
    assert [item["resource_id"] for item in result["items"]] == ["report-2"]

    result = audit_service.list_audit_events(
        sqlite_session,
        since=datetime(2024, 2, 2, 0, 0, tzinfo=timezone.utc),
    )
    assert [item["action"] for item in result["items"]] == ["UPDATE_REPORT"]

    result = audit_service.list_audit_events(
        sqlite_session,
        until=datetime(2024, 2, 1, 23, 59, tzinfo=timezone.utc),
    )
    assert [item["action"] for item in result["items"]] == ["CREATE_REPORT"]


def test_audit_log_cursor_pagination(sqlite_session):
    timestamps = [
        datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        datetime(2024, 3, 2, 12, 0, tzinfo=timezone.utc),
        datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc),
        datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc),
    ]
    ids = [
        "00000000-0000-0000-0000-000000000021",
        "00000000-0000-0000-0000-000000000022",
        "00000000-0000-0000-0000-000000000023",
        "00000000-0000-0000-0000-000000000024",
    ]
    for audit_id, created_at in zip(ids, timestamps):
        _create_audit_log(sqlite_session, audit_id=audit_id, created_at=created_at)

    first_page = audit_service.list_audit_events(sqlite_session, limit=2)
    assert [item["id"] for item in first_page["items"]] == [ids[3], ids[2]]
    assert first_page["next_cursor"] is not None

    second_page = audit_service.list_audit_events(
        sqlite_session,
        limit=2,
        cursor=first_page["next_cursor"],
    )
    assert [item["id"] for item in second_page["items"]] == [ids[1], ids[0]]
    assert second_page["next_cursor"] is None


def test_invalid_cursor_is_a_bad_request(sqlite_session):
    with pytest.raises(HTTPException) as excinfo:
        audit_service.list_audit_events(sqlite_session, cursor="garbage")
    assert excinfo.value.status_code == 400
