from decimal import Decimal

import pytest

pytest.importorskip("httpx")

from backend.app.models import SystemLog
from backend.app.rendering.pdf import PdfReportRenderer


FORM = {
    "reporter_name": "Siti Aminah",
    "division": "Divisi Pendidikan",
    "month": "Januari 2024",
    "work_program": "Bimbingan belajar mingguan",
    "evaluation": "Lancar",
    "next_plan": "Try out",
    "income_labels": ["Kas awal", "Donasi"],
    "income_amounts": ["100000", "50000"],
    "expense_labels": ["Konsumsi"],
    "expense_amounts": ["25000"],
}


@pytest.fixture()
def headers(admin_user):
    return {"X-User-Id": admin_user.id}


def _create(api_client, headers, **overrides):
    data = {**FORM, **overrides}
    return api_client.post("/api/reports", data=data, headers=headers)


def test_requires_acting_user(api_client):
    assert api_client.get("/api/reports").status_code == 401
    assert api_client.get("/api/reports", headers={"X-User-Id": "nobody"}).status_code == 401


def test_create_report(api_client, headers, lpj_dirs, admin_user):
    reports_dir, _ = lpj_dirs
    resp = _create(api_client, headers)
    assert resp.status_code == 201, resp.text

    body = resp.json()
    assert body["month"] == "2024-01"
    assert body["user_id"] == admin_user.id
    assert Decimal(body["total_income"]) == Decimal("150000")
    assert Decimal(body["balance"]) == Decimal("125000")
    assert [e["label"] for e in body["ledger"]] == ["Kas awal", "Donasi", "Konsumsi"]
    assert (reports_dir / body["artifact"]["filename"]).exists()

    audit = api_client.get("/api/audit", headers=headers).json()
    assert [item["action"] for item in audit["items"]] == ["CREATE_REPORT"]
    assert audit["items"][0]["resource_id"] == body["id"]


def test_rejected_submission_echoes_draft(api_client, headers, lpj_dirs):
    reports_dir, _ = lpj_dirs
    resp = _create(api_client, headers, month="Desember 2999")

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["field"] == "month"
    assert detail["draft"]["month"] == "Desember 2999"
    assert detail["draft"]["income_labels"] == ["Kas awal", "Donasi"]
    assert not reports_dir.exists() or list(reports_dir.glob("*.pdf")) == []


def test_missing_field_is_named(api_client, headers):
    data = {k: v for k, v in FORM.items() if k != "work_program"}
    resp = api_client.post("/api/reports", data=data, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "work_program"


def test_create_with_attachment(api_client, headers, lpj_dirs):
    _, uploads_dir = lpj_dirs
    resp = api_client.post(
        "/api/reports",
        data=FORM,
        files={"attachment": ("nota belanja.pdf", b"%PDF-1.4 nota", "application/pdf")},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    attachment = resp.json()["attachment"]
    assert attachment["filename"].endswith("-nota_belanja.pdf")
    assert (uploads_dir / attachment["filename"]).exists()


def test_attachment_with_bad_type_is_rejected(api_client, headers):
    resp = api_client.post(
        "/api/reports",
        data=FORM,
        files={"attachment": ("run.exe", b"MZ", "application/x-msdownload")},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "attachment"


def test_update_report_replaces_artifact(api_client, headers, lpj_dirs):
    reports_dir, _ = lpj_dirs
    created = _create(api_client, headers).json()

    resp = api_client.put(
        f"/api/reports/{created['id']}",
        data={"evaluation": "Perlu evaluasi ulang"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    updated = resp.json()
    assert updated["evaluation"] == "Perlu evaluasi ulang"
    assert updated["work_program"] == created["work_program"]
    assert updated["artifact"]["filename"] != created["artifact"]["filename"]
    assert sorted(p.name for p in reports_dir.glob("*.pdf")) == [updated["artifact"]["filename"]]


def test_update_unknown_report(api_client, headers):
    resp = api_client.put("/api/reports/missing", data={"evaluation": "x"}, headers=headers)
    assert resp.status_code == 404


def test_delete_report(api_client, headers, lpj_dirs):
    reports_dir, _ = lpj_dirs
    created = _create(api_client, headers).json()

    resp = api_client.delete(f"/api/reports/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"id": created["id"], "deleted": True, "cleanup_warnings": []}
    assert list(reports_dir.glob("*.pdf")) == []
    assert api_client.get(f"/api/reports/{created['id']}", headers=headers).status_code == 404
    assert api_client.delete(f"/api/reports/{created['id']}", headers=headers).status_code == 404


def test_list_summary_and_download(api_client, headers):
    first = _create(api_client, headers).json()
    _create(api_client, headers, month="Februari 2024", income_amounts=["10000", ""]).json()

    listed = api_client.get("/api/reports", headers=headers).json()
    assert len(listed) == 2

    summary = api_client.get("/api/reports/summary", headers=headers).json()
    assert summary["total_reports"] == 2
    assert Decimal(summary["total_income"]) == Decimal("160000")
    assert [m["month"] for m in summary["monthly"]] == ["2024-02", "2024-01"]

    download = api_client.get(f"/api/reports/{first['id']}/artifact", headers=headers)
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.content.startswith(b"%PDF")


def test_render_failure_is_a_generic_500(api_client, headers, sqlite_session, monkeypatch, lpj_dirs):
    reports_dir, _ = lpj_dirs

    def _boom(self, c, data):
        raise RuntimeError("font cache corrupted")

    monkeypatch.setattr(PdfReportRenderer, "_draw_document", _boom)
    resp = _create(api_client, headers)

    assert resp.status_code == 500
    assert "font cache" not in resp.text
    assert list(reports_dir.glob("*")) == []
    logged = sqlite_session.query(SystemLog).filter(SystemLog.level == "error").all()
    assert [row.message for row in logged] == ["Failed to save new report"]
    assert api_client.get("/api/reports", headers=headers).json() == []
