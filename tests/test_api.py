"""HTTP tests for the FastAPI application over the process-wide ledger."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from hotelguard.main import app

from conftest import build_record

OFFICER = {"X-Auditor-Id": "officer-7"}


@pytest.fixture
def client():
    with TestClient(app) as c:
        c.post("/reset")
        yield c


def _draft(**overrides):
    record = build_record(**overrides)
    for key in ("id", "timestamp", "inspectionDate"):
        record.pop(key)
    return record


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_assigns_markers_and_logs_history(client):
    resp = client.post("/records", json=_draft(), headers=OFFICER)
    assert resp.status_code == 201
    body = resp.json()
    record = body["record"]
    assert record["id"].startswith("insp-")
    assert record["timestamp"].endswith("Z")
    assert record["status"] == "Open"
    assert body["history"]["action"] == "create"
    assert body["history"]["diff"] is None
    assert body["history"]["userId"] == "officer-7"

    assert client.get(f"/records/{record['id']}").json() == record
    assert client.get("/records").json() == [record]


def test_create_rejects_unknown_risk_level(client):
    resp = client.post("/records", json=_draft(riskLevel="Catastrophic"), headers=OFFICER)
    assert resp.status_code == 422


def test_update_records_a_diff(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]
    record["status"] = "Resolved"

    resp = client.put(f"/records/{record['id']}", json=record, headers=OFFICER)
    assert resp.status_code == 200

    history = client.get(f"/records/{record['id']}/history").json()
    assert [h["action"] for h in history] == ["update", "create"]
    assert history[0]["diff"]["changes"] == [
        {"op": "modified", "path": ["status"], "old": "Open", "new": "Resolved", "fromIndex": None, "toIndex": None}
    ]


def test_update_with_mismatched_id(client):
    resp = client.put("/records/insp-other", json=build_record(), headers=OFFICER)
    assert resp.status_code == 400


def test_status_patch(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]

    resp = client.patch(f"/records/{record['id']}/status", json={"status": "Escalated"}, headers=OFFICER)
    assert resp.status_code == 200
    assert resp.json()["action"] == "status_change"
    assert client.get(f"/records/{record['id']}").json()["status"] == "Escalated"

    assert client.patch("/records/missing/status", json={"status": "Resolved"}).status_code == 404


def test_delete_keeps_history(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]

    assert client.delete(f"/records/{record['id']}").status_code == 204
    assert client.get(f"/records/{record['id']}").status_code == 404
    assert client.delete(f"/records/{record['id']}").status_code == 404
    assert len(client.get(f"/records/{record['id']}/history").json()) == 1


def test_signature_and_report(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]
    rid = record["id"]

    assert client.get(f"/records/{rid}/signature").status_code == 404
    assert client.get(f"/records/{rid}/report").json()["integrityHash"] == "PENDING_VALIDATION"

    resp = client.post(f"/records/{rid}/signature", json={"signatureBase64": "data:image/png;base64,QQ==", "pdfHash": "f00d"})
    assert resp.status_code == 201
    assert client.get(f"/records/{rid}/signature").json()["recordId"] == rid

    report = client.get(f"/records/{rid}/report").json()
    assert report["integrityHash"] == "f00d"
    assert report["record"] == record
    assert len(report["history"]) == 1


def test_signature_requires_record(client):
    resp = client.post("/records/missing/signature", json={"signatureBase64": "x"})
    assert resp.status_code == 404


def test_stats(client):
    client.post("/records", json=_draft(), headers=OFFICER)
    body = client.get("/stats").json()
    assert body["stats"]["totalInspections"] == 1
    assert body["stats"]["passRate"] == 0.0
    assert body["categories"][0]["name"] == "Hygiene"


def test_analyze_photo_falls_back(client):
    body = client.post("/analyze-photo", json={"base64Image": "AAAA"}).json()
    assert body["riskLevel"] == "Low"
    assert body["faultDescription"].startswith("Automated analysis failed")


def test_assistant_query_is_kept_in_chat(client):
    body = client.post("/assistant/query", json={"question": "Any open risks?"}).json()
    assert body["answer"] == "System error: Unable to process query."
    chat = client.get("/settings/chat").json()
    assert [m["role"] for m in chat] == ["assistant", "user", "assistant"]


def test_creating_a_record_remembers_settings(client):
    client.post("/records", json=_draft(auditorName="Sam Ortiz", location="Rooftop Bar"), headers=OFFICER)
    assert client.get("/settings/auditor").json() == {"name": "Sam Ortiz"}
    assert "Rooftop Bar" in client.get("/settings/locations").json()


def test_property_rename(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]

    body = client.put("/settings/properties/Property Alpha", json={"name": "Alpha Grand"}, headers=OFFICER).json()
    assert body["recordsUpdated"] == 1
    assert "Alpha Grand" in body["properties"]
    assert client.get(f"/records/{record['id']}").json()["propertyName"] == "Alpha Grand"


def test_reset_clears_everything(client):
    record = client.post("/records", json=_draft(), headers=OFFICER).json()["record"]
    client.put("/settings/auditor", json={"name": "Sam Ortiz"})

    assert client.post("/reset").json() == {"status": "cleared"}
    assert client.get("/records").json() == []
    assert client.get(f"/records/{record['id']}/history").json() == []
    assert client.get("/settings/auditor").json() == {"name": "Lead Auditor"}
