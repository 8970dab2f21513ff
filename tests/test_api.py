import asyncio
import base64
import logging

import pytest
from fastapi.testclient import TestClient

from studio_tracker.config import Settings
from studio_tracker.deps import get_actor
from studio_tracker.main import build_store, create_app
from studio_tracker.routers.stats import stats_events
from studio_tracker.store import JOBS, MemoryDocumentStore

from .conftest import RecordingMailer, StubRenderer, TickingClock

JOB = {
    "customerName": "Sunil Perera",
    "customerEmail": "sunil@example.com",
    "totalCost": 2000,
    "advance": 500,
    "payMethod": "Cash",
}


class BrokenStore(MemoryDocumentStore):
    async def put(self, collection, doc_id, record):
        raise ConnectionError("database went away")

    async def ping(self):
        raise ConnectionError("database went away")


@pytest.fixture()
def build(store, mailer, admin):
    def _build(actor=admin, settings=None, store=store, mailer=mailer, function_mailer=None, **client_kw):
        app = create_app(
            settings or Settings(),
            store=store,
            mailer=mailer,
            renderer=StubRenderer(),
            function_mailer=function_mailer or RecordingMailer(),
            clock=TickingClock(),
        )
        if actor is not None:
            app.dependency_overrides[get_actor] = lambda: actor
        return TestClient(app, **client_kw)

    return _build


@pytest.fixture()
def client(build):
    return build()


# ── the four outcomes ────────────────────────────────────────────────────────
def test_create_job_success(client, mailer):
    r = client.post("/jobs", json=JOB)
    assert r.status_code == 201
    body = r.json()
    assert body["outcome"] == "success"
    assert body["job"]["id"] == "SC-0001"
    assert body["job"]["balance"] == 1500
    assert body["job"]["needsDetails"] is False
    assert body["notification"] == {"kind": "JOB_UPDATED", "status": "sent"}
    assert body["warning"] is None
    assert len(mailer.sent) == 1


def test_notification_warning_keeps_the_job(build, failing_mailer, store):
    client = build(mailer=failing_mailer)
    r = client.post("/jobs", json=JOB)
    assert r.status_code == 201
    body = r.json()
    assert body["outcome"] == "notification_warning"
    assert body["warning"] == "Saved, but notification failed"
    assert body["notification"]["status"] == "failed"
    assert asyncio.run(store.get(JOBS, "SC-0001")) is not None


def test_validation_rejected(client, store):
    r = client.post("/jobs", json={**JOB, "customerName": ""})
    assert r.status_code == 422
    assert r.json()["outcome"] == "validation_rejected"
    assert asyncio.run(store.list(JOBS)) == {}


def test_storage_failure_is_reported_as_failed(build, mailer):
    client = build(store=BrokenStore(), raise_server_exceptions=False)
    r = client.post("/jobs", json=JOB)
    assert r.status_code == 201

    r = client.put("/jobs/SC-0001", json=JOB)
    assert r.status_code == 500
    assert r.json() == {"detail": "operation failed, nothing changed", "outcome": "failed"}


# ── transitions over HTTP ────────────────────────────────────────────────────
def test_ready_then_complete(client, mailer):
    job_id = client.post("/jobs", json=JOB, params={"notify": "false"}).json()["job"]["id"]

    r = client.post(f"/jobs/{job_id}/ready")
    assert r.status_code == 200
    assert r.json()["job"]["status"] == "Ready"

    r = client.post(f"/jobs/{job_id}/complete")
    assert r.status_code == 422
    assert r.json()["outcome"] == "validation_rejected"

    r = client.post(f"/jobs/{job_id}/complete", json={"balancePayMethod": "card"})
    assert r.status_code == 200
    job = r.json()["job"]
    assert job["status"] == "Completed"
    assert job["balance"] == 0
    assert job["balancePayMethod"] == "Card"
    assert [m.kind.value for m in mailer.sent] == ["READY_NOTIFY", "RECEIPT"]

    r = client.post(f"/jobs/{job_id}/ready")
    assert r.status_code == 409
    assert r.json()["outcome"] == "validation_rejected"


def test_list_get_and_delete(client):
    client.post("/jobs", json=JOB, params={"notify": "false"})
    client.post("/jobs", json={**JOB, "customerName": "Second"}, params={"notify": "false"})
    client.post("/jobs/SC-0001/ready")

    assert [j["id"] for j in client.get("/jobs").json()] == ["SC-0002", "SC-0001"]
    assert [j["id"] for j in client.get("/jobs", params={"status": "Ready"}).json()] == ["SC-0001"]
    assert client.get("/jobs/SC-0002").json()["customerName"] == "Second"

    assert client.delete("/jobs/SC-0002").json() == {"ok": True, "id": "SC-0002"}
    r = client.get("/jobs/SC-0002")
    assert r.status_code == 404
    assert r.json()["outcome"] == "failed"


# ── auth ─────────────────────────────────────────────────────────────────────
def test_missing_token_is_401(build):
    client = build(actor=None)
    r = client.get("/jobs")
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing bearer token"


def test_staff_is_refused_admin_operations(build, staff):
    client = build(actor=staff)
    job_id = client.post("/jobs", json=JOB, params={"notify": "false"}).json()["job"]["id"]

    r = client.post(f"/jobs/{job_id}/complete", json={"balancePayMethod": "Cash"})
    assert r.status_code == 403
    assert r.json()["outcome"] == "failed"
    assert client.delete(f"/jobs/{job_id}").status_code == 403
    assert client.get("/stats").status_code == 403
    assert client.post("/products", json={"code": "P01", "name": "Passport", "price": 800}).status_code == 403


# ── intake, catalog, stats ───────────────────────────────────────────────────
def test_public_intake_needs_no_token(build, mailer):
    client = build(actor=None)
    r = client.post("/intake", json={"name": "Dilani", "email": "dilani@example.com", "phone": "0771112223"})
    assert r.status_code == 201
    assert r.json() == {
        "ok": True,
        "id": "SC-0001",
        "message": "Registration Successful! Please wait for your photo session.",
    }
    assert mailer.attempts == 0

    assert client.post("/intake", json={"name": " "}).status_code == 422


def test_products_crud(client):
    r = client.post("/products", json={"code": "P01", "name": "Passport 4x", "price": 800})
    assert r.status_code == 201
    product_id = r.json()["id"]

    assert [p["code"] for p in client.get("/products").json()] == ["P01"]
    assert client.post("/products", json={"code": "P01", "name": "Dup", "price": 1}).status_code == 422

    job = client.post("/jobs", json={"customerName": "Ruwan", "productId": product_id}, params={"notify": "false"}).json()["job"]
    assert job["productCode"] == "P01"
    assert job["totalCost"] == 800

    assert client.delete(f"/products/{product_id}").json() == {"ok": True, "id": product_id}
    assert client.delete(f"/products/{product_id}").status_code == 404


def test_stats_endpoint(client):
    job_id = client.post("/jobs", json=JOB, params={"notify": "false"}).json()["job"]["id"]
    client.post(f"/jobs/{job_id}/complete", json={"balancePayMethod": "Card"})

    assert client.get("/stats").json() == {
        "totalJobs": 1,
        "pending": 0,
        "ready": 0,
        "completed": 1,
        "cashIncome": 500,
        "cardIncome": 1500,
        "dueBalance": 0,
    }


def test_stats_events_are_server_sent_events(store):
    async def first_event():
        events = stats_events(store, max_events=1)
        try:
            return await events.__anext__()
        finally:
            await events.aclose()

    event = asyncio.run(first_event())
    assert event.startswith("data: {")
    assert '"totalJobs":0' in event
    assert event.endswith("\n\n")


# ── mail function ────────────────────────────────────────────────────────────
def test_notification_function_sends_mail(build):
    function_mailer = RecordingMailer()
    client = build(actor=None, function_mailer=function_mailer)
    pdf = base64.b64encode(b"%PDF-1.4 test").decode()

    r = client.post("/notifications/send", json={
        "type": "RECEIPT", "name": "Isuru", "email": "isuru@example.com", "jobId": "SC-0012", "pdfBase64": pdf,
    })
    assert r.status_code == 200
    assert r.json() == {"ok": True, "message": "Email Sent"}
    assert function_mailer.sent[0].attachment == b"%PDF-1.4 test"


def test_notification_function_checks_secret_and_payload(build):
    client = build(actor=None, settings=Settings(function_secret="s3cret"))
    body = {"type": "READY_NOTIFY", "name": "Isuru", "email": "isuru@example.com", "jobId": "SC-0012"}

    assert client.post("/notifications/send", json=body).status_code == 401
    ok = client.post("/notifications/send", json=body, headers={"X-Function-Secret": "s3cret"})
    assert ok.status_code == 200

    bad_pdf = client.post(
        "/notifications/send",
        json={**body, "pdfBase64": "not base64!!"},
        headers={"X-Function-Secret": "s3cret"},
    )
    assert bad_pdf.status_code == 400


def test_notification_function_reports_mail_failure(build):
    client = build(actor=None, function_mailer=RecordingMailer(fail=True))
    r = client.post("/notifications/send", json={"name": "Isuru", "email": "isuru@example.com", "jobId": "SC-0012"})
    assert r.status_code == 500
    assert r.json()["detail"] == "smtp down"


# ── health ───────────────────────────────────────────────────────────────────
def test_health(client, build):
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/health/db").json() == {"ok": True, "db": "up"}

    broken = build(store=BrokenStore())
    r = broken.get("/health/db")
    assert r.status_code == 503
    assert "database went away" in r.json()["detail"]


# ── startup warnings ─────────────────────────────────────────────────────────
def test_memory_backend_is_announced(caplog):
    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        store = build_store(Settings(storage_backend="memory"))
    assert isinstance(store, MemoryDocumentStore)
    assert "lost on restart" in caplog.text


def test_unknown_backend_fails_fast():
    with pytest.raises(RuntimeError):
        build_store(Settings(storage_backend="sqlite"))


def test_open_mail_function_is_announced(build, caplog):
    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        build()
    assert "RECEIPT_FUNCTION_SECRET is not set" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        build(settings=Settings(function_secret="s3cret"))
    assert "RECEIPT_FUNCTION_SECRET" not in caplog.text
