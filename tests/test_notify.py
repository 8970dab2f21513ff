import asyncio
import base64
import json

import httpx
import pytest

from studio_tracker.config import Settings
from studio_tracker.errors import NotificationFailure
from studio_tracker.mailer import HttpMailer, build_mailer, build_message, request_payload, SmtpMailer
from studio_tracker.models import Job, NotificationKind
from studio_tracker.notify import DispatchStatus, NotificationDispatcher, NotificationRequest

from .conftest import RecordingMailer, StubRenderer


def _job(**kw):
    data = {"id": "SC-0012", "customer_name": "Isuru", "customer_email": "isuru@example.com",
            "product_name": "Passport 4x", "total_cost": 800, "advance": 800}
    data.update(kw)
    return Job(**data)


def _request(**kw):
    data = dict(kind=NotificationKind.RECEIPT, recipient_name="Isuru", recipient_email="isuru@example.com",
                job_id="SC-0012", product_name="Passport 4x", total_cost=800.0, attachment=b"%PDF-1.4 x")
    data.update(kw)
    return NotificationRequest(**data)


# ── dispatcher ───────────────────────────────────────────────────────────────
def test_ready_notice_has_no_attachment():
    mailer, renderer = RecordingMailer(), StubRenderer()
    result = asyncio.run(NotificationDispatcher(mailer, renderer).dispatch(NotificationKind.READY_NOTIFY, _job()))
    assert result.status == DispatchStatus.SENT
    assert mailer.sent[0].attachment is None
    assert renderer.rendered == []


def test_unexpected_mailer_error_becomes_failed_result():
    class Broken:
        async def send(self, request):
            raise RuntimeError("socket closed")

    result = asyncio.run(NotificationDispatcher(Broken(), StubRenderer()).dispatch(NotificationKind.RECEIPT, _job()))
    assert result.failed
    assert result.as_dict() == {"kind": "RECEIPT", "status": "failed", "detail": "socket closed"}


def test_render_failure_is_a_notification_failure():
    class BadRenderer:
        def render(self, job):
            raise ValueError("font missing")

    mailer = RecordingMailer()
    result = asyncio.run(NotificationDispatcher(mailer, BadRenderer()).dispatch(NotificationKind.JOB_UPDATED, _job()))
    assert result.status == DispatchStatus.FAILED
    assert mailer.attempts == 0


def test_missing_email_is_skipped():
    mailer = RecordingMailer()
    result = asyncio.run(NotificationDispatcher(mailer).dispatch(NotificationKind.RECEIPT, _job(customer_email=None)))
    assert result.as_dict() == {"kind": "RECEIPT", "status": "skipped"}
    assert mailer.attempts == 0


# ── HTTP mailer ──────────────────────────────────────────────────────────────
def test_request_payload_carries_base64_pdf():
    payload = request_payload(_request())
    assert payload == {
        "type": "RECEIPT",
        "name": "Isuru",
        "email": "isuru@example.com",
        "jobId": "SC-0012",
        "product": "Passport 4x",
        "cost": 800.0,
        "pdfBase64": base64.b64encode(b"%PDF-1.4 x").decode(),
    }
    bare = request_payload(_request(kind=NotificationKind.READY_NOTIFY, product_name=None, total_cost=None, attachment=None))
    assert set(bare) == {"type", "name", "email", "jobId"}


def test_http_mailer_posts_payload_with_secret():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "message": "Email Sent"})

    mailer = HttpMailer("https://mail.test/send", secret="s3cret", transport=httpx.MockTransport(handler))
    asyncio.run(mailer.send(_request()))

    assert len(seen) == 1
    assert str(seen[0].url) == "https://mail.test/send"
    assert seen[0].headers["X-Function-Secret"] == "s3cret"
    assert json.loads(seen[0].content)["jobId"] == "SC-0012"


def test_http_mailer_non_200_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    mailer = HttpMailer("https://mail.test/send", transport=transport)
    with pytest.raises(NotificationFailure, match="500"):
        asyncio.run(mailer.send(_request()))


def test_http_mailer_unreachable_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    mailer = HttpMailer("https://mail.test/send", transport=httpx.MockTransport(handler))
    with pytest.raises(NotificationFailure, match="unreachable"):
        asyncio.run(mailer.send(_request()))


# ── SMTP message ─────────────────────────────────────────────────────────────
def test_receipt_message_has_pdf_attachment():
    settings = Settings(smtp_user="studio@example.com")
    msg = build_message(_request(), settings)

    assert msg["To"] == "isuru@example.com"
    assert msg["Subject"] == "Final Receipt: #SC-0012"
    attachments = list(msg.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == "receipt-SC-0012.pdf"
    assert attachments[0].get_content() == b"%PDF-1.4 x"


def test_job_message_escapes_customer_text():
    msg = build_message(
        _request(kind=NotificationKind.JOB_UPDATED, recipient_name="<b>Eve</b>", attachment=None),
        Settings(),
    )
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "&lt;b&gt;Eve&lt;/b&gt;" in html
    assert "LKR 800.00" in html
    assert list(msg.iter_attachments()) == []


def test_build_mailer_choices():
    assert isinstance(build_mailer(Settings(mailer_backend="smtp")), SmtpMailer)
    assert isinstance(build_mailer(Settings(mailer_backend="http")), HttpMailer)
    with pytest.raises(RuntimeError):
        build_mailer(Settings(mailer_backend="pigeon"))
