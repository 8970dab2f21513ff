# studio_tracker/mailer.py
import asyncio
import base64
import logging
import smtplib
from html import escape
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

import httpx

from .config import Settings
from .errors import NotificationFailure
from .models import NotificationKind
from .notify import Mailer, NotificationRequest

logger = logging.getLogger(__name__)


def request_payload(request: NotificationRequest) -> dict:
    """The JSON body /notifications/send accepts."""
    payload = {
        "type": request.kind.value,
        "name": request.recipient_name,
        "email": request.recipient_email,
        "jobId": request.job_id,
    }
    if request.product_name:
        payload["product"] = request.product_name
    if request.total_cost is not None:
        payload["cost"] = request.total_cost
    if request.attachment:
        payload["pdfBase64"] = base64.b64encode(request.attachment).decode("ascii")
    return payload


class HttpMailer:
    """Hands the message to the receipt-mailing function over HTTP."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.secret = secret
        self.transport = transport

    async def send(self, request: NotificationRequest) -> None:
        headers = {"X-Function-Secret": self.secret} if self.secret else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=request_payload(request), headers=headers)
        except httpx.HTTPError as e:
            raise NotificationFailure(f"mail function unreachable: {e}", job_id=request.job_id) from e
        if resp.status_code != 200:
            raise NotificationFailure(
                f"mail function answered {resp.status_code}: {resp.text}", job_id=request.job_id
            )


# ──────────────────────────────────────────────────────────────────────────────
# SMTP (Gmail app password)
# ──────────────────────────────────────────────────────────────────────────────
_SUBJECTS = {
    NotificationKind.JOB_UPDATED: "Job Receipt: #{job_id}",
    NotificationKind.READY_NOTIFY: "Ready for collection: #{job_id}",
    NotificationKind.RECEIPT: "Final Receipt: #{job_id}",
}


def _body(request: NotificationRequest, settings: Settings) -> str:
    lines = [f"<p>Hi {escape(request.recipient_name)},</p>"]
    if request.kind == NotificationKind.READY_NOTIFY:
        lines.append("<h1>Your order is ready</h1>")
        lines.append(f"<p>Job <strong>{request.job_id}</strong> is ready to collect.</p>")
    elif request.kind == NotificationKind.RECEIPT:
        lines.append("<h1>Thank you!</h1>")
        lines.append(f"<p>Job <strong>{request.job_id}</strong> is paid and complete. Your receipt is attached.</p>")
    else:
        lines.append("<h1>Job Confirmation</h1>")
        lines.append("<p>Thanks for visiting!</p>")
        lines.append(f"<p><strong>Job ID:</strong> {request.job_id}</p>")
        if request.product_name:
            lines.append(f"<p><strong>Item:</strong> {escape(request.product_name)}</p>")
        if request.total_cost is not None:
            lines.append(f"<p><strong>Total Cost:</strong> {settings.currency} {request.total_cost:.2f}</p>")
        lines.append("<p>Please show this email to collect your photos.</p>")
    lines.append(f"<p>{settings.studio_name}<br/>{settings.studio_address}<br/>{settings.studio_phone}</p>")
    return "\n".join(lines)


def build_message(request: NotificationRequest, settings: Settings) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((settings.studio_name, settings.smtp_user or ""))
    msg["To"] = request.recipient_email
    msg["Subject"] = _SUBJECTS[request.kind].format(job_id=request.job_id)
    msg.set_content(f"Job {request.job_id}: see the HTML version of this message.")
    msg.add_alternative(_body(request, settings), subtype="html")
    if request.attachment:
        msg.add_attachment(
            request.attachment,
            maintype="application",
            subtype="pdf",
            filename=f"receipt-{request.job_id}.pdf",
        )
    return msg


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def _deliver(self, msg: EmailMessage) -> None:
        s = self.settings
        with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.mailer_timeout) as smtp:
            if s.smtp_user:
                smtp.login(s.smtp_user, s.smtp_password or "")
            smtp.send_message(msg)

    async def send(self, request: NotificationRequest) -> None:
        msg = build_message(request, self.settings)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"SMTP send failed: {e}", job_id=request.job_id) from e
        logger.info(f"Mailed {request.kind.value} for {request.job_id} to {request.recipient_email}")


def build_mailer(settings: Settings) -> Mailer:
    if settings.mailer_backend == "smtp":
        return SmtpMailer(settings)
    if settings.mailer_backend == "http":
        return HttpMailer(
            settings.receipt_function_url,
            timeout=settings.mailer_timeout,
            secret=settings.function_secret,
        )
    raise RuntimeError(f"Unknown STUDIO_MAILER: {settings.mailer_backend}")
