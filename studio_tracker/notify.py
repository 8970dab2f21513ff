# studio_tracker/notify.py
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .errors import NotificationFailure
from .models import Job, NotificationKind

logger = logging.getLogger(__name__)

WITH_RECEIPT = {NotificationKind.JOB_UPDATED, NotificationKind.RECEIPT}


@dataclass
class NotificationRequest:
    kind: NotificationKind
    recipient_name: str
    recipient_email: str
    job_id: str
    product_name: Optional[str] = None
    total_cost: Optional[float] = None
    attachment: Optional[bytes] = None


class Mailer(Protocol):
    async def send(self, request: NotificationRequest) -> None:
        """Deliver one message or raise NotificationFailure."""
        ...


class ReceiptRenderer(Protocol):
    def render(self, job: Job) -> bytes:
        ...


class DispatchStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DispatchResult:
    kind: NotificationKind
    status: DispatchStatus
    failure: Optional[NotificationFailure] = None

    @property
    def failed(self) -> bool:
        return self.status == DispatchStatus.FAILED

    def as_dict(self) -> dict:
        out = {"kind": self.kind.value, "status": self.status.value}
        if self.failure is not None:
            out["detail"] = self.failure.message
        return out


class NotificationDispatcher:
    """
    Turns one lifecycle event into at most one mailer call.

    The job write has already been committed when this runs, so nothing here
    raises: a failed send comes back as a FAILED result for the caller to show
    as "saved, but email failed". No email on the job means no send at all.
    """

    def __init__(self, mailer: Mailer, renderer: Optional[ReceiptRenderer] = None):
        self.mailer = mailer
        self.renderer = renderer

    async def dispatch(self, kind: NotificationKind, job: Job) -> DispatchResult:
        if not job.customer_email:
            logger.info(f"{kind.value} for {job.id} skipped: no customer email")
            return DispatchResult(kind, DispatchStatus.SKIPPED)

        try:
            attachment = None
            if kind in WITH_RECEIPT and self.renderer is not None:
                attachment = await asyncio.to_thread(self.renderer.render, job)
            await self.mailer.send(
                NotificationRequest(
                    kind=kind,
                    recipient_name=job.customer_name,
                    recipient_email=job.customer_email,
                    job_id=job.id,
                    product_name=job.product_name,
                    total_cost=job.total_cost,
                    attachment=attachment,
                )
            )
        except NotificationFailure as e:
            logger.warning(f"{kind.value} for {job.id} failed: {e.message}")
            return DispatchResult(kind, DispatchStatus.FAILED, e)
        except Exception as e:
            logger.warning(f"{kind.value} for {job.id} failed: {e}")
            return DispatchResult(kind, DispatchStatus.FAILED, NotificationFailure(str(e), job_id=job.id))

        logger.info(f"{kind.value} sent to {job.customer_email} for {job.id}")
        return DispatchResult(kind, DispatchStatus.SENT)
