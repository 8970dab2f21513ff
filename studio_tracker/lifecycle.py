# studio_tracker/lifecycle.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from .catalog import ProductCatalog
from .errors import InvalidTransition, NotFoundError, PermissionDenied, ValidationError
from .ids import IdAllocator
from .models import (
    Actor, BalancePayMethod, CompleteIn, IntakeIn, Job, JobIn, JobStatus, NotificationKind,
    Outcome, Product, parse_input,
)
from .notify import DispatchResult, NotificationDispatcher
from .permissions import authorize
from .records import normalize_job
from .store import JOBS, DocumentStore, Transaction

logger = logging.getLogger(__name__)

CUSTOM_CODE = "CUST"
CUSTOM_NAME = "Custom"


def _settle(
    job_id: str, owed: float, method: Optional[BalancePayMethod]
) -> Tuple[BalancePayMethod, float]:
    """How the balance was closed and how much of it was collected."""
    if owed <= 0:
        return BalancePayMethod.NONE, 0.0
    if method is None:
        raise ValidationError(f"Job {job_id} still owes {owed}; say how it was paid", job_id=job_id)
    collected = owed if method in (BalancePayMethod.CASH, BalancePayMethod.CARD) else 0.0
    return method, collected


@dataclass
class LifecycleResult:
    job: Job
    notification: Optional[DispatchResult] = None

    @property
    def outcome(self) -> Outcome:
        if self.notification is not None and self.notification.failed:
            return Outcome.NOTIFICATION_WARNING
        return Outcome.SUCCESS


class JobLedger:
    """
    Every state change a job can go through: Pending -> Ready -> Completed,
    plus edits and hard deletes.

    Each operation takes the acting user explicitly and checks it before
    touching storage. Notifications go out only after the write is committed
    and never undo it; their result rides along on the LifecycleResult.

    Two staff members editing the same job at once is last-write-wins.
    """

    def __init__(
        self,
        store: DocumentStore,
        allocator: IdAllocator,
        catalog: ProductCatalog,
        dispatcher: NotificationDispatcher,
        *,
        allow_completed_edits: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.allocator = allocator
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.allow_completed_edits = allow_completed_edits
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ── reads ────────────────────────────────────────────────────────────────
    async def get(self, job_id: str) -> Job:
        record = await self.store.get(JOBS, job_id)
        if record is None:
            raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
        return normalize_job(job_id, record)

    async def list_jobs(self, status: Optional[Union[JobStatus, str]] = None) -> List[Job]:
        docs = await self.store.list(JOBS)
        jobs = [normalize_job(doc_id, record) for doc_id, record in docs.items()]
        if status:
            wanted = status.value if isinstance(status, JobStatus) else str(status)
            jobs = [j for j in jobs if j.status.value.lower() == wanted.lower()]
        jobs.sort(key=lambda j: j.created_at.timestamp() if j.created_at else 0, reverse=True)
        return jobs

    # ── creation ─────────────────────────────────────────────────────────────
    async def register(self, data: Union[IntakeIn, Mapping[str, Any]]) -> LifecycleResult:
        """Customer self-intake from the public form. Product and price come later."""
        payload = parse_input(IntakeIn, data)
        now = self.clock()
        draft = Job(
            id="",
            customer_name=payload.name,
            customer_email=payload.email,
            customer_phone=payload.phone,
            status=JobStatus.PENDING,
            due_date=now.date(),
            created_at=now,
        )
        job = await self._insert(draft)
        logger.info(f"Job {job.id} registered by customer {job.customer_name}")
        return LifecycleResult(job)

    async def create(
        self,
        data: Union[JobIn, Mapping[str, Any]],
        actor: Optional[Actor],
        notify: bool = True,
    ) -> LifecycleResult:
        authorize(actor, "create")
        payload = parse_input(JobIn, data)
        if payload.balance_pay_method is not None:
            raise ValidationError("balancePayMethod is set when a job is completed, not on create")
        now = self.clock()
        details = await self._details(payload, existing=None)
        draft = Job(id="", status=JobStatus.PENDING, created_at=now, **details)
        job = await self._insert(draft)
        logger.info(f"Job {job.id} created by {actor.id} (total {job.total_cost}, advance {job.advance})")
        return await self._finish(job, NotificationKind.JOB_UPDATED if notify else None)

    async def _insert(self, draft: Job) -> Job:
        async def body(tx: Transaction) -> Job:
            job_id = await self.allocator.allocate_in(tx)
            job = draft.model_copy(update={"id": job_id})
            tx.set(JOBS, job_id, job.to_record())
            return job

        return await self.store.atomic(body)

    # ── edits and transitions ────────────────────────────────────────────────
    async def update(
        self,
        job_id: str,
        data: Union[JobIn, Mapping[str, Any]],
        actor: Optional[Actor],
        notify: bool = True,
    ) -> LifecycleResult:
        """
        Overwrite descriptive and financial fields. Id, status and createdAt stay.

        A completed job (when such edits are allowed) is settled again against
        the new totals with the rules of ``complete``: ``balancePayMethod`` in
        the input replaces the recorded one, and a job that was closed with
        nothing collected needs it restated once the edit leaves money owed.
        """
        authorize(actor, "update")
        payload = parse_input(JobIn, data)
        job = await self.get(job_id)

        if job.status == JobStatus.COMPLETED:
            if not self.allow_completed_edits:
                raise InvalidTransition(f"Job {job_id} is completed and can no longer be edited", job_id=job_id)
            if not actor.is_admin:
                raise PermissionDenied("Only an admin may edit a completed job", job_id=job_id)
        elif payload.balance_pay_method is not None:
            raise ValidationError(f"Job {job_id} is not completed; balancePayMethod is set by completing it", job_id=job_id)

        details = await self._details(payload, existing=job)
        updated = job.model_copy(update=details)
        if updated.status == JobStatus.COMPLETED:
            owed = updated.total_cost - updated.advance
            method = payload.balance_pay_method
            if method is None:
                previous = job.balance_pay_method
                if previous is None and job.pay_method is not None:
                    # older records never stored it; statistics fall back the same way
                    previous = BalancePayMethod(job.pay_method.value)
                if previous != BalancePayMethod.NONE:
                    method = previous
            method, collected = _settle(job_id, owed, method)
            updated = updated.model_copy(
                update={"balance": 0, "balance_paid": collected, "balance_pay_method": method}
            )
        await self._save(updated)
        logger.info(f"Job {job_id} updated by {actor.id}")
        return await self._finish(updated, NotificationKind.JOB_UPDATED if notify else None)

    async def mark_ready(self, job_id: str, actor: Optional[Actor]) -> LifecycleResult:
        authorize(actor, "mark_ready")
        job = await self.get(job_id)
        if job.status != JobStatus.PENDING:
            raise InvalidTransition(f"Job {job_id} is {job.status.value}, only Pending jobs can be marked ready", job_id=job_id)

        ready = job.model_copy(update={"status": JobStatus.READY})
        await self._save(ready)
        logger.info(f"Job {job_id} marked ready by {actor.id}")
        return await self._finish(ready, NotificationKind.READY_NOTIFY)

    async def complete(
        self,
        job_id: str,
        actor: Optional[Actor],
        balance_pay_method: Optional[Union[BalancePayMethod, str]] = None,
    ) -> LifecycleResult:
        """
        Close the job: status Completed, balance forced to 0.

        With nothing left to collect the payment method is not asked for and
        is recorded as None. Otherwise the caller says how the balance was
        paid (or None to write it off). The collected amount is kept in
        ``balance_paid`` so income can still be attributed after the zeroing.
        """
        authorize(actor, "complete")
        method = parse_input(CompleteIn, {"balancePayMethod": balance_pay_method}).balance_pay_method
        job = await self.get(job_id)
        if job.status == JobStatus.COMPLETED:
            raise InvalidTransition(f"Job {job_id} is already completed", job_id=job_id)

        method, collected = _settle(job_id, job.balance, method)

        done = job.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "balance": 0,
                "balance_paid": collected,
                "balance_pay_method": method,
                "completed_at": self.clock(),
            }
        )
        await self._save(done)
        logger.info(f"Job {job_id} completed by {actor.id} ({method.value} {collected})")
        return await self._finish(done, NotificationKind.RECEIPT)

    async def delete(self, job_id: str, actor: Optional[Actor]) -> None:
        authorize(actor, "delete")
        if not await self.store.delete(JOBS, job_id):
            raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
        logger.info(f"Job {job_id} deleted by {actor.id}")

    # ── helpers ──────────────────────────────────────────────────────────────
    async def _details(self, payload: JobIn, existing: Optional[Job]) -> dict:
        """Resolve the product snapshot and amounts; on edits, fields not sent keep their value."""
        given = payload.model_fields_set
        keep = existing is not None

        product: Optional[Product] = None
        if payload.product_id:
            product = await self.catalog.get(payload.product_id)
            if product is None:
                raise NotFoundError(f"Product {payload.product_id} not found")

        if product is not None:
            code, name = product.code, product.name
        elif keep and "product_id" not in given and existing.product_code:
            code, name = existing.product_code, existing.product_name
        else:
            code, name = CUSTOM_CODE, CUSTOM_NAME

        total = payload.total_cost
        if total is None:
            if product is not None:
                total = product.price
            elif keep and "total_cost" not in given:
                total = existing.total_cost
            else:
                total = 0

        advance = payload.advance
        if advance is None:
            advance = existing.advance if keep and "advance" not in given else 0

        description = payload.description
        if description is None:
            if product is not None and product.description:
                description = product.description
            elif keep and "description" not in given:
                description = existing.description

        def pick(field: str, current: Any) -> Any:
            return getattr(payload, field) if not keep or field in given else current

        due_date = pick("due_date", existing.due_date if keep else None) or self.clock().date()
        pay_method = pick("pay_method", existing.pay_method if keep else None) or payload.pay_method

        return {
            "customer_name": payload.customer_name,
            "customer_email": pick("customer_email", existing.customer_email if keep else None),
            "customer_phone": pick("customer_phone", existing.customer_phone if keep else None),
            "product_code": code,
            "product_name": name,
            "description": description,
            "total_cost": float(total),
            "advance": float(advance),
            "balance": float(total) - float(advance),
            "pay_method": pay_method,
            "due_date": due_date,
        }

    async def _save(self, job: Job) -> None:
        try:
            await self.store.put(JOBS, job.id, job.to_record())
        except Exception:
            logger.exception(f"Saving job {job.id} failed; nothing changed")
            raise

    async def _finish(self, job: Job, kind: Optional[NotificationKind]) -> LifecycleResult:
        if kind is None:
            return LifecycleResult(job)
        return LifecycleResult(job, await self.dispatcher.dispatch(kind, job))
