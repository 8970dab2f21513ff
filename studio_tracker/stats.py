# studio_tracker/stats.py
import logging
from typing import AsyncIterator, Iterable, List, Optional

from .models import BalancePayMethod, Job, JobStatus, LedgerStats, PayMethod
from .records import normalize_job
from .store import JOBS, DocumentStore, Snapshot

logger = logging.getLogger(__name__)


def balance_collected(job: Job) -> float:
    """What was taken at completion. Older records never stored it, so derive it."""
    if job.status != JobStatus.COMPLETED:
        return 0.0
    if job.balance_pay_method == BalancePayMethod.NONE:
        return 0.0
    if job.balance_paid is not None:
        return job.balance_paid
    return max(job.total_cost - job.advance, 0.0)


def balance_method(job: Job) -> Optional[str]:
    if job.balance_pay_method is not None:
        return job.balance_pay_method.value
    return job.pay_method.value if job.pay_method else None


def project_stats(jobs: Iterable[Job]) -> LedgerStats:
    """Full recompute over the whole job set. No state is kept between calls."""
    stats = LedgerStats()
    for job in jobs:
        stats.total_jobs += 1
        if job.status == JobStatus.PENDING:
            stats.pending += 1
        elif job.status == JobStatus.READY:
            stats.ready += 1
        else:
            stats.completed += 1

        if job.pay_method == PayMethod.CASH:
            stats.cash_income += job.advance
        elif job.pay_method == PayMethod.CARD:
            stats.card_income += job.advance

        collected = balance_collected(job)
        method = balance_method(job)
        if method == PayMethod.CASH.value:
            stats.cash_income += collected
        elif method == PayMethod.CARD.value:
            stats.card_income += collected

        if job.status != JobStatus.COMPLETED:
            stats.due_balance += job.balance
    return stats


def jobs_from_snapshot(snapshot: Snapshot) -> List[Job]:
    return [normalize_job(doc_id, record) for doc_id, record in snapshot.items()]


class JobBoard:
    """
    Live view of the jobs collection for the dashboard: every delivery from the
    subscription replaces the job list and recomputes the statistics.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self.jobs: List[Job] = []
        self.stats = LedgerStats()

    def apply(self, snapshot: Snapshot) -> LedgerStats:
        self.jobs = sorted(
            jobs_from_snapshot(snapshot),
            key=lambda j: j.created_at.timestamp() if j.created_at else 0,
            reverse=True,
        )
        self.stats = project_stats(self.jobs)
        return self.stats

    async def updates(self, max_updates: Optional[int] = None) -> AsyncIterator[LedgerStats]:
        """Yield fresh statistics for every snapshot the subscription delivers."""
        count = 0
        stream = self.store.subscribe(JOBS)
        try:
            async for snapshot in stream:
                stats = self.apply(snapshot)
                logger.debug(f"Job board refreshed: {stats.total_jobs} jobs")
                yield stats
                count += 1
                if max_updates is not None and count >= max_updates:
                    return
        finally:
            await stream.aclose()
