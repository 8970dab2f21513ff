# studio_tracker/jobs.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from .deps import get_actor, get_ledger
from .lifecycle import JobLedger, LifecycleResult
from .models import Actor, CompleteIn, Job, JobIn, JobStatus, Outcome

router = APIRouter(prefix="/jobs", tags=["jobs"])


class LifecycleOut(BaseModel):
    outcome: Outcome
    job: Job
    notification: Optional[dict] = None
    warning: Optional[str] = None


def _out(result: LifecycleResult) -> LifecycleOut:
    warning = None
    if result.outcome == Outcome.NOTIFICATION_WARNING:
        warning = "Saved, but notification failed"
    return LifecycleOut(
        outcome=result.outcome,
        job=result.job,
        notification=result.notification.as_dict() if result.notification else None,
        warning=warning,
    )


@router.get("", response_model=List[Job])
async def list_jobs(
    status: Optional[JobStatus] = Query(default=None),
    actor: Actor = Depends(get_actor),
    ledger: JobLedger = Depends(get_ledger),
):
    return await ledger.list_jobs(status)


@router.get("/{job_id}", response_model=Job)
async def get_job(job_id: str, actor: Actor = Depends(get_actor), ledger: JobLedger = Depends(get_ledger)):
    return await ledger.get(job_id)


@router.post("", response_model=LifecycleOut, status_code=201)
async def create_job(
    payload: JobIn,
    notify: bool = Query(default=True),
    actor: Actor = Depends(get_actor),
    ledger: JobLedger = Depends(get_ledger),
):
    return _out(await ledger.create(payload, actor, notify=notify))


@router.put("/{job_id}", response_model=LifecycleOut)
async def update_job(
    job_id: str,
    payload: JobIn,
    notify: bool = Query(default=True),
    actor: Actor = Depends(get_actor),
    ledger: JobLedger = Depends(get_ledger),
):
    return _out(await ledger.update(job_id, payload, actor, notify=notify))


@router.post("/{job_id}/ready", response_model=LifecycleOut)
async def mark_ready(job_id: str, actor: Actor = Depends(get_actor), ledger: JobLedger = Depends(get_ledger)):
    return _out(await ledger.mark_ready(job_id, actor))


@router.post("/{job_id}/complete", response_model=LifecycleOut)
async def complete_job(
    job_id: str,
    payload: Optional[CompleteIn] = None,
    actor: Actor = Depends(get_actor),
    ledger: JobLedger = Depends(get_ledger),
):
    method = payload.balance_pay_method if payload else None
    return _out(await ledger.complete(job_id, actor, balance_pay_method=method))


@router.delete("/{job_id}")
async def delete_job(job_id: str, actor: Actor = Depends(get_actor), ledger: JobLedger = Depends(get_ledger)):
    await ledger.delete(job_id, actor)
    return {"ok": True, "id": job_id}
