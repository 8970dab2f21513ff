# studio_tracker/intake.py
from fastapi import APIRouter, Depends

from .deps import get_ledger
from .lifecycle import JobLedger
from .models import IntakeIn

router = APIRouter(prefix="/intake", tags=["intake"])


@router.post("", status_code=201)
async def register(payload: IntakeIn, ledger: JobLedger = Depends(get_ledger)):
    """Public customer form. No sign-in; staff attach product and price afterwards."""
    result = await ledger.register(payload)
    return {
        "ok": True,
        "id": result.job.id,
        "message": "Registration Successful! Please wait for your photo session.",
    }
