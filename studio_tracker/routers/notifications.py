import base64
import binascii
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..config import Settings
from ..deps import get_function_mailer, get_settings
from ..errors import NotificationFailure
from ..models import NotificationKind
from ..notify import Mailer, NotificationRequest

router = APIRouter(prefix="/notifications", tags=["notifications"])

logger = logging.getLogger("uvicorn.error")


class NotificationPayload(BaseModel):
    type: NotificationKind = NotificationKind.JOB_UPDATED
    name: str = ""
    email: str = Field(..., min_length=3)
    job_id: str = Field(..., alias="jobId", min_length=1)
    product: Optional[str] = None
    cost: Optional[float] = None
    pdf_base64: Optional[str] = Field(default=None, alias="pdfBase64")


@router.post("/send")
async def send_receipt(
    body: NotificationPayload,
    x_function_secret: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_function_mailer),
):
    """Email one job notification, with the receipt PDF attached when one is sent."""
    if settings.function_secret and x_function_secret != settings.function_secret:
        raise HTTPException(status_code=401, detail="Bad function secret")

    attachment = None
    if body.pdf_base64:
        try:
            attachment = base64.b64decode(body.pdf_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="pdfBase64 is not valid base64")

    try:
        await mailer.send(
            NotificationRequest(
                kind=body.type,
                recipient_name=body.name,
                recipient_email=body.email,
                job_id=body.job_id,
                product_name=body.product,
                total_cost=body.cost,
                attachment=attachment,
            )
        )
    except NotificationFailure as e:
        logger.error(f"Receipt mail for {body.job_id} failed: {e.message}")
        raise HTTPException(status_code=500, detail=e.message)

    return {"ok": True, "message": "Email Sent"}
