# studio_tracker/receipts.py
import logging
import os
from datetime import date
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .config import Settings
from .models import Job

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 50
RIGHT = PAGE_WIDTH - MARGIN
LIGHT_GREY = colors.HexColor("#F0F0F0")
PAID_GREEN = colors.Color(0, 150 / 255, 0)
DUE_RED = colors.Color(200 / 255, 0, 0)


def _money(value: float) -> str:
    return f"{value:,.2f}"


class ReceiptPDFGenerator:
    """Draws one job's receipt onto an A4 page."""

    def __init__(self, job: Job, settings: Settings, logo_path: Optional[str] = None, today: Optional[date] = None):
        self.job = job
        self.settings = settings
        self.logo_path = logo_path
        self.today = today or date.today()
        self.buffer = BytesIO()
        self.pdf = canvas.Canvas(self.buffer, pagesize=A4)
        self.pdf.setTitle(f"Receipt {job.id}")

    def generate(self) -> bytes:
        try:
            y = PAGE_HEIGHT - MARGIN
            y = self.add_header(y)
            y = self.add_parties(y)
            y = self.add_line_items(y)
            self.add_totals(y)
            self.add_footer()
            self.pdf.showPage()
            self.pdf.save()
        except Exception as e:
            logger.exception(f"Error generating receipt for {self.job.id}: {e}")
            raise
        return self.buffer.getvalue()

    def add_header(self, y: float) -> float:
        if self.logo_path and os.path.exists(self.logo_path):
            try:
                self.pdf.drawImage(
                    ImageReader(self.logo_path), MARGIN, y - 45,
                    width=120, height=45, mask="auto", preserveAspectRatio=True,
                )
            except Exception as e:
                logger.warning(f"Failed to add logo: {e}")
                self._studio_name(y)
        else:
            self._studio_name(y)

        self.pdf.setFont("Helvetica", 10)
        self.pdf.drawRightString(RIGHT, y - 10, self.settings.studio_address)
        self.pdf.drawRightString(RIGHT, y - 24, self.settings.studio_phone)
        y -= 60
        self.pdf.line(MARGIN, y, RIGHT, y)

        y -= 35
        self.pdf.setFont("Helvetica-Bold", 16)
        self.pdf.drawCentredString(PAGE_WIDTH / 2, y, "OFFICIAL RECEIPT")
        return y - 25

    def _studio_name(self, y: float) -> None:
        self.pdf.setFont("Helvetica-Bold", 22)
        self.pdf.drawString(MARGIN, y - 25, self.settings.studio_name.upper())

    def add_parties(self, y: float) -> float:
        box_w = (RIGHT - MARGIN) / 2
        box_h = 70
        self.pdf.setStrokeColor(colors.lightgrey)
        self.pdf.rect(MARGIN, y - box_h, box_w, box_h)
        self.pdf.rect(MARGIN + box_w, y - box_h, box_w, box_h)
        self.pdf.setStrokeColor(colors.black)

        self.pdf.setFont("Helvetica", 11)
        self.pdf.drawString(MARGIN + 10, y - 18, "BILL TO:")
        self.pdf.setFont("Helvetica-Bold", 11)
        self.pdf.drawString(MARGIN + 10, y - 36, self.job.customer_name or "Customer")
        self.pdf.setFont("Helvetica", 11)
        self.pdf.drawString(MARGIN + 10, y - 54, self.job.customer_phone or "")

        x = MARGIN + box_w + 10
        due = self.job.due_date.isoformat() if self.job.due_date else "N/A"
        self.pdf.drawString(x, y - 18, f"RECEIPT #: {self.job.id}")
        self.pdf.drawString(x, y - 36, f"DATE: {self.today.isoformat()}")
        self.pdf.drawString(x, y - 54, f"DUE DATE: {due}")
        return y - box_h - 30

    def add_line_items(self, y: float) -> float:
        self.pdf.setFillColor(LIGHT_GREY)
        self.pdf.rect(MARGIN, y - 20, RIGHT - MARGIN, 20, stroke=0, fill=1)
        self.pdf.setFillColor(colors.black)
        self.pdf.setFont("Helvetica-Bold", 11)
        self.pdf.drawString(MARGIN + 10, y - 14, "DESCRIPTION")
        self.pdf.drawRightString(RIGHT - 10, y - 14, f"PRICE ({self.settings.currency})")

        y -= 40
        self.pdf.setFont("Helvetica", 11)
        self.pdf.drawString(MARGIN + 10, y, self.job.product_name or "Service")
        self.pdf.drawRightString(RIGHT - 10, y, _money(self.job.total_cost))
        if self.job.description:
            self.pdf.setFont("Helvetica-Oblique", 9)
            self.pdf.drawString(MARGIN + 10, y - 14, self.job.description[:90])
            y -= 14
        y -= 10
        self.pdf.line(MARGIN, y, RIGHT, y)
        return y - 25

    def add_totals(self, y: float) -> float:
        label_x = PAGE_WIDTH / 2 + 40
        self.pdf.setFont("Helvetica", 11)
        self.pdf.drawString(label_x, y, "Sub Total:")
        self.pdf.drawRightString(RIGHT - 10, y, _money(self.job.total_cost))
        y -= 18
        self.pdf.drawString(label_x, y, "Advance Paid:")
        self.pdf.drawRightString(RIGHT - 10, y, f"- {_money(self.job.advance)}")

        y -= 28
        self.pdf.setFont("Helvetica-Bold", 14)
        balance = max(self.job.balance, 0)
        if balance == 0:
            self.pdf.setFillColor(PAID_GREEN)
            self.pdf.drawString(label_x, y, "FULLY PAID")
        else:
            self.pdf.setFillColor(DUE_RED)
            self.pdf.drawString(label_x, y, "BALANCE DUE:")
            self.pdf.drawRightString(RIGHT - 10, y, _money(balance))
        self.pdf.setFillColor(colors.black)
        return y

    def add_footer(self) -> None:
        self.pdf.setFont("Helvetica-Oblique", 10)
        self.pdf.drawCentredString(PAGE_WIDTH / 2, MARGIN, "Thank you for your business!")


class ReceiptRenderer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def render(self, job: Job) -> bytes:
        return ReceiptPDFGenerator(job, self.settings, logo_path=self.settings.logo_path).generate()
