import base64
import io
import logging
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
from uuid import UUID

import httpx
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from substrack.core.config import settings
from substrack.schemas.invoice import InvoiceData, TaxBreakdown

logger = logging.getLogger(__name__)

TAX_RATE = Decimal("0.18")
CENT = Decimal("0.01")

PRIMARY = colors.Color(79 / 255, 70 / 255, 229 / 255)
TEXT_DARK = colors.Color(31 / 255, 41 / 255, 55 / 255)
TEXT_MUTED = colors.Color(107 / 255, 114 / 255, 128 / 255)
BORDER = colors.Color(229 / 255, 231 / 255, 235 / 255)
ROW_STRIPE = colors.Color(249 / 255, 250 / 255, 251 / 255)

STATUS_BADGES = {
    "success": ("PAID", colors.Color(16 / 255, 185 / 255, 129 / 255)),
    "failed": ("FAILED", colors.Color(239 / 255, 68 / 255, 68 / 255)),
    "pending": ("PENDING", colors.Color(245 / 255, 158 / 255, 11 / 255)),
}

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm


def split_inclusive_tax(total: Decimal) -> TaxBreakdown:
    """Split an 18%-inclusive amount so subtotal + tax == total to the cent"""
    total = Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)
    subtotal = (total / (1 + TAX_RATE)).quantize(CENT, rounding=ROUND_HALF_UP)
    return TaxBreakdown(subtotal=subtotal, tax=total - subtotal, total=total)


def generate_invoice_number(payment_date: Union[date, datetime], transaction_id: Union[str, UUID]) -> str:
    return f"INV-{payment_date:%y%m%d}-{str(transaction_id)[:8].upper()}"


def format_money(amount: Decimal, currency: str) -> str:
    return f"{currency.upper()} {Decimal(amount).quantize(CENT):,.2f}"


async def fetch_logo(url: Optional[str], timeout: Optional[float] = None) -> Optional[ImageReader]:
    """Best-effort logo download. Any failure means no logo."""
    if not url:
        return None
    try:
        async with httpx.AsyncClient(timeout=timeout or settings.logo_fetch_timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
        image = ImageReader(io.BytesIO(response.content))
        image.getSize()
        return image
    except Exception as e:
        logger.warning(f"⚠️ Could not load invoice logo from {url}: {e}")
        return None


def _y(top_mm: float) -> float:
    """Layout is measured from the top of the page"""
    return PAGE_HEIGHT - top_mm * mm


def _draw_header(pdf: canvas.Canvas, data: InvoiceData, logo: Optional[ImageReader]) -> None:
    name_x = MARGIN
    if logo is not None:
        try:
            pdf.drawImage(logo, MARGIN, _y(35), width=20 * mm, height=20 * mm,
                          preserveAspectRatio=True, mask="auto")
            name_x = MARGIN + 25 * mm
        except Exception as e:
            logger.warning(f"⚠️ Skipping unreadable invoice logo: {e}")

    pdf.setFillColor(PRIMARY)
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawString(name_x, _y(25), data.merchant_name)

    pdf.setFillColor(TEXT_DARK)
    pdf.setFont("Helvetica-Bold", 24)
    pdf.drawRightString(PAGE_WIDTH - MARGIN, _y(25), "INVOICE")

    pdf.setFillColor(TEXT_MUTED)
    pdf.setFont("Helvetica", 9)
    y = 32
    for line in (data.merchant_email, data.merchant_phone, data.merchant_address,
                 f"GST: {data.merchant_gst}" if data.merchant_gst else None):
        if line:
            pdf.drawString(name_x, _y(y), line)
            y += 4.5

    pdf.setStrokeColor(BORDER)
    pdf.setLineWidth(0.5)
    pdf.line(MARGIN, _y(45), PAGE_WIDTH - MARGIN, _y(45))


def _draw_details(pdf: canvas.Canvas, data: InvoiceData) -> None:
    pdf.setFillColor(TEXT_DARK)
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(MARGIN, _y(55), "Invoice Number:")
    pdf.drawString(MARGIN, _y(61), "Invoice Date:")
    if data.due_date:
        pdf.drawString(MARGIN, _y(67), "Due Date:")

    pdf.setFont("Helvetica", 10)
    pdf.drawString(MARGIN + 32 * mm, _y(55), data.invoice_id)
    pdf.drawString(MARGIN + 32 * mm, _y(61), f"{data.invoice_date:%d %b %Y}")
    if data.due_date:
        pdf.drawString(MARGIN + 32 * mm, _y(67), f"{data.due_date:%d %b %Y}")

    label, color = STATUS_BADGES.get(data.status, STATUS_BADGES["pending"])
    pdf.setFillColor(color)
    pdf.roundRect(MARGIN, _y(78), 25 * mm, 7 * mm, 1.5 * mm, stroke=0, fill=1)
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica-Bold", 9)
    pdf.drawCentredString(MARGIN + 12.5 * mm, _y(76), label)

    # Bill to
    x = 120 * mm
    pdf.setFillColor(TEXT_MUTED)
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(x, _y(55), "BILL TO")
    pdf.setFillColor(TEXT_DARK)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(x, _y(62), data.customer_name)
    pdf.setFont("Helvetica", 10)
    pdf.drawString(x, _y(68), data.customer_email)


def _draw_items(pdf: canvas.Canvas, data: InvoiceData, breakdown: TaxBreakdown) -> float:
    details = data.plan_description or (f"{data.billing_cycle.capitalize()} subscription" if data.billing_cycle else "Subscription")
    rows = [
        ["Description", "Details", "Qty", "Unit Price", "Amount"],
        [data.plan_name, details[:60], "1",
         format_money(breakdown.subtotal, data.currency), format_money(breakdown.subtotal, data.currency)],
    ]
    table = Table(rows, colWidths=[45 * mm, 55 * mm, 12 * mm, 29 * mm, 29 * mm])
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("TEXTCOLOR", (0, 1), (-1, -1), TEXT_DARK),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [ROW_STRIPE, colors.white]),
        ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
        ("LINEBELOW", (0, -1), (-1, -1), 0.5, BORDER),
        ("TOPPADDING", (0, 0), (-1, -1), 6),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))
    _, height = table.wrapOn(pdf, PAGE_WIDTH - 2 * MARGIN, PAGE_HEIGHT)
    top = 90 * mm
    table.drawOn(pdf, MARGIN, PAGE_HEIGHT - top - height)
    return (top + height) / mm


def _draw_totals(pdf: canvas.Canvas, data: InvoiceData, breakdown: TaxBreakdown, top_mm: float) -> float:
    label_x = 130 * mm
    value_x = PAGE_WIDTH - MARGIN
    y = top_mm + 10

    pdf.setFont("Helvetica", 10)
    pdf.setFillColor(TEXT_MUTED)
    pdf.drawString(label_x, _y(y), "Subtotal:")
    pdf.drawRightString(value_x, _y(y), format_money(breakdown.subtotal, data.currency))
    y += 6
    pdf.drawString(label_x, _y(y), f"Tax ({int(TAX_RATE * 100)}%):")
    pdf.drawRightString(value_x, _y(y), format_money(breakdown.tax, data.currency))
    y += 3

    pdf.setStrokeColor(BORDER)
    pdf.line(label_x, _y(y), value_x, _y(y))
    y += 6

    pdf.setFont("Helvetica-Bold", 12)
    pdf.setFillColor(TEXT_DARK)
    pdf.drawString(label_x, _y(y), "Total:")
    pdf.drawRightString(value_x, _y(y), format_money(breakdown.total, data.currency))
    return y


def _draw_payment_info(pdf: canvas.Canvas, data: InvoiceData, top_mm: float) -> None:
    if not data.payment_method and not data.transaction_id:
        return
    y = top_mm + 15
    pdf.setFont("Helvetica-Bold", 10)
    pdf.setFillColor(TEXT_DARK)
    pdf.drawString(MARGIN, _y(y), "Payment Information")
    pdf.setFont("Helvetica", 9)
    pdf.setFillColor(TEXT_MUTED)
    if data.payment_method:
        y += 6
        pdf.drawString(MARGIN, _y(y), f"Payment Method: {data.payment_method}")
    if data.transaction_id:
        y += 5
        pdf.drawString(MARGIN, _y(y), f"Transaction ID: {data.transaction_id}")


def _draw_footer(pdf: canvas.Canvas, data: InvoiceData) -> None:
    pdf.setStrokeColor(BORDER)
    pdf.line(MARGIN, _y(265), PAGE_WIDTH - MARGIN, _y(265))
    pdf.setFillColor(TEXT_MUTED)
    pdf.setFont("Helvetica", 9)
    pdf.drawCentredString(PAGE_WIDTH / 2, _y(270), "Thank you for your business!")
    pdf.setFont("Helvetica", 8)
    pdf.drawCentredString(PAGE_WIDTH / 2, _y(275),
                          f"Questions? Contact {data.merchant_name} at {data.merchant_email}")
    pdf.drawRightString(PAGE_WIDTH - MARGIN, _y(285), f"Page {pdf.getPageNumber()}")


def render_invoice_pdf(data: InvoiceData, logo: Optional[ImageReader] = None) -> bytes:
    """Lay out a single-page A4 invoice. Same input, same bytes."""
    breakdown = split_inclusive_tax(data.amount)
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1, pageCompression=0)
    pdf.setTitle(f"Invoice {data.invoice_id}")
    pdf.setAuthor(data.merchant_name)

    _draw_header(pdf, data, logo)
    _draw_details(pdf, data)
    items_bottom = _draw_items(pdf, data, breakdown)
    totals_bottom = _draw_totals(pdf, data, breakdown, items_bottom)
    _draw_payment_info(pdf, data, totals_bottom)
    _draw_footer(pdf, data)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def build_invoice_data(merchant, subscriber, plan, transaction, payment_method: Optional[str] = "Card (Stripe)") -> InvoiceData:
    """InvoiceData for one stored payment"""
    payment_date = transaction.payment_date
    status = transaction.status.value if hasattr(transaction.status, "value") else transaction.status
    cycle = plan.billing_cycle.value if hasattr(plan.billing_cycle, "value") else plan.billing_cycle
    return InvoiceData(
        invoice_id=generate_invoice_number(payment_date, transaction.id),
        invoice_date=payment_date.date(),
        merchant_name=merchant.display_name,
        merchant_email=merchant.email,
        merchant_address=merchant.address,
        merchant_gst=merchant.gst_number,
        merchant_phone=merchant.phone,
        merchant_logo_url=merchant.logo_url,
        customer_name=subscriber.customer_name or subscriber.customer_email,
        customer_email=subscriber.customer_email,
        plan_name=plan.name,
        plan_description=plan.description,
        billing_cycle=cycle,
        amount=transaction.amount,
        currency=plan.currency,
        status=status,
        payment_method=payment_method,
        transaction_id=transaction.stripe_payment_id or str(transaction.id),
    )


class InvoiceService:
    async def generate_pdf(self, data: InvoiceData) -> bytes:
        logo = await fetch_logo(data.merchant_logo_url)
        return render_invoice_pdf(data, logo)

    async def generate_pdf_base64(self, data: InvoiceData) -> str:
        """Attachment encoding for email delivery"""
        return base64.b64encode(await self.generate_pdf(data)).decode("ascii")


invoice_service = InvoiceService()
