"""
Invoice rendering

Builds a one-page PDF for an order with reportlab and stores it at
``invoices/{order_id}.pdf`` in the blob store. The layout is not part of any
contract; callers only rely on getting a URL back.
"""

import io
import logging
from datetime import datetime
from typing import List, Optional

from reportlab.graphics.barcode.code128 import Code128
from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen.canvas import Canvas

import settings
from blob import invoice_path
from errors import ValidationError
from schemas import Order, OrderLineItem

logger = logging.getLogger(__name__)

ACCENT = HexColor("#ef4444")
TEXT = HexColor("#0f172a")
TEXT_MUTED = HexColor("#64748b")
DIVIDER = HexColor("#e5e7eb")

MARGIN = 40
ROW_HEIGHT = 20

PAYMENT_TEXT = (
    "Pay with the static QRIS code or by manual bank transfer as shown in the portal. "
    "After paying, upload the transfer receipt from your dashboard or send it via WhatsApp "
    "so the order can be processed."
)


def format_rupiah(amount: Optional[int]) -> str:
    if amount is None:
        return "-"
    return "Rp " + f"{int(amount):,}".replace(",", ".")


def invoice_number(order_id: str) -> str:
    return f"#{order_id[:8].upper()}"


def _divider(c: Canvas, y: float, width: float):
    c.setStrokeColor(DIVIDER)
    c.setLineWidth(1)
    c.line(MARGIN, y, MARGIN + width, y)


def render_invoice_pdf(order: Order, items: List[OrderLineItem], store_name: str = settings.STORE_NAME,
                       store_tagline: str = settings.STORE_TAGLINE) -> bytes:
    buffer = io.BytesIO()
    page_width, page_height = A4
    width = page_width - 2 * MARGIN
    c = Canvas(buffer, pagesize=A4)
    c.setTitle(f"Invoice {invoice_number(order.id)}")

    # Header band
    top = page_height - MARGIN
    c.setFillColor(ACCENT)
    c.rect(MARGIN, top - 56, width, 56, stroke=0, fill=1)
    c.setFillColor(white)
    c.setFont("Helvetica-Bold", 22)
    c.drawString(MARGIN + 16, top - 36, "Invoice")

    # Barcode of the full order id
    y = top - 56 - 10
    barcode = Code128(order.id, barHeight=28, barWidth=0.9, quiet=0)
    barcode.drawOn(c, MARGIN, y - 28)
    c.setFillColor(TEXT_MUTED)
    c.setFont("Helvetica", 9)
    c.drawString(MARGIN, y - 40, invoice_number(order.id))

    # Seller and invoice meta
    y -= 70
    created_at = order.created_at or datetime.utcnow()
    c.setFillColor(TEXT)
    c.setFont("Helvetica", 12)
    c.drawString(MARGIN, y, store_name)
    c.drawRightString(MARGIN + width, y, f"Invoice {invoice_number(order.id)}")
    c.setFillColor(TEXT_MUTED)
    c.drawString(MARGIN, y - 16, store_tagline)
    c.drawRightString(MARGIN + width, y - 16, created_at.strftime("%d/%m/%Y %H:%M"))
    y -= 30
    _divider(c, y, width)

    # Bill to
    y -= 20
    c.setFillColor(TEXT_MUTED)
    c.setFont("Helvetica", 12)
    c.drawString(MARGIN, y, "Bill to")
    c.setFillColor(TEXT)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(MARGIN, y - 18, order.customer_name or "Customer")
    y -= 44

    # Items table
    cols = [MARGIN, MARGIN + 280, MARGIN + 340, MARGIN + 430]
    c.setFont("Helvetica", 11)
    c.setFillColor(TEXT_MUTED)
    for x, label in zip(cols, ("Item", "Qty", "Price", "Total")):
        c.drawString(x, y, label)
    y -= 8
    _divider(c, y, width)
    y -= ROW_HEIGHT - 4

    c.setFillColor(TEXT)
    for item in items:
        lines = simpleSplit(item.product_name, "Helvetica", 11, cols[1] - cols[0] - 8) or [""]
        if y - ROW_HEIGHT * len(lines) < MARGIN + 200:
            c.showPage()
            c.setFont("Helvetica", 11)
            c.setFillColor(TEXT)
            y = page_height - MARGIN
        for i, line in enumerate(lines):
            c.drawString(cols[0], y - i * 13, line)
        c.drawString(cols[1], y, str(item.quantity))
        c.drawString(cols[2], y, format_rupiah(item.price_each))
        c.drawString(cols[3], y, format_rupiah(item.price_each * item.quantity))
        y -= ROW_HEIGHT + (len(lines) - 1) * 13
    _divider(c, y + 8, width)

    # Totals
    subtotal = order.subtotal if order.subtotal is not None else sum(i.price_each * i.quantity for i in items)
    label_x = MARGIN + width - 220
    y -= 14
    for label, amount in (("Subtotal", subtotal), ("Shipping", order.shipping_cost or 0)):
        c.setFillColor(TEXT_MUTED)
        c.drawString(label_x, y, label)
        c.setFillColor(TEXT)
        c.drawRightString(MARGIN + width, y, format_rupiah(amount))
        y -= ROW_HEIGHT
    c.setFont("Helvetica-Bold", 14)
    c.setFillColor(TEXT)
    c.drawString(label_x, y, "Total")
    c.setFillColor(ACCENT)
    c.drawRightString(MARGIN + width, y, format_rupiah(order.total))
    y -= 30
    _divider(c, y, width)

    # Payment block: QRIS placeholder box on the left, instructions on the right
    y -= 22
    c.setFillColor(TEXT)
    c.setFont("Helvetica-Bold", 12)
    c.drawString(MARGIN, y, "Payment")
    y -= 12
    box = 120
    c.setStrokeColor(HexColor("#cbd5e1"))
    c.roundRect(MARGIN, y - box, box, box, 8, stroke=1, fill=0)
    c.setFillColor(TEXT_MUTED)
    c.setFont("Helvetica", 10)
    c.drawCentredString(MARGIN + box / 2, y - box - 14, "QRIS")
    text = c.beginText(MARGIN + box + 16, y - 12)
    text.setFont("Helvetica", 11)
    text.setFillColor(TEXT_MUTED)
    for line in simpleSplit(PAYMENT_TEXT, "Helvetica", 11, width - box - 16):
        text.textLine(line)
    c.drawText(text)

    c.showPage()
    c.save()
    return buffer.getvalue()


def generate_invoice(blobs, order: Order, items: List[OrderLineItem], store_name: str = settings.STORE_NAME,
                     store_tagline: str = settings.STORE_TAGLINE) -> str:
    """Render the invoice for ``order`` and return the URL it was stored at."""
    if not order.id:
        raise ValidationError("An order id is required to build an invoice")
    if not isinstance(order.total, int):
        raise ValidationError("Order total is not valid")

    pdf = render_invoice_pdf(order, items, store_name=store_name, store_tagline=store_tagline)
    url = blobs.put(invoice_path(order.id), pdf, "application/pdf")
    logger.info("invoice for order %s stored at %s", order.id, url)
    return url
