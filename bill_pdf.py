"""Render sales and rental bills to PDF with reportlab."""
from io import BytesIO
from typing import Any, Dict

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas


def _money(value: Any) -> str:
    try:
        return f"{float(value or 0):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def render_bill_pdf(bill: Dict[str, Any], kind: str = 'sales') -> bytes:
    """bill is the API shape returned by shop_service (camelCase, items decoded)."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    W, H = A4
    x_margin = 20*mm
    y = H - 20*mm

    c.setFont("Helvetica-Bold", 16)
    c.drawString(x_margin, y, bill.get('shopName') or '')
    c.setFont("Helvetica", 10)
    y -= 12; c.drawString(x_margin, y, bill.get('shopAddress') or '')
    phones = "  ".join(p for p in (bill.get('shopPhone1'), bill.get('shopPhone2')) if p)
    y -= 12; c.drawString(x_margin, y, f"Phone: {phones}")
    y -= 20

    title = "RENTAL BILL" if kind == 'rental' else "SALES BILL"
    c.setFont("Helvetica-Bold", 14); c.drawString(x_margin, y, title); y -= 16
    c.setFont("Helvetica", 10)
    c.drawString(x_margin, y, f"Bill No: {bill.get('serialNo')}"); y -= 12
    if kind == 'rental':
        period = bill.get('fromDate') or ''
        if bill.get('toDate'):
            period += f" to {bill['toDate']}"
        c.drawString(x_margin, y, f"Rental Period: {period}"); y -= 12
    else:
        c.drawString(x_margin, y, f"Date: {(bill.get('billDate') or '')[:10]}"); y -= 12
    c.drawString(x_margin, y, f"Customer: {bill.get('customerName') or ''}  Ph: {bill.get('customerPhone') or ''}"); y -= 12
    if bill.get('customerAddress'):
        c.drawString(x_margin, y, f"Address: {bill['customerAddress']}"); y -= 12
    y -= 8

    c.setFont("Helvetica-Bold", 10)
    c.drawString(x_margin, y, "Item")
    c.drawRightString(W-110, y, "Qty")
    c.drawRightString(W-70, y, "Rate")
    c.drawRightString(W-20, y, "Amount")
    y -= 10; c.setStrokeColor(colors.grey); c.line(x_margin, y, W-15*mm, y); y -= 12

    c.setFont("Helvetica", 10)
    for it in bill.get('items') or []:
        if not isinstance(it, dict):
            continue
        c.drawString(x_margin, y, str(it.get('itemName', '')))
        c.drawRightString(W-110, y, str(it.get('qty', 0)))
        c.drawRightString(W-70, y, _money(it.get('rate')))
        c.drawRightString(W-20, y, _money(it.get('amount')))
        y -= 12
        if y < 60*mm:
            c.showPage(); y = H - 20*mm
            c.setFont("Helvetica", 10)

    y -= 6
    totals = [("Subtotal:", bill.get('subtotal'))]
    if kind == 'rental':
        totals.append(("Transport:", bill.get('transportFees')))
    tax_label = f"{bill.get('taxType') or 'Tax'} ({_money(bill.get('taxPercentage'))}%):"
    totals += [(tax_label, bill.get('taxAmount')), ("Advance:", bill.get('advanceAmount'))]
    for label, value in totals:
        c.setFont("Helvetica-Bold", 10); c.drawRightString(W-80, y, label)
        c.setFont("Helvetica", 10); c.drawRightString(W-20, y, _money(value)); y -= 12
    y -= 2
    c.setFont("Helvetica-Bold", 11); c.drawRightString(W-80, y, "Total:")
    c.drawRightString(W-20, y, _money(bill.get('totalAmount'))); y -= 16
    c.setFont("Helvetica", 10)
    c.drawString(x_margin, y, "Status: PAID" if bill.get('isPaid') else "Status: UNPAID"); y -= 30

    c.setFont("Helvetica", 8); c.drawString(x_margin, y, "Thank you for your business!")
    c.showPage(); c.save(); buf.seek(0)
    return buf.getvalue()
