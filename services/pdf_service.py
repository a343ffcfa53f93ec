"""
PDF documents for invoices and estimates (reportlab platypus).
"""

import io
import logging
from typing import Dict, Any, List

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from app.utils.formatters import format_currency, format_date, format_phone_display
from config import get_settings

logger = logging.getLogger(__name__)

BRAND_COLOR = colors.HexColor('#15803D')
LABEL_COLOR = colors.HexColor('#666666')


def _styles():
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'DocumentTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=BRAND_COLOR,
        spaceAfter=20,
        alignment=2
    )
    heading_style = ParagraphStyle(
        'SectionHeading',
        parent=styles['Heading2'],
        fontSize=13,
        textColor=BRAND_COLOR,
        spaceAfter=8
    )
    return styles, title_style, heading_style


def _label_table(rows: List[List[str]]) -> Table:
    table = Table(rows, colWidths=[1.6 * inch, 4.4 * inch])
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (0, -1), LABEL_COLOR),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    return table


def _items_table(items: List[Dict], percent_rates: bool) -> Table:
    rows = [['Description', 'Qty', 'Unit Price', 'Tax', 'Total']]
    for item in items:
        rate = item.get('tax_rate') or 0
        rate_label = f"{rate:g}%" if percent_rates else f"{rate * 100:g}%"
        rows.append([
            item.get('description') or '',
            f"{item.get('quantity', 1):g}",
            format_currency(item.get('unit_price')),
            f"{format_currency(item.get('tax_amount'))} ({rate_label})",
            format_currency(item.get('total'))
        ])

    table = Table(rows, colWidths=[2.6 * inch, 0.6 * inch, 1.0 * inch, 1.3 * inch, 1.0 * inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), BRAND_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('LINEBELOW', (0, 1), (-1, -1), 0.25, colors.lightgrey),
    ]))
    return table


def _totals_table(rows: List[List[str]]) -> Table:
    table = Table(rows, colWidths=[5.0 * inch, 1.5 * inch])
    table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.black),
    ]))
    return table


def _company_block(story, styles, settings: Dict[str, Any]):
    company = settings.get('COMPANY_NAME', 'LawnBoss')
    lines = [f"<b>{company}</b>"]
    if settings.get('COMPANY_PHONE'):
        lines.append(format_phone_display(settings['COMPANY_PHONE']))
    if settings.get('COMPANY_EMAIL'):
        lines.append(settings['COMPANY_EMAIL'])
    story.append(Paragraph('<br/>'.join(lines), styles['Normal']))
    story.append(Spacer(1, 0.2 * inch))


def _customer_rows(customer: Dict) -> List[List[str]]:
    return [
        ['Customer:', customer.get('full_name') or ''],
        ['Email:', customer.get('email') or ''],
        ['Phone:', format_phone_display(customer.get('phone'))],
        ['Billing:', f"{customer.get('billing_address') or ''}, {customer.get('billing_city') or ''}, "
                     f"{customer.get('billing_state') or ''} {customer.get('billing_zip') or ''}"],
    ]


def build_invoice_pdf(invoice: Dict, settings: Dict[str, Any] = None) -> bytes:
    """Render an invoice (as returned by InvoiceRepository.get_invoice) to PDF bytes."""
    settings = settings if settings is not None else get_settings()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=f"Invoice {invoice['invoice_number']}")
    styles, title_style, heading_style = _styles()
    story = []

    _company_block(story, styles, settings)
    story.append(Paragraph("INVOICE", title_style))

    story.append(_label_table([
        ['Invoice #:', invoice['invoice_number']],
        ['Invoice Date:', format_date(invoice.get('invoice_date'))],
        ['Due Date:', format_date(invoice.get('due_date'))],
        ['Status:', (invoice.get('status') or '').upper()],
    ]))
    story.append(Spacer(1, 0.2 * inch))

    if invoice.get('customer'):
        story.append(Paragraph("Bill To", heading_style))
        story.append(_label_table(_customer_rows(invoice['customer'])))
        story.append(Spacer(1, 0.2 * inch))

    if invoice.get('property'):
        story.append(Paragraph("Service Location", heading_style))
        story.append(Paragraph(invoice['property'].get('full_address') or '', styles['Normal']))
        story.append(Spacer(1, 0.2 * inch))

    story.append(Paragraph("Items", heading_style))
    story.append(_items_table(invoice.get('items') or [], percent_rates=False))
    story.append(Spacer(1, 0.2 * inch))

    story.append(_totals_table([
        ['Subtotal:', format_currency(invoice.get('subtotal'))],
        ['Tax:', format_currency(invoice.get('tax_amount'))],
        ['Total:', format_currency(invoice.get('total'))],
        ['Amount Paid:', format_currency(invoice.get('amount_paid'))],
        ['Balance Due:', format_currency(invoice.get('balance'))],
    ]))

    if invoice.get('notes'):
        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Notes", heading_style))
        story.append(Paragraph(invoice['notes'].replace('\n', '<br/>'), styles['Normal']))

    story.append(Spacer(1, 0.4 * inch))
    story.append(Paragraph("Thank you for your business!", styles['Italic']))

    doc.build(story)
    logger.debug(f"Rendered invoice PDF: {invoice['id']}")
    return buffer.getvalue()


def build_estimate_pdf(estimate: Dict, settings: Dict[str, Any] = None) -> bytes:
    """Render an estimate (as returned by EstimateRepository.get_estimate) to PDF bytes."""
    settings = settings if settings is not None else get_settings()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=f"Estimate {estimate['title']}")
    styles, title_style, heading_style = _styles()
    story = []

    _company_block(story, styles, settings)
    story.append(Paragraph("ESTIMATE", title_style))

    story.append(_label_table([
        ['Title:', estimate['title']],
        ['Date:', format_date(estimate.get('created_at', '')[:10])],
        ['Valid Until:', format_date(estimate.get('valid_until'))],
        ['Status:', (estimate.get('status') or '').replace('_', ' ').upper()],
    ]))
    story.append(Spacer(1, 0.2 * inch))

    if estimate.get('customer'):
        story.append(Paragraph("Prepared For", heading_style))
        story.append(_label_table(_customer_rows(estimate['customer'])))
        story.append(Spacer(1, 0.2 * inch))

    if estimate.get('property'):
        story.append(Paragraph("Property", heading_style))
        story.append(Paragraph(estimate['property'].get('full_address') or '', styles['Normal']))
        story.append(Spacer(1, 0.2 * inch))

    if estimate.get('description'):
        story.append(Paragraph(estimate['description'].replace('\n', '<br/>'), styles['Normal']))
        story.append(Spacer(1, 0.2 * inch))

    story.append(Paragraph("Items", heading_style))
    story.append(_items_table(estimate.get('items') or [], percent_rates=True))
    story.append(Spacer(1, 0.2 * inch))

    story.append(_totals_table([
        ['Subtotal:', format_currency(estimate.get('subtotal'))],
        ['Tax:', format_currency(estimate.get('tax_amount'))],
        ['Total:', format_currency(estimate.get('total_amount'))],
    ]))

    if estimate.get('notes'):
        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Notes", heading_style))
        story.append(Paragraph(estimate['notes'].replace('\n', '<br/>'), styles['Normal']))

    doc.build(story)
    logger.debug(f"Rendered estimate PDF: {estimate['id']}")
    return buffer.getvalue()
