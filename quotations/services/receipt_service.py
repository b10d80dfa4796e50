"""Payment receipt PDF (comprobante de pago)."""

from decimal import Decimal
from io import BytesIO
from typing import Dict, Any

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from xml.sax.saxutils import escape

from quotations.models import Payment, PaymentStatus, PaymentType
from quotations.exceptions import BusinessLogicError
from quotations.utils.formatters import money_cl, datetime_cl

PAYMENT_TYPE_LABELS = {
    PaymentType.WEB_PAY.value: 'WebPay',
    PaymentType.BANK_TRANSFER.value: 'Transferencia bancaria',
    PaymentType.CHECK.value: 'Cheque',
}


def generate_payment_receipt_pdf(payment: Payment, business_info: Dict[str, Any]) -> BytesIO:
    """
    Render the receipt of a completed payment.

    Args:
        payment: Payment with its cart (and cart items) loaded
        business_info: name / address / phone / email of the seller

    Raises:
        BusinessLogicError: if the payment is not completed
    """
    if payment.status != PaymentStatus.COMPLETED.value:
        raise BusinessLogicError('Solo se pueden generar comprobantes de pagos completados')

    cart = payment.cart
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'ReceiptHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and business header
    elements.append(Paragraph("COMPROBANTE DE PAGO", title_style))
    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{escape(business_info['name'])}</b>", header_style))
    if business_info.get('address'):
        elements.append(Paragraph(escape(business_info['address']), header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tel: {business_info['phone']}")
    if business_info.get('email'):
        contact_parts.append(f"Email: {business_info['email']}")
    if contact_parts:
        elements.append(Paragraph(escape(" | ".join(contact_parts)), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Payment metadata
    info_data = [
        ['Pago N°:', payment.id],
        ['Cotización:', cart.id],
        ['Fecha de pago:', datetime_cl(payment.payment_date or payment.confirmed_at)],
        ['Medio de pago:', PAYMENT_TYPE_LABELS.get(payment.payment_type, payment.payment_type or '-')],
    ]
    if payment.transaction_id:
        info_data.append(['Transacción:', payment.transaction_id])
    authorization_code = (payment.payment_metadata or {}).get('authorizationCode')
    if authorization_code:
        info_data.append(['Código autorización:', str(authorization_code)])
    if cart.full_name:
        info_data.append(['Cliente:', cart.full_name])
    if cart.document_number:
        info_data.append([f"{cart.document_type or 'Documento'}:", cart.document_number])

    info_table = Table(info_data, colWidths=[2*inch, 4.2*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['Producto', 'SKU', 'Cantidad', 'Precio Unit.', 'Subtotal']]
    for item in cart.items:
        price = Decimal(item.price)
        table_data.append([
            Paragraph(escape(item.name), styles['Normal']),
            item.sku,
            str(item.quantity),
            f"${money_cl(price)}",
            f"${money_cl(price * item.quantity)}",
        ])

    items_table = Table(table_data, colWidths=[2.7*inch, 1.1*inch, 0.8*inch, 1*inch, 1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (2, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Amount paid
    total_table = Table([['TOTAL PAGADO:', f"${money_cl(payment.amount)}"]], colWidths=[5.6*inch, 1*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, 0), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 14),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(total_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle(
        'Footer', parent=styles['Normal'], fontSize=9,
        textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER
    )
    elements.append(Paragraph("<i>Este documento no constituye factura.</i>", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
