"""Payments blueprint - payment CRUD, proofs, WebPay and receipts."""
import logging
from flask import Blueprint, jsonify, request, g, current_app, send_file

from quotations.database import get_session
from quotations.exceptions import BusinessLogicError
from quotations.middleware import require_organization
from quotations.services import payment_service
from quotations.services.quote_config import current_quote_config
from quotations.services.receipt_service import generate_payment_receipt_pdf
from quotations.services.webpay_client import WebpayClient
from quotations.utils.formatters import jsonable
from quotations.utils.payloads import json_body, parse_bool

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')


def _uploaded_file():
    file = request.files.get('file') or request.files.get('proof')
    if file is not None and not file.filename:
        return None
    return file


@payments_bp.route('', methods=['POST'])
@require_organization
def create_payment():
    payment = payment_service.create_payment(get_session(), g.organization_id, json_body(required=True))
    return jsonify(payment.to_dict()), 201


@payments_bp.route('', methods=['GET'])
@require_organization
def list_payments():
    payments = payment_service.list_payments(
        get_session(), g.organization_id,
        cart_id=request.args.get('cartId') or request.args.get('cart_id'),
        status=request.args.get('status'),
    )
    return jsonify({'payments': [p.to_dict() for p in payments]})


@payments_bp.route('/stats/<cart_id>', methods=['GET'])
@require_organization
def payment_stats(cart_id):
    stats = payment_service.get_payment_stats(get_session(), cart_id, g.organization_id)
    return jsonify(jsonable({
        'cartId': cart_id,
        'totalPaid': stats['total_paid'],
        'totalPending': stats['total_pending'],
        'totalFailed': stats['total_failed'],
        'count': stats['count'],
    }))


@payments_bp.route('/<payment_id>', methods=['GET'])
@require_organization
def get_payment(payment_id):
    payment = payment_service.get_payment(get_session(), payment_id, g.organization_id)
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>', methods=['PATCH'])
@require_organization
def update_payment(payment_id):
    payment = payment_service.update_payment(
        get_session(), payment_id, g.organization_id, json_body(required=True)
    )
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>', methods=['DELETE'])
@require_organization
def delete_payment(payment_id):
    payment_service.delete_payment(get_session(), payment_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Pago eliminado'})


@payments_bp.route('/<payment_id>/status', methods=['PATCH'])
@require_organization
def update_status(payment_id):
    """Move a payment through the status state machine."""
    data = json_body(required=True)
    if not data.get('status'):
        raise BusinessLogicError('El campo status es obligatorio')
    payment = payment_service.update_status(get_session(), payment_id, g.organization_id, data['status'])
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>/upload-proof', methods=['PATCH'])
@require_organization
def upload_proof(payment_id):
    """Attach a proof: multipart `file` (stored in S3) or a `proofUrl`."""
    data = json_body()
    payment = payment_service.upload_proof(
        get_session(), payment_id, g.organization_id,
        proof_url=data.get('proof_url'),
        file=_uploaded_file(),
        notes=data.get('notes'),
    )
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>/confirm', methods=['POST'])
@require_organization
def confirm_payment(payment_id):
    payment = payment_service.confirm_payment(get_session(), payment_id, g.organization_id, json_body())
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>/cancel', methods=['POST'])
@require_organization
def cancel_payment(payment_id):
    data = json_body()
    payment = payment_service.cancel_payment(get_session(), payment_id, g.organization_id, data.get('reason'))
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>/refund', methods=['POST'])
@require_organization
def refund_payment(payment_id):
    data = json_body()
    payment = payment_service.refund_payment(get_session(), payment_id, g.organization_id, data.get('reason'))
    return jsonify(payment.to_dict())


@payments_bp.route('/proof', methods=['POST'])
@require_organization
def create_proof_payment():
    """
    Bank transfer / check payment with its proof.

    The cart goes through pre-payment validation first (expiration, status
    and price drift), so this may answer 409 or 410.
    """
    payment = payment_service.create_proof_payment(
        get_session(), g.organization_id, json_body(required=True),
        file=_uploaded_file(),
        config=current_quote_config(),
    )
    return jsonify(payment.to_dict()), 201


@payments_bp.route('/<payment_id>/validate-proof', methods=['PATCH'])
@require_organization
def validate_proof(payment_id):
    data = json_body(required=True)
    if 'is_valid' not in data:
        raise BusinessLogicError('El campo isValid es obligatorio')
    payment = payment_service.validate_proof(
        get_session(), payment_id, g.organization_id,
        is_valid=parse_bool(data['is_valid']),
        transaction_id=data.get('transaction_id'),
        notes=data.get('notes'),
    )
    return jsonify(payment.to_dict())


@payments_bp.route('/webpay', methods=['POST'])
@require_organization
def initiate_webpay():
    """Validate the cart and open a WebPay transaction; the client redirects to webpayUrl."""
    result = payment_service.initiate_webpay(
        get_session(), g.organization_id, json_body(required=True),
        client=WebpayClient(),
        return_url=current_app.config['WEBPAY_RETURN_URL'],
        config=current_quote_config(),
    )
    return jsonify({
        'payment': result['payment'].to_dict(),
        'webpayUrl': result['webpay_url'],
        'webpayToken': result['webpay_token'],
    }), 201


@payments_bp.route('/webpay/callback', methods=['GET', 'POST'])
def webpay_callback():
    """
    Transbank return URL (no organization header).

    token_ws: the form was completed, commit the transaction.
    TBK_TOKEN alone: the customer aborted.
    """
    values = request.values
    payment = payment_service.handle_webpay_callback(
        get_session(), WebpayClient(),
        token=values.get('token_ws'),
        aborted_token=values.get('TBK_TOKEN'),
    )
    logger.info(f"[WEBPAY] Callback processed for payment {payment.id}: {payment.status}")
    return jsonify(payment.to_dict())


@payments_bp.route('/<payment_id>/receipt', methods=['GET'])
@require_organization
def payment_receipt(payment_id):
    """Download the PDF receipt of a completed payment."""
    payment = payment_service.get_payment(get_session(), payment_id, g.organization_id)

    business_info = {
        'name': current_app.config.get('BUSINESS_NAME', 'Mi Negocio'),
        'address': current_app.config.get('BUSINESS_ADDRESS', ''),
        'phone': current_app.config.get('BUSINESS_PHONE', ''),
        'email': current_app.config.get('BUSINESS_EMAIL', ''),
    }
    pdf_buffer = generate_payment_receipt_pdf(payment, business_info)

    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"comprobante_{payment.id[:8]}.pdf"
    )
