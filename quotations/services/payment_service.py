"""
Payments: CRUD, the status state machine, proof-based payments and WebPay.

Every status change goes through `change_status`, which enforces the
transition table in quotations.models.payment. Completing a payment stamps
confirmed_at / payment_date and marks the cart as paid.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.orm import Session, joinedload

from quotations.models import (
    Cart, CartStatus, Payment, PaymentMethod, PaymentStatus, PaymentType, can_transition
)
from quotations.exceptions import (
    BusinessLogicError, NotFoundError, InvalidTransitionError, PriceChangedError
)
from quotations.services.cart_service import find_by_id_with_items
from quotations.services.cart_notifier import emit_cart_updated
from quotations.services.price_validation_service import (
    PriceValidationService, RequiresApproval, Blocked, serialize_validation
)
from quotations.services.quote_config import QuoteConfig
from quotations.services.storage_service import get_storage_service
from quotations.utils.dates import utcnow
from quotations.utils.number_format import parse_amount

logger = logging.getLogger(__name__)

_STATUSES = {s.value for s in PaymentStatus}
_TYPES = {t.value for t in PaymentType}
PROOF_PAYMENT_TYPES = (PaymentType.BANK_TRANSFER.value, PaymentType.CHECK.value)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

def change_status(payment: Payment, new_status: str, now=None) -> Payment:
    """
    Move a payment to `new_status` (caller commits).

    Raises:
        BusinessLogicError: unknown status
        InvalidTransitionError: transition not allowed from the current status
    """
    if new_status not in _STATUSES:
        raise BusinessLogicError(f'Estado de pago inválido: {new_status}')
    if not can_transition(payment.status, new_status):
        raise InvalidTransitionError(payment.status, new_status)

    previous = payment.status
    payment.status = new_status

    if new_status == PaymentStatus.COMPLETED.value:
        now = now or utcnow()
        payment.confirmed_at = now
        payment.payment_date = now
        if payment.cart is not None:
            payment.cart.status = CartStatus.PAID.value

    logger.info(f"[PAYMENTS] Payment {payment.id}: {previous} -> {new_status}")
    return payment


def _complete(payment: Payment, now=None) -> Payment:
    """Complete a payment, passing through processing when it is still pending."""
    if payment.status == PaymentStatus.PENDING.value:
        change_status(payment, PaymentStatus.PROCESSING.value)
    return change_status(payment, PaymentStatus.COMPLETED.value, now)


def _commit(session: Session, payment: Payment) -> Payment:
    session.commit()
    if payment.cart is not None and payment.cart.status == CartStatus.PAID.value:
        emit_cart_updated(payment.cart.id, payment.cart.to_dict())
    return payment


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_payment(session: Session, payment_id: str, organization_id: int) -> Payment:
    payment = (
        session.query(Payment)
        .join(Cart, Payment.cart_id == Cart.id)
        .options(joinedload(Payment.cart))
        .filter(Payment.id == str(payment_id), Cart.organization_id == organization_id)
        .first()
    )
    if not payment:
        raise NotFoundError(f'Pago {payment_id} no encontrado')
    return payment


def list_payments(session: Session, organization_id: int, cart_id: Optional[str] = None,
                  status: Optional[str] = None) -> List[Payment]:
    if status and status not in _STATUSES:
        raise BusinessLogicError(f'Estado de pago inválido: {status}')
    query = (
        session.query(Payment)
        .join(Cart, Payment.cart_id == Cart.id)
        .filter(Cart.organization_id == organization_id)
    )
    if cart_id:
        query = query.filter(Payment.cart_id == str(cart_id))
    if status:
        query = query.filter(Payment.status == status)
    return query.order_by(Payment.created_at.desc()).all()


def _get_payment_method(session: Session, payment_method_id: Optional[str], organization_id: int,
                        payment_type: Optional[str] = None) -> PaymentMethod:
    query = session.query(PaymentMethod).filter(
        PaymentMethod.organization_id == organization_id,
        PaymentMethod.active.is_(True),
    )
    if payment_method_id:
        query = query.filter(PaymentMethod.id == str(payment_method_id))
    elif payment_type:
        query = query.filter(PaymentMethod.payment_type == payment_type)
    else:
        raise BusinessLogicError('payment_method_id es obligatorio')

    method = query.first()
    if not method:
        raise NotFoundError('Medio de pago no encontrado o inactivo')
    return method


def _parse_amount(value) -> Decimal:
    try:
        return parse_amount(value)
    except ValueError as e:
        raise BusinessLogicError(str(e))


def _check_type(payment_type: Optional[str]) -> None:
    if payment_type is not None and payment_type not in _TYPES:
        raise BusinessLogicError(f'Tipo de pago inválido: {payment_type}')


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_payment(session: Session, organization_id: int, data: Dict[str, Any]) -> Payment:
    cart = find_by_id_with_items(session, data.get('cart_id'), organization_id)
    method = _get_payment_method(session, data.get('payment_method_id'), organization_id)

    status = data.get('status') or PaymentStatus.PENDING.value
    if status not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
        raise BusinessLogicError('Un pago nuevo solo puede crearse como pending o processing')

    payment_type = data.get('payment_type') or method.payment_type
    _check_type(payment_type)

    payment = Payment(
        cart_id=cart.id,
        payment_method_id=method.id,
        amount=_parse_amount(data.get('amount')),
        status=status,
        payment_type=payment_type,
        proof_url=data.get('proof_url'),
        transaction_id=data.get('transaction_id'),
        external_reference=data.get('external_reference'),
        payment_metadata=data.get('metadata'),
        notes=data.get('notes'),
    )
    session.add(payment)
    session.commit()
    logger.info(f"[PAYMENTS] Payment {payment.id} created for cart {cart.id} ({payment.amount})")
    return payment


def update_payment(session: Session, payment_id: str, organization_id: int, data: Dict[str, Any]) -> Payment:
    """Update descriptive fields. Status changes go through update_status."""
    if 'status' in data:
        raise BusinessLogicError('Use PATCH /payments/<id>/status para cambiar el estado')

    payment = get_payment(session, payment_id, organization_id)
    if 'amount' in data:
        payment.amount = _parse_amount(data['amount'])
    if 'payment_type' in data:
        _check_type(data['payment_type'])
        payment.payment_type = data['payment_type']
    if 'metadata' in data:
        payment.payment_metadata = data['metadata']
    for field in ('notes', 'transaction_id', 'external_reference', 'proof_url'):
        if field in data:
            setattr(payment, field, data[field])

    session.commit()
    return payment


def update_status(session: Session, payment_id: str, organization_id: int, new_status: str) -> Payment:
    payment = get_payment(session, payment_id, organization_id)
    change_status(payment, new_status)
    return _commit(session, payment)


def upload_proof(session: Session, payment_id: str, organization_id: int,
                 proof_url: Optional[str] = None, file=None, notes: Optional[str] = None) -> Payment:
    """Attach a proof (uploaded file or URL); a pending payment moves to processing."""
    payment = get_payment(session, payment_id, organization_id)

    if file is not None:
        try:
            proof_url = get_storage_service().upload_proof(file, payment.cart_id)
        except ValueError as e:
            raise BusinessLogicError(str(e))
    if not proof_url:
        raise BusinessLogicError('Debe adjuntar un comprobante o indicar proof_url')

    payment.proof_url = proof_url
    if notes:
        payment.notes = notes
    if payment.status == PaymentStatus.PENDING.value:
        change_status(payment, PaymentStatus.PROCESSING.value)

    session.commit()
    return payment


def confirm_payment(session: Session, payment_id: str, organization_id: int, data: Dict[str, Any]) -> Payment:
    payment = get_payment(session, payment_id, organization_id)
    if payment.status == PaymentStatus.COMPLETED.value:
        raise BusinessLogicError('El pago ya está confirmado')

    _complete(payment)
    if data.get('transaction_id'):
        payment.transaction_id = data['transaction_id']
    if data.get('external_reference'):
        payment.external_reference = data['external_reference']
    if data.get('notes'):
        payment.notes = data['notes']
    return _commit(session, payment)


def cancel_payment(session: Session, payment_id: str, organization_id: int, reason: Optional[str] = None) -> Payment:
    payment = get_payment(session, payment_id, organization_id)
    if payment.status == PaymentStatus.COMPLETED.value:
        raise BusinessLogicError('No se puede cancelar un pago completado')

    change_status(payment, PaymentStatus.CANCELLED.value)
    if reason:
        payment.notes = reason
    session.commit()
    return payment


def refund_payment(session: Session, payment_id: str, organization_id: int, reason: Optional[str] = None) -> Payment:
    payment = get_payment(session, payment_id, organization_id)
    if payment.status != PaymentStatus.COMPLETED.value:
        raise BusinessLogicError('Solo se pueden reembolsar pagos completados')

    change_status(payment, PaymentStatus.REFUNDED.value)
    if reason:
        payment.notes = reason
    session.commit()
    return payment


def delete_payment(session: Session, payment_id: str, organization_id: int) -> None:
    """Delete a payment and its proof object."""
    payment = get_payment(session, payment_id, organization_id)
    if payment.status == PaymentStatus.COMPLETED.value:
        raise BusinessLogicError('No se puede eliminar un pago completado')

    if payment.proof_url:
        get_storage_service().delete_file_by_url(payment.proof_url)

    session.delete(payment)
    session.commit()
    logger.info(f"[PAYMENTS] Payment {payment_id} deleted")


def get_payment_stats(session: Session, cart_id: str, organization_id: int) -> Dict[str, Any]:
    """Totals by outcome for one cart."""
    find_by_id_with_items(session, cart_id, organization_id)
    stats = {
        'total_paid': Decimal('0'),
        'total_pending': Decimal('0'),
        'total_failed': Decimal('0'),
        'count': 0,
    }
    for payment in session.query(Payment).filter(Payment.cart_id == str(cart_id)).all():
        stats['count'] += 1
        if payment.status == PaymentStatus.COMPLETED.value:
            stats['total_paid'] += payment.amount
        elif payment.status in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
            stats['total_pending'] += payment.amount
        elif payment.status == PaymentStatus.FAILED.value:
            stats['total_failed'] += payment.amount
    return stats


# ---------------------------------------------------------------------------
# Checkout flows
# ---------------------------------------------------------------------------

def _ensure_payable(session: Session, cart_id: str, organization_id: int, config: QuoteConfig) -> Cart:
    """Run the pre-payment validation and turn non-applied outcomes into errors."""
    outcome = PriceValidationService(session, config).validate_before_payment(cart_id, organization_id)
    if isinstance(outcome, RequiresApproval):
        raise PriceChangedError(serialize_validation(outcome.validation), requires_customer_approval=True)
    if isinstance(outcome, Blocked):
        raise outcome.error
    return outcome.cart


def create_proof_payment(session: Session, organization_id: int, data: Dict[str, Any],
                         file=None, config: Optional[QuoteConfig] = None) -> Payment:
    """
    Check or bank-transfer payment backed by a proof. Starts in processing
    until an operator validates the proof.

    Raises:
        PriceChangedError / QuoteExpiredError / InvalidQuoteStatusError: from pre-payment validation
    """
    payment_type = data.get('payment_type') or PaymentType.BANK_TRANSFER.value
    if payment_type not in PROOF_PAYMENT_TYPES:
        raise BusinessLogicError('Los pagos con comprobante deben ser transferencia o cheque')

    cart = _ensure_payable(session, data.get('cart_id'), organization_id, config or QuoteConfig())
    method = _get_payment_method(session, data.get('payment_method_id'), organization_id, payment_type)

    proof_url = data.get('proof_url')
    if file is not None:
        try:
            proof_url = get_storage_service().upload_proof(file, cart.id)
        except ValueError as e:
            raise BusinessLogicError(str(e))
    if not proof_url:
        raise BusinessLogicError('Debe adjuntar un comprobante o indicar proof_url')

    amount = _parse_amount(data['amount']) if data.get('amount') is not None else Decimal(cart.total_price)

    payment = Payment(
        cart_id=cart.id,
        payment_method_id=method.id,
        amount=amount,
        status=PaymentStatus.PROCESSING.value,
        payment_type=payment_type,
        proof_url=proof_url,
        external_reference=data.get('external_reference'),
        notes=data.get('notes'),
    )
    session.add(payment)
    session.commit()
    logger.info(f"[PAYMENTS] Proof payment {payment.id} ({payment_type}) registered for cart {cart.id}")
    return payment


def validate_proof(session: Session, payment_id: str, organization_id: int, is_valid: bool,
                   transaction_id: Optional[str] = None, notes: Optional[str] = None) -> Payment:
    """Operator review of a proof: valid completes the payment, invalid fails it."""
    payment = get_payment(session, payment_id, organization_id)
    if not payment.proof_url:
        raise BusinessLogicError('El pago no tiene un comprobante para validar')

    if is_valid:
        _complete(payment)
        if transaction_id:
            payment.transaction_id = transaction_id
    else:
        change_status(payment, PaymentStatus.FAILED.value)
    if notes:
        payment.notes = notes
    return _commit(session, payment)


def initiate_webpay(session: Session, organization_id: int, data: Dict[str, Any], client,
                    return_url: str, config: Optional[QuoteConfig] = None) -> Dict[str, Any]:
    """
    Start a WebPay transaction for the validated cart total.

    Returns:
        {'payment': Payment, 'webpay_url': str, 'webpay_token': str}
    """
    cart = _ensure_payable(session, data.get('cart_id'), organization_id, config or QuoteConfig())
    method = _get_payment_method(
        session, data.get('payment_method_id'), organization_id, PaymentType.WEB_PAY.value
    )

    payment = Payment(
        cart_id=cart.id,
        payment_method_id=method.id,
        amount=Decimal(cart.total_price),
        status=PaymentStatus.PENDING.value,
        payment_type=PaymentType.WEB_PAY.value,
        payment_metadata=data.get('metadata'),
    )
    session.add(payment)
    session.flush()

    try:
        response = client.create_transaction(
            buy_order=payment.id.replace('-', '')[:26],
            session_id=cart.id,
            amount=payment.amount,
            return_url=data.get('return_url') or return_url,
        )
    except requests.RequestException as e:
        change_status(payment, PaymentStatus.FAILED.value)
        payment.notes = f'No fue posible iniciar la transacción WebPay: {e}'
        session.commit()
        raise BusinessLogicError('No fue posible iniciar el pago con WebPay', status_code=502)

    token = response['token']
    payment.external_reference = token
    payment.notes = f'Webpay transaction initiated. Token: {token}'
    session.commit()

    return {
        'payment': payment,
        'webpay_url': response['url'],
        'webpay_token': token,
    }


def handle_webpay_callback(session: Session, client, token: Optional[str] = None,
                           aborted_token: Optional[str] = None) -> Payment:
    """
    Process Transbank's return.

    `token` (token_ws) means the customer finished the form and the
    transaction must be committed; only `aborted_token` (TBK_TOKEN) means the
    customer aborted it.
    """
    reference = token or aborted_token
    if not reference:
        raise BusinessLogicError('Token de WebPay no informado')

    payment = (
        session.query(Payment)
        .options(joinedload(Payment.cart))
        .filter(Payment.external_reference == reference)
        .with_for_update()
        .first()
    )
    if not payment:
        raise NotFoundError(f'Pago con token WebPay {reference} no encontrado')

    if payment.status != PaymentStatus.PENDING.value:
        logger.info(f"[PAYMENTS] WebPay callback for payment {payment.id} already processed ({payment.status})")
        return payment

    if not token:
        change_status(payment, PaymentStatus.CANCELLED.value)
        payment.notes = 'Transacción WebPay anulada por el cliente'
        session.commit()
        return payment

    try:
        result = client.commit_transaction(token)
    except requests.RequestException as e:
        change_status(payment, PaymentStatus.FAILED.value)
        payment.notes = f'Webpay transaction failed: {e}'
        session.commit()
        return payment

    if client.is_authorized(result):
        _complete(payment)
        payment.transaction_id = result.get('buy_order') or payment.transaction_id
        payment.payment_metadata = dict(
            payment.payment_metadata or {},
            authorizationCode=result.get('authorization_code'),
            webpayStatus=result.get('status'),
            cardNumber=(result.get('card_detail') or {}).get('card_number'),
        )
    else:
        change_status(payment, PaymentStatus.FAILED.value)
        payment.notes = (
            f"Webpay transaction failed: status={result.get('status')} code={result.get('response_code')}"
        )
    return _commit(session, payment)
