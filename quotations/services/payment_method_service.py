"""Payment methods enabled per organization."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from quotations.models import Payment, PaymentMethod, PaymentType
from quotations.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)

_VALID_TYPES = {t.value for t in PaymentType}


def list_payment_methods(session: Session, organization_id: int, active: Optional[bool] = None) -> List[PaymentMethod]:
    query = session.query(PaymentMethod).filter(PaymentMethod.organization_id == organization_id)
    if active is not None:
        query = query.filter(PaymentMethod.active.is_(active))
    return query.order_by(PaymentMethod.name).all()


def get_payment_method(session: Session, payment_method_id: str, organization_id: int) -> PaymentMethod:
    method = session.query(PaymentMethod).filter(
        PaymentMethod.id == str(payment_method_id),
        PaymentMethod.organization_id == organization_id
    ).first()
    if not method:
        raise NotFoundError(f'Método de pago {payment_method_id} no encontrado')
    return method


def _validate(data: Dict[str, Any], partial: bool = False) -> None:
    if not partial or 'name' in data:
        if not (data.get('name') or '').strip():
            raise BusinessLogicError('El nombre es obligatorio')
    if not partial or 'payment_type' in data:
        if data.get('payment_type') not in _VALID_TYPES:
            raise BusinessLogicError(f"Tipo de pago inválido: {data.get('payment_type')}")


def create_payment_method(session: Session, organization_id: int, data: Dict[str, Any]) -> PaymentMethod:
    _validate(data)
    method = PaymentMethod(
        organization_id=organization_id,
        name=data['name'].strip(),
        payment_type=data['payment_type'],
        active=data.get('active', True) is not False,
    )
    session.add(method)
    session.commit()
    logger.info(f"[PAYMENTS] Payment method created: {method}")
    return method


def update_payment_method(session: Session, payment_method_id: str, organization_id: int,
                          data: Dict[str, Any]) -> PaymentMethod:
    _validate(data, partial=True)
    method = get_payment_method(session, payment_method_id, organization_id)
    if 'name' in data:
        method.name = data['name'].strip()
    if 'payment_type' in data:
        method.payment_type = data['payment_type']
    if 'active' in data:
        method.active = bool(data['active'])
    session.commit()
    return method


def toggle_active(session: Session, payment_method_id: str, organization_id: int) -> PaymentMethod:
    method = get_payment_method(session, payment_method_id, organization_id)
    method.active = not method.active
    session.commit()
    return method


def delete_payment_method(session: Session, payment_method_id: str, organization_id: int) -> None:
    """
    Delete a payment method.

    Raises:
        BusinessLogicError: payments were made with it (deactivate it instead).
    """
    method = get_payment_method(session, payment_method_id, organization_id)
    in_use = session.query(Payment.id).filter(Payment.payment_method_id == method.id).first()
    if in_use:
        raise BusinessLogicError(
            f'No se puede eliminar "{method.name}" porque tiene pagos asociados. Desactívelo en su lugar.'
        )
    session.delete(method)
    session.commit()
