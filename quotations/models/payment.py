"""Payment model and its status state machine."""
import enum
import uuid
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from quotations.database import Base
from quotations.utils.dates import utcnow, isoformat
from quotations.utils.formatters import to_number


class PaymentStatus(enum.Enum):
    """Payment status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentType(enum.Enum):
    """Payment type enum."""
    WEB_PAY = "web_pay"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"


# Allowed status transitions; refunded is terminal.
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING.value: {
        PaymentStatus.PROCESSING.value, PaymentStatus.CANCELLED.value, PaymentStatus.FAILED.value
    },
    PaymentStatus.PROCESSING.value: {
        PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value
    },
    PaymentStatus.COMPLETED.value: {PaymentStatus.REFUNDED.value},
    PaymentStatus.FAILED.value: {PaymentStatus.PENDING.value, PaymentStatus.CANCELLED.value},
    PaymentStatus.CANCELLED.value: {PaymentStatus.PENDING.value},
    PaymentStatus.REFUNDED.value: set(),
}


def can_transition(current_status, new_status):
    """Check whether a payment may move from `current_status` to `new_status`."""
    return new_status in PAYMENT_TRANSITIONS.get(current_status, set())


class Payment(Base):
    """
    Payment - one attempt at paying a cart.

    A cart may have several payments (e.g. a failed WebPay attempt followed by
    a bank transfer). Completing a payment marks the cart as paid.
    """

    __tablename__ = 'payment'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cart_id = Column(String(36), ForeignKey('cart.id', ondelete='CASCADE'), nullable=False, index=True)
    payment_method_id = Column(String(36), ForeignKey('payment_method.id'), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_type = Column(String(20), nullable=True)
    proof_url = Column(Text, nullable=True)
    transaction_id = Column(String(255), nullable=True)
    external_reference = Column(String(255), nullable=True, index=True)  # WebPay token
    payment_date = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    payment_metadata = Column('metadata', JSON, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    cart = relationship('Cart', back_populates='payments')
    payment_method = relationship('PaymentMethod')

    def __repr__(self):
        return f"<Payment(id='{self.id}', cart_id='{self.cart_id}', status='{self.status}', amount={self.amount})>"

    def to_dict(self):
        return {
            'id': self.id,
            'cartId': self.cart_id,
            'paymentMethodId': self.payment_method_id,
            'amount': to_number(self.amount),
            'status': self.status,
            'paymentType': self.payment_type,
            'proofUrl': self.proof_url,
            'transactionId': self.transaction_id,
            'externalReference': self.external_reference,
            'paymentDate': isoformat(self.payment_date),
            'confirmedAt': isoformat(self.confirmed_at),
            'metadata': self.payment_metadata,
            'notes': self.notes,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
