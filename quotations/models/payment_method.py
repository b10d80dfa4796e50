"""PaymentMethod model."""
import uuid
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from quotations.database import Base
from quotations.utils.dates import utcnow


class PaymentMethod(Base):
    """Payment method enabled for an organization (e.g. "WebPay", "Transferencia")."""

    __tablename__ = 'payment_method'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    payment_type = Column(String(20), nullable=False)  # web_pay, bank_transfer, check
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PaymentMethod(id='{self.id}', name='{self.name}', type='{self.payment_type}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'paymentType': self.payment_type,
            'active': self.active,
        }
