"""Cart model - a customer's cart doubling as a price quote."""
import enum
import uuid
from decimal import Decimal
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from quotations.database import Base
from quotations.utils.dates import utcnow, isoformat
from quotations.utils.formatters import to_number


class CartStatus(enum.Enum):
    """Quote lifecycle status enum."""
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    PAID = "paid"
    CANCELLED = "cancelled"


def new_uuid():
    return str(uuid.uuid4())


class Cart(Base):
    """
    Cart (Cotización).

    Created in `draft`. Activation opens the validity window and freezes
    original_total_price. total_items / total_price always mirror the current
    items and are recomputed after every item mutation.
    """

    __tablename__ = 'cart'

    id = Column(String(36), primary_key=True, default=new_uuid)
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=CartStatus.DRAFT.value)
    total_items = Column(Integer, nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False, default=Decimal('0'))
    original_total_price = Column(Numeric(10, 2), nullable=True)  # Frozen on first activation

    # Price list applied by the last re-pricing (NULL = organization default)
    price_list_id = Column(BigInteger, ForeignKey('price_list.id', ondelete='SET NULL'), nullable=True)

    # Quote window and validation audit
    valid_until = Column(DateTime, nullable=True)  # NULL = never expires
    price_validated_at = Column(DateTime, nullable=True)
    price_change_approved = Column(Boolean, nullable=False, default=False)
    price_change_approved_at = Column(DateTime, nullable=True)

    # Customer data
    full_name = Column(String(255), nullable=True)
    document_type = Column(String(20), nullable=True)  # RUT, PASSPORT
    document_number = Column(String(50), nullable=True)
    customer_type = Column(String(50), nullable=True)  # retail, wholesale...
    conversation_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship('Organization')
    price_list = relationship('PriceList')
    items = relationship(
        'CartItem',
        back_populates='cart',
        cascade='all, delete-orphan',
        order_by='CartItem.position'
    )
    payments = relationship('Payment', back_populates='cart', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Cart(id='{self.id}', status='{self.status}', items={self.total_items}, total={self.total_price})>"

    @property
    def is_quote_open(self):
        return self.status in (CartStatus.DRAFT.value, CartStatus.ACTIVE.value)

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'organizationId': self.organization_id,
            'status': self.status,
            'totalItems': self.total_items or 0,
            'totalPrice': to_number(self.total_price or Decimal('0')),
            'originalTotalPrice': to_number(self.original_total_price),
            'priceListId': self.price_list_id,
            'validUntil': isoformat(self.valid_until),
            'priceValidatedAt': isoformat(self.price_validated_at),
            'priceChangeApproved': bool(self.price_change_approved),
            'priceChangeApprovedAt': isoformat(self.price_change_approved_at),
            'fullName': self.full_name,
            'documentType': self.document_type,
            'documentNumber': self.document_number,
            'customerType': self.customer_type,
            'conversationId': self.conversation_id,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
