"""CartChangelog model - audit trail of item additions and removals."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat
from quotations.utils.formatters import to_number


class ChangelogOperation(enum.Enum):
    ADD = "add"
    REMOVE = "remove"


class CartChangelog(Base):
    """One row per item mutation (quantity deltas are logged as add/remove)."""

    __tablename__ = 'cart_changelog'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    cart_id = Column(String(36), ForeignKey('cart.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, nullable=False)
    name = Column(Text, nullable=False)
    operation = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    cart = relationship('Cart')

    def __repr__(self):
        return f"<CartChangelog(cart_id='{self.cart_id}', op='{self.operation}', product_id={self.product_id}, qty={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'name': self.name,
            'operation': self.operation,
            'quantity': self.quantity,
            'price': to_number(self.price),
            'createdAt': isoformat(self.created_at),
        }
