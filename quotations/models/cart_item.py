"""CartItem model."""
import uuid
from sqlalchemy import Column, BigInteger, String, Text, Integer, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from quotations.database import Base
from quotations.utils.dates import utcnow, isoformat
from quotations.utils.formatters import to_number


class CartItem(Base):
    """
    Cart Item - product snapshot (name, sku, price) taken when added.

    quantity never exceeds max_stock; a quantity of 0 removes the row.
    """

    __tablename__ = 'cart_item'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    position = Column(Integer, nullable=False, default=0)  # Insertion order within the cart
    cart_id = Column(String(36), ForeignKey('cart.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, nullable=False)
    name = Column(Text, nullable=False)
    sku = Column(String(100), nullable=False)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    max_stock = Column(Integer, nullable=False)
    image_url = Column(Text, nullable=True)
    customization_values = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    cart = relationship('Cart', back_populates='items')

    def __repr__(self):
        return f"<CartItem(id='{self.id}', product_id={self.product_id}, qty={self.quantity}, price={self.price})>"

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'name': self.name,
            'sku': self.sku,
            'size': self.size,
            'color': self.color,
            'price': to_number(self.price),
            'quantity': self.quantity,
            'maxStock': self.max_stock,
            'imageUrl': self.image_url,
            'customizationValues': self.customization_values or {},
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
