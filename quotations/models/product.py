"""Product model."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat


class Product(Base):
    """Product sold by an organization. Prices live in ProductPrice, one per price list."""

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('organization_id', 'sku', name='uq_product_org_sku'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    image_url = Column(Text, nullable=True)
    stock_qty = Column(Integer, nullable=False, default=0)  # Available units, used as cart max_stock
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship('Organization')
    prices = relationship('ProductPrice', back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    def to_dict(self, include_prices=False):
        data = {
            'id': self.id,
            'organizationId': self.organization_id,
            'sku': self.sku,
            'name': self.name,
            'description': self.description,
            'size': self.size,
            'color': self.color,
            'imageUrl': self.image_url,
            'stockQty': self.stock_qty,
            'active': self.active,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_prices:
            data['prices'] = [p.to_dict() for p in sorted(self.prices, key=lambda p: p.price_list_id)]
        return data
