"""ProductPrice model - price of a product within a price list."""
from sqlalchemy import (
    Column, BigInteger, String, Numeric, Boolean, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat
from quotations.utils.formatters import to_number


class ProductPrice(Base):
    """
    Product Price.

    Unique per (organization, product, price list). A price is only usable
    while now falls inside [valid_from, valid_to] for the bounds that are set.
    """

    __tablename__ = 'product_price'
    __table_args__ = (
        UniqueConstraint('organization_id', 'product_id', 'price_list_id', name='uk_product_price_org_list_product'),
        CheckConstraint('amount > 0', name='ck_product_price_amount_positive'),
        CheckConstraint(
            'valid_from IS NULL OR valid_to IS NULL OR valid_from <= valid_to',
            name='ck_product_price_valid_dates'
        ),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    price_list_id = Column(BigInteger, ForeignKey('price_list.id', ondelete='CASCADE'), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    amount = Column(Numeric(18, 4), nullable=False)
    tax_included = Column(Boolean, nullable=False, default=False)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    product = relationship('Product', back_populates='prices')
    price_list = relationship('PriceList')

    def __repr__(self):
        return f"<ProductPrice(product_id={self.product_id}, price_list_id={self.price_list_id}, amount={self.amount})>"

    def is_valid_at(self, moment):
        """Check the optional validity window against `moment`."""
        if self.valid_from and moment < self.valid_from:
            return False
        if self.valid_to and moment > self.valid_to:
            return False
        return True

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'priceListId': self.price_list_id,
            'currency': self.currency,
            'amount': to_number(self.amount),
            'taxIncluded': self.tax_included,
            'validFrom': isoformat(self.valid_from),
            'validTo': isoformat(self.valid_to),
        }
