"""Organization model - each business selling through the quotation backend."""
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat


class Organization(Base):
    """
    Organization (tenant).

    `quote_settings` optionally overrides the quote policy for this organization,
    e.g. {"validity_days": 15, "price_change_threshold": 3}.
    """

    __tablename__ = 'organization'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    quote_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    price_lists = relationship('PriceList', back_populates='organization')

    def __repr__(self):
        return f"<Organization(id={self.id}, slug='{self.slug}', name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'slug': self.slug,
            'name': self.name,
            'active': self.active,
            'quoteSettings': self.quote_settings or {},
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
