"""PriceList model."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat


class PriceListStatus(enum.Enum):
    """Price list / condition status enum."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class PriceList(Base):
    """
    Price List.

    Exactly one list per organization is the default. The default list always
    applies; other lists apply only while all their active conditions hold.
    """

    __tablename__ = 'price_list'
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='idx_price_list_org_name_unique'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    currency = Column(String(3), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=PriceListStatus.ACTIVE.value)
    pricing_tax_mode = Column(String(20), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship('Organization', back_populates='price_lists')
    conditions = relationship(
        'PriceListCondition',
        back_populates='price_list',
        cascade='all, delete-orphan',
        order_by='PriceListCondition.id'
    )

    def __repr__(self):
        return f"<PriceList(id={self.id}, name='{self.name}', default={self.is_default}, status='{self.status}')>"

    @property
    def is_active(self):
        return self.status == PriceListStatus.ACTIVE.value

    @property
    def active_conditions(self):
        return [c for c in self.conditions if c.status == PriceListStatus.ACTIVE.value]

    def to_dict(self, include_conditions=True):
        data = {
            'id': self.id,
            'organizationId': self.organization_id,
            'name': self.name,
            'currency': self.currency,
            'isDefault': self.is_default,
            'status': self.status,
            'pricingTaxMode': self.pricing_tax_mode,
            'isActive': self.is_active,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_conditions:
            data['conditions'] = [c.to_dict() for c in self.conditions]
        return data
