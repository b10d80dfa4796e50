"""PriceListCondition model - rules that unlock a non-default price list."""
import enum
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from quotations.database import Base, BigIntId
from quotations.utils.dates import utcnow, isoformat


class ConditionType(enum.Enum):
    """Condition type enum."""
    AMOUNT = "amount"
    QUANTITY = "quantity"
    DATE_RANGE = "date_range"
    CUSTOMER_TYPE = "customer_type"


class ConditionOperator(enum.Enum):
    """Condition operator enum."""
    GREATER_THAN = "greater_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_THAN = "less_than"
    LESS_OR_EQUAL = "less_or_equal"
    EQUALS = "equals"
    BETWEEN = "between"
    AFTER = "after"
    BEFORE = "before"


class PriceListCondition(Base):
    """
    Price List Condition.

    condition_value holds the payload for the condition type:
    - amount: {"min_amount": 100000, "max_amount": 500000}
    - quantity: {"min_quantity": 10, "max_quantity": 100}
    - date_range: {"from_date": "2026-12-01", "to_date": "2026-12-31"}
    - customer_type: {"customer_type": "wholesale"}
    """

    __tablename__ = 'price_list_condition'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    price_list_id = Column(BigInteger, ForeignKey('price_list.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default='active')
    condition_type = Column(String(50), nullable=False)
    operator = Column(String(20), nullable=False, default=ConditionOperator.EQUALS.value)
    condition_value = Column(JSON, nullable=False, default=dict)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    price_list = relationship('PriceList', back_populates='conditions')

    def __repr__(self):
        return (
            f"<PriceListCondition(id={self.id}, price_list_id={self.price_list_id}, "
            f"type='{self.condition_type}', operator='{self.operator}')>"
        )

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
            'priceListId': self.price_list_id,
            'status': self.status,
            'conditionType': self.condition_type,
            'operator': self.operator,
            'conditionValue': self.condition_value or {},
            'validFrom': isoformat(self.valid_from),
            'validTo': isoformat(self.valid_to),
            'isActive': self.status == 'active',
            'isValidNow': self.is_valid_at(utcnow()),
        }
