"""Customization groups and fields - what a customer can personalize on an item."""
import enum
import uuid
from sqlalchemy import (
    Column, BigInteger, String, Text, Boolean, Integer, DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from quotations.database import Base
from quotations.utils.dates import utcnow, isoformat


class CustomizationFieldType(enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"


class CustomizationGroup(Base):
    """Named set of customization fields (e.g. "Bordado", "Estampado")."""

    __tablename__ = 'customization_group'
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', name='uq_customization_group_org_name'),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    fields = relationship(
        'CustomizationField',
        back_populates='group',
        cascade='all, delete-orphan',
        order_by='CustomizationField.sort_order'
    )

    def __repr__(self):
        return f"<CustomizationGroup(id='{self.id}', name='{self.name}')>"

    def to_dict(self, include_fields=False):
        data = {
            'id': self.id,
            'name': self.name,
            'displayName': self.display_name,
            'description': self.description,
            'isActive': self.is_active,
            'sortOrder': self.sort_order,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_fields:
            data['fields'] = [f.to_dict() for f in self.fields]
        return data


class CustomizationField(Base):
    """
    Customization field.

    `options` holds the choices of a select field; min_value/max_value bound
    number fields and max_length bounds text fields.
    """

    __tablename__ = 'customization_field'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(BigInteger, ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    group_id = Column(String(36), ForeignKey('customization_group.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    field_type = Column(String(20), nullable=False)
    options = Column(JSON, nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    min_value = Column(Integer, nullable=True)
    max_value = Column(Integer, nullable=True)
    max_length = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    group = relationship('CustomizationGroup', back_populates='fields')

    def __repr__(self):
        return f"<CustomizationField(id='{self.id}', name='{self.name}', type='{self.field_type}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'groupId': self.group_id,
            'name': self.name,
            'displayName': self.display_name,
            'description': self.description,
            'type': self.field_type,
            'options': self.options,
            'isRequired': self.is_required,
            'isActive': self.is_active,
            'sortOrder': self.sort_order,
            'minValue': self.min_value,
            'maxValue': self.max_value,
            'maxLength': self.max_length,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
