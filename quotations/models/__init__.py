"""Models package - exports all SQLAlchemy models."""
# Core
from quotations.models.organization import Organization

# Catalog and pricing
from quotations.models.product import Product
from quotations.models.price_list import PriceList, PriceListStatus
from quotations.models.price_list_condition import PriceListCondition, ConditionType, ConditionOperator
from quotations.models.product_price import ProductPrice

# Carts / quotes
from quotations.models.cart import Cart, CartStatus
from quotations.models.cart_item import CartItem
from quotations.models.cart_changelog import CartChangelog, ChangelogOperation

# Customization
from quotations.models.customization import CustomizationGroup, CustomizationField, CustomizationFieldType

# Payments
from quotations.models.payment_method import PaymentMethod
from quotations.models.payment import Payment, PaymentStatus, PaymentType, PAYMENT_TRANSITIONS, can_transition

__all__ = [
    'Organization',
    'Product', 'PriceList', 'PriceListStatus',
    'PriceListCondition', 'ConditionType', 'ConditionOperator', 'ProductPrice',
    'Cart', 'CartStatus', 'CartItem', 'CartChangelog', 'ChangelogOperation',
    'CustomizationGroup', 'CustomizationField', 'CustomizationFieldType',
    'PaymentMethod', 'Payment', 'PaymentStatus', 'PaymentType', 'PAYMENT_TRANSITIONS', 'can_transition',
]
