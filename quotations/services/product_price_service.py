"""Product and product-price lookups, and per-list price management."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from quotations.models import Product, ProductPrice
from quotations.exceptions import BusinessLogicError, NotFoundError
from quotations.services.price_list_service import get_price_list
from quotations.utils.dates import parse_datetime, utcnow
from quotations.utils.number_format import parse_amount

logger = logging.getLogger(__name__)


def get_product_by_id(session: Session, product_id: int, organization_id: int) -> Product:
    """
    Load a product with every price-list price it has.

    Raises:
        NotFoundError: if the product does not exist for the organization.
    """
    product = (
        session.query(Product)
        .options(selectinload(Product.prices))
        .filter(Product.id == product_id, Product.organization_id == organization_id)
        .first()
    )
    if not product:
        raise NotFoundError(f'Producto {product_id} no encontrado')
    return product


def find_price(product: Product, price_list_id: int, now=None) -> Optional[ProductPrice]:
    """Return the product's price under `price_list_id` valid at `now`, or None."""
    now = now or utcnow()
    for price in product.prices:
        if price.price_list_id == price_list_id and price.is_valid_at(now):
            return price
    return None


def upsert_product_price(session: Session, organization_id: int, product_id: int, price_list_id: int,
                         amount, currency: str, tax_included: bool = False,
                         valid_from=None, valid_to=None) -> ProductPrice:
    """Create or replace the price of a product in a price list (caller commits)."""
    price = (
        session.query(ProductPrice)
        .filter(
            ProductPrice.organization_id == organization_id,
            ProductPrice.product_id == product_id,
            ProductPrice.price_list_id == price_list_id,
        )
        .first()
    )
    if price is None:
        price = ProductPrice(
            organization_id=organization_id,
            product_id=product_id,
            price_list_id=price_list_id,
        )
        session.add(price)

    price.amount = amount
    price.currency = currency
    price.tax_included = tax_included
    price.valid_from = valid_from
    price.valid_to = valid_to
    session.flush()
    return price


def get_product_prices(session: Session, product_id: int, organization_id: int) -> List[ProductPrice]:
    product = get_product_by_id(session, product_id, organization_id)
    return sorted(product.prices, key=lambda p: p.price_list_id)


def set_product_price(session: Session, organization_id: int, product_id: int, price_list_id: int,
                      data: Dict[str, Any]) -> ProductPrice:
    """
    Set a product's price in a price list (PUT semantics) and commit.

    The currency defaults to the price list currency.

    Raises:
        NotFoundError: unknown product or price list.
        BusinessLogicError: amount not positive or validity window reversed.
    """
    product = get_product_by_id(session, product_id, organization_id)
    price_list = get_price_list(session, price_list_id, organization_id)

    try:
        amount = parse_amount(data.get('amount'), field='precio')
        valid_from = parse_datetime(data.get('valid_from'))
        valid_to = parse_datetime(data.get('valid_to'))
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if valid_from and valid_to and valid_from > valid_to:
        raise BusinessLogicError('valid_from debe ser anterior a valid_to')

    currency = (data.get('currency') or price_list.currency).strip().upper()
    price = upsert_product_price(
        session, organization_id, product.id, price_list.id, amount, currency,
        tax_included=bool(data.get('tax_included', False)),
        valid_from=valid_from, valid_to=valid_to,
    )
    session.commit()
    logger.info(f"[PRICING] Price of product {product.id} in list {price_list.id} set to {amount} {currency}")
    return price


def delete_product_price(session: Session, organization_id: int, product_id: int, price_list_id: int) -> None:
    """
    Remove a product's price from a price list.

    Raises:
        NotFoundError: the product has no price in that list.
        BusinessLogicError: the list is the default one (every product needs a default price).
    """
    product = get_product_by_id(session, product_id, organization_id)
    price = next((p for p in product.prices if p.price_list_id == price_list_id), None)
    if price is None:
        raise NotFoundError(f'El producto {product_id} no tiene precio en la lista {price_list_id}')
    if price.price_list.is_default:
        raise BusinessLogicError('No se puede eliminar el precio de la lista por defecto')

    product.prices.remove(price)
    session.commit()
