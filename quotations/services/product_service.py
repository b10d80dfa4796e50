"""Product catalog management (tenant-scoped)."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quotations.models import Product
from quotations.exceptions import BusinessLogicError
from quotations.services.product_price_service import get_product_by_id
from quotations.utils.number_format import parse_quantity

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ('name', 'description', 'size', 'color', 'image_url')


def list_products(session: Session, organization_id: int, active: Optional[bool] = None,
                  search: Optional[str] = None) -> List[Product]:
    query = session.query(Product).filter(Product.organization_id == organization_id)
    if active is not None:
        query = query.filter(Product.active.is_(active))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    return query.order_by(Product.name).all()


def _parse_stock(data: Dict[str, Any]) -> int:
    try:
        return parse_quantity(data.get('stock_qty', 0), allow_zero=True)
    except ValueError:
        raise BusinessLogicError('El stock debe ser un número entero mayor o igual a 0')


def create_product(session: Session, organization_id: int, data: Dict[str, Any]) -> Product:
    """
    Create a product.

    Raises:
        BusinessLogicError: missing name/sku, invalid stock or duplicate SKU.
    """
    sku = (data.get('sku') or '').strip()
    name = (data.get('name') or '').strip()
    if not sku or not name:
        raise BusinessLogicError('El SKU y el nombre son obligatorios')

    product = Product(
        organization_id=organization_id,
        sku=sku,
        stock_qty=_parse_stock(data),
        active=data.get('active', True) is not False,
    )
    for field in PRODUCT_FIELDS:
        if field in data:
            setattr(product, field, data[field])
    product.name = name

    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe un producto con el SKU '{sku}'")

    logger.info(f"[CATALOG] Product created: {product}")
    return product


def update_product(session: Session, product_id: int, organization_id: int, data: Dict[str, Any]) -> Product:
    product = get_product_by_id(session, product_id, organization_id)

    if 'sku' in data:
        sku = (data.get('sku') or '').strip()
        if not sku:
            raise BusinessLogicError('El SKU es obligatorio')
        product.sku = sku
    if 'name' in data and not (data.get('name') or '').strip():
        raise BusinessLogicError('El nombre es obligatorio')
    if 'stock_qty' in data:
        product.stock_qty = _parse_stock(data)
    if 'active' in data:
        product.active = bool(data['active'])
    for field in PRODUCT_FIELDS:
        if field in data:
            setattr(product, field, data[field].strip() if field == 'name' else data[field])

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe un producto con el SKU '{data.get('sku')}'")
    return product


def toggle_active(session: Session, product_id: int, organization_id: int) -> Product:
    product = get_product_by_id(session, product_id, organization_id)
    product.active = not product.active
    session.commit()
    logger.info(f"[CATALOG] Product {product.id} {'activated' if product.active else 'deactivated'}")
    return product


def delete_product(session: Session, product_id: int, organization_id: int) -> None:
    """Delete a product and its prices. Cart items keep their snapshot."""
    product = get_product_by_id(session, product_id, organization_id)
    session.delete(product)
    session.commit()
    logger.info(f"[CATALOG] Product {product_id} deleted (org {organization_id})")
