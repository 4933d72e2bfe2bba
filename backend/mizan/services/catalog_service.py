# backend/mizan/services/catalog_service.py
"""
Categories, products and warehouses.

Reference data only: quantities and balances are never written here, they
belong to the ledger core. Deleting a product is refused while any stock or
document still references it; deactivate it instead.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..ledger.errors import NotFoundError
from ..models import Category, DocumentLine, Product, StockLevel, StockMovement, Warehouse
from ..validation import ConflictError, ValidationError

CATEGORY_MUTABLE_FIELDS = {"name", "description"}
PRODUCT_MUTABLE_FIELDS = {"code", "name", "unit", "category_id", "cost_price", "sell_price", "sell_price_wholesale", "is_active"}
WAREHOUSE_MUTABLE_FIELDS = {"name", "location", "is_default", "is_active"}


def _apply_patch(row, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k in allowed:
            setattr(row, k, v)


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def _check_category_name(name: str | None, *, exclude_id: int | None = None) -> None:
    if name is None:
        return
    query = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"Category {name} already exists")


def create_category(*, patch: dict) -> Category:
    _check_category_name(patch["name"])
    category = Category()
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, *, patch: dict) -> Category:
    category = get_category(category_id)
    _check_category_name(patch.get("name"), exclude_id=category_id)
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    in_use = db.session.query(Product).filter_by(category_id=category_id).count()
    if in_use:
        raise ConflictError(
            f"Category {category.name} is used by {in_use} product(s); move them first"
        )
    db.session.delete(category)
    db.session.commit()


def _check_category_ref(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError(f"category_id {category_id} does not exist")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(
    *, search: str | None = None, active_only: bool = False, category_id: int | None = None
) -> list[Product]:
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.code.ilike(like)))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(*, patch: dict) -> Product:
    if db.session.query(Product).filter_by(code=patch["code"]).first():
        raise ConflictError(f"Product code {patch['code']} already exists")
    _check_category_ref(patch)

    product = Product()
    _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Product code {patch['code']} already exists")
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)
    if "code" in patch and patch["code"] != product.code:
        if db.session.query(Product).filter_by(code=patch["code"]).first():
            raise ConflictError(f"Product code {patch['code']} already exists")
    _check_category_ref(patch)
    _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    db.session.commit()
    return product


def product_references(product_id: int) -> dict:
    return {
        "stock_levels": db.session.query(StockLevel).filter_by(product_id=product_id).count(),
        "stock_movements": db.session.query(StockMovement).filter_by(product_id=product_id).count(),
        "document_lines": db.session.query(DocumentLine).filter_by(product_id=product_id).count(),
    }


def delete_product(product_id: int) -> None:
    product = get_product(product_id)
    refs = product_references(product_id)
    if any(refs.values()):
        raise ConflictError(
            f"Product {product.code} is referenced by stock or documents; deactivate it instead"
        )
    db.session.delete(product)
    db.session.commit()


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})
    return warehouse


def list_warehouses(*, active_only: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if active_only:
        query = query.filter(Warehouse.is_active.is_(True))
    return query.order_by(Warehouse.is_default.desc(), Warehouse.name.asc()).all()


def _make_default(warehouse: Warehouse) -> None:
    """Exactly one default warehouse: clear the flag everywhere else."""
    db.session.query(Warehouse).filter(Warehouse.id != warehouse.id).update(
        {Warehouse.is_default: False}, synchronize_session="fetch"
    )
    warehouse.is_default = True


def create_warehouse(*, patch: dict) -> Warehouse:
    if db.session.query(Warehouse).filter_by(name=patch["name"]).first():
        raise ConflictError(f"Warehouse {patch['name']} already exists")

    is_first = db.session.query(Warehouse).count() == 0
    warehouse = Warehouse(is_default=False)
    _apply_patch(warehouse, {k: v for k, v in patch.items() if k != "is_default"}, WAREHOUSE_MUTABLE_FIELDS)
    db.session.add(warehouse)
    db.session.flush()

    if is_first or patch.get("is_default"):
        _make_default(warehouse)

    db.session.commit()
    return warehouse


def update_warehouse(warehouse_id: int, *, patch: dict) -> Warehouse:
    warehouse = get_warehouse(warehouse_id)

    if patch.get("is_default") is False and warehouse.is_default:
        raise ConflictError("Choose another default warehouse instead of unsetting this one")
    if patch.get("is_active") is False and warehouse.is_default:
        raise ConflictError("The default warehouse cannot be deactivated")

    _apply_patch(warehouse, {k: v for k, v in patch.items() if k != "is_default"}, WAREHOUSE_MUTABLE_FIELDS)
    if patch.get("is_default"):
        _make_default(warehouse)

    db.session.commit()
    return warehouse


def get_default_warehouse() -> Warehouse | None:
    return db.session.query(Warehouse).filter_by(is_default=True).first()
