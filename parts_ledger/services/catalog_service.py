"""
CatalogService -- categories and products.

Responsibility:
    Creates, edits and deletes the categories and products the ledger
    tracks, and loads products (optionally row-locked) for the Batch Store
    and Sale Recorder.

Invariants enforced:
    - SKUs are unique; category names are unique ignoring case.  A unique
      constraint that trips at flush (two writers racing for one SKU) is
      reported the same way as the pre-check: DuplicateSkuError or
      DuplicateCategoryError.
    - A new product starts with total_stock = 0; stock arrives only through
      batches.  update_product() never touches total_stock.
    - A product with any batch or sale is never deleted.

Failure modes:
    - DuplicateSkuError, DuplicateCategoryError, CategoryNotFoundError,
      ProductNotFoundError, ProductInUseError, RequiredFieldError,
      InvalidPriceError, InvalidQuantityError (negative minimum stock level).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parts_ledger.domain.dtos import CategoryRef, ProductInfo
from parts_ledger.domain.validation import validate_price, validate_required
from parts_ledger.exceptions import (
    CategoryNotFoundError,
    DuplicateCategoryError,
    DuplicateSkuError,
    InvalidQuantityError,
    ProductInUseError,
    ProductNotFoundError,
)
from parts_ledger.logging_config import get_logger
from parts_ledger.models.batch import Batch
from parts_ledger.models.catalog import Category, Product
from parts_ledger.models.sale import Sale
from parts_ledger.services.base import BaseService

logger = get_logger("services.catalog")


def _validate_min_stock(min_stock_level: object) -> int:
    if (
        isinstance(min_stock_level, bool)
        or not isinstance(min_stock_level, int)
        or min_stock_level < 0
    ):
        raise InvalidQuantityError(min_stock_level, "min_stock_level")
    return min_stock_level


class CatalogService(BaseService):
    def __init__(self, session: Session):
        super().__init__(session)

    def create_category(self, name: str, description: str | None = None) -> CategoryRef:
        name = validate_required(name, "name")
        existing = self.session.execute(
            select(Category.id).where(func.lower(Category.name) == name.lower())
        ).first()
        if existing is not None:
            raise DuplicateCategoryError(name)

        category = Category(name=name, description=description)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(category)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateCategoryError(name) from None

        logger.info("category_created", extra={"category_id": category.id, "category_name": name})
        return CategoryRef.from_model(category)

    def get_category(self, category_id: UUID) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(str(category_id))
        return category

    def _ensure_sku_free(self, sku: str, exclude_id: UUID | None = None) -> None:
        stmt = select(Product.id).where(Product.sku == sku)
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicateSkuError(sku)

    def create_product(
        self,
        sku: str,
        name: str,
        selling_price: Decimal | int | str,
        category_id: UUID | None = None,
        min_stock_level: int = 0,
        description: str | None = None,
    ) -> ProductInfo:
        """
        Register a product.  Stock starts at zero.

        Raises:
            DuplicateSkuError: ``sku`` already belongs to a product.
            CategoryNotFoundError: ``category_id`` does not exist.
        """
        sku = validate_required(sku, "sku")
        name = validate_required(name, "name")
        price = validate_price(selling_price, "selling_price", allow_zero=False)
        min_stock_level = _validate_min_stock(min_stock_level)

        category = self.get_category(category_id) if category_id is not None else None
        self._ensure_sku_free(sku)

        product = Product(
            sku=sku,
            name=name,
            description=description,
            category_id=category.id if category is not None else None,
            selling_price=price,
            min_stock_level=min_stock_level,
            total_stock=0,
        )
        product.category = category
        savepoint = self.session.begin_nested()
        try:
            self.session.add(product)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateSkuError(sku) from None

        logger.info("product_created", extra={"product_id": product.id, "sku": sku})
        return ProductInfo.from_model(product)

    def update_product(
        self,
        product_id: UUID,
        *,
        sku: str | None = None,
        name: str | None = None,
        selling_price: Decimal | int | str | None = None,
        min_stock_level: int | None = None,
        description: str | None = None,
        category_id: UUID | None = None,
        clear_category: bool = False,
    ) -> ProductInfo:
        """
        Change the catalog fields of a product.  Arguments left as None keep
        their current value; ``clear_category=True`` removes the category.

        Sales keep the price they were recorded at and stored reports keep
        the names they were built with.

        Raises:
            ProductNotFoundError, DuplicateSkuError, CategoryNotFoundError
        """
        changes: dict[str, object] = {}
        if sku is not None:
            changes["sku"] = validate_required(sku, "sku")
        if name is not None:
            changes["name"] = validate_required(name, "name")
        if selling_price is not None:
            changes["selling_price"] = validate_price(
                selling_price, "selling_price", allow_zero=False
            )
        if min_stock_level is not None:
            changes["min_stock_level"] = _validate_min_stock(min_stock_level)
        if description is not None:
            changes["description"] = description

        category: Category | None = None
        if clear_category:
            changes["category_id"] = None
        elif category_id is not None:
            category = self.get_category(category_id)
            changes["category_id"] = category.id

        product = self.get_product(product_id, lock=True)
        if "sku" in changes and changes["sku"] != product.sku:
            self._ensure_sku_free(changes["sku"], exclude_id=product.id)

        savepoint = self.session.begin_nested()
        try:
            for field, value in changes.items():
                setattr(product, field, value)
            if "category_id" in changes:
                product.category = category
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateSkuError(str(changes.get("sku"))) from None

        logger.info(
            "product_updated",
            extra={"product_id": product.id, "fields": sorted(changes)},
        )
        return ProductInfo.from_model(product)

    def delete_product(self, product_id: UUID) -> ProductInfo:
        """
        Delete a product that never received stock.

        Raises:
            ProductNotFoundError
            ProductInUseError: a batch or a sale refers to the product.
        """
        product = self.get_product(product_id, lock=True)
        batch_count = self.session.execute(
            select(func.count(Batch.id)).where(Batch.product_id == product.id)
        ).scalar_one()
        sale_count = self.session.execute(
            select(func.count(Sale.id)).where(Sale.product_id == product.id)
        ).scalar_one()
        if batch_count or sale_count:
            raise ProductInUseError(str(product.id), batch_count, sale_count)

        info = ProductInfo.from_model(product)
        self.session.delete(product)
        self.session.flush()
        logger.info("product_deleted", extra={"product_id": info.id, "sku": info.sku})
        return info

    def get_product(self, product_id: UUID, *, lock: bool = False) -> Product:
        """
        Load a product, optionally with SELECT ... FOR UPDATE.

        Raises:
            ProductNotFoundError
        """
        stmt = select(Product).where(Product.id == product_id)
        if lock:
            stmt = stmt.with_for_update(of=Product)
        product = self.session.execute(
            stmt.execution_options(populate_existing=lock)
        ).unique().scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product
