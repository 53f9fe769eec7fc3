"""Category and product listings."""

from uuid import UUID

from sqlalchemy import select

from parts_ledger.domain.dtos import CategoryRef, ProductInfo
from parts_ledger.exceptions import ProductNotFoundError
from parts_ledger.models.catalog import Category, Product
from parts_ledger.selectors.base import BaseSelector


class CatalogSelector(BaseSelector):
    def list_categories(self) -> list[CategoryRef]:
        rows = self.session.execute(select(Category).order_by(Category.name)).scalars()
        return [CategoryRef.from_model(c) for c in rows]

    def get_product(self, product_id: UUID) -> ProductInfo:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return ProductInfo.from_model(product)

    def get_product_by_sku(self, sku: str) -> ProductInfo | None:
        product = self.session.execute(
            select(Product).where(Product.sku == sku)
        ).unique().scalar_one_or_none()
        return ProductInfo.from_model(product) if product is not None else None

    def list_products(
        self,
        category_id: UUID | None = None,
        low_stock_only: bool = False,
    ) -> list[ProductInfo]:
        """Products ordered by SKU, optionally by category or at/below minimum stock."""
        stmt = select(Product).order_by(Product.sku)
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        if low_stock_only:
            stmt = stmt.where(Product.total_stock <= Product.min_stock_level)
        return [ProductInfo.from_model(p) for p in self.session.execute(stmt).unique().scalars()]
