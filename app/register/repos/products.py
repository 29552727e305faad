from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select

from app.register.core.error_catalog import ErrorCatalog, NotFoundError
from app.register.db.models import Product
from app.register.repos.transaction import atomic, reading


class ProductRepository:
    def __init__(self, db):
        self.db = db

    def get(self, name: str) -> Product | None:
        with reading(self.db):
            return self.db.get(Product, name)

    def list_all(self) -> list[Product]:
        with reading(self.db):
            return self.db.execute(select(Product).order_by(Product.name)).scalars().all()

    def count(self) -> int:
        with reading(self.db):
            return self.db.execute(select(func.count()).select_from(Product)).scalar_one()

    def price_for(self, name: str) -> Decimal:
        product = self.get(name)
        if product is None:
            raise NotFoundError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"name": name})
        return Decimal(str(product.price))

    def put(self, name: str, price: Decimal) -> Product:
        with atomic(self.db, "products"):
            product = self.db.merge(Product(name=name, price=float(price)))
        return product

    def rename(self, old_name: str, new_name: str, price: Decimal) -> Product:
        with atomic(self.db, "products"):
            existing = self.get(old_name)
            if existing is None:
                raise NotFoundError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"name": old_name})
            if old_name != new_name:
                self.db.delete(existing)
                self.db.flush()
            product = self.db.merge(Product(name=new_name, price=float(price)))
        return product

    def delete(self, name: str) -> bool:
        product = self.get(name)
        if product is None:
            return False
        with atomic(self.db, "products"):
            self.db.delete(product)
        return True

    def bulk_add(self, rows: Iterable[tuple[str, Decimal]]) -> None:
        with atomic(self.db, "products"):
            self.db.add_all([Product(name=name, price=float(price)) for name, price in rows])
