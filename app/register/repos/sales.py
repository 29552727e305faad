from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, select

from app.register.db.models import Sale, SaleLine
from app.register.repos.transaction import atomic, reading

_SALE_TABLES = ("sales", "sale_lines")


@dataclass(frozen=True)
class SaleLineInput:
    item: str
    qty: int
    price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class SaleInput:
    sale_date: datetime
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    method: str
    lines: tuple[SaleLineInput, ...]


class SaleRepository:
    def __init__(self, db):
        self.db = db

    def get(self, sale_id: int) -> Sale | None:
        with reading(self.db):
            return self.db.get(Sale, sale_id)

    def get_lines(self, sale_id: int) -> list[SaleLine]:
        query = select(SaleLine).where(SaleLine.sale_id == sale_id).order_by(SaleLine.id)
        with reading(self.db):
            return self.db.execute(query).scalars().all()

    def list_sales(self, limit: int | None = None) -> list[Sale]:
        query = select(Sale).order_by(Sale.sale_date.desc(), Sale.id.desc())
        if limit is not None:
            query = query.limit(limit)
        with reading(self.db):
            return self.db.execute(query).scalars().all()

    def list_with_lines(self, limit: int | None = None) -> list[tuple[Sale, list[SaleLine]]]:
        sales = self.list_sales(limit)
        if not sales:
            return []
        lines_by_sale: dict[int, list[SaleLine]] = defaultdict(list)
        query = select(SaleLine).where(SaleLine.sale_id.in_([sale.id for sale in sales])).order_by(SaleLine.id)
        with reading(self.db):
            for line in self.db.execute(query).scalars():
                lines_by_sale[line.sale_id].append(line)
        return [(sale, lines_by_sale[sale.id]) for sale in sales]

    def list_all_lines(self) -> list[SaleLine]:
        with reading(self.db):
            return self.db.execute(select(SaleLine).order_by(SaleLine.id)).scalars().all()

    def create_sale(self, sale: SaleInput) -> int:
        with atomic(self.db, *_SALE_TABLES):
            record = Sale()
            self._apply_header(record, sale)
            self.db.add(record)
            self.db.flush()
            self._insert_lines(record.id, sale.lines)
        return record.id

    def overwrite_sale(self, sale_id: int, sale: SaleInput) -> int:
        with atomic(self.db, *_SALE_TABLES):
            record = self.get(sale_id)
            if record is None:
                record = Sale(id=sale_id)
                self.db.add(record)
            self._apply_header(record, sale)
            self.db.execute(delete(SaleLine).where(SaleLine.sale_id == sale_id))
            self.db.flush()
            self._insert_lines(sale_id, sale.lines)
        return sale_id

    def delete_sale(self, sale_id: int) -> bool:
        record = self.get(sale_id)
        if record is None:
            return False
        with atomic(self.db, *_SALE_TABLES):
            self.db.execute(delete(SaleLine).where(SaleLine.sale_id == sale_id))
            self.db.delete(record)
        return True

    def update_method(self, sale_id: int, method: str) -> Sale | None:
        record = self.get(sale_id)
        if record is None:
            return None
        with atomic(self.db, "sales"):
            record.method = method
        return record

    def clear_all(self) -> int:
        with atomic(self.db, *_SALE_TABLES):
            self.db.execute(delete(SaleLine))
            result = self.db.execute(delete(Sale))
        return result.rowcount or 0

    def _apply_header(self, record: Sale, sale: SaleInput) -> None:
        record.sale_date = sale.sale_date
        record.subtotal = float(sale.subtotal)
        record.tax = float(sale.tax)
        record.total = float(sale.total)
        record.method = sale.method

    def _insert_lines(self, sale_id: int, lines: tuple[SaleLineInput, ...]) -> None:
        self.db.add_all(
            [
                SaleLine(
                    sale_id=sale_id,
                    item=line.item,
                    qty=line.qty,
                    price=float(line.price),
                    line_total=float(line.line_total),
                )
                for line in lines
            ]
        )
