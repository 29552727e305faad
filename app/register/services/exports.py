from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import inspect, select

from app.register.core.error_catalog import ErrorCatalog, NotFoundError
from app.register.db.models import Product, Sale, SaleLine
from app.register.repos.transaction import reading
from app.register.services.totals import to_money

EXPORT_TABLES = {
    "products": (Product, Product.name),
    "sales": (Sale, Sale.id),
    "sale_lines": (SaleLine, SaleLine.id),
}


@dataclass
class ExportDataset:
    table: str
    columns: list[str]
    rows: list[list[object]]


def build_dataset(db, table: str) -> ExportDataset:
    if table not in EXPORT_TABLES:
        raise NotFoundError(ErrorCatalog.NO_DATA_TO_EXPORT, details={"table": table})
    model, order_by = EXPORT_TABLES[table]
    columns = [column.key for column in inspect(model).columns]
    with reading(db):
        records = db.execute(select(model).order_by(order_by)).scalars().all()
    if not records:
        raise NotFoundError(ErrorCatalog.NO_DATA_TO_EXPORT, details={"table": table})
    rows = [[getattr(record, column) for column in columns] for record in records]
    return ExportDataset(table=table, columns=columns, rows=rows)


def _format_cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, float):
        return to_money(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def render_csv(dataset: ExportDataset) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(dataset.columns)
    for row in dataset.rows:
        writer.writerow([_format_cell(value) for value in row])
    return buffer.getvalue().encode("utf-8")


def export_filename(table: str, generated_at: datetime) -> str:
    return f"{table}_{generated_at.strftime('%Y%m%d_%H%M%S')}.csv"
