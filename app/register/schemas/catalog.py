from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.register.schemas.register import PaymentMethodValue


class ProductResponse(BaseModel):
    name: str
    price: Decimal


class ProductListResponse(BaseModel):
    rows: list[ProductResponse]


class ProductUpsertRequest(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal


class SaleLineResponse(BaseModel):
    id: int
    sale_id: int
    item: str
    qty: int
    price: Decimal
    line_total: Decimal


class SaleResponse(BaseModel):
    id: int
    sale_date: datetime
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    method: PaymentMethodValue
    lines: list[SaleLineResponse]


class SaleListResponse(BaseModel):
    rows: list[SaleResponse]


class SaleMethodUpdateRequest(BaseModel):
    method: PaymentMethodValue


class TaxRateResponse(BaseModel):
    tax_rate: Decimal
    tax_rate_percent: Decimal


class TaxRateUpdateRequest(BaseModel):
    tax_rate: Decimal


class ChangeVersionsResponse(BaseModel):
    versions: dict[str, int]
