from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

PaymentMethodValue = Literal["Cash", "Card", "Check"]


class CartLineResponse(BaseModel):
    index: int
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class TotalsResponse(BaseModel):
    subtotal: Decimal
    tax: Decimal
    total: Decimal


class SessionResponse(BaseModel):
    cart: list[CartLineResponse]
    tax_enabled: bool
    tax_rate: Decimal
    payment_method: PaymentMethodValue | None
    current_sale_id: int | None
    modified: bool
    totals: TotalsResponse
    busy: bool


class DecisionOptionResponse(BaseModel):
    label: str
    value: str
    emphasis: str


class DecisionResponse(BaseModel):
    id: str
    title: str
    message: str
    options: list[DecisionOptionResponse]


class PendingDecisionResponse(BaseModel):
    decision: DecisionResponse | None


class ReceiptResponse(BaseModel):
    store_name: str
    sale_id: int
    printed_at: datetime
    lines: list[CartLineResponse]
    totals: TotalsResponse
    payment_method: PaymentMethodValue


class OperationOutcomeResponse(BaseModel):
    operation: str
    status: Literal["completed", "declined"]
    sale_id: int | None
    message: str | None
    receipt: ReceiptResponse | None


class OperationResponse(BaseModel):
    status: Literal["completed", "declined", "pending"]
    outcome: OperationOutcomeResponse | None
    decision: DecisionResponse | None
    session: SessionResponse


class AddItemRequest(BaseModel):
    product_name: str


class QuantityUpdateRequest(BaseModel):
    qty: int


class TaxToggleRequest(BaseModel):
    enabled: bool


class PaymentMethodRequest(BaseModel):
    method: PaymentMethodValue | None


class DeleteSaleRequest(BaseModel):
    sale_id: int | None = None


class DecisionAnswerRequest(BaseModel):
    value: str
