from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.register.core.deps import get_register, get_runner
from app.register.schemas.register import (
    AddItemRequest,
    CartLineResponse,
    DecisionAnswerRequest,
    DecisionOptionResponse,
    DecisionResponse,
    DeleteSaleRequest,
    OperationOutcomeResponse,
    OperationResponse,
    PaymentMethodRequest,
    PendingDecisionResponse,
    QuantityUpdateRequest,
    ReceiptResponse,
    SessionResponse,
    TaxToggleRequest,
    TotalsResponse,
)
from app.register.services.cart import Cart
from app.register.services.decisions import PendingDecision
from app.register.services.register import OperationOutcome, RegisterController, SessionSnapshot
from app.register.services.runner import OperationRunner, OperationStep
from app.register.services.totals import Totals


router = APIRouter()


def _cart_response(cart: Cart) -> list[CartLineResponse]:
    return [
        CartLineResponse(
            index=index,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        )
        for index, line in enumerate(cart)
    ]


def _totals_response(totals: Totals) -> TotalsResponse:
    return TotalsResponse(subtotal=totals.subtotal, tax=totals.tax, total=totals.total)


def _session_response(snapshot: SessionSnapshot) -> SessionResponse:
    return SessionResponse(
        cart=_cart_response(snapshot.cart),
        tax_enabled=snapshot.tax_enabled,
        tax_rate=snapshot.tax_rate,
        payment_method=snapshot.payment_method.value if snapshot.payment_method else None,
        current_sale_id=snapshot.current_sale_id,
        modified=snapshot.modified,
        totals=_totals_response(snapshot.totals),
        busy=snapshot.busy,
    )


def _decision_response(decision: PendingDecision | None) -> DecisionResponse | None:
    if decision is None:
        return None
    return DecisionResponse(
        id=decision.id,
        title=decision.title,
        message=decision.message,
        options=[
            DecisionOptionResponse(label=option.label, value=option.value, emphasis=option.emphasis)
            for option in decision.options
        ],
    )


def _outcome_response(outcome: OperationOutcome | None) -> OperationOutcomeResponse | None:
    if outcome is None:
        return None
    receipt = None
    if outcome.receipt is not None:
        receipt = ReceiptResponse(
            store_name=outcome.receipt.store_name,
            sale_id=outcome.receipt.sale_id,
            printed_at=outcome.receipt.printed_at,
            lines=_cart_response(outcome.receipt.lines),
            totals=_totals_response(outcome.receipt.totals),
            payment_method=outcome.receipt.payment_method.value,
        )
    return OperationOutcomeResponse(
        operation=outcome.operation,
        status=outcome.status,
        sale_id=outcome.sale_id,
        message=outcome.message,
        receipt=receipt,
    )


async def _operation_response(step: OperationStep, register: RegisterController) -> OperationResponse:
    snapshot = await run_in_threadpool(register.snapshot)
    return OperationResponse(
        status=step.status,
        outcome=_outcome_response(step.outcome),
        decision=_decision_response(step.decision),
        session=_session_response(snapshot),
    )


@router.get("/register/session", response_model=SessionResponse)
def get_session(register: RegisterController = Depends(get_register)):
    return _session_response(register.snapshot())


@router.post("/register/cart/items", response_model=SessionResponse)
def add_cart_item(payload: AddItemRequest, register: RegisterController = Depends(get_register)):
    register.add_item(payload.product_name)
    return _session_response(register.snapshot())


@router.patch("/register/cart/items/{index}", response_model=SessionResponse)
def update_cart_item(
    index: int,
    payload: QuantityUpdateRequest,
    register: RegisterController = Depends(get_register),
):
    register.set_quantity(index, payload.qty)
    return _session_response(register.snapshot())


@router.delete("/register/cart/items/{index}", response_model=SessionResponse)
def remove_cart_item(index: int, register: RegisterController = Depends(get_register)):
    register.remove_item(index)
    return _session_response(register.snapshot())


@router.put("/register/session/tax", response_model=SessionResponse)
def set_tax(payload: TaxToggleRequest, register: RegisterController = Depends(get_register)):
    register.set_tax_enabled(payload.enabled)
    return _session_response(register.snapshot())


@router.put("/register/session/payment-method", response_model=SessionResponse)
def set_payment_method(payload: PaymentMethodRequest, register: RegisterController = Depends(get_register)):
    register.set_payment_method(payload.method)
    return _session_response(register.snapshot())


@router.post("/register/new", response_model=OperationResponse)
async def new_sale(
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.start(register.new())
    return await _operation_response(step, register)


@router.post("/register/save", response_model=OperationResponse)
async def save_sale(
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.start(register.save())
    return await _operation_response(step, register)


@router.post("/register/load/{sale_id}", response_model=OperationResponse)
async def load_sale(
    sale_id: int,
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.start(register.load(sale_id))
    return await _operation_response(step, register)


@router.post("/register/delete", response_model=OperationResponse)
async def delete_sale(
    payload: DeleteSaleRequest | None = None,
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    sale_id = payload.sale_id if payload is not None else None
    step = await runner.start(register.delete(sale_id))
    return await _operation_response(step, register)


@router.post("/register/print", response_model=OperationResponse)
async def print_receipt(
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.start(register.print_receipt())
    return await _operation_response(step, register)


@router.post("/register/clear-history", response_model=OperationResponse)
async def clear_history(
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.start(register.clear_history())
    return await _operation_response(step, register)


@router.get("/register/decision", response_model=PendingDecisionResponse)
def get_pending_decision(register: RegisterController = Depends(get_register)):
    return PendingDecisionResponse(decision=_decision_response(register.gateway.pending))


@router.post("/register/decisions/{decision_id}", response_model=OperationResponse)
async def answer_decision(
    decision_id: str,
    payload: DecisionAnswerRequest,
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.answer(decision_id, payload.value)
    return await _operation_response(step, register)


@router.post("/register/decisions/{decision_id}/dismiss", response_model=OperationResponse)
async def dismiss_decision(
    decision_id: str,
    register: RegisterController = Depends(get_register),
    runner: OperationRunner = Depends(get_runner),
):
    step = await runner.dismiss(decision_id)
    return await _operation_response(step, register)
