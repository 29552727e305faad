"""The register's transaction engine.

``RegisterController`` owns the in-progress sale (cart, tax flag, payment
method, which stored sale it is editing, and whether it has unsaved
changes) and runs the New / Save / Load / Delete / Print flows against the
store. Destructive or ambiguous steps are put to the operator through the
decision gateway; a declined decision leaves both the session and the store
exactly as they were.

Only one flow may run at a time. While a flow is suspended on a decision
every other entry point, cart edits included, is refused with
OPERATION_IN_PROGRESS. Cart edits arrive on worker threads, so the idle
check and the edit happen under one lock that a flow must also take to
start. Store access inside a flow runs on the threadpool.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal

from starlette.concurrency import run_in_threadpool

from app.register.core.error_catalog import (
    AppError,
    ConflictError,
    ErrorCatalog,
    NotFoundError,
    RegisterValidationError,
)
from app.register.core.logging import log_json
from app.register.core.metrics import metrics
from app.register.repos.products import ProductRepository
from app.register.repos.sales import SaleInput, SaleLineInput, SaleRepository
from app.register.services import cart as cart_ops
from app.register.services.audit import AuditService
from app.register.services.cart import Cart
from app.register.services.decisions import DecisionGateway, DecisionOption
from app.register.services.tax_rate import TaxRateConfig
from app.register.services.totals import Totals, compute_totals, to_money

logger = logging.getLogger("register.engine")


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    CHECK = "Check"


CLEAR_SALE_OPTIONS = (
    DecisionOption("Clear Sale", "clear", "danger"),
    DecisionOption("Keep Working", "cancel", "secondary"),
)
DUPLICATE_SALE_OPTIONS = (
    DecisionOption("YES - Overwrite", "overwrite", "danger"),
    DecisionOption("NO - Save as New", "new", "primary"),
    DecisionOption("CANCEL", "cancel", "secondary"),
)
UNSAVED_LOAD_OPTIONS = (
    DecisionOption("Discard and Load", "load", "danger"),
    DecisionOption("Keep Working", "cancel", "secondary"),
)
DELETE_SALE_OPTIONS = (
    DecisionOption("Delete", "delete", "danger"),
    DecisionOption("Cancel", "cancel", "secondary"),
)
SAVE_REQUIRED_OPTIONS = (
    DecisionOption("Save and Print", "save", "primary"),
    DecisionOption("Cancel", "cancel", "secondary"),
)
RESET_DATABASE_OPTIONS = (
    DecisionOption("YES - Clear Everything", "reset", "danger"),
    DecisionOption("Cancel", "cancel", "secondary"),
)


@dataclass
class TransactionSession:
    cart: Cart = ()
    tax_enabled: bool = True
    payment_method: PaymentMethod | None = None
    current_sale_id: int | None = None
    modified: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    cart: Cart
    tax_enabled: bool
    tax_rate: Decimal
    payment_method: PaymentMethod | None
    current_sale_id: int | None
    modified: bool
    totals: Totals
    busy: bool


@dataclass(frozen=True)
class Receipt:
    store_name: str
    sale_id: int
    printed_at: datetime
    lines: Cart
    totals: Totals
    payment_method: PaymentMethod


@dataclass(frozen=True)
class OperationOutcome:
    operation: str
    status: Literal["completed", "declined"]
    sale_id: int | None = None
    message: str | None = None
    receipt: Receipt | None = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"


class RegisterController:
    def __init__(
        self,
        session_factory,
        gateway: DecisionGateway,
        tax_config: TaxRateConfig,
        *,
        tax_enabled_default: bool = True,
        confirm_load_over_unsaved: bool = True,
        store_name: str = "",
        printer: Callable[[Receipt], None] | None = None,
    ):
        self._session_factory = session_factory
        self.gateway = gateway
        self.tax_config = tax_config
        self._tax_enabled_default = tax_enabled_default
        self._confirm_load_over_unsaved = confirm_load_over_unsaved
        self._store_name = store_name
        self._printer = printer
        self._busy = False
        self._lock = threading.Lock()
        self.session = TransactionSession(tax_enabled=tax_enabled_default)

    @property
    def busy(self) -> bool:
        return self._busy

    # -- reads -------------------------------------------------------------

    def totals(self) -> Totals:
        return compute_totals(self.session.cart, self.session.tax_enabled, self.tax_config.get())

    def snapshot(self) -> SessionSnapshot:
        rate = self.tax_config.get()
        session = self.session
        return SessionSnapshot(
            cart=session.cart,
            tax_enabled=session.tax_enabled,
            tax_rate=rate,
            payment_method=session.payment_method,
            current_sale_id=session.current_sale_id,
            modified=session.modified,
            totals=compute_totals(session.cart, session.tax_enabled, rate),
            busy=self._busy,
        )

    # -- cart edits ----------------------------------------------------------

    def add_item(self, product_name: str) -> Cart:
        with self._editing("add_item"):
            with self._session_factory() as db:
                price = ProductRepository(db).price_for(product_name)
            self._mutate(cart=cart_ops.add_item(self.session.cart, product_name, to_money(price)))
            return self.session.cart

    def set_quantity(self, index: int, qty: int) -> Cart:
        with self._editing("set_quantity"):
            self._mutate(cart=cart_ops.set_quantity(self.session.cart, index, qty))
            return self.session.cart

    def remove_item(self, index: int) -> Cart:
        with self._editing("remove_item"):
            self._mutate(cart=cart_ops.remove_item(self.session.cart, index))
            return self.session.cart

    def set_tax_enabled(self, enabled: bool) -> None:
        with self._editing("set_tax_enabled"):
            if enabled != self.session.tax_enabled:
                self._mutate(tax_enabled=enabled)

    def set_payment_method(self, method: PaymentMethod | str | None) -> None:
        if method is not None and not isinstance(method, PaymentMethod):
            try:
                method = PaymentMethod(method)
            except ValueError as exc:
                raise RegisterValidationError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={"message": "unknown payment method", "method": method},
                ) from exc
        with self._editing("set_payment_method"):
            if method != self.session.payment_method:
                self._mutate(payment_method=method)

    # -- flows ---------------------------------------------------------------

    async def new(self) -> OperationOutcome:
        return await self._run("new", self._new)

    async def save(self) -> OperationOutcome:
        return await self._run("save", self._save)

    async def load(self, sale_id: int) -> OperationOutcome:
        return await self._run("load", lambda: self._load(sale_id))

    async def delete(self, sale_id: int | None = None) -> OperationOutcome:
        return await self._run("delete", lambda: self._delete(sale_id))

    async def print_receipt(self) -> OperationOutcome:
        return await self._run("print", self._print)

    async def clear_history(self) -> OperationOutcome:
        return await self._run("clear_history", self._clear_history)

    async def _new(self) -> OperationOutcome:
        if self.session.modified and self.session.cart:
            choice = await self._ask(
                "Clear Sale",
                "Clear current sale? Unsaved changes will be lost.",
                CLEAR_SALE_OPTIONS,
            )
            if choice != "clear":
                return OperationOutcome("new", "declined")
        self._reset()
        return OperationOutcome("new", "completed")

    async def _save(self) -> OperationOutcome:
        session = self.session
        if not session.cart:
            raise RegisterValidationError(ErrorCatalog.EMPTY_CART)
        if session.payment_method is None:
            raise RegisterValidationError(ErrorCatalog.MISSING_PAYMENT_METHOD)

        overwrite_id = None
        if session.current_sale_id is not None:
            choice = await self._ask(
                "Duplicate Sale",
                f"Sale {session.current_sale_id} already exists! What would you like to do?",
                DUPLICATE_SALE_OPTIONS,
            )
            if choice not in {"overwrite", "new"}:
                return OperationOutcome("save", "declined", sale_id=session.current_sale_id)
            if choice == "overwrite":
                overwrite_id = session.current_sale_id

        sale_id = await run_in_threadpool(self._store_sale, overwrite_id)
        session.current_sale_id = sale_id
        session.modified = False
        return OperationOutcome("save", "completed", sale_id=sale_id, message=f"Sale saved: {sale_id}")

    def _store_sale(self, overwrite_id: int | None) -> int:
        session = self.session
        totals = self.totals()
        record = SaleInput(
            sale_date=datetime.utcnow(),
            subtotal=totals.subtotal,
            tax=totals.tax,
            total=totals.total,
            method=session.payment_method.value,
            lines=tuple(
                SaleLineInput(
                    item=line.product_name,
                    qty=line.quantity,
                    price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in session.cart
            ),
        )
        with self._session_factory() as db:
            repo = SaleRepository(db)
            if overwrite_id is not None:
                sale_id = repo.overwrite_sale(overwrite_id, record)
            else:
                sale_id = repo.create_sale(record)
            AuditService(db).record_sale_event(
                "sale.overwrite" if overwrite_id is not None else "sale.create",
                sale_id,
                before={"sale_id": session.current_sale_id},
                after={
                    "subtotal": str(totals.subtotal),
                    "tax": str(totals.tax),
                    "total": str(totals.total),
                    "method": record.method,
                    "lines": len(record.lines),
                },
            )
        return sale_id

    async def _load(self, sale_id: int) -> OperationOutcome:
        await run_in_threadpool(self._require_sale, sale_id)

        if self._confirm_load_over_unsaved and self.session.modified and self.session.cart:
            choice = await self._ask(
                "Unsaved Changes",
                f"The current sale has unsaved changes. Discard them and load sale {sale_id}?",
                UNSAVED_LOAD_OPTIONS,
            )
            if choice != "load":
                return OperationOutcome("load", "declined", sale_id=sale_id)

        cart, method = await run_in_threadpool(self._read_sale, sale_id)
        # stored sales carry no tax flag; the operator's toggle stays as it is
        self.session = TransactionSession(
            cart=cart,
            tax_enabled=self.session.tax_enabled,
            payment_method=method,
            current_sale_id=sale_id,
            modified=False,
        )
        return OperationOutcome("load", "completed", sale_id=sale_id)

    def _require_sale(self, sale_id: int) -> None:
        with self._session_factory() as db:
            if SaleRepository(db).get(sale_id) is None:
                raise NotFoundError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": sale_id})

    def _read_sale(self, sale_id: int) -> tuple[Cart, PaymentMethod]:
        with self._session_factory() as db:
            repo = SaleRepository(db)
            sale = repo.get(sale_id)
            if sale is None:
                raise NotFoundError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": sale_id})
            return cart_ops.cart_from_sale_lines(repo.get_lines(sale_id)), PaymentMethod(sale.method)

    async def _delete(self, sale_id: int | None) -> OperationOutcome:
        target = sale_id if sale_id is not None else self.session.current_sale_id
        if target is None:
            raise RegisterValidationError(ErrorCatalog.SALE_ID_REQUIRED)
        await run_in_threadpool(self._require_sale, target)

        choice = await self._ask(
            "Delete Sale",
            f"Are you sure you want to delete sale {target}? This action cannot be undone.",
            DELETE_SALE_OPTIONS,
        )
        if choice != "delete":
            return OperationOutcome("delete", "declined", sale_id=target)

        await run_in_threadpool(self._delete_sale, target)
        if target == self.session.current_sale_id:
            self._reset()
        return OperationOutcome("delete", "completed", sale_id=target, message=f"Deleted sale: {target}")

    def _delete_sale(self, sale_id: int) -> None:
        with self._session_factory() as db:
            if not SaleRepository(db).delete_sale(sale_id):
                raise NotFoundError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": sale_id})
            AuditService(db).record_sale_event("sale.delete", sale_id, before={"sale_id": sale_id})

    async def _print(self) -> OperationOutcome:
        session = self.session
        if session.current_sale_id is None or session.modified:
            if session.current_sale_id is None:
                message = "This sale hasn't been saved yet. Save now before printing?"
            else:
                message = "This sale has been modified. Save changes before printing?"
            choice = await self._ask("Save Required", message, SAVE_REQUIRED_OPTIONS)
            if choice != "save":
                return OperationOutcome("print", "declined", sale_id=session.current_sale_id)
            saved = await self._save()
            if not saved.completed:
                return OperationOutcome("print", "declined", sale_id=session.current_sale_id)

        totals = await run_in_threadpool(self.totals)
        receipt = Receipt(
            store_name=self._store_name,
            sale_id=self.session.current_sale_id,
            printed_at=datetime.utcnow(),
            lines=self.session.cart,
            totals=totals,
            payment_method=self.session.payment_method,
        )
        if self._printer is not None:
            self._printer(receipt)
        return OperationOutcome("print", "completed", sale_id=receipt.sale_id, receipt=receipt)

    async def _clear_history(self) -> OperationOutcome:
        choice = await self._ask(
            "Reset Database",
            "Are you sure you want to clear ALL sales and sale lines? This cannot be undone.",
            RESET_DATABASE_OPTIONS,
        )
        if choice != "reset":
            return OperationOutcome("clear_history", "declined")

        await run_in_threadpool(self._clear_sales)

        # the sale being edited no longer exists; unsaved lines stay put
        self.session.current_sale_id = None
        self.session.modified = bool(self.session.cart)
        return OperationOutcome("clear_history", "completed", message="Database cleared successfully.")

    def _clear_sales(self) -> None:
        with self._session_factory() as db:
            removed = SaleRepository(db).clear_all()
            AuditService(db).record_sale_event("sales.clear", None, before={"sales": removed}, after={"sales": 0})

    # -- plumbing ------------------------------------------------------------

    async def _run(self, operation: str, body: Callable[[], Awaitable[OperationOutcome]]) -> OperationOutcome:
        with self._lock:
            self._ensure_idle(operation)
            self._busy = True
        try:
            outcome = await body()
        except AppError as exc:
            metrics.record_operation(operation, "failed")
            log_json(
                logger,
                {"event": "register_operation", "operation": operation, "status": "failed", "error_code": exc.error.code},
                logging.WARNING,
            )
            raise
        finally:
            self._busy = False
        metrics.record_operation(operation, outcome.status)
        log_json(
            logger,
            {
                "event": "register_operation",
                "operation": operation,
                "status": outcome.status,
                "sale_id": outcome.sale_id,
            },
        )
        return outcome

    async def _ask(self, title: str, message: str, options: tuple[DecisionOption, ...]) -> str:
        choice = await self.gateway.ask(title, message, options)
        metrics.record_decision(title, choice)
        return choice

    @contextmanager
    def _editing(self, operation: str):
        with self._lock:
            self._ensure_idle(operation)
            yield

    def _ensure_idle(self, operation: str) -> None:
        if self._busy:
            raise ConflictError(ErrorCatalog.OPERATION_IN_PROGRESS, details={"operation": operation})

    def _mutate(self, **changes) -> None:
        for name, value in changes.items():
            setattr(self.session, name, value)
        self.session.modified = True

    def _reset(self) -> None:
        self.session = TransactionSession(tax_enabled=self._tax_enabled_default)


def log_receipt(receipt: Receipt) -> None:
    log_json(
        logger,
        {
            "event": "receipt_printed",
            "store_name": receipt.store_name,
            "sale_id": receipt.sale_id,
            "lines": len(receipt.lines),
            "total": str(receipt.totals.total),
            "payment_method": receipt.payment_method.value,
        },
    )
