import asyncio
import logging
import threading
import time
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from app.register.core.error_catalog import ConflictError, NotFoundError, RegisterValidationError, StoreError
from app.register.db.models import AuditEvent, Product, Sale, SaleLine
from app.register.repos.audit import AuditRepository
from app.register.repos.products import ProductRepository
from app.register.services.decisions import DecisionGateway
from app.register.services.register import PaymentMethod, RegisterController
from app.register.services.tax_rate import TaxRateConfig
from tests.register_helpers import (
    DEFAULT_RATE,
    count_rows,
    make_register,
    ring_up,
    run,
    sale_header,
    sale_line_rows,
)


def _cart_rows(register):
    return [(line.product_name, line.quantity, line.unit_price, line.line_total) for line in register.session.cart]


# -- cart edits ----------------------------------------------------------------


def test_add_item_uses_catalog_price_and_marks_modified(session_factory):
    register, _ = make_register(session_factory)

    register.add_item("Bat45")
    register.add_item("Bat45")

    assert _cart_rows(register) == [("Bat45", 2, Decimal("45.00"), Decimal("90.00"))]
    assert register.session.modified is True
    totals = register.totals()
    assert (totals.subtotal, totals.tax, totals.total) == (Decimal("90.00"), Decimal("6.86"), Decimal("96.86"))


def test_add_unknown_product_is_not_found_and_changes_nothing(session_factory):
    register, _ = make_register(session_factory)

    with pytest.raises(NotFoundError) as excinfo:
        register.add_item("Nope")

    assert excinfo.value.error.code == "PRODUCT_NOT_FOUND"
    assert register.session.cart == ()
    assert register.session.modified is False


def test_unreadable_catalog_fails_add_with_store_error(engine, session_factory):
    register, _ = make_register(session_factory)
    register.add_item("Bat45")
    Product.__table__.drop(engine)

    with pytest.raises(StoreError):
        register.add_item("Bat65")

    assert _cart_rows(register) == [("Bat45", 1, Decimal("45.00"), Decimal("45.00"))]


def test_negative_catalog_prices_reduce_subtotal(session_factory):
    register, _ = make_register(session_factory)

    register.add_item("Bat65")
    register.add_item("RCoreDep16")

    assert register.totals().subtotal == Decimal("49.00")


def test_tax_and_payment_setters_only_mark_real_changes(session_factory):
    register, _ = make_register(session_factory)

    register.set_tax_enabled(True)
    register.set_payment_method(None)
    assert register.session.modified is False

    register.set_payment_method("Card")
    assert register.session.payment_method is PaymentMethod.CARD
    assert register.session.modified is True


def test_unknown_payment_method_is_rejected(session_factory):
    register, _ = make_register(session_factory)

    with pytest.raises(RegisterValidationError):
        register.set_payment_method("Barter")
    assert register.session.payment_method is None


def test_tax_rate_change_applies_to_next_total(session_factory):
    register, _ = make_register(session_factory)
    register.add_item("Bat100")
    assert register.totals().tax == Decimal("7.63")

    register.tax_config.set("0.1")

    assert register.totals().tax == Decimal("10.00")
    assert register.snapshot().tax_rate == Decimal("0.1")


# -- save ------------------------------------------------------------------------


def test_save_requires_items_then_payment_method(session_factory):
    register, _ = make_register(session_factory)

    with pytest.raises(RegisterValidationError) as excinfo:
        run(register.save())
    assert excinfo.value.error.code == "EMPTY_CART"

    register.add_item("Bat45")
    with pytest.raises(RegisterValidationError) as excinfo:
        run(register.save())
    assert excinfo.value.error.code == "MISSING_PAYMENT_METHOD"
    assert count_rows(session_factory, Sale) == 0
    assert register.busy is False


def test_first_save_persists_new_sale_without_asking(session_factory):
    register, gateway = make_register(session_factory)
    ring_up(register, "Bat45", "Bat45", "CoreDep16")

    outcome = run(register.save())

    assert outcome.completed
    assert outcome.message == f"Sale saved: {outcome.sale_id}"
    assert gateway.asked == []
    assert register.session.current_sale_id == outcome.sale_id
    assert register.session.modified is False
    assert sale_header(session_factory, outcome.sale_id) == (106.0, 8.08, 114.08, "Cash")
    assert sale_line_rows(session_factory, outcome.sale_id) == [
        ("Bat45", 2, 45.0, 90.0),
        ("CoreDep16", 1, 16.0, 16.0),
    ]
    with session_factory() as db:
        events = AuditRepository(db).list_for_entity("sale", str(outcome.sale_id))
    assert [event.action for event in events] == ["sale.create"]


def test_overwrite_twice_keeps_id_and_records(session_factory):
    register, gateway = make_register(session_factory, answers=["overwrite", "overwrite"])
    ring_up(register, "Bat45", "Bat45", "Adj1")
    sale_id = run(register.save()).sale_id

    first = run(register.save())
    header_after_first = sale_header(session_factory, sale_id)
    second = run(register.save())

    assert first.sale_id == second.sale_id == sale_id
    assert gateway.asked == ["Duplicate Sale", "Duplicate Sale"]
    assert sale_header(session_factory, sale_id) == header_after_first
    assert len(sale_line_rows(session_factory, sale_id)) == len(register.session.cart)
    assert count_rows(session_factory, Sale) == 1
    assert count_rows(session_factory, SaleLine) == 2


def test_overwrite_replaces_lines_with_edited_cart(session_factory):
    register, _ = make_register(session_factory, answers=["overwrite"])
    ring_up(register, "Bat45", "Adj1")
    sale_id = run(register.save()).sale_id

    register.remove_item(1)
    register.set_quantity(0, 3)
    run(register.save())

    assert sale_line_rows(session_factory, sale_id) == [("Bat45", 3, 45.0, 135.0)]


def test_save_as_new_leaves_original_sale_untouched(session_factory):
    register, _ = make_register(session_factory, answers=["new"])
    ring_up(register, "Bat80")
    original_id = run(register.save()).sale_id
    original_lines = sale_line_rows(session_factory, original_id)

    register.add_item("BatUp5")
    outcome = run(register.save())

    assert outcome.sale_id != original_id
    assert register.session.current_sale_id == outcome.sale_id
    assert sale_line_rows(session_factory, original_id) == original_lines
    assert len(sale_line_rows(session_factory, outcome.sale_id)) == 2


@pytest.mark.parametrize("answers", [["cancel"], []])
def test_cancelled_duplicate_dialog_writes_nothing(session_factory, answers):
    register, _ = make_register(session_factory)
    ring_up(register, "Bat80")
    sale_id = run(register.save()).sale_id
    register.add_item("Bat80")
    register.gateway.answers.extend(answers)

    outcome = run(register.save())

    assert outcome.status == "declined"
    assert register.session.modified is True
    assert register.session.current_sale_id == sale_id
    assert sale_line_rows(session_factory, sale_id) == [("Bat80", 1, 80.0, 80.0)]


def test_store_failure_leaves_session_and_store_unchanged(engine, session_factory):
    register, _ = make_register(session_factory)
    ring_up(register, "Bat45")
    SaleLine.__table__.drop(engine)

    with pytest.raises(StoreError) as excinfo:
        run(register.save())

    assert excinfo.value.error.code == "STORE_ERROR"
    assert excinfo.value.cause is not None
    assert register.session.current_sale_id is None
    assert register.session.modified is True
    assert count_rows(session_factory, Sale) == 0


# -- load ------------------------------------------------------------------------


def test_load_reconstructs_saved_cart_in_order(session_factory):
    register, _ = make_register(session_factory)
    ring_up(register, "CoreDep20", "Bat45", "Bat45", "OJB-10c", method="Check")
    saved_rows = _cart_rows(register)
    sale_id = run(register.save()).sale_id

    other, _ = make_register(session_factory)
    outcome = run(other.load(sale_id))

    assert outcome.completed
    assert _cart_rows(other) == saved_rows
    assert other.session.payment_method is PaymentMethod.CHECK
    assert other.session.current_sale_id == sale_id
    assert other.session.modified is False
    assert other.session.tax_enabled is True


def test_load_keeps_the_tax_toggle(session_factory):
    register, _ = make_register(session_factory, answers=["new"])
    ring_up(register, "Bat45")
    register.set_tax_enabled(False)
    untaxed_id = run(register.save()).sale_id
    register.set_tax_enabled(True)
    taxed_id = run(register.save()).sale_id

    taxing, _ = make_register(session_factory)
    run(taxing.load(untaxed_id))
    not_taxing, _ = make_register(session_factory, tax_enabled_default=False)
    run(not_taxing.load(taxed_id))

    assert taxing.session.tax_enabled is True
    assert taxing.totals().tax == Decimal("3.43")
    assert not_taxing.session.tax_enabled is False
    assert not_taxing.totals().tax == Decimal("0.00")


def test_unreadable_sales_table_fails_load_with_store_error(engine, session_factory):
    register, _ = make_register(session_factory)
    ring_up(register, "Bat45")
    sale_id = run(register.save()).sale_id
    register.add_item("Bat65")
    Sale.__table__.drop(engine)

    with pytest.raises(StoreError) as excinfo:
        run(register.load(sale_id))

    assert excinfo.value.error.code == "STORE_ERROR"
    assert excinfo.value.cause is not None
    assert [line.product_name for line in register.session.cart] == ["Bat45", "Bat65"]
    assert register.session.current_sale_id == sale_id
    assert register.busy is False


def test_load_missing_sale_is_not_found(session_factory):
    register, gateway = make_register(session_factory)
    register.add_item("Bat45")

    with pytest.raises(NotFoundError) as excinfo:
        run(register.load(999))

    assert excinfo.value.error.code == "SALE_NOT_FOUND"
    assert gateway.asked == []
    assert len(register.session.cart) == 1


def test_load_over_unsaved_changes_asks_first(session_factory):
    register, gateway = make_register(session_factory, answers=["cancel", "load"])
    ring_up(register, "Bat45")
    sale_id = run(register.save()).sale_id
    register.add_item("Bat65")
    before = _cart_rows(register)

    declined = run(register.load(sale_id))
    assert declined.status == "declined"
    assert _cart_rows(register) == before
    assert register.session.modified is True

    loaded = run(register.load(sale_id))
    assert loaded.completed
    assert gateway.asked == ["Unsaved Changes", "Unsaved Changes"]
    assert [row[0] for row in _cart_rows(register)] == ["Bat45"]


def test_load_without_unsaved_gate_discards_silently(session_factory):
    register, gateway = make_register(session_factory, confirm_load_over_unsaved=False)
    ring_up(register, "Bat45")
    sale_id = run(register.save()).sale_id
    register.add_item("Bat65")

    run(register.load(sale_id))

    assert gateway.asked == []
    assert [row[0] for row in _cart_rows(register)] == ["Bat45"]


# -- delete ----------------------------------------------------------------------


def test_delete_removes_sale_and_lines(session_factory):
    register, gateway = make_register(session_factory, answers=["delete"])
    ring_up(register, "Bat45", "Adj1")
    sale_id = run(register.save()).sale_id
    run(register.new())

    outcome = run(register.delete(sale_id))

    assert outcome.completed
    assert outcome.message == f"Deleted sale: {sale_id}"
    assert gateway.asked == ["Delete Sale"]
    assert sale_header(session_factory, sale_id) is None
    assert sale_line_rows(session_factory, sale_id) == []
    with pytest.raises(NotFoundError):
        run(register.load(sale_id))


def test_deleting_current_sale_resets_session(session_factory):
    register, _ = make_register(session_factory, answers=["delete"])
    ring_up(register, "Bat45")
    run(register.save())

    run(register.delete())

    assert register.session.cart == ()
    assert register.session.current_sale_id is None
    assert register.session.modified is False


def test_delete_declined_keeps_everything(session_factory):
    register, _ = make_register(session_factory, answers=["cancel"])
    ring_up(register, "Bat45")
    sale_id = run(register.save()).sale_id

    outcome = run(register.delete())

    assert outcome.status == "declined"
    assert register.session.current_sale_id == sale_id
    assert sale_header(session_factory, sale_id) is not None


def test_delete_needs_a_sale_id(session_factory):
    register, _ = make_register(session_factory)

    with pytest.raises(RegisterValidationError) as excinfo:
        run(register.delete())
    assert excinfo.value.error.code == "SALE_ID_REQUIRED"

    with pytest.raises(NotFoundError):
        run(register.delete(42))


def test_deleted_ids_are_not_reused(session_factory):
    register, _ = make_register(session_factory, answers=["delete"])
    ring_up(register, "Bat45")
    first_id = run(register.save()).sale_id
    run(register.delete())

    ring_up(register, "Bat45")
    second_id = run(register.save()).sale_id

    assert second_id > first_id


def test_failed_delete_commit_keeps_sale_and_session(session_factory):
    register, _ = make_register(session_factory, answers=["delete"])
    ring_up(register, "Bat45", "Adj1")
    sale_id = run(register.save()).sale_id
    header = sale_header(session_factory, sale_id)
    lines = sale_line_rows(session_factory, sale_id)

    def failing_commit(session):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    event.listen(session_factory, "before_commit", failing_commit)
    try:
        with pytest.raises(StoreError) as excinfo:
            run(register.delete())
    finally:
        event.remove(session_factory, "before_commit", failing_commit)

    assert excinfo.value.error.code == "STORE_ERROR"
    assert sale_header(session_factory, sale_id) == header
    assert sale_line_rows(session_factory, sale_id) == lines
    assert register.session.current_sale_id == sale_id
    assert register.session.modified is False
    assert register.busy is False


# -- print -----------------------------------------------------------------------


def test_print_dirty_sale_cancelled_writes_and_prints_nothing(session_factory):
    register, gateway = make_register(session_factory, answers=["cancel"])
    ring_up(register, "Bat45")

    outcome = run(register.print_receipt())

    assert outcome.status == "declined"
    assert gateway.asked == ["Save Required"]
    assert register.session.modified is True
    assert register.printed == []
    assert count_rows(session_factory, Sale) == 0


def test_print_unsaved_sale_saves_then_prints(session_factory):
    register, gateway = make_register(session_factory, answers=["save"], store_name="Recon Battery Warehouse")
    ring_up(register, "Bat45", "Bat45")

    outcome = run(register.print_receipt())

    assert outcome.completed
    assert gateway.asked == ["Save Required"]
    receipt = outcome.receipt
    assert receipt.sale_id == register.session.current_sale_id
    assert receipt.store_name == "Recon Battery Warehouse"
    assert receipt.totals.total == Decimal("96.86")
    assert register.printed == [receipt]


def test_print_modified_sale_stops_when_duplicate_dialog_cancelled(session_factory):
    register, gateway = make_register(session_factory, answers=["save", "cancel"])
    ring_up(register, "Bat45")
    sale_id = run(register.save()).sale_id
    register.add_item("Adj1")

    outcome = run(register.print_receipt())

    assert outcome.status == "declined"
    assert gateway.asked == ["Save Required", "Duplicate Sale"]
    assert register.printed == []
    assert sale_line_rows(session_factory, sale_id) == [("Bat45", 1, 45.0, 45.0)]


def test_print_clean_saved_sale_prints_straight_away(session_factory):
    register, gateway = make_register(session_factory)
    ring_up(register, "Bat45")
    run(register.save())

    outcome = run(register.print_receipt())

    assert outcome.completed
    assert gateway.asked == []
    assert len(register.printed) == 1


# -- new / clear history -----------------------------------------------------------


def test_new_asks_only_when_there_is_unsaved_work(session_factory):
    register, gateway = make_register(session_factory, answers=["cancel", "clear"])
    ring_up(register, "Bat45")

    assert run(register.new()).status == "declined"
    assert len(register.session.cart) == 1

    assert run(register.new()).completed
    assert register.session.cart == ()
    assert register.session.payment_method is None
    assert gateway.asked == ["Clear Sale", "Clear Sale"]

    assert run(register.new()).completed
    assert gateway.asked == ["Clear Sale", "Clear Sale"]


def test_new_restores_configured_tax_default(session_factory):
    register, _ = make_register(session_factory, tax_enabled_default=False)
    register.set_tax_enabled(True)
    register.session.modified = False

    run(register.new())

    assert register.session.tax_enabled is False


def test_clear_history_removes_all_sales(session_factory):
    register, _ = make_register(session_factory, answers=["reset"])
    ring_up(register, "Bat45")
    run(register.save())
    register.add_item("Adj1")

    outcome = run(register.clear_history())

    assert outcome.message == "Database cleared successfully."
    assert count_rows(session_factory, Sale) == 0
    assert count_rows(session_factory, SaleLine) == 0
    assert register.session.current_sale_id is None
    assert register.session.modified is True
    assert len(register.session.cart) == 2
    with session_factory() as db:
        assert db.query(AuditEvent).filter(AuditEvent.action == "sales.clear").count() == 1


def test_clear_history_declined(session_factory):
    register, _ = make_register(session_factory)
    ring_up(register, "Bat45")
    run(register.save())

    assert run(register.clear_history()).status == "declined"
    assert count_rows(session_factory, Sale) == 1


# -- serialization -------------------------------------------------------------------


def test_register_refuses_work_while_an_operation_waits(session_factory):
    gateway = DecisionGateway()
    register = RegisterController(session_factory, gateway, TaxRateConfig(session_factory, DEFAULT_RATE))
    ring_up(register, "Bat45")

    async def scenario():
        pending = asyncio.ensure_future(register.new())
        decision = await gateway.next_question()
        assert register.busy is True
        with pytest.raises(ConflictError) as excinfo:
            register.add_item("Adj1")
        assert excinfo.value.error.code == "OPERATION_IN_PROGRESS"
        with pytest.raises(ConflictError):
            await register.save()
        gateway.answer(decision.id, "cancel")
        return await pending

    outcome = run(scenario())

    assert outcome.status == "declined"
    assert register.busy is False
    assert len(register.session.cart) == 1


def test_operation_waits_for_cart_edit_already_in_progress(session_factory, monkeypatch):
    gateway = DecisionGateway()
    register = RegisterController(session_factory, gateway, TaxRateConfig(session_factory, DEFAULT_RATE))
    ring_up(register, "Bat45")
    looking_up = threading.Event()
    price_for = ProductRepository.price_for

    def slow_price_for(self, name):
        looking_up.set()
        time.sleep(0.3)
        return price_for(self, name)

    monkeypatch.setattr(ProductRepository, "price_for", slow_price_for)
    errors = []

    def edit():
        try:
            register.add_item("Bat65")
        except Exception as exc:
            errors.append(exc)

    worker = threading.Thread(target=edit)
    worker.start()
    assert looking_up.wait(5)

    async def scenario():
        pending = asyncio.ensure_future(register.new())
        decision = await gateway.next_question()
        cart_at_question = [line.product_name for line in register.session.cart]
        gateway.answer(decision.id, "cancel")
        await pending
        return cart_at_question

    cart_at_question = run(scenario())
    worker.join(5)

    assert errors == []
    assert cart_at_question == ["Bat45", "Bat65"]
    assert [line.product_name for line in register.session.cart] == ["Bat45", "Bat65"]


def test_operations_are_logged(session_factory, caplog):
    caplog.set_level(logging.INFO, logger="register.engine")
    register, _ = make_register(session_factory)
    ring_up(register, "Bat45")

    run(register.save())

    messages = [record.getMessage() for record in caplog.records if record.name == "register.engine"]
    assert any('"operation": "save"' in message and '"status": "completed"' in message for message in messages)
