"""
Edit/delete tests: every change ends in a full recompute, mirrored records
move together, and the treasury is left alone.
"""

import pytest

from ledgerdesk.errors import InvalidAmount, NotFound, Overpayment, ValidationError
from ledgerdesk.models import Account, Invoice, LedgerEvent, Order, PartialPayment, TreasuryTransaction
from ledgerdesk.services import balance_service, ledger_service, payment_service, reversal_service


def _balance(db_session, account_id):
    return db_session.get(Account, account_id).cached_balance_cents


class TestDelete:
    def test_reversal_is_exact(self, db_session, customer):
        """
        SCENARIO: Account at 0; create Invoice(1000), then delete it
        EXPECTED: Balance back to exactly 0
        """
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        assert _balance(db_session, customer.id) == 1000

        balance = reversal_service.delete_event(invoice_id)

        assert balance == 0
        assert _balance(db_session, customer.id) == 0
        assert db_session.query(LedgerEvent).count() == 0

    def test_delete_invoice_removes_its_payments(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        payment_service.apply_payment(customer.id, 400, linked_invoice_id=invoice_id)
        ledger_service.create_invoice(customer.id, amount_cents=250)

        assert reversal_service.delete_event(invoice_id) == 250
        assert db_session.query(PartialPayment).count() == 0

    def test_delete_does_not_touch_treasury(self, db_session, customer):
        receipt = ledger_service.create_invoice(
            customer.id, amount_cents=1000, initial_payment_cents=1000, method="cash",
        )
        assert db_session.query(TreasuryTransaction).count() == 1

        reversal_service.delete_event(receipt.invoice_id)

        assert db_session.query(TreasuryTransaction).count() == 1

    def test_delete_merged_event_deletes_order(self, db_session, customer):
        receipt = ledger_service.create_invoice(customer.id, amount_cents=1800, order_number="ORD-7")

        reversal_service.delete_event(receipt.invoice_id)

        assert db_session.query(Order).count() == 0
        assert db_session.query(Invoice).count() == 0

    def test_merged_delete_is_all_or_nothing(self, db_session, customer, monkeypatch):
        """
        SCENARIO: Failure after the order and invoice deletes were flushed
        EXPECTED: Neither representation is gone
        """
        receipt = ledger_service.create_invoice(customer.id, amount_cents=1800, order_number="ORD-8")

        def fail(account_id):
            raise RuntimeError("store went away")

        monkeypatch.setattr(reversal_service, "recompute_in_session", fail)

        with pytest.raises(RuntimeError):
            reversal_service.delete_event(receipt.invoice_id)

        assert db_session.query(Order).filter_by(order_number="ORD-8").count() == 1
        assert db_session.query(Invoice).filter_by(id=receipt.invoice_id).count() == 1
        assert _balance(db_session, customer.id) == 1800

    def test_delete_imported_payment_removes_its_mirror(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        event = ledger_service.record_payment_event(customer.id, 300, linked_invoice_id=invoice_id)
        event_id = event.id

        assert reversal_service.delete_event(event_id) == 1000
        invoice = db_session.get(Invoice, invoice_id)
        assert invoice.payments == []
        assert invoice.total_paid_cents == 0

    def test_delete_unknown(self, db_session):
        with pytest.raises(NotFound):
            reversal_service.delete_event(123456)


class TestEdit:
    def test_edit_invoice_amount(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id

        event = reversal_service.edit_event(invoice_id, {"amount_cents": 1500, "note": "corrected"})

        assert event.amount_cents == 1500
        assert event.note == "corrected"
        assert _balance(db_session, customer.id) == 1500

    def test_edit_invoice_below_paid_rejected(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        payment_service.apply_payment(customer.id, 600, linked_invoice_id=invoice_id)

        with pytest.raises(Overpayment):
            reversal_service.edit_event(invoice_id, {"amount_cents": 500})

        assert db_session.get(Invoice, invoice_id).amount_cents == 1000
        assert _balance(db_session, customer.id) == 400

    def test_edit_invoice_below_paid_allowed(self, db_session, customer, allow_overpayment):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        payment_service.apply_payment(customer.id, 600, linked_invoice_id=invoice_id)

        reversal_service.edit_event(invoice_id, {"amount_cents": 500})

        assert _balance(db_session, customer.id) == -100

    def test_edit_merged_invoice_updates_order_total(self, db_session, customer):
        receipt = ledger_service.create_invoice(customer.id, amount_cents=1800, order_number="ORD-9")

        reversal_service.edit_event(receipt.invoice_id, {"amount_cents": 2000})

        assert db_session.get(Order, receipt.order_id).total_cents == 2000

    def test_edit_line_items(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id

        event = reversal_service.edit_event(invoice_id, {"line_items": [
            {"description": "Milk", "quantity": 4, "unit_price_cents": 90},
        ]})

        assert event.amount_cents == 360
        assert [line.description for line in db_session.get(Invoice, invoice_id).lines] == ["Milk"]
        assert _balance(db_session, customer.id) == 360

    def test_line_items_only_on_invoices(self, db_session, customer):
        receipt = payment_service.apply_payment(customer.id, 100)

        with pytest.raises(ValidationError):
            reversal_service.edit_event(receipt.event_id, {"line_items": [{"unit_price_cents": 5}]})

    def test_bare_amount_edit_on_lined_invoice_rejected(self, db_session, customer):
        """
        SCENARIO: Invoice priced by lines (2 x 150); edit amount_cents to 500
        EXPECTED: ValidationError; amount and lines still agree at 300
        """
        invoice_id = ledger_service.create_invoice(customer.id, line_items=[
            {"description": "Bread", "quantity": 2, "unit_price_cents": 150},
        ]).invoice_id

        with pytest.raises(ValidationError):
            reversal_service.edit_event(invoice_id, {"amount_cents": 500})

        invoice = db_session.get(Invoice, invoice_id)
        assert invoice.amount_cents == 300
        assert sum(line.line_total_cents for line in invoice.lines) == 300
        assert _balance(db_session, customer.id) == 300

    def test_edit_payment_amount(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000)
        receipt = payment_service.apply_payment(customer.id, 100)

        reversal_service.edit_event(receipt.event_id, {"amount_cents": 450})

        assert _balance(db_session, customer.id) == 550

    def test_edit_imported_payment_moves_its_mirror(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        event_id = ledger_service.record_payment_event(customer.id, 300, linked_invoice_id=invoice_id).id

        reversal_service.edit_event(event_id, {"amount_cents": 450})

        invoice = db_session.get(Invoice, invoice_id)
        assert [p.amount_cents for p in invoice.payments] == [450]
        assert invoice.total_paid_cents == 450
        assert _balance(db_session, customer.id) == 550

    def test_edit_opening_balance_may_be_negative(self, db_session, customer):
        event = ledger_service.create_opening_balance(customer.id, 500)

        reversal_service.edit_event(event.id, {"amount_cents": -200})

        assert _balance(db_session, customer.id) == -200

    def test_edit_invoice_to_negative_rejected(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id

        with pytest.raises(InvalidAmount):
            reversal_service.edit_event(invoice_id, {"amount_cents": -5})

    def test_edit_date_reorders_statement(self, db_session, customer):
        first = ledger_service.create_invoice(customer.id, amount_cents=100, occurred_at="2026-01-01").invoice_id
        ledger_service.create_invoice(customer.id, amount_cents=200, occurred_at="2026-01-02")

        reversal_service.edit_event(first, {"occurred_at": "2026-01-03T09:30:00Z"})

        statement = balance_service.get_statement(customer.id)
        assert [e["amount_cents"] for e in statement["events"]] == [200, 100]
        assert statement["events"][1]["occurred_at"] == "2026-01-03T09:30:00Z"

    @pytest.mark.parametrize("patch", [{}, {"kind": "PAYMENT"}, {"account_id": 2}, {"amount_cents": 5, "line_items": []}])
    def test_rejected_patches(self, db_session, customer, patch):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id

        with pytest.raises(ValidationError):
            reversal_service.edit_event(invoice_id, patch)

    def test_edit_unknown(self, db_session):
        with pytest.raises(NotFound):
            reversal_service.edit_event(4242, {"note": "x"})
