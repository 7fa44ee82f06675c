"""
Ledger event creation tests: invoices (amount, line items, catalog prices,
initial payment, mirrored orders), opening balances and imported payments.
"""

import pytest

from ledgerdesk.errors import Conflict, InvalidAmount, NotFound, Overpayment, ValidationError
from ledgerdesk.models import Account, Invoice, LedgerEvent, OpeningBalance, Order, PartialPayment, TreasuryTransaction
from ledgerdesk.services import balance_service, ledger_service


class TestCreateInvoice:
    def test_invoice_from_amount(self, db_session, customer):
        receipt = ledger_service.create_invoice(
            customer.id, amount_cents=1000, note="crates", attachment_ref="bills/17.pdf",
        )

        assert receipt.balance_cents == 1000
        invoice = db_session.get(Invoice, receipt.invoice_id)
        assert invoice.attachment_ref == "bills/17.pdf"
        assert invoice.total_paid_cents == 0
        assert db_session.get(Account, customer.id).last_activity_at is not None

    def test_invoice_from_line_items(self, db_session, customer):
        receipt = ledger_service.create_invoice(customer.id, line_items=[
            {"description": "Bread", "quantity": 2, "unit_price_cents": 150},
            {"description": "Cheese", "quantity": "1.5", "unit_price_cents": 333},
        ])

        # 2 * 150 + round_half_up(1.5 * 333 = 499.5)
        assert receipt.amount_cents == 800
        invoice = db_session.get(Invoice, receipt.invoice_id)
        assert [line.line_total_cents for line in invoice.lines] == [300, 500]

    def test_line_prices_from_catalog(self, app, db_session, customer, monkeypatch):
        monkeypatch.setitem(app.config, "LEDGER_PRICE_LOOKUP", {"SKU-1": 250}.get)

        receipt = ledger_service.create_invoice(customer.id, line_items=[{"product_id": "SKU-1", "quantity": 3}])

        assert receipt.amount_cents == 750

    def test_unknown_catalog_product(self, app, db_session, customer, monkeypatch):
        monkeypatch.setitem(app.config, "LEDGER_PRICE_LOOKUP", {"SKU-1": 250}.get)

        with pytest.raises(NotFound):
            ledger_service.create_invoice(customer.id, line_items=[{"product_id": "SKU-404"}])

    def test_product_without_price_lookup(self, db_session, customer):
        with pytest.raises(ValidationError):
            ledger_service.create_invoice(customer.id, line_items=[{"product_id": "SKU-1"}])

    @pytest.mark.parametrize("kwargs", [
        {},
        {"amount_cents": 100, "line_items": [{"unit_price_cents": 100}]},
        {"line_items": []},
        {"line_items": [{"quantity": 0, "unit_price_cents": 100}]},
    ])
    def test_invalid_shapes(self, db_session, customer, kwargs):
        with pytest.raises(ValidationError):
            ledger_service.create_invoice(customer.id, **kwargs)

    @pytest.mark.parametrize("amount", [0, -100, 2.5])
    def test_invalid_amount(self, db_session, customer, amount):
        with pytest.raises(InvalidAmount):
            ledger_service.create_invoice(customer.id, amount_cents=amount)

    def test_bad_date(self, db_session, customer):
        with pytest.raises(ValidationError):
            ledger_service.create_invoice(customer.id, amount_cents=100, occurred_at="yesterday")

    def test_initial_payment_is_first_partial_payment(self, db_session, customer, open_shift):
        receipt = ledger_service.create_invoice(
            customer.id, amount_cents=1000, initial_payment_cents=400, method="cash",
        )

        assert receipt.balance_cents == 600
        invoice = db_session.get(Invoice, receipt.invoice_id)
        assert [p.amount_cents for p in invoice.payments] == [400]
        assert invoice.legacy_payment_cents is None
        assert receipt.initial_payment.partial_payment_id == invoice.payments[0].id

        txn = db_session.get(TreasuryTransaction, receipt.initial_payment.treasury_transaction_id)
        assert (txn.operation, txn.destination, txn.shift_id) == ("credit", "drawer", open_shift.id)

    def test_initial_payment_over_amount_rolls_back(self, db_session, customer):
        with pytest.raises(Overpayment):
            ledger_service.create_invoice(customer.id, amount_cents=1000, initial_payment_cents=1500)

        assert db_session.query(LedgerEvent).count() == 0
        assert db_session.query(PartialPayment).count() == 0

    def test_mirrored_order(self, db_session, customer):
        receipt = ledger_service.create_invoice(customer.id, amount_cents=1800, order_number="ORD-1001")

        order = db_session.get(Order, receipt.order_id)
        assert order.order_number == "ORD-1001"
        assert order.total_cents == 1800
        assert order.ledger_event.id == receipt.invoice_id

    def test_duplicate_order_number(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1800, order_number="ORD-1001")

        with pytest.raises(Conflict):
            ledger_service.create_invoice(customer.id, amount_cents=900, order_number="ORD-1001")

        assert db_session.query(Invoice).count() == 1

    def test_unknown_account(self, db_session):
        with pytest.raises(NotFound):
            ledger_service.create_invoice(5555, amount_cents=100)


class TestOpeningBalance:
    def test_positive_and_negative(self, db_session, customer, other_customer):
        ledger_service.create_opening_balance(customer.id, 2500)
        ledger_service.create_opening_balance(other_customer.id, -700, note="prepaid")

        assert balance_service.recompute(customer.id) == 2500
        assert balance_service.recompute(other_customer.id) == -700

    def test_zero_rejected(self, db_session, customer):
        with pytest.raises(InvalidAmount):
            ledger_service.create_opening_balance(customer.id, 0)


class TestModelAmountGuard:
    """
    SCENARIO: Rows built directly on the models, bypassing the services
    EXPECTED: Same amount rules as the services enforce
    """

    @pytest.mark.parametrize("amount", [0, -5])
    def test_invoice_and_payment_must_be_positive(self, db_session, customer, amount):
        with pytest.raises(InvalidAmount):
            Invoice(account_id=customer.id, amount_cents=amount)
        with pytest.raises(InvalidAmount):
            PartialPayment(amount_cents=amount)

    def test_opening_balance_signed_but_non_zero(self, db_session, customer):
        assert OpeningBalance(account_id=customer.id, amount_cents=-300).amount_cents == -300
        with pytest.raises(InvalidAmount):
            OpeningBalance(account_id=customer.id, amount_cents=0)

    def test_assignment_is_checked_too(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        invoice = db_session.get(Invoice, invoice_id)

        with pytest.raises(InvalidAmount):
            invoice.amount_cents = -1
        assert invoice.amount_cents == 1000


class TestImportedPaymentEvents:
    def test_linked_payment_event_is_mirrored_into_invoice(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id

        event = ledger_service.record_payment_event(customer.id, 300, linked_invoice_id=invoice_id)

        invoice = db_session.get(Invoice, invoice_id)
        assert [(p.amount_cents, p.source_event_id) for p in invoice.payments] == [(300, event.id)]
        # The raw payment contributes zero; the invoice carries it
        assert balance_service.recompute(customer.id) == 700

    def test_unlinked_payment_event(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000)
        ledger_service.record_payment_event(customer.id, 250)

        assert balance_service.recompute(customer.id) == 750

    def test_linked_to_missing_invoice(self, db_session, customer):
        with pytest.raises(NotFound):
            ledger_service.record_payment_event(customer.id, 250, linked_invoice_id=31337)

        assert db_session.query(LedgerEvent).count() == 0

    def test_get_event(self, db_session, customer):
        invoice_id = ledger_service.create_invoice(customer.id, amount_cents=1000).invoice_id
        assert ledger_service.get_event(invoice_id).kind == "INVOICE"
        with pytest.raises(NotFound):
            ledger_service.get_event(invoice_id + 100)
