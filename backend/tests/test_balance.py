"""
Balance calculator tests: the fold, its ordering and tie-break rules,
determinism, and read-time migration of the legacy paid field.
"""

from datetime import datetime

import pytest

from ledgerdesk.errors import NotFound
from ledgerdesk.models import Account, Invoice, OpeningBalance, Payment, PartialPayment
from ledgerdesk.models.ledger import signed_contribution
from ledgerdesk.services import balance_service, ledger_service, payment_service


def _events_for_fold():
    t = datetime(2026, 1, 1)
    return [
        Invoice(id=6, account_id=1, amount_cents=700, total_paid_cents=0, occurred_at=None),
        Payment(id=3, account_id=1, amount_cents=200, linked_invoice_id=2, occurred_at=t.replace(day=3)),
        OpeningBalance(id=1, account_id=1, amount_cents=500, occurred_at=t),
        Payment(id=5, account_id=1, amount_cents=100, linked_invoice_id=99, occurred_at=t.replace(day=5)),
        Invoice(id=2, account_id=1, amount_cents=1000, total_paid_cents=400, occurred_at=t.replace(day=2)),
        Payment(id=4, account_id=1, amount_cents=150, occurred_at=t.replace(day=4)),
    ]


class TestSignedContribution:
    def test_invoice_contributes_unpaid_remainder(self):
        invoice = Invoice(amount_cents=1000, total_paid_cents=400)
        assert signed_contribution(invoice) == 600

    def test_unlinked_payment_is_negative(self):
        assert signed_contribution(Payment(amount_cents=250)) == -250

    def test_linked_payment_contributes_zero_only_when_invoice_present(self):
        payment = Payment(amount_cents=250, linked_invoice_id=7)
        assert signed_contribution(payment, frozenset({7})) == 0
        assert signed_contribution(payment, frozenset()) == -250

    def test_opening_balance_keeps_its_sign(self):
        assert signed_contribution(OpeningBalance(amount_cents=-300)) == -300


class TestFold:
    def test_final_balance_is_sum_of_contributions(self):
        """
        SCENARIO: Mixed history with linked, unlinked and dangling payments
        EXPECTED: final balance == sum(signed_contribution) under the tie-break
        """
        events = _events_for_fold()
        present = frozenset(e.id for e in events if e.kind == "INVOICE")
        expected = sum(signed_contribution(e, present) for e in events)

        result = balance_service.fold_events(events)

        assert result.balance_cents == expected == 1550

    def test_rows_sorted_by_time_with_undated_last(self):
        result = balance_service.fold_events(_events_for_fold())

        assert [row.event.id for row in result.rows] == [1, 2, 3, 4, 5, 6]
        assert [row.running_balance_cents for row in result.rows] == [500, 1100, 1100, 950, 850, 1550]

    def test_ties_break_on_insertion_order(self):
        t = datetime(2026, 2, 1)
        events = [
            Payment(id=9, account_id=1, amount_cents=10, occurred_at=t),
            Invoice(id=8, account_id=1, amount_cents=100, total_paid_cents=0, occurred_at=t),
        ]
        result = balance_service.fold_events(events)
        assert [row.event.id for row in result.rows] == [8, 9]

    def test_empty_history_is_zero(self):
        assert balance_service.fold_events([]).balance_cents == 0


class TestRecompute:
    def test_recompute_is_deterministic(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000)
        payment_service.apply_payment(customer.id, 300)

        first = balance_service.recompute(customer.id)
        second = balance_service.recompute(customer.id)

        assert first == second == 700
        assert db_session.get(Account, customer.id).cached_balance_cents == 700

    def test_recompute_repairs_drifted_cache(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000)
        account = db_session.get(Account, customer.id)
        account.cached_balance_cents = 12345
        db_session.commit()

        assert balance_service.recompute(customer.id) == 1000
        assert db_session.get(Account, customer.id).cached_balance_cents == 1000

    def test_recompute_all(self, db_session, customer, other_customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000)
        ledger_service.create_invoice(other_customer.id, amount_cents=250)

        results = balance_service.recompute_all()

        assert results == {customer.id: 1000, other_customer.id: 250}

    def test_unknown_account(self, db_session):
        with pytest.raises(NotFound):
            balance_service.recompute(424242)

    def test_linked_payment_is_not_double_counted(self, db_session, customer):
        """
        SCENARIO: Invoice(1000) + payment of 400 against it
        EXPECTED: the invoice contributes exactly 600
        """
        invoice = ledger_service.create_invoice(customer.id, amount_cents=1000)
        receipt = payment_service.apply_payment(customer.id, 400, linked_invoice_id=invoice.invoice_id)

        statement = balance_service.get_statement(customer.id)

        assert receipt.balance_cents == 600
        assert statement["current_balance_cents"] == 600
        assert len(statement["events"]) == 1
        assert statement["events"][0]["contribution_cents"] == 600


class TestStatement:
    def test_statement_running_balance(self, db_session, customer):
        ledger_service.create_opening_balance(customer.id, 500, occurred_at="2026-01-01")
        ledger_service.create_invoice(customer.id, amount_cents=1000, occurred_at="2026-01-02")
        payment_service.apply_payment(customer.id, 300, paid_at="2026-01-03")

        statement = balance_service.get_statement(customer.id)

        assert [e["kind"] for e in statement["events"]] == ["OPENING_BALANCE", "INVOICE", "PAYMENT"]
        assert [e["running_balance_cents"] for e in statement["events"]] == [500, 1500, 1200]
        assert statement["account"]["cached_balance_cents"] == 1200

    def test_backdated_event_sorts_first(self, db_session, customer):
        ledger_service.create_invoice(customer.id, amount_cents=1000, occurred_at="2026-03-01")
        ledger_service.create_invoice(customer.id, amount_cents=200, occurred_at="2026-01-01")

        statement = balance_service.get_statement(customer.id)

        assert [e["amount_cents"] for e in statement["events"]] == [200, 1000]


class TestLegacyPaidField:
    def _legacy_invoice(self, db_session, account_id, legacy, amount=1000):
        invoice = Invoice(
            account_id=account_id,
            amount_cents=amount,
            total_paid_cents=0,
            legacy_payment_cents=legacy,
            occurred_at=datetime(2025, 12, 1),
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice.id

    def test_legacy_payment_migrated_into_payments(self, db_session, customer):
        invoice_id = self._legacy_invoice(db_session, customer.id, 300)

        assert balance_service.recompute(customer.id) == 700

        invoice = db_session.get(Invoice, invoice_id)
        assert invoice.legacy_payment_cents is None
        assert [p.amount_cents for p in invoice.payments] == [300]
        assert invoice.total_paid_cents == 300

    def test_migration_is_idempotent(self, db_session, customer):
        invoice_id = self._legacy_invoice(db_session, customer.id, 300)

        balance_service.recompute(customer.id)
        balance_service.recompute(customer.id)

        assert len(db_session.get(Invoice, invoice_id).payments) == 1

    def test_payments_win_over_legacy_field(self, db_session, customer):
        """
        SCENARIO: Invoice has both a legacy paid figure and recorded payments
        EXPECTED: recorded payments are used, legacy value kept and flagged
        """
        invoice_id = self._legacy_invoice(db_session, customer.id, 300)
        db_session.add(PartialPayment(invoice_id=invoice_id, amount_cents=200))
        db_session.commit()

        statement = balance_service.get_statement(customer.id)

        assert statement["current_balance_cents"] == 800
        row = statement["events"][0]
        assert row["legacy_payment_conflict"] is True
        assert db_session.get(Invoice, invoice_id).legacy_payment_cents == 300

    def test_payment_on_legacy_invoice_builds_on_migrated_amount(self, db_session, customer):
        invoice_id = self._legacy_invoice(db_session, customer.id, 300)

        receipt = payment_service.apply_payment(customer.id, 700, linked_invoice_id=invoice_id)

        assert receipt.balance_cents == 0
        assert db_session.get(Invoice, invoice_id).total_paid_cents == 1000
