"""
Shift manager tests: lifecycle, single open shift, drawer reconciliation.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from ledgerdesk.errors import InvalidAmount, ShiftAlreadyClosed, ShiftAlreadyOpen, ShiftNotFound, ValidationError
from ledgerdesk.models import Shift
from ledgerdesk.services import payment_service, shift_service, treasury_service


class TestLifecycle:
    def test_start_shift(self, db_session):
        shift = shift_service.start_shift(5000, operator_id="cashier-1")

        assert shift.status == "OPEN"
        assert shift.opening_cents == 5000
        assert shift.opened_by == "cashier-1"
        assert shift_service.get_open_shift().id == shift.id

    def test_only_one_open_shift(self, db_session, open_shift):
        with pytest.raises(ShiftAlreadyOpen):
            shift_service.start_shift(1000)

    def test_store_enforces_single_open_shift(self, db_session, open_shift):
        db_session.add(Shift(status="OPEN", opening_cents=0))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_zero_opening_is_fine_negative_is_not(self, db_session):
        with pytest.raises(InvalidAmount):
            shift_service.start_shift(-1)
        assert shift_service.start_shift(0).opening_cents == 0

    def test_no_open_shift(self, db_session):
        assert shift_service.get_open_shift() is None

    def test_new_shift_after_close(self, db_session, open_shift):
        shift_service.close_shift(open_shift.id, 5000)

        second = shift_service.start_shift(4000)

        assert second.id != open_shift.id
        assert [s.id for s in shift_service.list_shifts()] == [second.id, open_shift.id]


class TestReconciliation:
    def test_reconciliation(self, db_session, customer, open_shift):
        """
        SCENARIO: start(5000), expense 300, cash payment 2000, close counted 6700
        EXPECTED: expected 6700, net sales 1700, variance 0
        """
        shift_service.record_expense(open_shift.id, 300, "operational/cleaning", note="soap")
        payment_service.apply_payment(customer.id, 2000, method="cash")

        shift = shift_service.close_shift(open_shift.id, 6700, operator_id="manager-1")

        assert shift.status == "CLOSED"
        assert shift.expected_closing_cents == 6700
        assert shift.net_sales_cents == 1700
        assert shift.variance_cents == 0
        assert shift.closing_cents == 6700
        assert shift.total_expenses_cents == 300
        assert shift.total_collected_cents == 2000
        assert shift.closed_by == "manager-1"
        assert shift.closed_at is not None

    def test_variance_is_reported_not_corrected(self, db_session, open_shift):
        shift = shift_service.close_shift(open_shift.id, 4800)

        assert shift.expected_closing_cents == 5000
        assert shift.variance_cents == -200
        assert shift.closing_cents == 4800

    def test_bank_and_safe_are_excluded(self, db_session, customer, open_shift):
        payment_service.apply_payment(customer.id, 900, method="bank")
        treasury_service.record_manual("cash", "credit", 10000)

        shift = shift_service.close_shift(open_shift.id, 5000)

        assert shift.expected_closing_cents == 5000
        assert shift.net_sales_cents == 0

    def test_offset_expense_nets_out(self, db_session, open_shift):
        expense = shift_service.record_expense(open_shift.id, 300, "marketing/print")
        treasury_service.record_offset(expense.id, reason="wrong drawer")

        shift = shift_service.close_shift(open_shift.id, 5000)

        assert shift.expected_closing_cents == 5000
        assert shift.total_expenses_cents == 0

    def test_offset_collection_nets_out(self, db_session, customer, open_shift):
        """
        SCENARIO: start(5000), cash payment 2000, its treasury row offset, close counted 5000
        EXPECTED: collected 0, expected 5000, variance 0
        """
        receipt = payment_service.apply_payment(customer.id, 2000, method="cash")
        treasury_service.record_offset(receipt.treasury_transaction_id, reason="rung up twice")

        shift = shift_service.close_shift(open_shift.id, 5000)

        assert shift.total_collected_cents == 0
        assert shift.expected_closing_cents == 5000
        assert shift.net_sales_cents == 0
        assert shift.variance_cents == 0

    def test_live_summary(self, db_session, customer, open_shift):
        payment_service.apply_payment(customer.id, 1200, method="cash")
        shift_service.record_expense(open_shift.id, 200, "other")

        summary = shift_service.get_shift_summary(open_shift.id)

        assert summary["expected_closing_cents"] == 6000
        assert summary["drawer"] == {
            "credits_cents": 1200,
            "debits_cents": 200,
            "expenses_cents": 200,
            "collected_cents": 1200,
        }
        assert len(summary["transactions"]) == 2
        assert summary["is_closed"] is False


class TestMisuse:
    def test_close_twice(self, db_session, open_shift):
        shift_service.close_shift(open_shift.id, 5000)
        with pytest.raises(ShiftAlreadyClosed):
            shift_service.close_shift(open_shift.id, 5000)

    def test_close_unknown(self, db_session):
        with pytest.raises(ShiftNotFound):
            shift_service.close_shift(31, 0)

    def test_expense_on_closed_shift(self, db_session, open_shift):
        shift_service.close_shift(open_shift.id, 5000)
        with pytest.raises(ShiftAlreadyClosed):
            shift_service.record_expense(open_shift.id, 100, "other")

    @pytest.mark.parametrize("category", [None, "", "travel", "personnel/yacht"])
    def test_bad_category(self, db_session, open_shift, category):
        with pytest.raises(ValidationError):
            shift_service.record_expense(open_shift.id, 100, category)

    def test_negative_count(self, db_session, open_shift):
        with pytest.raises(InvalidAmount):
            shift_service.close_shift(open_shift.id, -1)
