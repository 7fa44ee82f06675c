"""
Shift Manager

WHY: Cash accountability. A shift brackets the drawer between an opening
count and a closing count; everything that moved cash through the drawer
in between is tagged with the shift.

DESIGN PRINCIPLES:
- At most one OPEN shift system-wide (checked in-transaction and backed
  by a partial unique index)
- Shifts are immutable once closed
- Variance is reported, never corrected
- Only cash through the drawer counts toward reconciliation
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ShiftAlreadyClosed, ShiftAlreadyOpen, ShiftNotFound, ValidationError
from ..models import Shift, TreasuryTransaction
from ..models.shifts import SHIFT_OPEN, SHIFT_CLOSED
from ..models.treasury import TREASURY_CASH, OPERATION_DEBIT, DESTINATION_DRAWER, SOURCE_EXPENSE
from ..validation import parse_amount_cents, parse_count_cents
from ledgerdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from . import treasury_service

logger = logging.getLogger(__name__)


EXPENSE_CATEGORIES = {
    "operational": ("packaging", "cleaning", "transport", "maintenance", "utilities"),
    "personnel": ("lunch", "daily_wage", "advance", "bonus"),
    "purchases": ("ingredients", "ice", "gas_bottles"),
    "marketing": ("ads", "print"),
    "other": ("misc", "waste"),
}


def validate_category(category: str | None) -> str:
    """
    Accepts "operational" or "operational/cleaning".
    """
    if not category:
        raise ValidationError("category is required")
    top, _, sub = category.partition("/")
    if top not in EXPENSE_CATEGORIES:
        raise ValidationError(f"Unknown expense category: {top}. Must be one of {sorted(EXPENSE_CATEGORIES)}")
    if sub and sub not in EXPENSE_CATEGORIES[top]:
        raise ValidationError(f"Unknown {top} subcategory: {sub}")
    return category


def _get_shift_locked(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise ShiftNotFound(f"Shift {shift_id} not found")
    return shift


# =============================================================================
# LIFECYCLE
# =============================================================================

def start_shift(opening_cents: int, operator_id: str | None = None) -> Shift:
    """
    Open a new shift.

    Raises:
        ShiftAlreadyOpen: another shift is OPEN (including one opened
            concurrently and committed first)
        InvalidAmount: negative opening count
    """
    opening = parse_count_cents(opening_cents, "opening_cents")

    def _op():
        existing = db.session.query(Shift).filter_by(status=SHIFT_OPEN).first()
        if existing:
            raise ShiftAlreadyOpen(f"There is already an open shift (shift {existing.id})")

        shift = Shift(
            status=SHIFT_OPEN,
            opening_cents=opening,
            opened_by=operator_id,
            opened_at=utcnow(),
        )
        db.session.add(shift)
        db.session.flush()
        return shift

    try:
        shift = run_in_transaction(_op)
    except IntegrityError as exc:
        raise ShiftAlreadyOpen("There is already an open shift") from exc

    logger.info("Shift %s opened with %s by %s", shift.id, opening, operator_id)
    return shift


def get_open_shift() -> Shift | None:
    """The single OPEN shift, if any."""
    return db.session.query(Shift).filter_by(status=SHIFT_OPEN).first()


def record_expense(
    shift_id: int,
    amount_cents: int,
    category: str,
    note: str | None = None,
    operator_id: str | None = None,
) -> TreasuryTransaction:
    """
    Cash paid out of the drawer during an OPEN shift.
    """
    amount = parse_amount_cents(amount_cents)
    category = validate_category(category)

    def _op():
        shift = _get_shift_locked(shift_id)
        if shift.status != SHIFT_OPEN:
            raise ShiftAlreadyClosed(f"Shift {shift_id} is closed")

        return treasury_service.append_transaction(
            type=TREASURY_CASH,
            operation=OPERATION_DEBIT,
            amount_cents=amount,
            source=SOURCE_EXPENSE,
            destination=DESTINATION_DRAWER,
            category=category,
            description=note,
            shift_id=shift.id,
            operator_id=operator_id,
        )

    return run_in_transaction(_op)


def close_shift(
    shift_id: int,
    counted_closing_cents: int,
    operator_id: str | None = None,
    notes: str | None = None,
) -> Shift:
    """
    Close a shift and reconcile the drawer.

    expected_closing = opening + cash credits - cash debits (drawer only)
    net_sales        = expected_closing - opening
    variance         = counted - expected_closing
    """
    counted = parse_count_cents(counted_closing_cents, "counted_closing_cents")

    def _op():
        shift = _get_shift_locked(shift_id)
        if shift.status != SHIFT_OPEN:
            raise ShiftAlreadyClosed(f"Shift {shift_id} already closed")

        totals = treasury_service.drawer_totals(shift.id)
        expected = shift.opening_cents + totals["credits_cents"] - totals["debits_cents"]

        shift.status = SHIFT_CLOSED
        shift.closed_at = utcnow()
        shift.closed_by = operator_id
        shift.closing_cents = counted
        shift.expected_closing_cents = expected
        shift.net_sales_cents = expected - shift.opening_cents
        shift.variance_cents = counted - expected
        shift.total_expenses_cents = totals["expenses_cents"]
        shift.total_collected_cents = totals["collected_cents"]
        shift.notes = notes
        db.session.flush()
        return shift

    shift = run_in_transaction(_op)
    logger.info(
        "Shift %s closed: expected %s, counted %s, variance %s",
        shift.id, shift.expected_closing_cents, shift.closing_cents, shift.variance_cents,
    )
    return shift


# =============================================================================
# REPORTING
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise ShiftNotFound(f"Shift {shift_id} not found")
    return shift


def get_shift_summary(shift_id: int) -> dict:
    """
    Shift details plus its treasury movements.

    For an OPEN shift the expected drawer amount is computed live.
    """
    shift = get_shift(shift_id)
    totals = treasury_service.drawer_totals(shift.id)
    transactions = treasury_service.list_transactions(shift_id=shift.id, limit=1000)

    expected = shift.expected_closing_cents
    if shift.is_open:
        expected = shift.opening_cents + totals["credits_cents"] - totals["debits_cents"]

    return {
        "shift": shift.to_dict(),
        "expected_closing_cents": expected,
        "drawer": totals,
        "bank_cents": treasury_service.balance_as_of("bank", shift_id=shift.id),
        "transactions": [t.to_dict() for t in transactions],
        "is_closed": shift.status == SHIFT_CLOSED,
    }


def list_shifts(limit: int = 20) -> list[Shift]:
    return db.session.query(Shift).order_by(Shift.opened_at.desc(), Shift.id.desc()).limit(limit).all()
