# Overview: Treasury ledger; append-only log of cash and bank movements.

"""
Treasury Ledger

DESIGN PRINCIPLES:
- Append-only: rows are never updated or deleted
- Corrections are offsetting rows (opposite operation, same amount)
- Independent of account debt: ledger edits/deletes never touch treasury
- Movements are tagged with the open shift when one exists
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from ..extensions import db
from ..errors import Conflict, NotFound, ShiftAlreadyClosed, ShiftNotFound, ValidationError
from ..models import Shift, TreasuryTransaction
from ..models.shifts import SHIFT_OPEN
from ..models.treasury import (
    VALID_TREASURY_TYPES,
    VALID_OPERATIONS,
    VALID_DESTINATIONS,
    OPERATION_CREDIT,
    OPERATION_DEBIT,
    TREASURY_CASH,
    DESTINATION_DRAWER,
    DESTINATION_SAFE,
    DESTINATION_BANK,
    SOURCE_EXPENSE,
    SOURCE_MANUAL_DEPOSIT,
    SOURCE_MANUAL_WITHDRAW,
    SOURCE_OFFSET,
    DESCRIPTION_MAX_LENGTH,
)
from ..validation import parse_amount_cents
from ledgerdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction

# Sentinel: tag with whatever shift is open at write time
CURRENT_SHIFT = object()


def get_open_shift_id() -> int | None:
    """
    Id of the OPEN shift, row-locked for the rest of the transaction.

    close_shift locks the same row, so a movement is either tagged before
    the close sums the drawer or sees no open shift at all.
    """
    shift = lock_for_update(db.session.query(Shift).filter_by(status=SHIFT_OPEN)).first()
    return shift.id if shift else None


def append_transaction(
    *,
    type: str,
    operation: str,
    amount_cents: int,
    source: str,
    destination: str,
    description: str | None = None,
    category: str | None = None,
    shift_id=CURRENT_SHIFT,
    related_account_id: int | None = None,
    related_event_id: int | None = None,
    offset_of_id: int | None = None,
    operator_id: str | None = None,
) -> TreasuryTransaction:
    """
    Append a treasury row to the current session (no commit).

    Callers that already hold a transaction (shift expenses, offsets) use
    this directly; everyone else goes through record_transaction.
    """
    if type not in VALID_TREASURY_TYPES:
        raise ValidationError(f"Invalid treasury type: {type}. Must be one of {list(VALID_TREASURY_TYPES)}")
    if operation not in VALID_OPERATIONS:
        raise ValidationError(f"Invalid operation: {operation}. Must be one of {list(VALID_OPERATIONS)}")
    if destination not in VALID_DESTINATIONS:
        raise ValidationError(f"Invalid destination: {destination}. Must be one of {list(VALID_DESTINATIONS)}")
    if not source:
        raise ValidationError("source is required")
    amount = parse_amount_cents(amount_cents)

    if shift_id is CURRENT_SHIFT:
        shift_id = get_open_shift_id()
    elif shift_id is not None and not lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first():
        raise ShiftNotFound(f"Shift {shift_id} not found")

    txn = TreasuryTransaction(
        type=type,
        operation=operation,
        amount_cents=amount,
        source=source,
        destination=destination,
        description=description[:DESCRIPTION_MAX_LENGTH] if description else description,
        category=category,
        shift_id=shift_id,
        related_account_id=related_account_id,
        related_event_id=related_event_id,
        offset_of_id=offset_of_id,
        operator_id=operator_id,
        created_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def record_transaction(**kwargs) -> TreasuryTransaction:
    """Append one treasury row in its own transaction."""
    return run_in_transaction(lambda: append_transaction(**kwargs))


def record_manual(
    type: str,
    operation: str,
    amount_cents: int,
    description: str | None = None,
    operator_id: str | None = None,
) -> TreasuryTransaction:
    """
    Manual deposit into / withdrawal from the safe or the bank.

    Cash goes to the safe, not the drawer, so it never affects drawer
    reconciliation.
    """
    source = SOURCE_MANUAL_DEPOSIT if operation == OPERATION_CREDIT else SOURCE_MANUAL_WITHDRAW
    destination = DESTINATION_SAFE if type == TREASURY_CASH else DESTINATION_BANK
    if not description:
        description = "Manual deposit" if operation == OPERATION_CREDIT else "Manual withdrawal"
    return record_transaction(
        type=type,
        operation=operation,
        amount_cents=amount_cents,
        source=source,
        destination=destination,
        description=description,
        operator_id=operator_id,
    )


def record_offset(transaction_id: int, reason: str | None = None, operator_id: str | None = None) -> TreasuryTransaction:
    """
    Cancel a treasury row by appending its mirror image.

    The offset keeps the original's shift so drawer reconciliation of that
    shift nets to zero. Rows of a closed shift cannot be offset.
    """
    def _op():
        original = lock_for_update(
            db.session.query(TreasuryTransaction).filter_by(id=transaction_id)
        ).first()
        if not original:
            raise NotFound(f"Treasury transaction {transaction_id} not found")
        if original.offset_of_id is not None:
            raise Conflict("An offset cannot itself be offset; record a new transaction instead")

        existing = db.session.query(TreasuryTransaction).filter_by(offset_of_id=original.id).first()
        if existing:
            raise Conflict(f"Treasury transaction {transaction_id} already offset by {existing.id}")

        if original.shift_id is not None:
            shift = lock_for_update(
                db.session.query(Shift).filter_by(id=original.shift_id).populate_existing()
            ).first()
            if shift is not None and not shift.is_open:
                raise ShiftAlreadyClosed(f"Shift {shift.id} is closed; its movements can no longer be offset")

        opposite = OPERATION_DEBIT if original.operation == OPERATION_CREDIT else OPERATION_CREDIT
        return append_transaction(
            type=original.type,
            operation=opposite,
            amount_cents=original.amount_cents,
            source=SOURCE_OFFSET,
            destination=original.destination,
            description=reason or f"Offset of #{original.id}",
            category=original.category,
            shift_id=original.shift_id,
            related_account_id=original.related_account_id,
            related_event_id=original.related_event_id,
            offset_of_id=original.id,
            operator_id=operator_id,
        )

    return run_in_transaction(_op)


def _signed_sum():
    return func.coalesce(
        func.sum(
            case(
                (TreasuryTransaction.operation == OPERATION_CREDIT, TreasuryTransaction.amount_cents),
                else_=-TreasuryTransaction.amount_cents,
            )
        ),
        0,
    )


def balance_as_of(type: str, shift_id: int | None = None, as_of: datetime | None = None) -> int:
    """Sum of credit - debit over matching rows, optionally scoped to one shift."""
    if type not in VALID_TREASURY_TYPES:
        raise ValidationError(f"Invalid treasury type: {type}")

    query = db.session.query(_signed_sum()).filter(TreasuryTransaction.type == type)
    if shift_id is not None:
        query = query.filter(TreasuryTransaction.shift_id == shift_id)
    if as_of is not None:
        query = query.filter(TreasuryTransaction.created_at <= as_of)
    return int(query.scalar() or 0)


def drawer_totals(shift_id: int) -> dict:
    """
    Cash movements through the drawer during one shift.

    Bank movements and cash moved to/from the safe are excluded.
    """
    rows = db.session.query(TreasuryTransaction).filter(
        TreasuryTransaction.shift_id == shift_id,
        TreasuryTransaction.type == TREASURY_CASH,
        TreasuryTransaction.destination == DESTINATION_DRAWER,
    ).all()

    credits = sum(t.amount_cents for t in rows if t.operation == OPERATION_CREDIT)
    debits = sum(t.amount_cents for t in rows if t.operation == OPERATION_DEBIT)
    # Expenses and their offsets both carry a category
    expenses = -sum(t.signed_amount_cents for t in rows if t.category is not None)
    # Collections net of their offsets (an offset keeps the original's shift)
    collected_ids = {
        t.id for t in rows
        if t.operation == OPERATION_CREDIT and t.source not in (SOURCE_EXPENSE, SOURCE_OFFSET)
    }
    collected = sum(
        t.signed_amount_cents for t in rows
        if t.id in collected_ids or t.offset_of_id in collected_ids
    )
    return {
        "credits_cents": credits,
        "debits_cents": debits,
        "expenses_cents": expenses,
        "collected_cents": collected,
    }


def list_transactions(shift_id: int | None = None, limit: int = 100) -> list[TreasuryTransaction]:
    query = db.session.query(TreasuryTransaction)
    if shift_id is not None:
        query = query.filter(TreasuryTransaction.shift_id == shift_id)
    return (
        query.order_by(TreasuryTransaction.created_at.desc(), TreasuryTransaction.id.desc())
        .limit(limit)
        .all()
    )
