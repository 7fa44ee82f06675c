# Overview: Edit and delete handling for ledger events; every change ends in a full recompute.

"""
Reversal / Edit Handler

WHY: Operators fix mistakes after the fact. A wrong invoice amount, a
payment recorded twice, an order cancelled after it was mirrored into the
ledger.

DESIGN PRINCIPLES:
- No arithmetic reversal: the account balance is re-folded from history
- An event and the records that mirror it change together or not at all
  (invoice + order, raw payment + its mirrored invoice payment)
- The treasury is never touched; physical money is corrected with offsets
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFound, Overpayment, ValidationError
from ..models import LedgerEvent, PartialPayment
from ..models.ledger import EVENT_INVOICE, EVENT_OPENING_BALANCE, EVENT_PAYMENT
from ..validation import ModelValidationPolicy, parse_amount_cents, validate_payload
from .balance_service import recompute_in_session, sync_invoice_paid
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import build_invoice_lines
from . import payment_service

logger = logging.getLogger(__name__)


EVENT_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "occurred_at", "note", "attachment_ref", "line_items"},
)


def _get_event_locked(event_id: int) -> LedgerEvent:
    event = lock_for_update(db.session.query(LedgerEvent).filter_by(id=event_id)).first()
    if not event:
        raise NotFound(f"Ledger event {event_id} not found")
    return event


def _mirrored_partials(event: LedgerEvent) -> list[PartialPayment]:
    return db.session.query(PartialPayment).filter_by(source_event_id=event.id).all()


def _check_not_overpaid(invoice) -> None:
    if (
        invoice.total_paid_cents > invoice.amount_cents
        and payment_service.overpayment_policy() == payment_service.OVERPAYMENT_REJECT
    ):
        raise Overpayment(
            f"Invoice {invoice.id} would be overpaid: paid {invoice.total_paid_cents} of {invoice.amount_cents}"
        )


def _apply_amount(event: LedgerEvent, amount: int) -> None:
    if event.kind == EVENT_INVOICE:
        sync_invoice_paid(event)
        event.amount_cents = amount
        _check_not_overpaid(event)
        if event.order is not None:
            event.order.total_cents = amount
        return

    if event.kind == EVENT_PAYMENT:
        delta = amount - event.amount_cents
        event.amount_cents = amount
        for partial in _mirrored_partials(event):
            invoice = payment_service.get_invoice_for_update(partial.invoice_id)
            partial.amount_cents = amount
            invoice.total_paid_cents = invoice.total_paid_cents + delta
            _check_not_overpaid(invoice)
        return

    event.amount_cents = amount


# =============================================================================
# EDIT
# =============================================================================

def edit_event(event_id: int, patch: dict) -> LedgerEvent:
    """
    Change an event's amount, date, note, attachment or line items.

    line_items (invoices only) replace the invoice's lines and its amount;
    an invoice with lines cannot take a bare amount_cents edit.
    A payment mirrored into an invoice moves its mirror along with it.

    Raises:
        ValidationError: unknown fields, or amount_cents with line_items
        InvalidAmount: bad amount (opening balances may be negative)
        Overpayment: invoice would end up paid beyond its amount (reject policy)
    """
    clean = validate_payload(model=LedgerEvent, payload=patch, policy=EVENT_EDIT_POLICY, partial=True)
    if not clean:
        raise ValidationError("Nothing to update")
    if "amount_cents" in clean and "line_items" in clean:
        raise ValidationError("Provide amount_cents or line_items, not both")

    def _op():
        event = _get_event_locked(event_id)

        if "line_items" in clean:
            if event.kind != EVENT_INVOICE:
                raise ValidationError("line_items can only be edited on invoices")
            lines = build_invoice_lines(clean["line_items"])
            event.lines.clear()
            event.lines.extend(lines)
            _apply_amount(event, sum(line.line_total_cents for line in lines))

        if "amount_cents" in clean:
            if event.kind == EVENT_INVOICE and event.lines:
                raise ValidationError(
                    f"Invoice {event.id} is priced by its lines; edit line_items instead of amount_cents"
                )
            amount = parse_amount_cents(
                clean["amount_cents"], signed=event.kind == EVENT_OPENING_BALANCE,
            )
            _apply_amount(event, amount)

        for field in ("occurred_at", "note", "attachment_ref"):
            if field in clean:
                setattr(event, field, clean[field])

        db.session.flush()
        recompute_in_session(event.account_id)
        return event

    event = run_in_transaction(_op)
    logger.info("Ledger event %s edited (%s)", event.id, ", ".join(sorted(clean)))
    return event


# =============================================================================
# DELETE
# =============================================================================

def delete_event(event_id: int) -> int:
    """
    Hard-delete an event and re-fold its account.

    - Invoice: its payments and lines go with it; a mirrored order is
      deleted in the same transaction.
    - Payment: a mirror inside an invoice is removed as well.

    Returns:
        The account's new balance
    """
    def _op():
        event = _get_event_locked(event_id)
        account_id = event.account_id

        if event.kind == EVENT_INVOICE and event.order is not None:
            db.session.delete(event.order)

        if event.kind == EVENT_PAYMENT:
            for partial in _mirrored_partials(event):
                invoice = payment_service.get_invoice_for_update(partial.invoice_id)
                invoice.payments.remove(partial)
                invoice.total_paid_cents = invoice.total_paid_cents - partial.amount_cents

        db.session.delete(event)
        db.session.flush()
        return recompute_in_session(account_id).balance_cents

    balance = run_in_transaction(_op)
    logger.info("Ledger event %s deleted", event_id)
    return balance
