# Overview: Payment application engine; applies payments to accounts and invoices.

"""
Payment Application Engine

WHY: Money received from a customer (or paid to a supplier) reduces the
account's debt, either against a specific invoice or on account.

DESIGN PRINCIPLES:
- A payment against an invoice is a PartialPayment inside that invoice;
  no standalone Payment event is created for it
- A payment on account is a standalone Payment event
- Ledger write + balance recompute commit atomically
- The treasury entry is a best-effort follow-up: if it fails the payment
  stays committed and the receipt carries the failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import LedgerError, NotFound, Overpayment, TreasurySideEffectFailed, ValidationError
from ..models import Account, Invoice, Payment, PartialPayment
from ..models.accounts import ACCOUNT_KIND_SUPPLIER
from ..models.treasury import (
    OPERATION_CREDIT,
    OPERATION_DEBIT,
    DESTINATION_DRAWER,
    DESTINATION_BANK,
    SOURCE_B2B_PAYMENT,
    SOURCE_SUPPLIER_PAYMENT,
)
from ..validation import coerce_int, parse_amount_cents, parse_datetime_field
from ledgerdesk.time_utils import utcnow
from .balance_service import get_account_for_update, recompute_in_session, sync_invoice_paid
from .concurrency import lock_for_update, run_in_transaction
from . import treasury_service

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS / POLICY (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_BANK = "bank"
VALID_METHODS = (METHOD_CASH, METHOD_BANK)

OVERPAYMENT_REJECT = "reject"
OVERPAYMENT_ALLOW = "allow"


@dataclass
class PaymentReceipt:
    receipt_id: str
    account_id: int
    amount_cents: int
    balance_cents: int
    invoice_id: int | None = None
    partial_payment_id: int | None = None
    event_id: int | None = None
    treasury_transaction_id: int | None = None
    treasury_error: TreasurySideEffectFailed | None = None

    @property
    def treasury_ok(self) -> bool:
        return self.treasury_error is None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["treasury_error"] = self.treasury_error.to_dict() if self.treasury_error else None
        return data


def overpayment_policy() -> str:
    policy = current_app.config.get("LEDGER_OVERPAYMENT_POLICY", OVERPAYMENT_REJECT)
    if policy not in (OVERPAYMENT_REJECT, OVERPAYMENT_ALLOW):
        raise ValueError(f"Unsupported LEDGER_OVERPAYMENT_POLICY: {policy}")
    return policy


def validate_method(method: str | None) -> str | None:
    if method is None:
        return None
    if method not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {list(VALID_METHODS)}")
    return method


def get_invoice_for_update(invoice_id: int, account_id: int | None = None) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice or (account_id is not None and invoice.account_id != account_id):
        raise NotFound(f"Invoice {invoice_id} not found")
    return invoice


def append_partial_payment(
    invoice: Invoice,
    amount_cents: int,
    *,
    paid_at=None,
    note: str | None = None,
    method: str | None = None,
    attachment_ref: str | None = None,
    source_event_id: int | None = None,
) -> PartialPayment:
    """
    Add a payment inside an invoice (no commit).

    The invoice row is version-checked on flush, so two concurrent payments
    to the same invoice cannot both build on the same total_paid.
    """
    sync_invoice_paid(invoice)
    remaining = invoice.amount_cents - invoice.total_paid_cents
    if amount_cents > remaining and overpayment_policy() == OVERPAYMENT_REJECT:
        raise Overpayment(
            f"Payment of {amount_cents} exceeds remaining {remaining} on invoice {invoice.id}"
        )

    partial = PartialPayment(
        amount_cents=amount_cents,
        paid_at=paid_at,
        note=note,
        method=method,
        attachment_ref=attachment_ref,
        source_event_id=source_event_id,
    )
    invoice.payments.append(partial)
    invoice.total_paid_cents = invoice.total_paid_cents + amount_cents
    db.session.flush()
    return partial


# =============================================================================
# PAYMENT APPLICATION
# =============================================================================

def apply_payment(
    account_id: int,
    amount_cents: int,
    *,
    linked_invoice_id: int | None = None,
    method: str | None = None,
    note: str | None = None,
    paid_at=None,
    attachment_ref: str | None = None,
    operator_id: str | None = None,
) -> PaymentReceipt:
    """
    Apply a payment to an account, or to one of its invoices.

    Args:
        account_id: Account paying (customer) or being paid (supplier)
        amount_cents: Positive amount
        linked_invoice_id: Invoice to settle (optional)
        method: "cash" or "bank"; when given, a treasury row is written
        paid_at: Business date (ISO-8601 or datetime); defaults to now

    Raises:
        InvalidAmount: amount <= 0
        Overpayment: amount exceeds the invoice's remaining (reject policy)
        NotFound: unknown account, or invoice not owned by the account
        ConcurrentModification: retries exhausted
    """
    amount = parse_amount_cents(amount_cents)
    method = validate_method(method)
    paid_at = parse_datetime_field(paid_at, "paid_at", default_now=True)
    if linked_invoice_id is not None:
        linked_invoice_id = coerce_int(linked_invoice_id, "linked_invoice_id")

    def _op():
        account = get_account_for_update(account_id)

        if linked_invoice_id is not None:
            invoice = get_invoice_for_update(linked_invoice_id, account.id)
            partial = append_partial_payment(
                invoice,
                amount,
                paid_at=paid_at,
                note=note,
                method=method,
                attachment_ref=attachment_ref,
            )
            receipt = PaymentReceipt(
                receipt_id=f"INV-{invoice.id}-PP-{partial.id}",
                account_id=account.id,
                amount_cents=amount,
                balance_cents=0,
                invoice_id=invoice.id,
                partial_payment_id=partial.id,
            )
        else:
            event = Payment(
                account_id=account.id,
                amount_cents=amount,
                occurred_at=paid_at,
                note=note,
                method=method,
                attachment_ref=attachment_ref,
            )
            db.session.add(event)
            db.session.flush()
            receipt = PaymentReceipt(
                receipt_id=f"PAY-{event.id}",
                account_id=account.id,
                amount_cents=amount,
                balance_cents=0,
                event_id=event.id,
            )

        account.last_activity_at = utcnow()
        receipt.balance_cents = recompute_in_session(account.id).balance_cents
        return receipt

    receipt = run_in_transaction(_op)

    if method is not None:
        txn_id, error = write_payment_treasury(
            account_id=receipt.account_id,
            amount_cents=amount,
            method=method,
            note=note,
            related_event_id=receipt.event_id or receipt.invoice_id,
            operator_id=operator_id,
        )
        receipt.treasury_transaction_id = txn_id
        receipt.treasury_error = error

    return receipt


def write_payment_treasury(
    *,
    account_id: int,
    amount_cents: int,
    method: str,
    note: str | None,
    related_event_id: int | None,
    operator_id: str | None,
) -> tuple[int | None, TreasurySideEffectFailed | None]:
    """
    Record the money movement of an already committed payment.

    Customers pay in (credit); suppliers are paid out (debit). Cash lands in
    the drawer, bank transfers in the bank.

    Returns (treasury transaction id, None) or (None, failure).
    """
    try:
        account = db.session.get(Account, account_id)
        is_supplier = account is not None and account.kind == ACCOUNT_KIND_SUPPLIER
        txn = treasury_service.record_transaction(
            type=method,
            operation=OPERATION_DEBIT if is_supplier else OPERATION_CREDIT,
            amount_cents=amount_cents,
            source=SOURCE_SUPPLIER_PAYMENT if is_supplier else SOURCE_B2B_PAYMENT,
            destination=DESTINATION_DRAWER if method == METHOD_CASH else DESTINATION_BANK,
            description=f"{account.display_name if account else account_id}: {note or 'payment'}",
            related_account_id=account_id,
            related_event_id=related_event_id,
            operator_id=operator_id,
        )
        return txn.id, None
    except (LedgerError, SQLAlchemyError) as exc:
        logger.exception("Payment on account %s committed but treasury entry failed", account_id)
        return None, TreasurySideEffectFailed(f"Payment recorded but treasury entry failed: {exc}")


def remove_invoice_payment(invoice_id: int, partial_payment_id: int) -> int:
    """
    Remove one payment from an invoice and recompute the account.

    Treasury rows written for that payment are not reversed; use a treasury
    offset for that.

    Returns:
        The account's new balance
    """
    def _op():
        invoice = get_invoice_for_update(invoice_id)
        partial = next((p for p in invoice.payments if p.id == partial_payment_id), None)
        if partial is None:
            raise NotFound(f"Payment {partial_payment_id} not found on invoice {invoice_id}")

        invoice.payments.remove(partial)
        invoice.total_paid_cents = invoice.total_paid_cents - partial.amount_cents
        db.session.flush()
        return recompute_in_session(invoice.account_id).balance_cents

    return run_in_transaction(_op)
