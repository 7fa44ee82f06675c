# Overview: Service-layer operations for creating ledger events.

"""
Ledger Event Invariants

- Every event belongs to exactly one account.
- Amounts are positive cents; opening balances are signed and non-zero.
- Creating an event and recomputing its account happen in one transaction.
- An invoice's initial payment is stored as its first partial payment;
  there is no separate "paid at creation" field for new invoices.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..errors import Conflict, InvalidAmount, NotFound, ValidationError
from ..models import Invoice, InvoiceLine, LedgerEvent, OpeningBalance, Order, Payment
from ..models.ledger import line_total_cents
from ..validation import coerce_int, parse_amount_cents, parse_count_cents, parse_datetime_field
from ledgerdesk.time_utils import utcnow
from .balance_service import get_account_for_update, recompute_in_session
from .concurrency import run_in_transaction
from . import payment_service
from .payment_service import PaymentReceipt


@dataclass
class InvoiceReceipt:
    invoice_id: int
    account_id: int
    amount_cents: int
    balance_cents: int
    order_id: int | None = None
    initial_payment: PaymentReceipt | None = None

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "account_id": self.account_id,
            "amount_cents": self.amount_cents,
            "balance_cents": self.balance_cents,
            "order_id": self.order_id,
            "initial_payment": self.initial_payment.to_dict() if self.initial_payment else None,
        }


def _parse_quantity(value) -> Decimal:
    if value is None:
        return Decimal("1")
    if isinstance(value, bool):
        raise ValidationError("quantity must be a number")
    try:
        quantity = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("quantity must be a number")
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("quantity must be positive")
    return quantity.quantize(Decimal("0.001"))


def lookup_unit_price(product_id: str) -> int:
    """Ask the catalog collaborator for a product's current unit price."""
    lookup = current_app.config.get("LEDGER_PRICE_LOOKUP")
    if lookup is None:
        raise ValidationError(f"unit_price_cents required for product {product_id} (no price lookup configured)")
    price = lookup(product_id)
    if price is None:
        raise NotFound(f"No price for product {product_id}")
    return parse_count_cents(price, "unit_price_cents")


def build_invoice_lines(line_items: list) -> list[InvoiceLine]:
    """
    Turn request line items into InvoiceLine rows.

    Each item: {description?, product_id?, quantity?, unit_price_cents?}.
    A missing unit price is looked up by product_id.
    """
    if not isinstance(line_items, list) or not line_items:
        raise ValidationError("line_items must be a non-empty list")

    lines = []
    for index, item in enumerate(line_items):
        if not isinstance(item, dict):
            raise ValidationError(f"line_items[{index}] must be an object")
        product_id = item.get("product_id")
        quantity = _parse_quantity(item.get("quantity"))

        if item.get("unit_price_cents") is not None:
            unit_price = parse_count_cents(item["unit_price_cents"], f"line_items[{index}].unit_price_cents")
        elif product_id is not None:
            unit_price = lookup_unit_price(str(product_id))
        else:
            raise ValidationError(f"line_items[{index}] needs unit_price_cents or product_id")

        lines.append(InvoiceLine(
            product_id=str(product_id) if product_id is not None else None,
            description=item.get("description"),
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=line_total_cents(quantity, unit_price),
        ))

    total = sum(line.line_total_cents for line in lines)
    if total <= 0:
        raise InvalidAmount("Invoice total must be positive")
    return lines


# =============================================================================
# INVOICES
# =============================================================================

def create_invoice(
    account_id: int,
    *,
    amount_cents: int | None = None,
    line_items: list | None = None,
    occurred_at=None,
    note: str | None = None,
    attachment_ref: str | None = None,
    order_number: str | None = None,
    initial_payment_cents: int | None = None,
    method: str | None = None,
    operator_id: str | None = None,
) -> InvoiceReceipt:
    """
    Create an invoice from an amount or from line items.

    order_number: mirror a new order record (merged event); the order and
        the invoice are created together and deleted together.
    initial_payment_cents: amount settled at creation, stored as the first
        partial payment. With a method, a treasury row follows (best effort).
    """
    if (amount_cents is None) == (line_items is None):
        raise ValidationError("Provide exactly one of amount_cents or line_items")

    if line_items is not None:
        amount = parse_amount_cents(sum(line.line_total_cents for line in build_invoice_lines(line_items)))
    else:
        amount = parse_amount_cents(amount_cents)

    initial = None
    if initial_payment_cents is not None:
        initial = parse_amount_cents(initial_payment_cents, "initial_payment_cents")
    method = payment_service.validate_method(method)
    occurred = parse_datetime_field(occurred_at, "occurred_at", default_now=True)

    def _op():
        account = get_account_for_update(account_id)

        order = None
        if order_number is not None:
            if db.session.query(Order).filter_by(order_number=str(order_number)).first():
                raise Conflict(f"Order {order_number} already exists")
            order = Order(account_id=account.id, order_number=str(order_number), total_cents=amount)
            db.session.add(order)
            db.session.flush()

        invoice = Invoice(
            account_id=account.id,
            amount_cents=amount,
            total_paid_cents=0,
            occurred_at=occurred,
            note=note,
            attachment_ref=attachment_ref,
            method=method,
            order_id=order.id if order else None,
        )
        if line_items is not None:
            # Rebuilt per attempt
            invoice.lines.extend(build_invoice_lines(line_items))
        db.session.add(invoice)
        db.session.flush()

        partial = None
        if initial is not None:
            partial = payment_service.append_partial_payment(
                invoice, initial, paid_at=occurred, note="Paid at invoice creation", method=method,
            )

        account.last_activity_at = utcnow()
        balance = recompute_in_session(account.id).balance_cents

        receipt = InvoiceReceipt(
            invoice_id=invoice.id,
            account_id=account.id,
            amount_cents=amount,
            balance_cents=balance,
            order_id=invoice.order_id,
        )
        if partial is not None:
            receipt.initial_payment = PaymentReceipt(
                receipt_id=f"INV-{invoice.id}-PP-{partial.id}",
                account_id=account.id,
                amount_cents=initial,
                balance_cents=balance,
                invoice_id=invoice.id,
                partial_payment_id=partial.id,
            )
        return receipt

    receipt = run_in_transaction(_op)

    if receipt.initial_payment is not None and method is not None:
        txn_id, error = payment_service.write_payment_treasury(
            account_id=receipt.account_id,
            amount_cents=receipt.initial_payment.amount_cents,
            method=method,
            note=note or "initial payment",
            related_event_id=receipt.invoice_id,
            operator_id=operator_id,
        )
        receipt.initial_payment.treasury_transaction_id = txn_id
        receipt.initial_payment.treasury_error = error

    return receipt


# =============================================================================
# OTHER EVENTS
# =============================================================================

def create_opening_balance(
    account_id: int,
    amount_cents: int,
    *,
    occurred_at=None,
    note: str | None = None,
) -> OpeningBalance:
    """
    Seed an account with debt carried over from before the ledger existed.

    Positive: the account owes (customer) / is owed (supplier).
    Negative: a credit in the account's favour.
    """
    amount = parse_amount_cents(amount_cents, signed=True)
    occurred = parse_datetime_field(occurred_at, "occurred_at", default_now=True)

    def _op():
        account = get_account_for_update(account_id)
        event = OpeningBalance(
            account_id=account.id,
            amount_cents=amount,
            occurred_at=occurred,
            note=note or "Opening balance",
        )
        db.session.add(event)
        db.session.flush()
        account.last_activity_at = utcnow()
        recompute_in_session(account.id)
        return event

    return run_in_transaction(_op)


def record_payment_event(
    account_id: int,
    amount_cents: int,
    *,
    linked_invoice_id: int | None = None,
    occurred_at=None,
    note: str | None = None,
    method: str | None = None,
) -> Payment:
    """
    Record a standalone Payment event, as imported from older records.

    When linked to an invoice the payment is mirrored into that invoice's
    payments, and the Payment event itself then contributes nothing to the
    balance. Live payments go through payment_service.apply_payment instead.
    """
    amount = parse_amount_cents(amount_cents)
    method = payment_service.validate_method(method)
    occurred = parse_datetime_field(occurred_at, "occurred_at", default_now=True)
    if linked_invoice_id is not None:
        linked_invoice_id = coerce_int(linked_invoice_id, "linked_invoice_id")

    def _op():
        account = get_account_for_update(account_id)
        event = Payment(
            account_id=account.id,
            amount_cents=amount,
            linked_invoice_id=linked_invoice_id,
            occurred_at=occurred,
            note=note,
            method=method,
        )
        db.session.add(event)
        db.session.flush()

        if linked_invoice_id is not None:
            invoice = payment_service.get_invoice_for_update(linked_invoice_id, account.id)
            payment_service.append_partial_payment(
                invoice, amount, paid_at=occurred, note=note, method=method, source_event_id=event.id,
            )

        account.last_activity_at = utcnow()
        recompute_in_session(account.id)
        return event

    return run_in_transaction(_op)


def get_event(event_id: int) -> LedgerEvent:
    event = db.session.get(LedgerEvent, event_id)
    if not event:
        raise NotFound(f"Ledger event {event_id} not found")
    return event
