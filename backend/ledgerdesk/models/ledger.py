from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import AbstractSet

from sqlalchemy.orm import validates

from ..extensions import db
from ..validation import parse_amount_cents
from ledgerdesk.time_utils import to_utc_z


EVENT_INVOICE = "INVOICE"
EVENT_PAYMENT = "PAYMENT"
EVENT_OPENING_BALANCE = "OPENING_BALANCE"
VALID_EVENT_KINDS = (EVENT_INVOICE, EVENT_PAYMENT, EVENT_OPENING_BALANCE)


class LedgerEvent(db.Model):
    """
    A monetary event owned by exactly one Account.

    VARIANTS (single-table, discriminated by `kind`):
    - INVOICE: debt created; partial payments live in invoice.payments
    - PAYMENT: standalone payment; optionally linked to an invoice (imports)
    - OPENING_BALANCE: signed one-time seed for migrated debt

    occurred_at is business time and may be NULL while an event is being
    written; such events sort last. created_at is system time.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_account_occurred", "account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    kind = db.Column(db.String(24), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)

    # Derived cache on invoices: always sum(payments.amount_cents)
    total_paid_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Legacy single "paid at creation" field. Read-only; migrated into
    # payments at read time by balance_service.
    legacy_payment_cents = db.Column(db.BigInteger, nullable=True)

    # Standalone payments recorded against an invoice (imports only)
    linked_invoice_id = db.Column(db.Integer, nullable=True, index=True)

    # Merged representation: the order this invoice mirrors
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)

    method = db.Column(db.String(16), nullable=True)  # cash, bank
    note = db.Column(db.Text, nullable=True)
    attachment_ref = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    account = db.relationship("Account", backref=db.backref("events", lazy=True))
    order = db.relationship("Order", backref=db.backref("ledger_event", uselist=False, lazy=True))

    __mapper_args__ = {
        "polymorphic_on": kind,
        "version_id_col": version_id,
    }

    @validates("amount_cents")
    def _validate_amount(self, key, value):
        # Opening balances carry their sign; everything else is positive
        signed = self.__mapper__.polymorphic_identity == EVENT_OPENING_BALANCE
        return parse_amount_cents(value, key, signed=signed)

    @property
    def is_invoice(self) -> bool:
        return self.kind == EVENT_INVOICE

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "account_id": self.account_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "method": self.method,
            "attachment_ref": self.attachment_ref,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if self.kind == EVENT_PAYMENT:
            data["linked_invoice_id"] = self.linked_invoice_id
        return data


class Invoice(LedgerEvent):
    __mapper_args__ = {"polymorphic_identity": EVENT_INVOICE}

    payments = db.relationship(
        "PartialPayment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PartialPayment.id",
        lazy=True,
    )
    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.id",
        lazy=True,
    )

    @property
    def remaining_cents(self) -> int:
        return self.amount_cents - self.total_paid_cents

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "total_paid_cents": self.total_paid_cents,
            "remaining_cents": self.remaining_cents,
            "order_id": self.order_id,
            "legacy_payment_cents": self.legacy_payment_cents,
            "payments": [p.to_dict() for p in self.payments],
            "lines": [line.to_dict() for line in self.lines],
        })
        return data


class Payment(LedgerEvent):
    __mapper_args__ = {"polymorphic_identity": EVENT_PAYMENT}


class OpeningBalance(LedgerEvent):
    __mapper_args__ = {"polymorphic_identity": EVENT_OPENING_BALANCE}


class PartialPayment(db.Model):
    """
    One payment applied to an invoice.

    The invoice's payments are the only writable source of "paid so far".
    """
    __tablename__ = "partial_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("ledger_events.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    note = db.Column(db.Text, nullable=True)
    method = db.Column(db.String(16), nullable=True)
    attachment_ref = db.Column(db.String(512), nullable=True)
    # Set when mirrored from a standalone Payment event (imports)
    source_event_id = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", back_populates="payments")

    @validates("amount_cents")
    def _validate_amount(self, key, value):
        return parse_amount_cents(value, key)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "note": self.note,
            "method": self.method,
            "attachment_ref": self.attachment_ref,
            "source_event_id": self.source_event_id,
        }


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("ledger_events.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Numeric(12, 3), nullable=False, default=1)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    invoice = db.relationship("Invoice", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


def line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    """Quantity may be fractional (weighed goods); round half up to a cent."""
    return int((Decimal(quantity) * unit_price_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def signed_contribution(event: LedgerEvent, present_invoice_ids: AbstractSet[int] = frozenset()) -> int:
    """
    Signed effect of one event on its account's balance, in cents.

    - Invoice: +(amount - total_paid)
    - Payment: -amount, or 0 when linked to an invoice in present_invoice_ids
      (that invoice's total_paid already reflects it)
    - OpeningBalance: +amount (already signed)
    """
    if event.kind == EVENT_INVOICE:
        return event.amount_cents - (event.total_paid_cents or 0)
    if event.kind == EVENT_PAYMENT:
        if event.linked_invoice_id is not None and event.linked_invoice_id in present_invoice_ids:
            return 0
        return -event.amount_cents
    if event.kind == EVENT_OPENING_BALANCE:
        return event.amount_cents
    raise ValueError(f"Unknown ledger event kind: {event.kind}")
