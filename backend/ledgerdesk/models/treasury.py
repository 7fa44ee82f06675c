from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import to_utc_z


TREASURY_CASH = "cash"
TREASURY_BANK = "bank"
VALID_TREASURY_TYPES = (TREASURY_CASH, TREASURY_BANK)

OPERATION_CREDIT = "credit"  # money in
OPERATION_DEBIT = "debit"    # money out
VALID_OPERATIONS = (OPERATION_CREDIT, OPERATION_DEBIT)

DESTINATION_DRAWER = "drawer"
DESTINATION_BANK = "bank"
DESTINATION_SAFE = "safe"
VALID_DESTINATIONS = (DESTINATION_DRAWER, DESTINATION_BANK, DESTINATION_SAFE)

SOURCE_B2B_PAYMENT = "b2b_payment"
SOURCE_SUPPLIER_PAYMENT = "supplier_payment"
SOURCE_EXPENSE = "expense"
SOURCE_MANUAL_DEPOSIT = "manual_deposit"
SOURCE_MANUAL_WITHDRAW = "manual_withdraw"
SOURCE_OFFSET = "offset"

DESCRIPTION_MAX_LENGTH = 255


class TreasuryTransaction(db.Model):
    """
    Physical money movement (drawer, safe, bank).

    IMMUTABLE: Rows are never updated or deleted. A mistake is corrected by
    an offsetting row (offset_of_id) with the opposite operation.
    Independent of account debt: deleting a ledger event never touches
    treasury rows.
    """
    __tablename__ = "treasury_transactions"
    __table_args__ = (
        db.Index("ix_treasury_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(8), nullable=False)  # cash, bank
    operation = db.Column(db.String(8), nullable=False)  # credit, debit
    amount_cents = db.Column(db.BigInteger, nullable=False)

    source = db.Column(db.String(32), nullable=False, index=True)
    destination = db.Column(db.String(16), nullable=False)
    category = db.Column(db.String(32), nullable=True)  # expense category
    description = db.Column(db.String(DESCRIPTION_MAX_LENGTH), nullable=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    related_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    related_event_id = db.Column(db.Integer, nullable=True)
    offset_of_id = db.Column(db.Integer, db.ForeignKey("treasury_transactions.id"), nullable=True, unique=True)

    operator_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    shift = db.relationship("Shift", backref=db.backref("treasury_transactions", lazy=True))

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.operation == OPERATION_CREDIT else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "operation": self.operation,
            "amount_cents": self.amount_cents,
            "source": self.source,
            "destination": self.destination,
            "category": self.category,
            "description": self.description,
            "shift_id": self.shift_id,
            "related_account_id": self.related_account_id,
            "related_event_id": self.related_event_id,
            "offset_of_id": self.offset_of_id,
            "operator_id": self.operator_id,
            "created_at": to_utc_z(self.created_at),
        }
