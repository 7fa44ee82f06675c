from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import to_utc_z


class Order(db.Model):
    """
    Order record owned by the order collaborator.

    Only the fields the ledger needs are modelled. An order mirrored into the
    ledger is referenced by exactly one Invoice (LedgerEvent.order_id); the
    two are deleted together or not at all.
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    total_cents = db.Column(db.BigInteger, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PLACED")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "order_number": self.order_number,
            "total_cents": self.total_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
