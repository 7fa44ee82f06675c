from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import to_utc_z


ACCOUNT_KIND_CUSTOMER = "customer"
ACCOUNT_KIND_SUPPLIER = "supplier"
VALID_ACCOUNT_KINDS = (ACCOUNT_KIND_CUSTOMER, ACCOUNT_KIND_SUPPLIER)


class Account(db.Model):
    """
    A customer or supplier whose debt is tracked by the ledger.

    BALANCE CONVENTION: cached_balance_cents > 0 means open debt on the
    account's invoices (customer owes us / we owe the supplier).

    DENORMALIZED: cached_balance_cents is only ever written by
    balance_service.recompute; it always equals the fold of the account's
    ledger events.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("kind", "phone", name="uq_accounts_kind_phone"),
        db.Index("ix_accounts_kind_name", "kind", "display_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, default=ACCOUNT_KIND_CUSTOMER, index=True)

    display_name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    cached_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_balance_update_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "display_name": self.display_name,
            "phone": self.phone,
            "cached_balance_cents": self.cached_balance_cents,
            "last_activity_at": to_utc_z(self.last_activity_at),
            "last_balance_update_at": to_utc_z(self.last_balance_update_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
