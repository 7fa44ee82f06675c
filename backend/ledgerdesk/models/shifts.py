from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import to_utc_z


SHIFT_OPEN = "OPEN"
SHIFT_CLOSED = "CLOSED"


class Shift(db.Model):
    """
    Accounting period over the cash drawer.

    LIFECYCLE:
    - OPEN: drawer movements are tagged with this shift
    - CLOSED: counted, reconciled, variance recorded (terminal)

    At most one OPEN shift exists system-wide; the partial unique index
    enforces it at the store level.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)

    opening_cents = db.Column(db.BigInteger, nullable=False, default=0)
    closing_cents = db.Column(db.BigInteger, nullable=True)  # counted, set at close

    # Reconciliation (computed at close)
    expected_closing_cents = db.Column(db.BigInteger, nullable=True)
    net_sales_cents = db.Column(db.BigInteger, nullable=True)
    variance_cents = db.Column(db.BigInteger, nullable=True)
    total_expenses_cents = db.Column(db.BigInteger, nullable=True)
    total_collected_cents = db.Column(db.BigInteger, nullable=True)

    opened_by = db.Column(db.String(64), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SHIFT_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "opening_cents": self.opening_cents,
            "closing_cents": self.closing_cents,
            "expected_closing_cents": self.expected_closing_cents,
            "net_sales_cents": self.net_sales_cents,
            "variance_cents": self.variance_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "total_collected_cents": self.total_collected_cents,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }
