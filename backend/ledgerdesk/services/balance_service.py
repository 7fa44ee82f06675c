# Overview: Balance calculator; folds an account's ledger events into its balance.

"""
Balance Calculator

The only legitimate way to derive an account balance. Every mutation of
ledger events ends here, inside the same transaction as the mutation.

ALGORITHM:
1. Load every event of the account fresh from the store.
2. Sort by occurred_at ascending; events without a timestamp sort last;
   ties break on id (insertion order).
3. Standalone payments linked to an invoice present in the set contribute
   zero (the invoice's total_paid already carries them).
4. Fold signed_contribution into a running balance per event.
5. Persist the final balance into Account.cached_balance_cents.

No increments are ever applied to cached_balance_cents directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..extensions import db
from ..errors import NotFound
from ..models import Account, LedgerEvent, Invoice, PartialPayment
from ..models.ledger import EVENT_INVOICE, signed_contribution
from ledgerdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class StatementRow:
    event: LedgerEvent
    contribution_cents: int
    running_balance_cents: int
    legacy_payment_conflict: bool = False

    def to_dict(self) -> dict:
        data = self.event.to_dict()
        data["contribution_cents"] = self.contribution_cents
        data["running_balance_cents"] = self.running_balance_cents
        if self.legacy_payment_conflict:
            data["legacy_payment_conflict"] = True
        return data


@dataclass
class FoldResult:
    balance_cents: int = 0
    rows: list[StatementRow] = field(default_factory=list)


def event_sort_key(event: LedgerEvent) -> tuple:
    occurred = event.occurred_at
    return (occurred is None, occurred or datetime.max, event.id or 0)


def fold_events(events: list[LedgerEvent], conflicts: set[int] | None = None) -> FoldResult:
    """
    Pure fold over already-loaded events (no store access).

    final balance == sum(signed_contribution(e)) under the linked-payment rule.
    """
    conflicts = conflicts or set()
    present_invoice_ids = frozenset(e.id for e in events if e.kind == EVENT_INVOICE)

    result = FoldResult()
    running = 0
    for event in sorted(events, key=event_sort_key):
        contribution = signed_contribution(event, present_invoice_ids)
        running += contribution
        result.rows.append(StatementRow(
            event=event,
            contribution_cents=contribution,
            running_balance_cents=running,
            legacy_payment_conflict=event.id in conflicts,
        ))
    result.balance_cents = running
    return result


def sync_invoice_paid(invoice: Invoice) -> bool:
    """
    Make invoice.total_paid_cents equal the sum of its payments.

    Legacy invoices carry a single legacy_payment_cents figure. When the
    invoice has no payments yet it is migrated into one; when both exist the
    payments win and the legacy figure is left untouched for review.

    Returns True when a legacy/payments conflict was found.
    """
    conflict = False
    legacy = invoice.legacy_payment_cents or 0
    if legacy > 0:
        if not invoice.payments:
            invoice.payments.append(PartialPayment(
                amount_cents=legacy,
                paid_at=invoice.occurred_at,
                method=invoice.method,
                note="Paid at invoice creation (migrated)",
            ))
            invoice.legacy_payment_cents = None
            logger.info("Migrated legacy payment of %s on invoice %s", legacy, invoice.id)
        else:
            conflict = True
            logger.warning(
                "Invoice %s has both a legacy payment (%s) and recorded payments; using recorded payments",
                invoice.id, legacy,
            )

    paid = sum(p.amount_cents for p in invoice.payments)
    if invoice.total_paid_cents != paid:
        if invoice.total_paid_cents:
            logger.warning(
                "Invoice %s total_paid drifted (%s != %s); repairing",
                invoice.id, invoice.total_paid_cents, paid,
            )
        invoice.total_paid_cents = paid
    return conflict


def get_account_for_update(account_id: int) -> Account:
    account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
    if not account:
        raise NotFound(f"Account {account_id} not found")
    return account


def load_events(account_id: int) -> list[LedgerEvent]:
    return (
        db.session.query(LedgerEvent)
        .filter_by(account_id=account_id)
        .populate_existing()
        .all()
    )


def recompute_in_session(account_id: int) -> FoldResult:
    """
    Recompute and persist the balance without committing.

    Callers run this as the last step of their own transaction.
    """
    account = get_account_for_update(account_id)
    db.session.flush()

    events = load_events(account.id)
    conflicts = set()
    for event in events:
        if event.kind == EVENT_INVOICE and sync_invoice_paid(event):
            conflicts.add(event.id)

    result = fold_events(events, conflicts)

    # Always written: the account version moves with every mutation
    account.cached_balance_cents = result.balance_cents
    account.last_balance_update_at = utcnow()
    db.session.flush()
    return result


def recompute(account_id: int) -> int:
    """Recompute an account's balance from its full history and persist it."""
    return run_in_transaction(lambda: recompute_in_session(account_id).balance_cents)


def get_statement(account_id: int) -> dict:
    """
    Statement for display: every event with its running balance, oldest first.
    """
    def _op():
        result = recompute_in_session(account_id)
        account = db.session.get(Account, account_id)
        return {
            "account": account.to_dict(),
            "events": [row.to_dict() for row in result.rows],
            "current_balance_cents": result.balance_cents,
        }

    return run_in_transaction(_op)


def recompute_all() -> dict[int, int]:
    """Rebuild every cached balance; one transaction per account."""
    account_ids = [row[0] for row in db.session.query(Account.id).order_by(Account.id).all()]
    return {account_id: recompute(account_id) for account_id in account_ids}
