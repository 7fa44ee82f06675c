# Overview: Flask API routes for ledger events and payments; parses input and returns JSON responses.

"""
Ledger Routes

WHY: The write API used by order/checkout screens and back-office staff.
Every call here ends with the account's balance re-folded from history.

Treasury side-effects of payments are best-effort: when the payment is
committed but its treasury entry is not, the answer is still 201 and the
failure is listed under "warnings".
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_operator
from ..errors import LedgerError
from ..services import ledger_service, payment_service, reversal_service
from ..services.balance_service import get_statement


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _receipt_response(receipt, status: int = 201):
    body = {"receipt": receipt.to_dict()}
    if not receipt.treasury_ok:
        body["warnings"] = [receipt.treasury_error.to_dict()]
    return jsonify(body), status


# =============================================================================
# EVENT CREATION
# =============================================================================

@ledger_bp.post("/accounts/<int:account_id>/invoices")
@with_operator
def create_invoice_route(account_id: int):
    """
    Create an invoice.

    Request body:
    {
        "amount_cents": 1000,           // or "line_items": [...]
        "line_items": [{"description": "Bread", "quantity": 2, "unit_price_cents": 150},
                       {"product_id": "SKU-1", "quantity": 1.5}],
        "occurred_at": "2026-01-15",    // optional, defaults to now
        "note": "...",
        "attachment_ref": "...",
        "order_number": "ORD-1001",     // optional: mirror of an order
        "initial_payment_cents": 400,   // optional
        "method": "cash"                // optional: cash | bank
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        receipt = ledger_service.create_invoice(
            account_id,
            amount_cents=data.get("amount_cents"),
            line_items=data.get("line_items"),
            occurred_at=data.get("occurred_at"),
            note=data.get("note"),
            attachment_ref=data.get("attachment_ref"),
            order_number=data.get("order_number"),
            initial_payment_cents=data.get("initial_payment_cents"),
            method=data.get("method"),
            operator_id=g.operator_id,
        )
        body = {"invoice": receipt.to_dict()}
        initial = receipt.initial_payment
        if initial is not None and not initial.treasury_ok:
            body["warnings"] = [initial.treasury_error.to_dict()]
        return jsonify(body), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice for account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/accounts/<int:account_id>/payments")
@with_operator
def apply_payment_route(account_id: int):
    """
    Apply a payment to the account, or to one of its invoices.

    Request body:
    {
        "amount_cents": 400,        // required
        "linked_invoice_id": 12,    // optional
        "method": "cash",           // optional: cash | bank (writes treasury)
        "paid_at": "2026-01-15",    // optional
        "note": "...",
        "attachment_ref": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        receipt = payment_service.apply_payment(
            account_id,
            data.get("amount_cents"),
            linked_invoice_id=data.get("linked_invoice_id"),
            method=data.get("method"),
            note=data.get("note"),
            paid_at=data.get("paid_at"),
            attachment_ref=data.get("attachment_ref"),
            operator_id=g.operator_id,
        )
        return _receipt_response(receipt)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply payment for account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/accounts/<int:account_id>/opening-balance")
def create_opening_balance_route(account_id: int):
    """
    Seed debt carried over from before the ledger.

    Request body: {"amount_cents": -2500, "occurred_at": "...", "note": "..."}
    Negative amounts are credits in the account's favour.
    """
    data = request.get_json(silent=True) or {}

    try:
        event = ledger_service.create_opening_balance(
            account_id,
            data.get("amount_cents"),
            occurred_at=data.get("occurred_at"),
            note=data.get("note"),
        )
        return jsonify({"event": event.to_dict(), "balance_cents": event.account.cached_balance_cents}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create opening balance for account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/accounts/<int:account_id>/payment-events")
def record_payment_event_route(account_id: int):
    """
    Record a standalone payment as it appears in imported records.

    Request body: {"amount_cents": 300, "linked_invoice_id": 12, "occurred_at": "...", "note": "..."}
    No treasury entry is written.
    """
    data = request.get_json(silent=True) or {}

    try:
        event = ledger_service.record_payment_event(
            account_id,
            data.get("amount_cents"),
            linked_invoice_id=data.get("linked_invoice_id"),
            occurred_at=data.get("occurred_at"),
            note=data.get("note"),
            method=data.get("method"),
        )
        return jsonify({"event": event.to_dict(), "balance_cents": event.account.cached_balance_cents}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment event for account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# EDIT / DELETE
# =============================================================================

@ledger_bp.get("/events/<int:event_id>")
def get_event_route(event_id: int):
    try:
        event = ledger_service.get_event(event_id)
        return jsonify({"event": event.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@ledger_bp.patch("/events/<int:event_id>")
def edit_event_route(event_id: int):
    """
    Edit an event.

    Allowed fields: amount_cents, occurred_at, note, attachment_ref,
    line_items (invoices only). Returns the event and the refreshed statement.
    """
    data = request.get_json(silent=True)

    try:
        event = reversal_service.edit_event(event_id, data)
        return jsonify({
            "event": event.to_dict(),
            "statement": get_statement(event.account_id),
        })
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to edit ledger event %s", event_id)
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.delete("/events/<int:event_id>")
def delete_event_route(event_id: int):
    """
    Hard-delete an event (and its mirrored order, if any).

    Treasury entries are untouched; offset them separately.
    """
    try:
        balance = reversal_service.delete_event(event_id)
        return jsonify({"deleted": event_id, "balance_cents": balance})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete ledger event %s", event_id)
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.delete("/events/<int:event_id>/payments/<int:payment_id>")
def remove_invoice_payment_route(event_id: int, payment_id: int):
    """Remove one payment from an invoice."""
    try:
        balance = payment_service.remove_invoice_payment(event_id, payment_id)
        return jsonify({"invoice_id": event_id, "removed": payment_id, "balance_cents": balance})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove payment %s from invoice %s", payment_id, event_id)
        return jsonify({"error": "Internal server error"}), 500
