# Overview: Flask API routes for the treasury ledger; parses input and returns JSON responses.

"""
Treasury Routes

Append-only: there is no update or delete endpoint. A wrong movement is
cancelled with POST /api/treasury/<id>/offset.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_operator
from ..errors import LedgerError, ValidationError
from ..services import account_service, treasury_service
from ledgerdesk.time_utils import parse_iso_datetime


treasury_bp = Blueprint("treasury", __name__, url_prefix="/api/treasury")


@treasury_bp.get("")
def list_transactions_route():
    """
    Treasury movements, newest first.

    Query parameters:
    - shift_id: only movements of one shift
    - limit: Maximum results (default: 100)
    """
    shift_id = request.args.get("shift_id", type=int)
    limit = request.args.get("limit", 100, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    transactions = treasury_service.list_transactions(shift_id=shift_id, limit=limit)
    return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)})


@treasury_bp.get("/balance")
def balance_route():
    """
    credit - debit over matching movements.

    Query parameters:
    - type: cash | bank (default cash)
    - shift_id: scope to one shift (optional)
    - as_of: ISO-8601 cut-off (optional)
    """
    balance_type = request.args.get("type", "cash")
    shift_id = request.args.get("shift_id", type=int)

    try:
        try:
            as_of = parse_iso_datetime(request.args.get("as_of"))
        except ValueError:
            raise ValidationError("as_of must be an ISO-8601 datetime")
        balance = treasury_service.balance_as_of(balance_type, shift_id=shift_id, as_of=as_of)
        return jsonify({"type": balance_type, "shift_id": shift_id, "balance_cents": balance})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@treasury_bp.get("/summary")
def summary_route():
    """Cash, bank, receivables and payables at a glance."""
    return jsonify(account_service.financial_summary())


@treasury_bp.post("")
@with_operator
def record_manual_route():
    """
    Manual deposit or withdrawal (safe for cash, bank for bank).

    Request body:
    {
        "type": "cash",           // cash | bank
        "operation": "credit",    // credit (deposit) | debit (withdrawal)
        "amount_cents": 10000,
        "description": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = treasury_service.record_manual(
            data.get("type"),
            data.get("operation"),
            data.get("amount_cents"),
            description=data.get("description"),
            operator_id=g.operator_id,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record treasury movement")
        return jsonify({"error": "Internal server error"}), 500


@treasury_bp.post("/<int:transaction_id>/offset")
@with_operator
def offset_route(transaction_id: int):
    """
    Cancel a movement by appending its mirror image.

    Request body: {"reason": "..."} (optional)
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = treasury_service.record_offset(
            transaction_id,
            reason=data.get("reason"),
            operator_id=g.operator_id,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to offset treasury transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500
