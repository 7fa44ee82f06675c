# Overview: Flask API routes for accounts and statements; parses input and returns JSON responses.

"""
Account Routes

Accounts are customers and suppliers. Balances are read-only here: they
are produced by the balance calculator and refreshed on every mutation.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import account_service, balance_service


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("")
def create_account_route():
    """
    Create a customer or supplier.

    Request body:
    {
        "display_name": "Corner Cafe",  // required
        "phone": "0555 123 456",        // optional, unique per kind
        "kind": "customer"              // customer | supplier (default customer)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        account = account_service.create_account(
            display_name=data.get("display_name"),
            phone=data.get("phone"),
            kind=data.get("kind", "customer"),
        )
        return jsonify({"account": account.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("")
def list_accounts_route():
    """
    List accounts.

    Query parameters:
    - kind: customer | supplier (optional)
    """
    try:
        accounts = account_service.list_accounts(kind=request.args.get("kind"))
        return jsonify({"items": [a.to_dict() for a in accounts], "count": len(accounts)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@accounts_bp.get("/<int:account_id>")
def get_account_route(account_id: int):
    try:
        account = account_service.get_account(account_id)
        return jsonify({"account": account.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@accounts_bp.get("/<int:account_id>/statement")
def get_statement_route(account_id: int):
    """
    Every ledger event of the account, oldest first, with running balance.

    The balance is recomputed from history on every call.
    """
    try:
        return jsonify(balance_service.get_statement(account_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build statement for account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/<int:account_id>/recompute")
def recompute_route(account_id: int):
    try:
        balance = balance_service.recompute(account_id)
        return jsonify({"account_id": account_id, "balance_cents": balance})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to recompute account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500
