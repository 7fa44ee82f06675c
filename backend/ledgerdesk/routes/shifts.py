# Overview: Flask API routes for drawer shifts; parses input and returns JSON responses.

"""
Shift Routes

WHY: Cash accountability. One shift is open at a time; closing it
reconciles the counted drawer against recorded cash movements.

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- Variance is reported in the close response, never corrected
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_operator
from ..errors import LedgerError
from ..services import shift_service


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("")
@with_operator
def start_shift_route():
    """
    Open a shift.

    Request body: {"opening_cents": 5000}
    409 when a shift is already open.
    """
    data = request.get_json(silent=True) or {}

    try:
        shift = shift_service.start_shift(data.get("opening_cents"), operator_id=g.operator_id)
        return jsonify({"shift": shift.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("")
def list_shifts_route():
    limit = request.args.get("limit", 20, type=int)
    limit = max(1, min(limit, 200))
    shifts = shift_service.list_shifts(limit=limit)
    return jsonify({"items": [s.to_dict() for s in shifts], "count": len(shifts)})


@shifts_bp.get("/open")
def get_open_shift_route():
    """The open shift, or {"shift": null}."""
    shift = shift_service.get_open_shift()
    return jsonify({"shift": shift.to_dict() if shift else None})


@shifts_bp.get("/categories")
def expense_categories_route():
    return jsonify({"categories": {k: list(v) for k, v in shift_service.EXPENSE_CATEGORIES.items()}})


@shifts_bp.get("/<int:shift_id>")
def get_shift_route(shift_id: int):
    """Shift details, live drawer totals and its treasury movements."""
    try:
        return jsonify(shift_service.get_shift_summary(shift_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/<int:shift_id>/expenses")
@with_operator
def record_expense_route(shift_id: int):
    """
    Pay an expense out of the drawer.

    Request body: {"amount_cents": 300, "category": "operational/cleaning", "note": "..."}
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = shift_service.record_expense(
            shift_id,
            data.get("amount_cents"),
            data.get("category"),
            note=data.get("note"),
            operator_id=g.operator_id,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record expense on shift %s", shift_id)
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/close")
@with_operator
def close_shift_route(shift_id: int):
    """
    Close a shift with the counted drawer amount.

    Request body: {"counted_closing_cents": 6700, "notes": "..."}

    Returns the closed shift with expected_closing_cents, net_sales_cents and
    variance_cents (counted - expected).
    """
    data = request.get_json(silent=True) or {}

    try:
        shift = shift_service.close_shift(
            shift_id,
            data.get("counted_closing_cents"),
            operator_id=g.operator_id,
            notes=data.get("notes"),
        )
        return jsonify({
            "shift": shift.to_dict(),
            "net_sales_cents": shift.net_sales_cents,
            "variance_cents": shift.variance_cents,
        })
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close shift %s", shift_id)
        return jsonify({"error": "Internal server error"}), 500
