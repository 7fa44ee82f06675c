# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, g


def with_operator(f):
    """
    Establish who is acting on the drawer or ledger.

    Sets g.operator_id from the X-Operator-Id header, falling back to an
    "operator_id" field in the JSON body. Authentication is handled in front
    of this service; the id is recorded as given.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = request.headers.get("X-Operator-Id")
        if not operator_id:
            data = request.get_json(silent=True)
            if isinstance(data, dict) and data.get("operator_id") is not None:
                operator_id = str(data["operator_id"])
        g.operator_id = operator_id or None
        return f(*args, **kwargs)

    return decorated_function
