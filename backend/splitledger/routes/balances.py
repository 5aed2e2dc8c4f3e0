# Overview: Flask API route for the caller's balance summary.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_auth
from ..services import balance_service


balances_bp = Blueprint("balances", __name__, url_prefix="/api/balances")


@balances_bp.get("")
@require_auth
def balances_route():
    """
    Outstanding amounts for the caller, recomputed on every request.

    Returns:
    {
        "owed_cents": 2000,      (others owe the caller, on bills they created)
        "owing_cents": 1250,     (caller's own unconfirmed splits)
        "net_cents": 750,
        "groups": {"1": {"owed_cents": ..., "owing_cents": ..., "net_cents": ...}}
    }

    Only approved/settled bills created after the caller joined count.
    """
    try:
        user_id = g.current_user.id
        totals = balance_service.compute_balances(user_id)
        per_group = balance_service.compute_group_balances(user_id)

        body = totals.to_dict()
        body["groups"] = {str(gid): b.to_dict() for gid, b in per_group.items()}
        return jsonify(body), 200

    except Exception:
        current_app.logger.exception("Failed to compute balances")
        return jsonify({"error": "Internal server error"}), 500
