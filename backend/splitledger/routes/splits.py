# Overview: Flask API routes for split payment verification; parses input and returns JSON responses.

# backend/splitledger/routes/splits.py
"""
Split Verification API Routes

WHY: Money moves outside the system. A payer records proof (UPI reference
and/or screenshot URL); someone else (bill creator or group admin)
confirms or rejects it. Confirming the last outstanding split settles the
bill.

SECURITY:
- Only the split's payer submits proof or responds to the amount
- The payer can never confirm or reject their own split
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import SettlementError
from ..services import verification_service


splits_bp = Blueprint("splits", __name__, url_prefix="/api/splits")


def _split_response(split, status_code=200):
    return jsonify({
        "split": split.to_dict(),
        "bill_status": split.bill.status,
    }), status_code


# =============================================================================
# PAYER ACTIONS
# =============================================================================

@splits_bp.post("/<int:split_id>/proof")
@require_auth
def submit_proof_route(split_id: int):
    """
    Submit payment proof for the caller's own split.

    Request body (at least one field):
    {
        "upi_reference": "UPI-4432-XYZ",
        "proof_image_url": "https://media.example/receipts/1.png"
    }

    Returns:
        200: Split now submitted
        400: MissingProof
        403: Not the payer
        409: Split not pending/rejected, or bill not approved
    """
    try:
        data = request.get_json(silent=True) or {}
        split = verification_service.submit_proof(
            split_id,
            g.current_user.id,
            reference=data.get("upi_reference"),
            screenshot_url=data.get("proof_image_url"),
        )
        return _split_response(split)

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to submit payment proof")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.post("/<int:split_id>/respond")
@require_auth
def respond_route(split_id: int):
    """
    Accept or dispute the assigned amount.

    Request body:
    {
        "accept": true
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        accept = data.get("accept")
        if not isinstance(accept, bool):
            return jsonify({"error": "accept must be true or false", "code": "ValidationError"}), 400

        split = verification_service.respond_to_split(split_id, g.current_user.id, accept)
        return _split_response(split)

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record split response")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VERIFIER ACTIONS
# =============================================================================

@splits_bp.post("/<int:split_id>/confirm")
@require_auth
def confirm_route(split_id: int):
    """
    Confirm a submitted payment. Bill creator or group admin, never the payer.

    Returns:
        200: Split confirmed (bill_status "settled" if it was the last one)
        403: SelfConfirmationDenied / Unauthorized
        409: Split not submitted / ConcurrentModification
    """
    try:
        split = verification_service.confirm_split(split_id, g.current_user.id)
        return _split_response(split)

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to confirm split")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.post("/<int:split_id>/reject")
@require_auth
def reject_route(split_id: int):
    """
    Reject a submitted payment.

    Request body:
    {
        "reason": "Amount on screenshot does not match"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        split = verification_service.reject_split(split_id, g.current_user.id, data.get("reason"))
        return _split_response(split)

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reject split")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUEUES
# =============================================================================

@splits_bp.get("/pending-verification")
@require_auth
def pending_verification_route():
    """Submitted splits the caller is allowed to confirm."""
    try:
        splits = verification_service.list_pending_verifications(g.current_user.id)
        return jsonify({"splits": [s.to_dict() for s in splits]}), 200
    except Exception:
        current_app.logger.exception("Failed to list pending verifications")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.get("/history")
@require_auth
def payment_history_route():
    """
    The caller's confirmed payments, most recent first.

    Query params:
    - limit: Max results (default 50)
    """
    try:
        limit = request.args.get("limit", 50, type=int)
        splits = verification_service.list_payment_history(g.current_user.id, limit=limit)
        return jsonify({"splits": [s.to_dict() for s in splits]}), 200
    except Exception:
        current_app.logger.exception("Failed to list payment history")
        return jsonify({"error": "Internal server error"}), 500
