# Overview: Flask API routes for bills; parses input and returns JSON responses.

# backend/splitledger/routes/bills.py
"""
Bill API Routes

LIFECYCLE:
    draft -> pending -> approved -> settled
               |           |
               +-----------+--> cancelled

- Creator edits items, tax/tip and split configuration while draft
- Creator submits; a group admin approves (materializes splits) or cancels
- settled is reached only through payment confirmation (see splits routes)

All amounts are integer cents. Floats are rejected, not rounded.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import SettlementError, ValidationError
from ..services import bill_service, eligibility_service


bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")

HEADER_FIELDS = ("title", "description", "tax_cents", "tip_cents")
SPLIT_FIELDS = ("split_method", "participant_ids", "custom_amounts")


# =============================================================================
# CREATION & LISTING
# =============================================================================

@bills_bp.post("")
@require_auth
def create_bill_route():
    """
    Create a draft bill.

    Request body:
    {
        "group_id": 1,
        "title": "Dinner",
        "description": "Friday",              (optional)
        "currency": "INR",                    (optional, default DEFAULT_CURRENCY)
        "tax_cents": 120,                     (optional)
        "tip_cents": 200,                     (optional)
        "split_method": "equal",              (equal | by_item | custom)
        "participant_ids": [1, 2, 3],         (optional, default: all members)
        "custom_amounts": {"1": 500, ...},    (custom only)
        "items": [
            {"name": "Pizza", "rate_cents": 1200, "quantity": 2,
             "assigned_user_ids": [1, 2], "category": "food"}
        ]
    }

    Returns:
        201: Bill created
        400: Invalid input
        404: Group not found / caller not a member
    """
    try:
        data = request.get_json(silent=True) or {}
        group_id = data.get("group_id")
        if not isinstance(group_id, int) or isinstance(group_id, bool):
            return jsonify({"error": "group_id required", "code": "ValidationError"}), 400

        bill = bill_service.create_bill(
            group_id,
            g.current_user.id,
            data.get("title"),
            description=data.get("description"),
            currency=data.get("currency"),
            tax_cents=data.get("tax_cents", 0),
            tip_cents=data.get("tip_cents", 0),
            split_method=data.get("split_method", "equal"),
            participant_ids=data.get("participant_ids"),
            custom_amounts=data.get("custom_amounts"),
            items=data.get("items"),
        )
        return jsonify({"bill": bill.to_dict()}), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.get("")
@require_auth
def list_bills_route():
    """
    Bills visible to the caller: only bills created after they joined the
    group (or that they created themselves).

    Query params:
    - group_id: Restrict to one group
    - status: Filter by lifecycle status
    - limit: Max results (default BILL_LIST_LIMIT)
    """
    try:
        limit = request.args.get("limit", type=int) or current_app.config.get("BILL_LIST_LIMIT", 50)
        bills = eligibility_service.list_bills_for_user(
            g.current_user.id,
            request.args.get("group_id", type=int),
            request.args.get("status"),
            limit=limit,
        )
        return jsonify({"bills": [b.to_dict(include_lines=False) for b in bills]}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list bills")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.get("/<int:bill_id>")
@require_auth
def get_bill_route(bill_id: int):
    try:
        bill = bill_service.get_bill(bill_id, g.current_user.id)
        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get bill")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DRAFT EDITING
# =============================================================================

@bills_bp.patch("/<int:bill_id>")
@require_auth
def update_bill_route(bill_id: int):
    """
    Edit a draft bill.

    Request body (any subset):
    {
        "title": "Dinner (corrected)",
        "description": "...",
        "tax_cents": 150,
        "tip_cents": 0,
        "split_method": "custom",
        "participant_ids": [1, 2],
        "custom_amounts": {"1": 700, "2": 650}
    }

    Returns:
        200: Updated bill
        409: Bill no longer draft (BillLocked)
    """
    try:
        data = request.get_json(silent=True) or {}
        unknown = set(data) - set(HEADER_FIELDS) - set(SPLIT_FIELDS)
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        bill = bill_service.get_bill(bill_id, g.current_user.id)

        header = {k: data[k] for k in HEADER_FIELDS if k in data}
        if header:
            bill = bill_service.update_draft(bill_id, g.current_user.id, **header)

        if any(k in data for k in SPLIT_FIELDS):
            bill = bill_service.configure_split(
                bill_id,
                g.current_user.id,
                data.get("split_method", bill.split_method),
                participant_ids=data.get("participant_ids"),
                custom_amounts=data.get("custom_amounts"),
            )

        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.delete("/<int:bill_id>")
@require_auth
def delete_bill_route(bill_id: int):
    """Delete a draft bill. Anything past draft is kept for history."""
    try:
        bill_service.delete_draft(bill_id, g.current_user.id)
        return jsonify({"deleted": True}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/<int:bill_id>/items")
@require_auth
def add_item_route(bill_id: int):
    """
    Add an item to a draft bill.

    Request body:
    {
        "name": "Pizza",
        "rate_cents": 1200,
        "quantity": 2,                   (optional, default 1)
        "assigned_user_ids": [1, 2],     (optional; required for by_item split)
        "category": "food"               (optional)
    }

    Returns:
        201: Item plus the recomputed bill
        400: Invalid amount / quantity
        409: Bill not draft
    """
    try:
        data = request.get_json(silent=True) or {}
        item = bill_service.add_item(
            bill_id,
            g.current_user.id,
            data.get("name"),
            data.get("rate_cents"),
            data.get("quantity", 1),
            assigned_user_ids=data.get("assigned_user_ids"),
            category=data.get("category"),
        )
        bill = bill_service.get_bill(bill_id)
        return jsonify({"item": item.to_dict(), "bill": bill.to_dict()}), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add bill item")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.patch("/<int:bill_id>/items/<int:item_id>")
@require_auth
def update_item_route(bill_id: int, item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        item = bill_service.update_item(bill_id, item_id, g.current_user.id, **data)
        bill = bill_service.get_bill(bill_id)
        return jsonify({"item": item.to_dict(), "bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update bill item")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.delete("/<int:bill_id>/items/<int:item_id>")
@require_auth
def remove_item_route(bill_id: int, item_id: int):
    try:
        bill = bill_service.remove_item(bill_id, item_id, g.current_user.id)
        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove bill item")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@bills_bp.post("/<int:bill_id>/submit")
@require_auth
def submit_bill_route(bill_id: int):
    """
    Submit a draft for approval. Creator only.

    Returns:
        200: Bill now pending
        400: EmptyBill / InvalidAmount
        409: AlreadyProcessed
    """
    try:
        bill = bill_service.submit_bill(bill_id, g.current_user.id)
        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to submit bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/<int:bill_id>/approve")
@require_auth
def approve_bill_route(bill_id: int):
    """
    Approve a pending bill and materialize one split per participant.
    Group admin only.
    """
    try:
        bill = bill_service.approve_bill(bill_id, g.current_user.id)
        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to approve bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/<int:bill_id>/cancel")
@require_auth
def cancel_bill_route(bill_id: int):
    try:
        bill = bill_service.cancel_bill(bill_id, g.current_user.id)
        return jsonify({"bill": bill.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel bill")
        return jsonify({"error": "Internal server error"}), 500
