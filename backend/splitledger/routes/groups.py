# Overview: Flask API routes for groups and membership; parses input and returns JSON responses.

# backend/splitledger/routes/groups.py
"""
Group & Membership API Routes

DESIGN:
- Anyone authenticated can create a group; they become its admin
- Everyone else gets in by redeeming the group's invite code
- Admins soft-remove members; history (splits, eligibility) survives removal
- Group-wide bill listing is NOT eligibility-filtered (audit view)
- Group chat is open to current members only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import SettlementError
from ..services import bill_service, membership_service, message_service


groups_bp = Blueprint("groups", __name__, url_prefix="/api/groups")


# =============================================================================
# GROUP DIRECTORY
# =============================================================================

@groups_bp.post("")
@require_auth
def create_group_route():
    """
    Create a group.

    Request body:
    {
        "name": "Flat 4B",
        "description": "Rent and groceries"  (optional)
    }

    Returns:
        201: Group created (includes invite_code)
        400: Missing name
    """
    try:
        data = request.get_json(silent=True) or {}
        group = membership_service.create_group(
            data.get("name"),
            g.current_user.id,
            data.get("description"),
        )
        return jsonify({"group": group.to_dict()}), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create group")
        return jsonify({"error": "Internal server error"}), 500


@groups_bp.get("")
@require_auth
def list_groups_route():
    """Groups the caller currently belongs to."""
    try:
        groups = membership_service.list_user_groups(g.current_user.id)
        return jsonify({"groups": [group.to_dict() for group in groups]}), 200
    except Exception:
        current_app.logger.exception("Failed to list groups")
        return jsonify({"error": "Internal server error"}), 500


@groups_bp.post("/join")
@require_auth
def join_group_route():
    """
    Redeem an invite code.

    Request body:
    {
        "invite_code": "A1B2C3D4"
    }

    Returns:
        201: Membership created
        404: Unknown code
        409: Already a member
    """
    try:
        data = request.get_json(silent=True) or {}
        member = membership_service.join_group(data.get("invite_code"), g.current_user.id)
        return jsonify({"member": member.to_dict()}), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to join group")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MEMBERS
# =============================================================================

@groups_bp.get("/<int:group_id>/members")
@require_auth
def list_members_route(group_id: int):
    """
    Query params:
    - include_removed: Include soft-removed members (default: false)
    """
    try:
        include_removed = request.args.get("include_removed", "false").lower() == "true"
        members = membership_service.list_group_members(
            group_id,
            g.current_user.id,
            include_removed=include_removed,
        )
        return jsonify({"members": [m.to_dict() for m in members]}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list group members")
        return jsonify({"error": "Internal server error"}), 500


@groups_bp.delete("/<int:group_id>/members/<int:user_id>")
@require_auth
def remove_member_route(group_id: int, user_id: int):
    """Soft-remove a member (admin only). The group creator cannot be removed."""
    try:
        member = membership_service.remove_member(group_id, user_id, g.current_user.id)
        return jsonify({"member": member.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove group member")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# GROUP BILLS
# =============================================================================

@groups_bp.get("/<int:group_id>/bills")
@require_auth
def list_group_bills_route(group_id: int):
    """
    Every bill in the group, newest first, regardless of when the caller
    joined.

    Query params:
    - status: Filter by lifecycle status
    - limit: Max results (default BILL_LIST_LIMIT)
    """
    try:
        limit = request.args.get("limit", type=int) or current_app.config.get("BILL_LIST_LIMIT", 50)
        bills = bill_service.list_group_bills(
            group_id,
            g.current_user.id,
            status=request.args.get("status"),
            limit=limit,
        )
        return jsonify({"bills": [b.to_dict(include_lines=False) for b in bills]}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list group bills")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# GROUP CHAT
# =============================================================================

@groups_bp.get("/<int:group_id>/messages")
@require_auth
def list_messages_route(group_id: int):
    """
    Query params:
    - limit: Max results (default CHAT_PAGE_SIZE)
    - before_id: Only messages older than this id
    """
    try:
        messages = message_service.list_messages(
            group_id,
            g.current_user.id,
            limit=request.args.get("limit", type=int),
            before_id=request.args.get("before_id", type=int),
        )
        return jsonify({"messages": [m.to_dict() for m in messages]}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list group messages")
        return jsonify({"error": "Internal server error"}), 500


@groups_bp.post("/<int:group_id>/messages")
@require_auth
def post_message_route(group_id: int):
    """
    Request body:
    {
        "body": "Paid the electricity bill"
    }

    Returns:
        201: Message posted
        400: Empty or over-long body
        403: Not a current member
    """
    try:
        data = request.get_json(silent=True) or {}
        message = message_service.post_message(group_id, g.current_user.id, data.get("body"))
        return jsonify({"message": message.to_dict()}), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post group message")
        return jsonify({"error": "Internal server error"}), 500
