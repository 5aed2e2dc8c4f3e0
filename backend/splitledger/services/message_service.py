# Overview: Service-layer operations for group chat messages.

"""
Group chat.

Current members post plain-text messages and read them back newest
first. Soft-removed members lose access to the chat along with the rest
of the group's live state.
"""

from __future__ import annotations

from flask import current_app

from ..errors import Unauthorized, ValidationError
from ..extensions import db
from ..models import ChatMessage
from splitledger.time_utils import utcnow
from . import membership_service


def _require_member(group_id: int, user_id: int) -> None:
    membership_service.get_group(group_id)
    if not membership_service.is_member(group_id, user_id):
        raise Unauthorized("Only group members can use the group chat")


def post_message(group_id: int, user_id: int, body: str) -> ChatMessage:
    _require_member(group_id, user_id)

    body = (body or "").strip() if isinstance(body, str) else ""
    if not body:
        raise ValidationError("Message body is required")
    max_length = current_app.config.get("CHAT_MESSAGE_MAX_LENGTH", 2000)
    if len(body) > max_length:
        raise ValidationError(f"Message body cannot exceed {max_length} characters")

    message = ChatMessage(group_id=group_id, user_id=user_id, body=body, created_at=utcnow())
    db.session.add(message)
    db.session.commit()
    return message


def list_messages(
    group_id: int,
    user_id: int,
    *,
    limit: int | None = None,
    before_id: int | None = None,
) -> list[ChatMessage]:
    """
    Newest first. `before_id` pages backwards from an earlier response's
    last message.
    """
    _require_member(group_id, user_id)

    q = db.session.query(ChatMessage).filter_by(group_id=group_id)
    if before_id is not None:
        q = q.filter(ChatMessage.id < before_id)
    q = q.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
    return q.limit(limit or current_app.config.get("CHAT_PAGE_SIZE", 50)).all()
