# Overview: Service-layer operations for notifications; emits and reads alert records.

"""
Notification emission.

The engine decides WHEN an alert exists and WHO receives it; the
messaging layer decides how it is rendered and delivered. `emit` only
stages rows on the current session so they commit (or roll back)
together with the transition that produced them.
"""

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Notification
from splitledger.time_utils import utcnow


# =============================================================================
# NOTIFICATION TYPES (CLOSED SET)
# =============================================================================

BILL_SUBMITTED = "bill_submitted"
BILL_APPROVED = "bill_approved"
BILL_SETTLED = "bill_settled"
BILL_CANCELLED = "bill_cancelled"
PROOF_SUBMITTED = "proof_submitted"
SPLIT_CONFIRMED = "split_confirmed"
SPLIT_REJECTED = "split_rejected"
SPLIT_DISPUTED = "split_disputed"
USER_JOINED_GROUP = "user_joined_group"

VALID_NOTIFICATION_TYPES = {
    BILL_SUBMITTED,
    BILL_APPROVED,
    BILL_SETTLED,
    BILL_CANCELLED,
    PROOF_SUBMITTED,
    SPLIT_CONFIRMED,
    SPLIT_REJECTED,
    SPLIT_DISPUTED,
    USER_JOINED_GROUP,
}


def emit(
    notification_type: str,
    recipient_ids,
    payload: dict,
    *,
    exclude_user_id: int | None = None,
) -> list[Notification]:
    """
    Stage one notification per distinct recipient. Does NOT commit.

    Recipients keep their first-seen order; `exclude_user_id` drops the
    actor so nobody is alerted about their own action.
    """
    if notification_type not in VALID_NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {notification_type}")

    seen = set()
    created = []
    now = utcnow()
    for user_id in recipient_ids:
        if user_id is None or user_id == exclude_user_id or user_id in seen:
            continue
        seen.add(user_id)
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            payload=dict(payload),
            is_read=False,
            created_at=now,
        )
        db.session.add(notification)
        created.append(notification)
    return created


def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        q = q.filter_by(is_read=False)
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    return q.limit(limit).all()


def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    # Someone else's notification is reported as missing, not forbidden
    if notification is None or notification.user_id != user_id:
        raise NotFoundError(f"Notification {notification_id} not found")
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    updated = db.session.query(Notification).filter_by(
        user_id=user_id,
        is_read=False,
    ).update({"is_read": True}, synchronize_session=False)
    db.session.commit()
    return updated
