# Overview: Service-layer operations for bill eligibility; per-user bill visibility.

"""
Eligibility Filter

A bill counts for a user only if they were already in the group when the
bill was created, so newcomers are never pulled into historical debts:

    eligible(bill, user) := user == bill.creator
                            OR joined_at(bill.group, user) <= bill.created_at

Soft-removed members keep their history: bills created before removal
stay eligible, bills created afterwards do not.

Applied wherever bills are listed or summed FOR A USER. Group-wide
listings (bill_service.list_group_bills) are never filtered.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Bill
from splitledger.time_utils import normalize_utc
from . import bill_service, membership_service


def is_eligible(
    bill: Bill,
    user_id: int,
    joined_at: datetime | None,
    removed_at: datetime | None = None,
) -> bool:
    if bill.created_by_user_id == user_id:
        return True
    if joined_at is None:
        return False

    created_at = normalize_utc(bill.created_at)
    if normalize_utc(joined_at) > created_at:
        return False
    if removed_at is not None and created_at > normalize_utc(removed_at):
        return False
    return True


def is_bill_eligible_for_user(bill: Bill, user_id: int) -> bool:
    """Single-bill check that looks the membership up itself."""
    rows = membership_service.memberships_for_user(user_id, bill.group_id)
    if not rows:
        return bill.created_by_user_id == user_id
    return is_eligible(bill, user_id, rows[0].joined_at, rows[0].removed_at)


def list_bills_for_user(
    user_id: int,
    group_id: int | None = None,
    status=None,
    *,
    limit: int | None = None,
) -> list[Bill]:
    """
    Bills visible to a user across their groups, newest first.

    Args:
        user_id: whose view to build
        group_id: restrict to one group (empty list if never a member)
        status: one status or an iterable of statuses
        limit: cap applied AFTER eligibility filtering

    Returns:
        Eligible bills ordered by created_at descending
    """
    memberships = {
        row.group_id: row for row in membership_service.memberships_for_user(user_id, group_id)
    }
    if not memberships:
        return []

    statuses = None
    if status is not None:
        statuses = {status} if isinstance(status, str) else set(status)
        for value in statuses:
            bill_service.validate_status(value)

    q = db.session.query(Bill).filter(Bill.group_id.in_(list(memberships)))
    if statuses is not None:
        q = q.filter(Bill.status.in_(sorted(statuses)))
    q = q.order_by(Bill.created_at.desc(), Bill.id.desc())

    visible = []
    for bill in q.all():
        row = memberships[bill.group_id]
        if is_eligible(bill, user_id, row.joined_at, row.removed_at):
            visible.append(bill)
        else:
            current_app.logger.debug(
                "Bill %s hidden from user %s (joined %s, bill created %s)",
                bill.id, user_id, row.joined_at, bill.created_at,
            )
        if limit is not None and len(visible) >= limit:
            break
    return visible
