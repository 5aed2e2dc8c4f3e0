# Overview: Service-layer operations for groups and memberships.

"""
Membership Registry

Who belongs to which group, in which role, and since when.

RULES:
1. (group, user) is unique; adding an existing pair fails with DuplicateMember
2. The group creator is always an admin, whatever their stored role says
3. Memberships are never deleted. Removal sets removed_at and keeps
   joined_at, because eligibility of historical bills is decided by it
4. A soft-removed user cannot rejoin through the invite code (the pair
   still exists); an admin has to resolve that out of band
"""

from __future__ import annotations

import secrets
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    DuplicateMember,
    GroupNotFound,
    InvalidState,
    NotAMember,
    NotFoundError,
    Unauthorized,
    ValidationError,
)
from ..extensions import db
from ..models import Group, GroupMember, User
from splitledger.time_utils import utcnow, normalize_utc
from . import notification_service


ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
VALID_ROLES = {ROLE_ADMIN, ROLE_MEMBER}


# =============================================================================
# LOOKUPS
# =============================================================================

def get_group(group_id: int) -> Group:
    group = db.session.get(Group, group_id)
    if group is None:
        raise GroupNotFound(f"Group {group_id} not found")
    return group


def _membership(group_id: int, user_id: int) -> GroupMember | None:
    """Membership row regardless of removal."""
    return db.session.query(GroupMember).filter_by(group_id=group_id, user_id=user_id).first()


def _active_membership(group_id: int, user_id: int) -> GroupMember | None:
    row = _membership(group_id, user_id)
    if row is None or row.removed_at is not None:
        return None
    return row


def is_member(group_id: int, user_id: int) -> bool:
    return _active_membership(group_id, user_id) is not None


def has_membership_history(group_id: int, user_id: int) -> bool:
    """True for current AND soft-removed members."""
    return _membership(group_id, user_id) is not None


def joined_at(group_id: int, user_id: int) -> datetime:
    """
    When the user joined the group.

    Historical value is returned for soft-removed members too.

    Raises:
        NotAMember: if the user never belonged to the group
    """
    row = _membership(group_id, user_id)
    if row is None:
        raise NotAMember(f"User {user_id} is not a member of group {group_id}")
    return normalize_utc(row.joined_at)


def get_role(group_id: int, user_id: int) -> str | None:
    row = _active_membership(group_id, user_id)
    if row is None:
        return None
    group = db.session.get(Group, group_id)
    if group is not None and group.created_by_user_id == user_id:
        return ROLE_ADMIN
    return row.role


def is_admin(group_id: int, user_id: int) -> bool:
    return get_role(group_id, user_id) == ROLE_ADMIN


def admin_user_ids(group_id: int) -> list[int]:
    rows = db.session.query(GroupMember).filter_by(group_id=group_id).filter(
        GroupMember.removed_at.is_(None)
    ).order_by(GroupMember.joined_at, GroupMember.id).all()
    group = db.session.get(Group, group_id)
    creator_id = group.created_by_user_id if group else None
    return [r.user_id for r in rows if r.role == ROLE_ADMIN or r.user_id == creator_id]


# =============================================================================
# MUTATIONS
# =============================================================================

def _stage_member(group_id: int, user_id: int, role: str, joined: datetime | None) -> GroupMember:
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(sorted(VALID_ROLES))}")
    if db.session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    if _membership(group_id, user_id) is not None:
        raise DuplicateMember(f"User {user_id} is already a member of group {group_id}")

    row = GroupMember(
        group_id=group_id,
        user_id=user_id,
        role=role,
        joined_at=normalize_utc(joined) or utcnow(),
    )
    db.session.add(row)
    return row


def _commit_membership(group_id: int, user_id: int) -> None:
    # The pre-check in _stage_member can lose a race against a concurrent insert
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateMember(f"User {user_id} is already a member of group {group_id}")


def add_member(
    group_id: int,
    user_id: int,
    role: str = ROLE_MEMBER,
    *,
    joined_at: datetime | None = None,
) -> GroupMember:
    """
    Add a user to a group.

    Raises:
        GroupNotFound: unknown group
        DuplicateMember: the pair already exists (even soft-removed)
        ValidationError: unknown role
    """
    get_group(group_id)
    row = _stage_member(group_id, user_id, role, joined_at)
    _commit_membership(group_id, user_id)
    return row


def _generate_invite_code() -> str:
    length = current_app.config.get("INVITE_CODE_LENGTH", 8)
    while True:
        code = secrets.token_hex(length)[:length].upper()
        if not db.session.query(Group).filter_by(invite_code=code).first():
            return code


def create_group(
    name: str,
    creator_id: int,
    description: str | None = None,
    *,
    created_at: datetime | None = None,
) -> Group:
    """Create a group; the creator joins as admin at the same instant."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name is required")

    now = normalize_utc(created_at) or utcnow()
    group = Group(
        name=name,
        description=(description or "").strip() or None,
        created_by_user_id=creator_id,
        invite_code=_generate_invite_code(),
        created_at=now,
    )
    db.session.add(group)
    db.session.flush()

    try:
        _stage_member(group.id, creator_id, ROLE_ADMIN, now)
    except Exception:
        db.session.rollback()
        raise

    db.session.commit()
    return group


def join_group(invite_code: str, user_id: int, *, joined_at: datetime | None = None) -> GroupMember:
    """
    Redeem an invite code.

    joined_at defaults to now, so the newcomer only sees bills created
    from this point on.
    """
    code = (invite_code or "").strip().upper()
    if not code:
        raise ValidationError("Invite code is required")

    group = db.session.query(Group).filter_by(invite_code=code).first()
    if group is None:
        raise GroupNotFound("Invalid invite code")

    try:
        row = _stage_member(group.id, user_id, ROLE_MEMBER, joined_at)
        db.session.flush()
        notification_service.emit(
            notification_service.USER_JOINED_GROUP,
            admin_user_ids(group.id),
            {"group_id": group.id, "user_id": user_id},
            exclude_user_id=user_id,
        )
    except IntegrityError:
        db.session.rollback()
        raise DuplicateMember(f"User {user_id} is already a member of group {group.id}")
    except Exception:
        db.session.rollback()
        raise

    _commit_membership(group.id, user_id)
    return row


def remove_member(group_id: int, user_id: int, actor_id: int) -> GroupMember:
    """Soft-remove a member (admin only). The creator cannot be removed."""
    group = get_group(group_id)
    if not is_admin(group_id, actor_id):
        raise Unauthorized("Only group admins can remove members")

    row = _active_membership(group_id, user_id)
    if row is None:
        raise NotAMember(f"User {user_id} is not a member of group {group_id}")
    if user_id == group.created_by_user_id:
        raise InvalidState("The group creator cannot be removed")

    row.removed_at = utcnow()
    db.session.commit()
    return row


# =============================================================================
# QUERIES
# =============================================================================

def list_user_groups(user_id: int) -> list[Group]:
    return db.session.query(Group).join(GroupMember, GroupMember.group_id == Group.id).filter(
        GroupMember.user_id == user_id,
        GroupMember.removed_at.is_(None),
    ).order_by(Group.created_at.desc(), Group.id.desc()).all()


def list_group_members(group_id: int, actor_id: int, *, include_removed: bool = False) -> list[GroupMember]:
    get_group(group_id)
    if not has_membership_history(group_id, actor_id):
        raise Unauthorized("Only group members can view the member list")

    q = db.session.query(GroupMember).filter_by(group_id=group_id)
    if not include_removed:
        q = q.filter(GroupMember.removed_at.is_(None))
    return q.order_by(GroupMember.joined_at, GroupMember.id).all()


def memberships_for_user(user_id: int, group_id: int | None = None) -> list[GroupMember]:
    """Every membership row of a user, removed ones included."""
    q = db.session.query(GroupMember).filter_by(user_id=user_id)
    if group_id is not None:
        q = q.filter_by(group_id=group_id)
    return q.all()
