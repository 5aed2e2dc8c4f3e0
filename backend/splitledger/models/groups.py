from __future__ import annotations

from ..extensions import db
from splitledger.time_utils import to_utc_z, utcnow


class Group(db.Model):
    """
    A set of people who share bills.

    The creator is always an admin member; `invite_code` is the only way
    for anyone else to get in.
    """
    __tablename__ = "groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    invite_code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    creator = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "invite_code": self.invite_code,
            "created_at": to_utc_z(self.created_at),
        }


class GroupMember(db.Model):
    """
    Membership of one user in one group.

    APPEND-ONLY: rows are soft-removed (removed_at) and never deleted, so
    joined_at stays available for eligibility checks on historical bills.
    """
    __tablename__ = "group_members"
    __table_args__ = (
        db.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(16), nullable=False, default="member")  # admin, member

    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    removed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    group = db.relationship("Group", backref=db.backref("members", lazy=True))
    user = db.relationship("User", backref=db.backref("memberships", lazy=True))

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "user_id": self.user_id,
            "name": self.user.name if self.user else None,
            "role": self.role,
            "joined_at": to_utc_z(self.joined_at),
            "removed_at": to_utc_z(self.removed_at),
        }


class ChatMessage(db.Model):
    """Plain-text message posted to a group's chat by a member."""
    __tablename__ = "chat_messages"
    __table_args__ = (
        db.Index("ix_chat_messages_group_created", "group_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    body = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "body": self.body,
            "created_at": to_utc_z(self.created_at),
        }
