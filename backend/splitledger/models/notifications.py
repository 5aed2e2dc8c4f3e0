from __future__ import annotations

from ..extensions import db
from splitledger.time_utils import to_utc_z, utcnow


class Notification(db.Model):
    """
    Notification-creation event addressed to one user.

    Written in the same transaction as the transition that caused it, so
    an alert exists if and only if its transition committed. Delivery and
    rendering belong to the messaging layer.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "read": self.is_read,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
