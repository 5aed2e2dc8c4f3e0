from __future__ import annotations

from ..extensions import db
from splitledger.time_utils import to_utc_z, utcnow


class Bill(db.Model):
    """
    A shared expense inside a group.

    LIFECYCLE:
    - draft:     items editable, total recomputed on every change
    - pending:   submitted for approval, items frozen
    - approved:  splits materialized, payments being verified
    - settled:   every split confirmed (derived, never caller-invoked)
    - cancelled: abandoned from pending or approved

    All amounts are integer cents. total_cents == sum(items) + tax + tip.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_group_created", "group_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    # How splits are materialized on approval: equal, by_item, custom
    split_method = db.Column(db.String(16), nullable=False, default="equal")
    participant_user_ids = db.Column(db.JSON, nullable=False, default=list)
    # {"<user_id>": amount_cents}; only read for split_method == "custom"
    custom_amounts = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    # Touched by every transition so concurrent confirmations collide on the bill row
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    group = db.relationship("Group", backref=db.backref("bills", lazy=True))
    creator = db.relationship("User", foreign_keys=[created_by_user_id])
    items = db.relationship(
        "BillItem",
        backref="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.id",
        lazy=True,
    )
    splits = db.relationship(
        "BillSplit",
        backref="bill",
        order_by="BillSplit.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "group_id": self.group_id,
            "created_by_user_id": self.created_by_user_id,
            "title": self.title,
            "description": self.description,
            "currency": self.currency,
            "tax_cents": self.tax_cents,
            "tip_cents": self.tip_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "split_method": self.split_method,
            "participant_user_ids": list(self.participant_user_ids or []),
            "custom_amounts": self.custom_amounts,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_user_id": self.approved_by_user_id,
            "settled_at": to_utc_z(self.settled_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["splits"] = [split.to_dict() for split in self.splits]
        return data


class BillItem(db.Model):
    """One line on a bill. price_cents is always quantity * rate_cents."""
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    rate_cents = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    # Users who consumed this item (by_item split requires at least one)
    assigned_user_ids = db.Column(db.JSON, nullable=False, default=list)
    category = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "name": self.name,
            "quantity": self.quantity,
            "rate_cents": self.rate_cents,
            "price_cents": self.price_cents,
            "assigned_user_ids": list(self.assigned_user_ids or []),
            "category": self.category,
        }


class BillSplit(db.Model):
    """
    One participant's share of an approved bill.

    PAYMENT STATUS:
    - pending:   nothing submitted yet
    - submitted: proof (reference and/or screenshot) awaiting review
    - confirmed: reviewed by someone other than the payer; paid=True
    - rejected:  reviewed and refused; payer may resubmit
    - cancelled: bill was cancelled before this split was confirmed

    approval_status is the participant's acknowledgement of the amount and
    is independent of payment_status.

    Splits reference users by id only; removing a membership never
    deletes historical splits.
    """
    __tablename__ = "bill_splits"
    __table_args__ = (
        db.UniqueConstraint("bill_id", "user_id", name="uq_bill_splits_bill_user"),
        db.Index("ix_bill_splits_user_status", "user_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    approval_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, approved, rejected
    approval_at = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    upi_reference = db.Column(db.String(128), nullable=True)
    proof_image_url = db.Column(db.String(1024), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at),
            "approval_status": self.approval_status,
            "approval_at": to_utc_z(self.approval_at),
            "payment_status": self.payment_status,
            "upi_reference": self.upi_reference,
            "proof_image_url": self.proof_image_url,
            "rejection_reason": self.rejection_reason,
            "submitted_at": to_utc_z(self.submitted_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "version_id": self.version_id,
        }
