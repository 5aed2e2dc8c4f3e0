# Overview: Service-layer operations for bills; owns the bill lifecycle state machine.

"""
Bill Aggregate & Lifecycle Service

================================================================================
STATE MACHINE:
    draft -> pending -> approved -> settled
               |           |
               +-----------+--> cancelled

    draft:     items editable; total recomputed on every item change
    pending:   submitted for approval; items frozen
    approved:  splits materialized; payments being verified
    settled:   every split confirmed (derived, applied by confirm_split)
    cancelled: abandoned from pending or approved

RULES:
1. Item mutation only in draft (BillLocked otherwise)
2. submit requires >= 1 item and total > 0
3. approve / cancel are group-admin actions
4. Materializing splits on approval is all-or-nothing
5. approved -> settled is never caller-invoked
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import (
    AlreadyProcessed,
    BillLocked,
    BillNotFound,
    EmptyBill,
    InvalidAmount,
    InvalidSplit,
    InvalidState,
    NotAMember,
    NotFoundError,
    Unauthorized,
    ValidationError,
)
from ..extensions import db
from ..models import Bill, BillItem, BillSplit
from splitledger.time_utils import utcnow, normalize_utc
from . import membership_service, notification_service, split_calculator
from .concurrency import lock_for_update, run_with_retry


# Valid lifecycle states (must match models/bills.py)
BILL_STATUS_DRAFT = "draft"
BILL_STATUS_PENDING = "pending"
BILL_STATUS_APPROVED = "approved"
BILL_STATUS_SETTLED = "settled"
BILL_STATUS_CANCELLED = "cancelled"

VALID_BILL_STATUSES = {
    BILL_STATUS_DRAFT,
    BILL_STATUS_PENDING,
    BILL_STATUS_APPROVED,
    BILL_STATUS_SETTLED,
    BILL_STATUS_CANCELLED,
}

# Statuses whose splits count toward balances
COUNTABLE_STATUSES = {BILL_STATUS_APPROVED, BILL_STATUS_SETTLED}

BILL_TRANSITIONS = {
    (BILL_STATUS_DRAFT, BILL_STATUS_PENDING),
    (BILL_STATUS_PENDING, BILL_STATUS_APPROVED),
    (BILL_STATUS_APPROVED, BILL_STATUS_SETTLED),
    (BILL_STATUS_PENDING, BILL_STATUS_CANCELLED),
    (BILL_STATUS_APPROVED, BILL_STATUS_CANCELLED),
}

ITEM_FIELDS = {"name", "quantity", "rate_cents", "assigned_user_ids", "category"}


def validate_status(status: str) -> None:
    if status not in VALID_BILL_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_BILL_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in BILL_TRANSITIONS


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _load_bill(bill_id: int, *, lock: bool = False) -> Bill:
    q = db.session.query(Bill).filter_by(id=bill_id)
    if lock:
        q = lock_for_update(q)
    bill = q.first()
    if bill is None:
        raise BillNotFound(f"Bill {bill_id} not found")
    return bill


def _require_creator(bill: Bill, actor_id: int) -> None:
    if bill.created_by_user_id != actor_id:
        raise Unauthorized("Only the bill creator can edit this bill")


def _require_draft(bill: Bill) -> None:
    if bill.status != BILL_STATUS_DRAFT:
        raise BillLocked(f"Bill {bill.id} is {bill.status}; items can only change while draft")


def _require_admin(bill: Bill, actor_id: int, action: str) -> None:
    if not membership_service.is_admin(bill.group_id, actor_id):
        raise Unauthorized(f"Only group admins can {action} bills")


def _money(value, field: str) -> int:
    """Integer cents >= 0. Floats and negatives are rejected, never coerced."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{field} must be an integer number of cents")
    if value < 0:
        raise InvalidAmount(f"{field} cannot be negative")
    return value


def _validate_item(name, quantity, rate_cents) -> tuple[str, int, int]:
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Item name is required")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Item quantity must be an integer >= 1")
    rate_cents = _money(rate_cents, "rate_cents")
    return name, quantity, rate_cents


def _normalize_user_ids(raw, field: str) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(f"{field} must be a list of user ids")
    ordered = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{field} must contain integer user ids")
        if value not in ordered:
            ordered.append(value)
    return ordered


def _validate_participants(group_id: int, participant_ids) -> list[int]:
    participants = _normalize_user_ids(participant_ids, "participant_ids")
    if not participants:
        raise InvalidSplit("A bill needs at least one participant")
    for uid in participants:
        if not membership_service.is_member(group_id, uid):
            raise NotAMember(f"User {uid} is not a member of group {group_id}")
    return participants


def _validate_assignees(bill: Bill, assigned) -> list[int]:
    assigned = _normalize_user_ids(assigned, "assigned_user_ids")
    participants = set(bill.participant_user_ids or [])
    strangers = [uid for uid in assigned if uid not in participants]
    if strangers:
        raise InvalidSplit(f"Assigned users are not bill participants: {', '.join(map(str, strangers))}")
    return assigned


def _recompute_total(bill: Bill) -> None:
    bill.total_cents = sum(item.price_cents for item in bill.items) + bill.tax_cents + bill.tip_cents


def touch_bill(bill: Bill, now: datetime | None = None) -> None:
    bill.updated_at = now or utcnow()


def _stage_item(bill: Bill, name, quantity, rate_cents, assigned_user_ids=None, category=None) -> BillItem:
    name, quantity, rate_cents = _validate_item(name, quantity, rate_cents)
    item = BillItem(
        name=name,
        quantity=quantity,
        rate_cents=rate_cents,
        price_cents=quantity * rate_cents,
        assigned_user_ids=_validate_assignees(bill, assigned_user_ids),
        category=(category or "").strip() or None,
        created_at=utcnow(),
    )
    bill.items.append(item)
    return item


def _participants_and_creator(bill: Bill) -> list[int]:
    return [bill.created_by_user_id] + list(bill.participant_user_ids or [])


def _bill_payload(bill: Bill) -> dict:
    return {
        "bill_id": bill.id,
        "group_id": bill.group_id,
        "title": bill.title,
        "total_cents": bill.total_cents,
        "currency": bill.currency,
    }


# =============================================================================
# CREATION & DRAFT EDITING
# =============================================================================

def create_bill(
    group_id: int,
    creator_id: int,
    title: str,
    *,
    description: str | None = None,
    currency: str | None = None,
    tax_cents: int = 0,
    tip_cents: int = 0,
    split_method: str = split_calculator.SPLIT_EQUAL,
    participant_ids: list[int] | None = None,
    custom_amounts: dict | None = None,
    items: list[dict] | None = None,
    created_at: datetime | None = None,
) -> Bill:
    """
    Create a draft bill in a group.

    Participants default to the members who had joined by `created_at`
    (every current member for a bill created now). Optional
    `items` are added in the same transaction.

    Raises:
        GroupNotFound, NotAMember, ValidationError/InvalidAmount/InvalidSplit
    """
    def _op():
        membership_service.get_group(group_id)
        if not membership_service.is_member(group_id, creator_id):
            raise NotAMember(f"User {creator_id} is not a member of group {group_id}")

        clean_title = (title or "").strip() if isinstance(title, str) else ""
        if not clean_title:
            raise ValidationError("Bill title is required")

        split_calculator.validate_split_method(split_method)

        now = normalize_utc(created_at) or utcnow()

        if participant_ids is None:
            # Members who had joined by the bill's creation time
            participants = [
                m.user_id
                for m in membership_service.list_group_members(group_id, creator_id)
                if normalize_utc(m.joined_at) <= now or m.user_id == creator_id
            ]
        else:
            participants = _validate_participants(group_id, participant_ids)
        bill = Bill(
            group_id=group_id,
            created_by_user_id=creator_id,
            title=clean_title,
            description=(description or "").strip() or None,
            currency=(currency or current_app.config.get("DEFAULT_CURRENCY", "USD")).strip().upper(),
            tax_cents=_money(tax_cents, "tax_cents"),
            tip_cents=_money(tip_cents, "tip_cents"),
            total_cents=0,
            status=BILL_STATUS_DRAFT,
            split_method=split_method,
            participant_user_ids=participants,
            custom_amounts=_stored_custom_amounts(split_method, custom_amounts),
            created_at=now,
            updated_at=now,
        )
        db.session.add(bill)

        for raw in items or []:
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object")
            unknown = set(raw) - ITEM_FIELDS
            if unknown:
                raise ValidationError(f"Unknown item field(s): {', '.join(sorted(unknown))}")
            _stage_item(
                bill,
                raw.get("name"),
                raw.get("quantity", 1),
                raw.get("rate_cents"),
                raw.get("assigned_user_ids"),
                raw.get("category"),
            )

        _recompute_total(bill)
        db.session.commit()
        return bill

    return run_with_retry(_op)


def _stored_custom_amounts(split_method: str, custom_amounts) -> dict | None:
    if split_method != split_calculator.SPLIT_CUSTOM:
        return None
    amounts = split_calculator.normalize_custom_amounts(custom_amounts)
    # JSON object keys are strings
    return {str(uid): cents for uid, cents in amounts.items()}


def add_item(
    bill_id: int,
    actor_id: int,
    name: str,
    rate_cents: int,
    quantity: int = 1,
    *,
    assigned_user_ids: list[int] | None = None,
    category: str | None = None,
) -> BillItem:
    """
    Add an item to a draft bill and recompute its total.

    A negative rate is rejected with InvalidAmount; the item list is left
    unchanged.
    """
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        item = _stage_item(bill, name, quantity, rate_cents, assigned_user_ids, category)
        _recompute_total(bill)
        touch_bill(bill)
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(bill_id: int, item_id: int, actor_id: int, **changes) -> BillItem:
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        item = next((i for i in bill.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found on bill {bill_id}")

        unknown = set(changes) - ITEM_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        name, quantity, rate_cents = _validate_item(
            changes.get("name", item.name),
            changes.get("quantity", item.quantity),
            changes.get("rate_cents", item.rate_cents),
        )
        if "assigned_user_ids" in changes:
            item.assigned_user_ids = _validate_assignees(bill, changes["assigned_user_ids"])
        if "category" in changes:
            item.category = (changes["category"] or "").strip() or None

        item.name = name
        item.quantity = quantity
        item.rate_cents = rate_cents
        item.price_cents = quantity * rate_cents

        _recompute_total(bill)
        touch_bill(bill)
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(bill_id: int, item_id: int, actor_id: int) -> Bill:
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        item = next((i for i in bill.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found on bill {bill_id}")

        bill.items.remove(item)
        _recompute_total(bill)
        touch_bill(bill)
        db.session.commit()
        return bill

    return run_with_retry(_op)


def delete_draft(bill_id: int, actor_id: int) -> None:
    """Delete a draft bill together with its items. Submitted bills are kept for history."""
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        db.session.delete(bill)
        db.session.commit()

    run_with_retry(_op)


def update_draft(
    bill_id: int,
    actor_id: int,
    *,
    title: str | None = None,
    description: str | None = None,
    tax_cents: int | None = None,
    tip_cents: int | None = None,
) -> Bill:
    """Edit header fields and tax/tip of a draft bill."""
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        if title is not None:
            clean = title.strip() if isinstance(title, str) else ""
            if not clean:
                raise ValidationError("Bill title is required")
            bill.title = clean
        if description is not None:
            bill.description = description.strip() or None
        if tax_cents is not None:
            bill.tax_cents = _money(tax_cents, "tax_cents")
        if tip_cents is not None:
            bill.tip_cents = _money(tip_cents, "tip_cents")

        _recompute_total(bill)
        touch_bill(bill)
        db.session.commit()
        return bill

    return run_with_retry(_op)


def configure_split(
    bill_id: int,
    actor_id: int,
    split_method: str,
    *,
    participant_ids: list[int] | None = None,
    custom_amounts: dict | None = None,
) -> Bill:
    """Record how the bill will be split on approval (draft only)."""
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        _require_draft(bill)

        split_calculator.validate_split_method(split_method)
        if participant_ids is not None:
            participants = _validate_participants(bill.group_id, participant_ids)
            for item in bill.items:
                orphaned = [uid for uid in (item.assigned_user_ids or []) if uid not in participants]
                if orphaned:
                    raise InvalidSplit(
                        f"Item '{item.name}' is assigned to users outside the new participant list"
                    )
            bill.participant_user_ids = participants

        bill.split_method = split_method
        bill.custom_amounts = _stored_custom_amounts(split_method, custom_amounts)
        touch_bill(bill)
        db.session.commit()
        return bill

    return run_with_retry(_op)


# =============================================================================
# LIFECYCLE TRANSITIONS
# =============================================================================

def submit_bill(bill_id: int, actor_id: int) -> Bill:
    """
    Submit a draft for approval (draft -> pending). Freezes items.

    Raises:
        Unauthorized: caller is not the creator
        AlreadyProcessed: bill is not draft
        EmptyBill: no items
        InvalidAmount: total <= 0, or custom amounts don't add up
    """
    def _op():
        bill = _load_bill(bill_id, lock=True)
        _require_creator(bill, actor_id)
        if bill.status != BILL_STATUS_DRAFT:
            raise AlreadyProcessed(f"Bill {bill_id} is already {bill.status}")
        if not bill.items:
            raise EmptyBill("A bill needs at least one item before it can be submitted")
        if bill.total_cents <= 0:
            raise InvalidAmount("Bill total must be greater than zero")

        # Preflight: approval must be able to materialize these splits
        split_calculator.calculate_shares(bill)

        now = utcnow()
        bill.status = BILL_STATUS_PENDING
        bill.submitted_at = now
        touch_bill(bill, now)

        notification_service.emit(
            notification_service.BILL_SUBMITTED,
            membership_service.admin_user_ids(bill.group_id),
            _bill_payload(bill),
            exclude_user_id=actor_id,
        )
        db.session.commit()
        return bill

    return run_with_retry(_op)


def approve_bill(bill_id: int, actor_id: int) -> Bill:
    """
    Approve a pending bill (pending -> approved) and materialize its splits.

    The state guard runs before the role guard: approving a non-pending
    bill is AlreadyProcessed for everyone.

    Splits that need no payment are confirmed by the system on creation:
    the creator's own share (they fronted the money) and zero-amount
    shares. If that leaves nothing outstanding the bill settles at once.
    """
    def _op():
        bill = _load_bill(bill_id, lock=True)
        if bill.status != BILL_STATUS_PENDING:
            raise AlreadyProcessed(f"Bill {bill_id} is {bill.status}, not pending")
        _require_admin(bill, actor_id, "approve")

        shares = split_calculator.calculate_shares(bill)
        now = utcnow()

        for user_id, amount_cents in shares.items():
            split = BillSplit(
                bill_id=bill.id,
                user_id=user_id,
                amount_cents=amount_cents,
                paid=False,
                approval_status="pending",
                payment_status="pending",
                created_at=now,
            )
            if user_id == bill.created_by_user_id:
                split.approval_status = "approved"
                split.approval_at = now
            if user_id == bill.created_by_user_id or amount_cents == 0:
                split.payment_status = "confirmed"
                split.paid = True
                split.paid_at = now
                split.confirmed_at = now
            bill.splits.append(split)

        bill.status = BILL_STATUS_APPROVED
        bill.approved_at = now
        bill.approved_by_user_id = actor_id
        touch_bill(bill, now)

        notification_service.emit(
            notification_service.BILL_APPROVED,
            bill.participant_user_ids or [],
            _bill_payload(bill),
            exclude_user_id=bill.created_by_user_id,
        )

        if all(s.payment_status == "confirmed" for s in bill.splits):
            settle_if_complete(bill, now)

        db.session.commit()
        return bill

    return run_with_retry(_op)


def settle_if_complete(bill: Bill, settled_at: datetime) -> bool:
    """
    Apply the derived approved -> settled transition when every split is
    confirmed. Stages changes only; the caller commits them together with
    the confirmation that completed the bill.
    """
    if bill.status != BILL_STATUS_APPROVED:
        return False
    if not bill.splits or any(s.payment_status != "confirmed" for s in bill.splits):
        return False

    bill.status = BILL_STATUS_SETTLED
    bill.settled_at = settled_at
    touch_bill(bill, settled_at)

    notification_service.emit(
        notification_service.BILL_SETTLED,
        _participants_and_creator(bill),
        _bill_payload(bill),
    )
    current_app.logger.info("Bill %s settled at %s", bill.id, settled_at.isoformat())
    return True


def cancel_bill(bill_id: int, actor_id: int) -> Bill:
    """
    Cancel a pending or approved bill (admin only).

    Cancelling an approved bill also cancels its non-confirmed splits;
    confirmed splits keep their history.
    """
    def _op():
        bill = _load_bill(bill_id, lock=True)
        if bill.status not in (BILL_STATUS_PENDING, BILL_STATUS_APPROVED):
            raise InvalidState(f"Cannot cancel bill {bill_id}: status is {bill.status}")
        _require_admin(bill, actor_id, "cancel")

        now = utcnow()
        for split in bill.splits:
            if split.payment_status != "confirmed":
                split.payment_status = "cancelled"

        bill.status = BILL_STATUS_CANCELLED
        bill.cancelled_at = now
        bill.cancelled_by_user_id = actor_id
        touch_bill(bill, now)

        notification_service.emit(
            notification_service.BILL_CANCELLED,
            _participants_and_creator(bill),
            _bill_payload(bill),
            exclude_user_id=actor_id,
        )
        db.session.commit()
        current_app.logger.info("Bill %s cancelled by user %s", bill.id, actor_id)
        return bill

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_bill(bill_id: int, actor_id: int | None = None) -> Bill:
    """Fetch a bill; when an actor is given they must (have) belong(ed) to its group."""
    bill = _load_bill(bill_id)
    if actor_id is not None and not membership_service.has_membership_history(bill.group_id, actor_id):
        raise Unauthorized("Only group members can view this bill")
    return bill


def list_group_bills(
    group_id: int,
    actor_id: int,
    *,
    status: str | None = None,
    limit: int | None = None,
) -> list[Bill]:
    """
    Every bill in a group, newest first. No eligibility filtering: this is
    the group-wide (admin/auditor) view.
    """
    membership_service.get_group(group_id)
    if not membership_service.has_membership_history(group_id, actor_id):
        raise Unauthorized("Only group members can view group bills")

    q = db.session.query(Bill).filter_by(group_id=group_id)
    if status is not None:
        validate_status(status)
        q = q.filter_by(status=status)
    q = q.order_by(Bill.created_at.desc(), Bill.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
