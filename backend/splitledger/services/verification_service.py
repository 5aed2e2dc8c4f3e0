# Overview: Service-layer operations for split payment verification.

"""
Split Payment-Verification Service

STATE MACHINE (payment_status):
    pending -> submitted -> confirmed
                  |   ^
                  v   |
               rejected

    submit_proof:  payer only; pending|rejected -> submitted
    confirm_split: group admin or bill creator, never the payer; submitted -> confirmed
    reject_split:  same authorization as confirm; submitted -> rejected

Two-party control: the principal who submits proof can never be the one
who confirms it. Confirming the last outstanding split settles the bill in
the same commit.
"""

from __future__ import annotations

from ..errors import (
    InvalidState,
    MissingProof,
    MissingReason,
    SelfConfirmationDenied,
    SplitNotFound,
    Unauthorized,
)
from ..extensions import db
from ..models import Bill, BillSplit, GroupMember
from splitledger.time_utils import utcnow
from . import bill_service, membership_service, notification_service
from .concurrency import lock_for_update, run_with_retry


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SUBMITTED = "submitted"
PAYMENT_STATUS_CONFIRMED = "confirmed"
PAYMENT_STATUS_REJECTED = "rejected"
PAYMENT_STATUS_CANCELLED = "cancelled"

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _load_split(split_id: int) -> tuple[BillSplit, Bill]:
    split = lock_for_update(db.session.query(BillSplit).filter_by(id=split_id)).first()
    if split is None:
        raise SplitNotFound(f"Split {split_id} not found")
    bill = lock_for_update(db.session.query(Bill).filter_by(id=split.bill_id)).first()
    return split, bill


def _require_approved_bill(bill: Bill) -> None:
    if bill.status != bill_service.BILL_STATUS_APPROVED:
        raise InvalidState(f"Bill {bill.id} is {bill.status}; payments are only tracked on approved bills")


def can_verify(bill: Bill, user_id: int) -> bool:
    return bill.created_by_user_id == user_id or membership_service.is_admin(bill.group_id, user_id)


def _require_verifier(split: BillSplit, bill: Bill, actor_id: int) -> None:
    if split.user_id == actor_id:
        raise SelfConfirmationDenied("You cannot review your own payment")
    if not can_verify(bill, actor_id):
        raise Unauthorized("Only the bill creator or a group admin can review payments")


def _split_payload(split: BillSplit, bill: Bill) -> dict:
    return {
        "bill_id": bill.id,
        "group_id": bill.group_id,
        "split_id": split.id,
        "user_id": split.user_id,
        "amount_cents": split.amount_cents,
        "currency": bill.currency,
    }


# =============================================================================
# TRANSITIONS
# =============================================================================

def submit_proof(
    split_id: int,
    actor_id: int,
    reference: str | None = None,
    screenshot_url: str | None = None,
) -> BillSplit:
    """
    Record payment proof for the caller's own split.

    At least one of `reference` (e.g. UPI transaction id) or
    `screenshot_url` (as returned by media storage) is required. Clears any
    earlier rejection reason.
    """
    def _op():
        split, bill = _load_split(split_id)
        if split.user_id != actor_id:
            raise Unauthorized("Only the split's payer can submit proof")

        clean_reference = (reference or "").strip()
        clean_url = (screenshot_url or "").strip()
        if not clean_reference and not clean_url:
            raise MissingProof("Provide a payment reference or a screenshot")

        _require_approved_bill(bill)
        if split.payment_status not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_REJECTED):
            raise InvalidState(f"Cannot submit proof: split is {split.payment_status}")

        now = utcnow()
        split.payment_status = PAYMENT_STATUS_SUBMITTED
        split.upi_reference = clean_reference or None
        split.proof_image_url = clean_url or None
        split.rejection_reason = None
        split.submitted_at = now
        bill_service.touch_bill(bill, now)

        notification_service.emit(
            notification_service.PROOF_SUBMITTED,
            [bill.created_by_user_id] + membership_service.admin_user_ids(bill.group_id),
            _split_payload(split, bill),
            exclude_user_id=actor_id,
        )
        db.session.commit()
        return split

    return run_with_retry(_op)


def confirm_split(split_id: int, actor_id: int) -> BillSplit:
    """
    Confirm a submitted payment.

    Sets paid/paid_at and, if this was the last outstanding split, moves
    the bill to settled with settled_at equal to this confirmation time.
    Both writes commit together; the bill row is always touched so two
    concurrent "last" confirmations cannot both miss the settlement.

    Raises:
        SelfConfirmationDenied: actor is the payer
        Unauthorized: actor is neither bill creator nor group admin
        InvalidState: split is not submitted or bill is not approved
    """
    def _op():
        split, bill = _load_split(split_id)
        _require_verifier(split, bill, actor_id)
        if split.payment_status != PAYMENT_STATUS_SUBMITTED:
            raise InvalidState(f"Cannot confirm: split is {split.payment_status}, not submitted")
        _require_approved_bill(bill)

        now = utcnow()
        split.payment_status = PAYMENT_STATUS_CONFIRMED
        split.paid = True
        split.paid_at = now
        split.confirmed_at = now
        split.confirmed_by_user_id = actor_id
        bill_service.touch_bill(bill, now)

        notification_service.emit(
            notification_service.SPLIT_CONFIRMED,
            [split.user_id],
            _split_payload(split, bill),
        )
        bill_service.settle_if_complete(bill, now)

        db.session.commit()
        return split

    return run_with_retry(_op)


def reject_split(split_id: int, actor_id: int, reason: str) -> BillSplit:
    """Reject a submitted payment with a reason. `paid` is left untouched."""
    def _op():
        split, bill = _load_split(split_id)
        _require_verifier(split, bill, actor_id)

        clean_reason = (reason or "").strip() if isinstance(reason, str) else ""
        if not clean_reason:
            raise MissingReason("A rejection reason is required")
        if split.payment_status != PAYMENT_STATUS_SUBMITTED:
            raise InvalidState(f"Cannot reject: split is {split.payment_status}, not submitted")
        _require_approved_bill(bill)

        split.payment_status = PAYMENT_STATUS_REJECTED
        split.rejection_reason = clean_reason
        bill_service.touch_bill(bill)

        payload = _split_payload(split, bill)
        payload["reason"] = clean_reason
        notification_service.emit(notification_service.SPLIT_REJECTED, [split.user_id], payload)

        db.session.commit()
        return split

    return run_with_retry(_op)


def respond_to_split(split_id: int, actor_id: int, accept: bool) -> BillSplit:
    """
    Participant acknowledges (or disputes) the amount they were assigned.

    Independent of payment_status. An accepted amount is final; a disputed
    one can still be accepted later. Disputes alert the bill creator.
    """
    def _op():
        split, bill = _load_split(split_id)
        if split.user_id != actor_id:
            raise Unauthorized("Only the split's payer can respond to it")
        _require_approved_bill(bill)
        if split.approval_status == APPROVAL_APPROVED:
            raise InvalidState("Split amount has already been accepted")

        split.approval_status = APPROVAL_APPROVED if accept else APPROVAL_REJECTED
        split.approval_at = utcnow()

        if not accept:
            notification_service.emit(
                notification_service.SPLIT_DISPUTED,
                [bill.created_by_user_id],
                _split_payload(split, bill),
                exclude_user_id=actor_id,
            )
        db.session.commit()
        return split

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_pending_verifications(user_id: int) -> list[BillSplit]:
    """
    Submitted splits the user may confirm: on approved bills they created
    or in groups they administer, never their own.
    """
    admin_group_ids = [
        row.group_id
        for row in db.session.query(GroupMember).filter_by(user_id=user_id).filter(
            GroupMember.removed_at.is_(None)
        ).all()
        if membership_service.is_admin(row.group_id, user_id)
    ]

    q = db.session.query(BillSplit).join(Bill, Bill.id == BillSplit.bill_id).filter(
        BillSplit.payment_status == PAYMENT_STATUS_SUBMITTED,
        BillSplit.user_id != user_id,
        Bill.status == bill_service.BILL_STATUS_APPROVED,
        db.or_(Bill.created_by_user_id == user_id, Bill.group_id.in_(admin_group_ids)),
    )
    return q.order_by(BillSplit.submitted_at, BillSplit.id).all()


def list_payment_history(user_id: int, limit: int = 50) -> list[BillSplit]:
    """The user's confirmed payments, most recent first."""
    return db.session.query(BillSplit).filter_by(
        user_id=user_id,
        payment_status=PAYMENT_STATUS_CONFIRMED,
    ).order_by(BillSplit.confirmed_at.desc(), BillSplit.id.desc()).limit(limit).all()
