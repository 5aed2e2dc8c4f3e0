# Overview: Pytest coverage for split payment verification and derived settlement.

"""
Split Verification Tests

pending -> submitted -> confirmed, submitted -> rejected -> submitted.

SECURITY TESTS: the payer can never confirm or reject their own split
(two-party control), and only the bill creator or a group admin reviews.
"""

import pytest

from splitledger.errors import (
    AuthorizationError,
    InvalidState,
    MissingProof,
    MissingReason,
    SelfConfirmationDenied,
    SplitNotFound,
    Unauthorized,
)
from splitledger.models import Bill, BillSplit, Notification
from splitledger.services import bill_service, verification_service


class TestSubmitProof:

    def test_reference_moves_split_to_submitted(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split = verification_service.submit_proof(split_for(bill, m2).id, m2.id, reference="TXN1")

        assert split.payment_status == "submitted"
        assert split.upi_reference == "TXN1"
        assert split.submitted_at is not None
        assert split.paid is False

    def test_screenshot_alone_is_enough(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split = verification_service.submit_proof(
            split_for(bill, m2).id, m2.id, screenshot_url="https://media.example/p/1.png"
        )
        assert split.payment_status == "submitted"
        assert split.proof_image_url == "https://media.example/p/1.png"

    @pytest.mark.parametrize("reference,url", [(None, None), ("", ""), ("   ", None)])
    def test_missing_proof(self, db_session, make_bill, m2, split_for, reference, url):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        with pytest.raises(MissingProof):
            verification_service.submit_proof(split_id, m2.id, reference=reference, screenshot_url=url)
        assert db_session.get(BillSplit, split_id).payment_status == "pending"

    def test_only_payer_submits(self, db_session, make_bill, m2, m3, split_for):
        bill = make_bill(status="approved")
        with pytest.raises(Unauthorized):
            verification_service.submit_proof(split_for(bill, m2).id, m3.id, reference="TXN1")

    def test_cannot_submit_twice(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")
        with pytest.raises(InvalidState):
            verification_service.submit_proof(split_id, m2.id, reference="TXN2")

    def test_unknown_split(self, db_session, m2):
        with pytest.raises(SplitNotFound):
            verification_service.submit_proof(999999, m2.id, reference="TXN1")

    def test_notifies_creator_and_admins(self, db_session, make_bill, admin, m2, m3, split_for):
        bill = make_bill(creator=m3, status="approved")
        verification_service.submit_proof(split_for(bill, m2).id, m2.id, reference="TXN1")

        recipients = {n.user_id for n in db_session.query(Notification).filter_by(type="proof_submitted")}
        assert recipients == {admin.id, m3.id}


class TestConfirm:

    def test_confirm_sets_paid(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        split = verification_service.confirm_split(split_id, admin.id)

        assert split.payment_status == "confirmed"
        assert split.paid is True
        assert split.paid_at is not None
        assert split.confirmed_by_user_id == admin.id

    def test_self_confirmation_denied(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        with pytest.raises(SelfConfirmationDenied):
            verification_service.confirm_split(split_id, m2.id)

    def test_self_confirmation_denied_even_for_admin(self, db_session, admin, m2, make_bill, split_for):
        bill = make_bill(creator=m2, status="approved")
        own = split_for(bill, admin)
        verification_service.submit_proof(own.id, admin.id, reference="TXN9")

        with pytest.raises(AuthorizationError):
            verification_service.confirm_split(own.id, admin.id)

    def test_plain_member_cannot_confirm(self, db_session, make_bill, m2, m3, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        with pytest.raises(Unauthorized):
            verification_service.confirm_split(split_id, m3.id)

    def test_bill_creator_may_confirm_without_admin_role(self, db_session, make_bill, m2, m3, split_for):
        bill = make_bill(creator=m3, status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        split = verification_service.confirm_split(split_id, m3.id)
        assert split.payment_status == "confirmed"

    def test_confirm_requires_submitted(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        with pytest.raises(InvalidState):
            verification_service.confirm_split(split_for(bill, m2).id, admin.id)

    def test_cannot_confirm_twice(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")
        verification_service.confirm_split(split_id, admin.id)

        with pytest.raises(InvalidState):
            verification_service.confirm_split(split_id, admin.id)


class TestReject:

    def test_reject_then_resubmit(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        split = verification_service.reject_split(split_id, admin.id, "Amount does not match")
        assert split.payment_status == "rejected"
        assert split.rejection_reason == "Amount does not match"
        assert split.paid is False

        split = verification_service.submit_proof(split_id, m2.id, reference="TXN2")
        assert split.payment_status == "submitted"
        assert split.rejection_reason is None
        assert split.upi_reference == "TXN2"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, db_session, make_bill, admin, m2, split_for, reason):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        with pytest.raises(MissingReason):
            verification_service.reject_split(split_id, admin.id, reason)
        assert db_session.get(BillSplit, split_id).payment_status == "submitted"

    def test_payer_cannot_reject_own(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")

        with pytest.raises(SelfConfirmationDenied):
            verification_service.reject_split(split_id, m2.id, "nope")

    def test_reject_requires_submitted(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        with pytest.raises(InvalidState):
            verification_service.reject_split(split_for(bill, m2).id, admin.id, "no proof yet")

    def test_reject_notifies_payer_with_reason(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")
        verification_service.reject_split(split_id, admin.id, "Blurry screenshot")

        row = db_session.query(Notification).filter_by(type="split_rejected").one()
        assert row.user_id == m2.id
        assert row.payload["reason"] == "Blurry screenshot"


class TestSettlement:

    def test_equal_split_scenario_settles_on_last_confirmation(
        self, db_session, make_bill, admin, m2, m3, split_for
    ):
        """Bill of 300.00 split three ways; settles when the last split is confirmed."""
        bill = make_bill(items=[("Dinner", 30000)], status="approved")
        assert {s.amount_cents for s in bill.splits} == {10000}

        m2_split = split_for(bill, m2).id
        m3_split = split_for(bill, m3).id

        verification_service.submit_proof(m2_split, m2.id, reference="TXN1")
        assert db_session.get(BillSplit, m2_split).payment_status == "submitted"

        confirmed = verification_service.confirm_split(m2_split, admin.id)
        assert confirmed.payment_status == "confirmed"
        assert confirmed.paid is True
        assert db_session.get(Bill, bill.id).status == "approved"

        verification_service.submit_proof(m3_split, m3.id, reference="TXN2")
        last = verification_service.confirm_split(m3_split, admin.id)

        bill = db_session.get(Bill, bill.id)
        assert bill.status == "settled"
        assert bill.settled_at == last.confirmed_at
        assert all(s.payment_status == "confirmed" for s in bill.splits)

    def test_not_settled_while_any_split_open(self, db_session, make_bill, admin, m2, m3, split_for):
        bill = make_bill(status="approved")
        m2_split = split_for(bill, m2).id
        m3_split = split_for(bill, m3).id

        verification_service.submit_proof(m2_split, m2.id, reference="A")
        verification_service.confirm_split(m2_split, admin.id)
        verification_service.submit_proof(m3_split, m3.id, reference="B")
        verification_service.reject_split(m3_split, admin.id, "wrong amount")

        bill = db_session.get(Bill, bill.id)
        assert bill.status == "approved"
        assert bill.settled_at is None

    def test_settlement_notifies_everyone(self, db_session, make_bill, admin, m2, m3, split_for):
        bill = make_bill(status="approved")
        for member in (m2, m3):
            split_id = split_for(bill, member).id
            verification_service.submit_proof(split_id, member.id, reference="X")
            verification_service.confirm_split(split_id, admin.id)

        recipients = {n.user_id for n in db_session.query(Notification).filter_by(type="bill_settled")}
        assert recipients == {admin.id, m2.id, m3.id}

    def test_no_proof_on_cancelled_bill(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        bill_service.cancel_bill(bill.id, admin.id)

        with pytest.raises(InvalidState):
            verification_service.submit_proof(split_id, m2.id, reference="late")


class TestAcknowledgement:

    def test_accept_amount(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split = verification_service.respond_to_split(split_for(bill, m2).id, m2.id, True)
        assert split.approval_status == "approved"
        assert split.payment_status == "pending"

    def test_dispute_alerts_creator_and_can_later_accept(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id

        split = verification_service.respond_to_split(split_id, m2.id, False)
        assert split.approval_status == "rejected"
        row = db_session.query(Notification).filter_by(type="split_disputed").one()
        assert row.user_id == admin.id

        split = verification_service.respond_to_split(split_id, m2.id, True)
        assert split.approval_status == "approved"

    def test_accepted_is_final(self, db_session, make_bill, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.respond_to_split(split_id, m2.id, True)
        with pytest.raises(InvalidState):
            verification_service.respond_to_split(split_id, m2.id, False)

    def test_only_owner_responds(self, db_session, make_bill, m2, m3, split_for):
        bill = make_bill(status="approved")
        with pytest.raises(Unauthorized):
            verification_service.respond_to_split(split_for(bill, m2).id, m3.id, True)


class TestQueues:

    def test_pending_verification_for_admin(self, db_session, make_bill, admin, m2, m3, split_for):
        bill = make_bill(status="approved")
        m2_split = split_for(bill, m2).id
        verification_service.submit_proof(m2_split, m2.id, reference="TXN1")

        assert [s.id for s in verification_service.list_pending_verifications(admin.id)] == [m2_split]
        assert verification_service.list_pending_verifications(m3.id) == []
        assert verification_service.list_pending_verifications(m2.id) == []

    def test_payment_history(self, db_session, make_bill, admin, m2, split_for):
        bill = make_bill(status="approved")
        split_id = split_for(bill, m2).id
        verification_service.submit_proof(split_id, m2.id, reference="TXN1")
        verification_service.confirm_split(split_id, admin.id)

        history = verification_service.list_payment_history(m2.id)
        assert [s.id for s in history] == [split_id]
        assert verification_service.list_payment_history(admin.id)[0].bill_id == bill.id
