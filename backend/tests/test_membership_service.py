# Overview: Pytest coverage for the membership registry.

"""
Membership Registry Tests

- add_member / duplicate detection
- is_member / joined_at lookups (including soft-removed members)
- invite-code joins and admin-only removal
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from splitledger.errors import (
    DuplicateMember,
    GroupNotFound,
    InvalidState,
    NotAMember,
    Unauthorized,
    ValidationError,
)
from splitledger.models import Notification
from splitledger.services import membership_service


class TestAddMember:

    def test_creator_is_admin_member(self, db_session, group, admin):
        assert membership_service.is_member(group.id, admin.id)
        assert membership_service.get_role(group.id, admin.id) == "admin"
        assert membership_service.is_admin(group.id, admin.id)

    def test_members_default_to_member_role(self, db_session, group, m2):
        assert membership_service.get_role(group.id, m2.id) == "member"
        assert not membership_service.is_admin(group.id, m2.id)

    def test_duplicate_pair_rejected(self, db_session, group, m2):
        with pytest.raises(DuplicateMember):
            membership_service.add_member(group.id, m2.id)

    def test_unknown_role_rejected(self, db_session, group, outsider):
        with pytest.raises(ValidationError):
            membership_service.add_member(group.id, outsider.id, role="owner")
        assert not membership_service.is_member(group.id, outsider.id)

    def test_unknown_group(self, db_session, outsider):
        with pytest.raises(GroupNotFound):
            membership_service.add_member(99999, outsider.id)

    def test_admin_role_can_be_granted(self, db_session, group, outsider):
        membership_service.add_member(group.id, outsider.id, role="admin")
        assert membership_service.is_admin(group.id, outsider.id)
        assert outsider.id in membership_service.admin_user_ids(group.id)

    def test_lost_insert_race_reported_as_duplicate(self, db_session, group, m2):
        # Pre-check misses the row, so the unique constraint has to catch it
        with patch.object(membership_service, "_membership", return_value=None):
            with pytest.raises(DuplicateMember):
                membership_service.add_member(group.id, m2.id)
        assert membership_service.is_member(group.id, m2.id)

    def test_lost_join_race_reported_as_duplicate(self, db_session, group, m2):
        with patch.object(membership_service, "_membership", return_value=None):
            with pytest.raises(DuplicateMember):
                membership_service.join_group(group.invite_code, m2.id)
        assert db_session.query(Notification).filter_by(type="user_joined_group").count() == 0


class TestJoinedAt:

    def test_returns_recorded_join_time(self, db_session, group, m2):
        assert membership_service.joined_at(group.id, m2.id) == datetime(2024, 1, 1, 9, 0, 0)

    def test_non_member_raises(self, db_session, group, outsider):
        with pytest.raises(NotAMember):
            membership_service.joined_at(group.id, outsider.id)

    def test_aware_join_time_is_normalized(self, db_session, group, outsider):
        aware = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        membership_service.add_member(group.id, outsider.id, joined_at=aware)
        assert membership_service.joined_at(group.id, outsider.id) == datetime(2024, 1, 15, 12, 0, 0)

    def test_history_survives_removal(self, db_session, group, admin, m2):
        membership_service.remove_member(group.id, m2.id, admin.id)

        assert not membership_service.is_member(group.id, m2.id)
        assert membership_service.has_membership_history(group.id, m2.id)
        assert membership_service.joined_at(group.id, m2.id) == datetime(2024, 1, 1, 9, 0, 0)


class TestInviteCodes:

    def test_join_by_code_case_insensitive(self, db_session, group, outsider):
        member = membership_service.join_group(group.invite_code.lower(), outsider.id)
        assert member.group_id == group.id
        assert member.role == "member"
        assert membership_service.is_member(group.id, outsider.id)

    def test_join_notifies_admins(self, db_session, group, admin, outsider):
        membership_service.join_group(group.invite_code, outsider.id)

        rows = db_session.query(Notification).filter_by(type="user_joined_group").all()
        assert [n.user_id for n in rows] == [admin.id]
        assert rows[0].payload == {"group_id": group.id, "user_id": outsider.id}

    def test_invalid_code(self, db_session, group, outsider):
        with pytest.raises(GroupNotFound):
            membership_service.join_group("NOPE0000", outsider.id)

    def test_join_twice_is_duplicate(self, db_session, group, m2):
        with pytest.raises(DuplicateMember):
            membership_service.join_group(group.invite_code, m2.id)

    def test_removed_member_cannot_rejoin(self, db_session, group, admin, m2):
        membership_service.remove_member(group.id, m2.id, admin.id)
        with pytest.raises(DuplicateMember):
            membership_service.join_group(group.invite_code, m2.id)


class TestRemoval:

    def test_only_admin_may_remove(self, db_session, group, m2, m3):
        with pytest.raises(Unauthorized):
            membership_service.remove_member(group.id, m3.id, m2.id)

    def test_creator_cannot_be_removed(self, db_session, group, admin, outsider):
        membership_service.add_member(group.id, outsider.id, role="admin")
        with pytest.raises(InvalidState):
            membership_service.remove_member(group.id, admin.id, outsider.id)

    def test_remove_non_member(self, db_session, group, admin, outsider):
        with pytest.raises(NotAMember):
            membership_service.remove_member(group.id, outsider.id, admin.id)

    def test_member_listing_hides_removed_by_default(self, db_session, group, admin, m2, m3):
        membership_service.remove_member(group.id, m3.id, admin.id)

        active = membership_service.list_group_members(group.id, admin.id)
        everyone = membership_service.list_group_members(group.id, admin.id, include_removed=True)

        assert [m.user_id for m in active] == [admin.id, m2.id]
        assert {m.user_id for m in everyone} == {admin.id, m2.id, m3.id}

    def test_outsider_cannot_list_members(self, db_session, group, outsider):
        with pytest.raises(Unauthorized):
            membership_service.list_group_members(group.id, outsider.id)

    def test_list_user_groups_excludes_removed(self, db_session, group, admin, m3):
        assert [g.id for g in membership_service.list_user_groups(m3.id)] == [group.id]
        membership_service.remove_member(group.id, m3.id, admin.id)
        assert membership_service.list_user_groups(m3.id) == []
