"""Tests for user management and profile bootstrap."""

import pytest

from admin_panel.models import User
from admin_panel.services import UserService
from rbac.capabilities import CapabilitySet
from rbac.roles import Role
from security.api_errors import ConflictError, InvariantViolationError, NotFoundError


@pytest.fixture
def users(db, settings):
    return UserService(db, settings)


class TestCreateUser:

    def test_invited_member(self, factory, users):
        created = factory.account("Acme")
        user = users.create_user(
            account_id=created.account.account_id,
            email="new@example.com",
            first_name="Nia",
            last_name="New",
            invited_by=created.admin_user.user_id,
        )

        assert user.status == "invited"
        assert user.role == Role.TENANT_MEMBER.value
        assert user.email_verified is False
        assert user.invited_by == created.admin_user.user_id

    def test_email_conflict_is_case_insensitive(self, factory, users):
        created = factory.account("Acme")
        factory.user(created.account, email="taken@example.com")

        with pytest.raises(ConflictError):
            users.create_user(created.account.account_id, "Taken@Example.com", "T", "T")

    def test_account_user_limit(self, db, factory, users):
        created = factory.account("Acme")
        created.account.max_users = 2
        db.flush()
        factory.user(created.account)

        with pytest.raises(InvariantViolationError) as exc_info:
            users.create_user(created.account.account_id, "third@example.com", "T", "T")
        assert exc_info.value.details["limit"] == 2

    def test_operator_role_cannot_be_created_in_account(self, factory, users):
        created = factory.account("Acme")
        with pytest.raises(InvariantViolationError):
            users.create_user(created.account.account_id, "op@example.com", "O", "P", role="operator")

    def test_create_with_override(self, factory, users):
        created = factory.account("Acme")
        user = users.create_user(
            created.account.account_id, "limited@example.com", "L", "L", capabilities=CapabilitySet.denied()
        )

        assert user.override is not None
        assert user.override.account_id == created.account.account_id
        assert user.override.custom_limits is None

    def test_unknown_account(self, users):
        with pytest.raises(NotFoundError):
            users.create_user("missing", "x@example.com", "X", "X")


class TestAdminSafety:

    def test_cannot_delete_last_admin(self, factory, users):
        created = factory.account("Acme")
        with pytest.raises(InvariantViolationError):
            users.delete_user(created.admin_user.user_id)

    def test_second_admin_can_be_deleted(self, db, factory, users):
        created = factory.account("Acme")
        second = factory.user(created.account, role=Role.TENANT_ADMIN.value)

        users.delete_user(second.user_id)

        assert db.get(User, second.user_id) is None

    def test_cannot_demote_last_admin(self, factory, users):
        created = factory.account("Acme")
        with pytest.raises(InvariantViolationError):
            users.update_user(created.admin_user.user_id, role=Role.TENANT_MEMBER.value)

    def test_promote_then_demote(self, factory, users):
        created = factory.account("Acme")
        member = factory.user(created.account)

        users.update_user(member.user_id, role=Role.TENANT_ADMIN.value)
        users.update_user(created.admin_user.user_id, role=Role.TENANT_MEMBER.value)

        assert member.role == Role.TENANT_ADMIN.value
        assert created.admin_user.role == Role.TENANT_MEMBER.value

    def test_operator_cannot_be_deleted_or_suspended(self, factory, users):
        operator = factory.operator()
        with pytest.raises(InvariantViolationError):
            users.delete_user(operator.user_id)
        with pytest.raises(InvariantViolationError):
            users.set_status(operator.user_id, "suspended")

    def test_update_profile_fields(self, factory, users):
        created = factory.account("Acme")
        user = users.update_user(created.admin_user.user_id, first_name="Grace", phone="555-0100")
        assert user.first_name == "Grace"
        assert user.phone == "555-0100"


class TestEnsureProfile:

    def test_first_profile_becomes_operator(self, users):
        first = users.ensure_profile("ext-1", "first@example.com", "F", "P")
        second = users.ensure_profile("ext-2", "second@example.com", "S", "P")

        assert first.role == Role.OPERATOR.value
        assert first.account_id is None
        assert second.role == Role.TENANT_MEMBER.value
        assert second.account_id is None

    def test_existing_profile_returned(self, users):
        first = users.ensure_profile("ext-1", "first@example.com")
        assert users.ensure_profile("ext-1", "other@example.com").user_id == first.user_id

    def test_invited_user_claims_identity(self, factory, users):
        created = factory.account("Acme")
        invited = factory.user(created.account, email="invitee@example.com", signed_in=False)

        linked = users.ensure_profile("ext-invitee", "Invitee@example.com")

        assert linked.user_id == invited.user_id
        assert linked.external_id == "ext-invitee"
        assert linked.status == "active"
        assert linked.email_verified is True

    def test_bootstrap_can_be_disabled(self, db, settings):
        settings.bootstrap_first_operator = False
        user = UserService(db, settings).ensure_profile("ext-1", "first@example.com")
        assert user.role == Role.TENANT_MEMBER.value


class TestBulkAndStats:

    def test_bulk_status_collects_failures(self, factory, users):
        """N-1 users are suspended; the operator fails on its own."""
        created = factory.account("Acme")
        members = [factory.user(created.account) for _ in range(3)]
        operator = factory.operator()
        ids = [m.user_id for m in members] + [operator.user_id, "missing"]

        result = users.bulk_set_status(ids, "suspended")

        assert result.succeeded == [m.user_id for m in members]
        assert [(f.item_id, f.code) for f in result.failed] == [
            (operator.user_id, "BUSINESS_RULE_VIOLATION"),
            ("missing", "RESOURCE_NOT_FOUND"),
        ]
        assert all(m.status == "suspended" for m in members)
        assert operator.status == "active"

    def test_account_user_stats(self, factory, users):
        created = factory.account("Acme")
        factory.user(created.account)
        suspended = factory.user(created.account)
        users.set_status(suspended.user_id, "suspended")

        stats = users.account_user_stats(created.account.account_id)

        assert stats["total"] == 3
        assert stats["invited"] == 2
        assert stats["suspended"] == 1
        assert stats["tenant_admins"] == 1
        assert stats["tenant_members"] == 2

    def test_search_users(self, factory, users):
        created = factory.account("Acme")
        factory.user(created.account, email="searchme@example.com")

        found = users.search_users(term="SEARCH")
        assert [u.email for u in found] == ["searchme@example.com"]
        assert users.search_users(role="tenant_admin", account_id=created.account.account_id)[0].user_id == (
            created.admin_user.user_id
        )
