"""Tests for the account lifecycle."""

from datetime import datetime, timedelta

import pytest

from admin_panel.models import Account, User
from admin_panel.services import AccountService, TrialAction
from admin_panel.services.account_service import slugify
from rbac.context import AuthContext
from security.api_errors import ConflictError, InvariantViolationError, NotFoundError


NOW = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def accounts(db, settings):
    return AccountService(db, settings)


def _create(accounts, plan, name="Acme Co", email="owner@example.com", **kwargs):
    return accounts.create_account(
        name=name,
        account_type=plan.type,
        plan_id=plan.plan_id,
        admin_email=email,
        admin_first_name="Olive",
        admin_last_name="Owner",
        **kwargs,
    )


class TestCreate:

    def test_slugify(self):
        assert slugify("Acme Co") == "acme-co"
        assert slugify("Bob's Café") == "bob-s-caf-"

    def test_slug_gets_numeric_suffix_on_collision(self, factory, accounts):
        plan = factory.plan()
        slugs = [
            _create(accounts, plan, email=f"owner{i}@example.com").account.slug
            for i in range(3)
        ]
        assert slugs == ["acme-co", "acme-co-1", "acme-co-2"]

    def test_explicit_slug_must_be_free(self, factory, accounts):
        plan = factory.plan()
        _create(accounts, plan, slug="acme")

        with pytest.raises(ConflictError) as exc_info:
            _create(accounts, plan, email="second@example.com", slug="acme")
        assert exc_info.value.code.value == "RESOURCE_ALREADY_EXISTS"

    def test_admin_email_conflict(self, factory, accounts):
        plan = factory.plan()
        _create(accounts, plan)
        with pytest.raises(ConflictError):
            _create(accounts, plan, name="Other", email="OWNER@example.com")

    def test_new_account_is_on_trial_with_invited_admin(self, factory, accounts, settings):
        plan = factory.plan()
        created = _create(accounts, plan, now=NOW)

        account = created.account
        assert account.plan_status == "trial"
        assert account.status == "active"
        assert account.trial_ends_at == NOW + timedelta(days=settings.default_trial_days)
        assert account.max_users == 5
        assert account.max_sub_accounts == 0
        assert created.admin_user.role == "tenant_admin"
        assert created.admin_user.status == "invited"
        assert created.admin_user.account_id == account.account_id

    def test_franchise_gets_sub_account_allowance(self, factory, accounts, settings):
        plan = factory.plan(plan_type="franchise")
        created = _create(accounts, plan, name="North")
        assert created.account.max_sub_accounts == settings.franchise_sub_account_limit

    def test_plan_type_must_match(self, factory, accounts):
        franchise_plan = factory.plan(plan_type="franchise")
        with pytest.raises(InvariantViolationError):
            accounts.create_account(
                name="Acme",
                account_type="individual",
                plan_id=franchise_plan.plan_id,
                admin_email="owner@example.com",
                admin_first_name="Olive",
                admin_last_name="Owner",
            )

    def test_unknown_plan(self, accounts):
        with pytest.raises(NotFoundError):
            accounts.create_account(
                name="Acme",
                account_type="individual",
                plan_id="missing",
                admin_email="owner@example.com",
                admin_first_name="Olive",
                admin_last_name="Owner",
            )


class TestPlanAndStatus:

    def test_assign_plan_same_type(self, factory, accounts):
        created = factory.account("Acme")
        other = factory.plan(name="Bigger")

        account = accounts.assign_plan(created.account.account_id, other.plan_id)
        assert account.plan_id == other.plan_id

    def test_assign_plan_type_mismatch(self, factory, accounts):
        created = factory.account("Acme")
        franchise_plan = factory.plan(plan_type="franchise")

        with pytest.raises(InvariantViolationError):
            accounts.assign_plan(created.account.account_id, franchise_plan.plan_id)

    def test_update_account_fields(self, factory, accounts):
        created = factory.account("Acme")
        account = accounts.update_account(created.account.account_id, name="Acme Ltd", contact_phone="555")
        assert account.name == "Acme Ltd"
        assert account.contact_phone == "555"

    def test_status_and_billing(self, factory, accounts):
        created = factory.account("Acme")
        account_id = created.account.account_id

        assert accounts.set_status(account_id, "suspended").status == "suspended"
        assert accounts.set_billing_status(account_id, "past_due").plan_status == "past_due"
        with pytest.raises(ValueError):
            accounts.set_status(account_id, "frozen")


class TestTrial:

    @pytest.fixture
    def account_id(self, factory, accounts):
        plan = factory.plan()
        return _create(accounts, plan, now=NOW).account.account_id

    def test_extend_from_current_end(self, accounts, account_id, settings):
        account = accounts.update_trial(account_id, TrialAction.EXTEND.value, extension_days=7, now=NOW)
        assert account.trial_ends_at == NOW + timedelta(days=settings.default_trial_days + 7)
        assert account.plan_status == "trial"

    def test_extend_requires_days(self, accounts, account_id):
        with pytest.raises(InvariantViolationError):
            accounts.update_trial(account_id, "extend", now=NOW)

    def test_end_makes_billing_active(self, accounts, account_id):
        account = accounts.update_trial(account_id, "end", now=NOW)
        assert account.trial_ends_at == NOW
        assert account.plan_status == "active"

    def test_restart(self, accounts, account_id, settings):
        later = NOW + timedelta(days=40)
        accounts.update_trial(account_id, "end", now=NOW)
        account = accounts.update_trial(account_id, "restart", now=later)
        assert account.trial_ends_at == later + timedelta(days=settings.default_trial_days)
        assert account.plan_status == "trial"

    def test_custom_end_in_past_activates_billing(self, accounts, account_id):
        account = accounts.update_trial(
            account_id, "set_custom_end", trial_ends_at=NOW - timedelta(days=1), now=NOW
        )
        assert account.plan_status == "active"

        account = accounts.update_trial(
            account_id, "set_custom_end", trial_ends_at=NOW + timedelta(days=3), now=NOW
        )
        assert account.plan_status == "trial"

    def test_list_accounts_reports_trial_status(self, accounts, account_id):
        rows = accounts.list_accounts(now=NOW + timedelta(days=10))
        trial = rows[0]["trial_status"]

        assert rows[0]["user_count"] == 1
        assert trial["days_remaining"] == 4
        assert trial["is_expired"] is False

        expired = accounts.list_accounts(now=NOW + timedelta(days=20))[0]["trial_status"]
        assert expired["days_remaining"] == 0
        assert expired["is_expired"] is True


class TestDelete:

    def test_delete_removes_users(self, db, factory, accounts):
        created = factory.account("Acme")
        factory.user(created.account)
        account_id = created.account.account_id

        accounts.delete_account(account_id)

        assert db.get(Account, account_id) is None
        assert db.query(User).filter(User.account_id == account_id).count() == 0

    @pytest.mark.parametrize("plan_status", ["active", "past_due"])
    def test_live_billing_blocks_delete(self, factory, accounts, plan_status):
        created = factory.account("Acme")
        accounts.set_billing_status(created.account.account_id, plan_status)

        with pytest.raises(InvariantViolationError):
            accounts.delete_account(created.account.account_id)

    def test_active_sub_accounts_block_delete(self, factory, accounts):
        franchise = factory.franchise("North").account
        factory.account("Shop", parent=franchise)

        with pytest.raises(InvariantViolationError):
            accounts.delete_account(franchise.account_id)

    def test_inactive_children_are_detached(self, db, factory, accounts, impersonation):
        franchise = factory.franchise("North").account
        child = factory.account("Shop", parent=franchise).account
        accounts.set_status(child.account_id, "suspended")
        operator = AuthContext.from_user(factory.operator())
        admin = db.query(User).filter(User.account_id == franchise.account_id).one()
        impersonation.create(db, operator, franchise.account_id, admin.user_id)

        accounts.delete_account(franchise.account_id)

        assert child.parent_id is None
        assert db.get(Account, child.account_id) is not None


class TestOverridesAndStats:

    def test_override_set_replaces_and_clear(self, factory, accounts):
        from rbac.capabilities import CapabilitySet, UsageLimits

        created = factory.account("Acme")
        account_id = created.account.account_id
        limits = UsageLimits(max_customers=1, max_monthly_emails=2, max_users=3, data_retention_days=4)

        first = accounts.set_override(account_id, CapabilitySet.denied(), limits)
        second = accounts.set_override(account_id, CapabilitySet.unrestricted(), limits)

        assert first.override_id == second.override_id
        assert second.capability_set == CapabilitySet.unrestricted()
        assert accounts.clear_override(account_id) is True
        assert accounts.clear_override(account_id) is False

    def test_platform_stats(self, factory, accounts):
        north = factory.franchise("North").account
        factory.account("Shop", parent=north)
        factory.account("Solo")

        stats = accounts.platform_stats()

        assert stats["total_accounts"] == 3
        assert stats["franchise_accounts"] == 1
        assert stats["sub_accounts"] == 1
        assert stats["independent_accounts"] == 1
        assert stats["trial_accounts"] == 3
        assert stats["total_users"] == 3
