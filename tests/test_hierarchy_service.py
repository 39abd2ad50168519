"""Tests for franchise / sub-account hierarchy management."""

import pytest

from admin_panel.models import Account, AccountOverride
from admin_panel.services import MAX_HIERARCHY_DEPTH, HierarchyService
from rbac.roles import Role
from security.api_errors import InvariantViolationError, NotFoundError


@pytest.fixture
def hierarchy(db, settings):
    return HierarchyService(db, settings)


def _ids(accounts):
    return [a.account_id for a in accounts]


class TestPath:

    def test_root_path_is_itself(self, factory, hierarchy):
        franchise = factory.franchise("North").account
        assert _ids(hierarchy.path(franchise.account_id)) == [franchise.account_id]

    def test_path_after_attach_and_detach(self, factory, hierarchy):
        """attach(C, F) gives path(C) == [F, C]; detach(C) gives [C]."""
        franchise = factory.franchise("North").account
        child = factory.account("Corner Shop").account

        hierarchy.attach(child.account_id, franchise.account_id)
        assert _ids(hierarchy.path(child.account_id)) == [franchise.account_id, child.account_id]

        hierarchy.detach(child.account_id)
        assert _ids(hierarchy.path(child.account_id)) == [child.account_id]

    def test_path_of_missing_account(self, hierarchy):
        with pytest.raises(NotFoundError):
            hierarchy.path("no-such-account")

    def test_path_rejects_chain_deeper_than_cap(self, db, factory, hierarchy):
        """Rows written around the service cannot make the walk exceed the cap."""
        franchise = factory.franchise("North").account
        middle = factory.account("Middle", parent=franchise).account
        leaf = factory.account("Leaf").account
        leaf.parent_id = middle.account_id
        db.flush()

        assert MAX_HIERARCHY_DEPTH == 2
        with pytest.raises(InvariantViolationError):
            hierarchy.path(leaf.account_id)

    def test_path_rejects_cycle(self, db, factory, hierarchy):
        a = factory.account("A").account
        b = factory.account("B").account
        a.parent_id = b.account_id
        b.parent_id = a.account_id
        db.flush()

        with pytest.raises(InvariantViolationError):
            hierarchy.path(a.account_id)


class TestAttach:

    def test_franchise_cannot_become_sub_account(self, factory, hierarchy):
        franchise = factory.franchise("North").account
        other = factory.franchise("South").account

        with pytest.raises(InvariantViolationError, match="franchise cannot become"):
            hierarchy.attach(other.account_id, franchise.account_id)

    def test_child_with_parent_cannot_be_attached_again(self, factory, hierarchy):
        north = factory.franchise("North").account
        south = factory.franchise("South").account
        child = factory.account("Corner Shop", parent=north).account

        with pytest.raises(InvariantViolationError, match="already belongs"):
            hierarchy.attach(child.account_id, south.account_id)

    def test_target_must_be_franchise(self, factory, hierarchy):
        child = factory.account("Corner Shop").account
        not_franchise = factory.account("Bakery").account

        with pytest.raises(InvariantViolationError, match="not a franchise"):
            hierarchy.attach(child.account_id, not_franchise.account_id)

    def test_failed_attach_leaves_child_untouched(self, factory, hierarchy):
        child = factory.account("Corner Shop").account
        not_franchise = factory.account("Bakery").account

        with pytest.raises(InvariantViolationError):
            hierarchy.attach(child.account_id, not_franchise.account_id)

        assert child.parent_id is None

    def test_sub_account_limit(self, db, factory, hierarchy):
        franchise = factory.franchise("North").account
        franchise.max_sub_accounts = 1
        db.flush()
        first = factory.account("One").account
        second = factory.account("Two").account

        hierarchy.attach(first.account_id, franchise.account_id)
        with pytest.raises(InvariantViolationError, match="sub-account limit"):
            hierarchy.attach(second.account_id, franchise.account_id)

    def test_detach_requires_parent(self, factory, hierarchy):
        child = factory.account("Corner Shop").account
        with pytest.raises(InvariantViolationError):
            hierarchy.detach(child.account_id)


class TestTransfer:

    def test_transfer_moves_child_between_franchises(self, factory, hierarchy):
        """After transfer(C, B): C under B only, path(C) == [B, C]."""
        a = factory.franchise("Alpha").account
        b = factory.franchise("Beta").account
        child = factory.account("Corner Shop", parent=a).account

        hierarchy.transfer(child.account_id, b.account_id)

        assert _ids(hierarchy.list_sub_accounts(a.account_id)) == []
        assert _ids(hierarchy.list_sub_accounts(b.account_id)) == [child.account_id]
        assert _ids(hierarchy.path(child.account_id)) == [b.account_id, child.account_id]

    def test_transfer_to_current_parent_is_noop(self, factory, hierarchy):
        a = factory.franchise("Alpha").account
        child = factory.account("Corner Shop", parent=a).account

        result = hierarchy.transfer(child.account_id, a.account_id)

        assert result.parent_id == a.account_id

    def test_transfer_validates_target(self, factory, hierarchy):
        a = factory.franchise("Alpha").account
        child = factory.account("Corner Shop", parent=a).account
        other = factory.account("Bakery").account

        with pytest.raises(InvariantViolationError):
            hierarchy.transfer(child.account_id, other.account_id)
        assert child.parent_id == a.account_id


class TestHierarchyViews:

    def test_get_hierarchy_counts_each_node_once(self, factory, hierarchy):
        franchise = factory.franchise("North").account
        child = factory.account("Corner Shop", parent=franchise).account
        factory.user(child, role=Role.TENANT_MEMBER.value)
        factory.user(franchise, role=Role.TENANT_MEMBER.value)

        tree = hierarchy.get_hierarchy(franchise.account_id)

        assert tree["franchise"]["account_id"] == franchise.account_id
        assert tree["franchise"]["user_count"] == 2
        assert [s["account_id"] for s in tree["sub_accounts"]] == [child.account_id]
        assert tree["sub_accounts"][0]["admin_count"] == 1
        assert tree["sub_accounts"][0]["member_count"] == 1
        assert tree["totals"] == {
            "accounts": 2,
            "sub_accounts": 1,
            "user_count": 4,
            "admin_count": 2,
            "member_count": 2,
        }

    def test_get_hierarchy_requires_franchise(self, factory, hierarchy):
        individual = factory.account("Bakery").account
        with pytest.raises(InvariantViolationError):
            hierarchy.get_hierarchy(individual.account_id)

    def test_list_franchises_rollups(self, factory, hierarchy):
        north = factory.franchise("North").account
        factory.account("One", parent=north)
        factory.account("Two", parent=north)
        factory.franchise("South")

        rows = {row["name"]: row for row in hierarchy.list_franchises()}

        assert rows["North"]["sub_account_count"] == 2
        assert rows["North"]["direct_user_count"] == 1
        assert rows["North"]["total_user_count"] == 3
        assert rows["South"]["sub_account_count"] == 0

    def test_available_accounts_are_parentless_individuals(self, factory, hierarchy):
        north = factory.franchise("North").account
        attached = factory.account("Attached", parent=north).account
        free = factory.account("Free").account

        available = _ids(hierarchy.list_available_accounts())

        assert free.account_id in available
        assert attached.account_id not in available
        assert north.account_id not in available


class TestBulkAndCreate:

    def test_bulk_attach_collects_failures(self, factory, hierarchy):
        """N-1 valid children succeed; the franchise in the batch fails alone."""
        franchise = factory.franchise("North").account
        children = [factory.account(f"Shop {i}").account for i in range(3)]
        bad = factory.franchise("South").account
        ids = [c.account_id for c in children] + [bad.account_id]

        result = hierarchy.bulk_attach(ids, franchise.account_id)

        assert result.succeeded == [c.account_id for c in children]
        assert len(result.failed) == 1
        assert result.failed[0].item_id == bad.account_id
        assert result.failed[0].code == "BUSINESS_RULE_VIOLATION"
        assert result.total == 4
        assert bad.parent_id is None
        assert all(c.parent_id == franchise.account_id for c in children)

    def test_bulk_attach_reports_missing_accounts(self, factory, hierarchy):
        franchise = factory.franchise("North").account
        child = factory.account("Shop").account

        result = hierarchy.bulk_attach([child.account_id, "missing"], franchise.account_id)

        assert result.succeeded == [child.account_id]
        assert result.failed[0].code == "RESOURCE_NOT_FOUND"

    def test_create_sub_account(self, db, factory, hierarchy, settings):
        franchise = factory.franchise("North").account
        plan = factory.plan()

        created = hierarchy.create_sub_account(
            franchise.account_id,
            name="Corner Shop",
            plan_id=plan.plan_id,
            admin_email="owner@corner.example.com",
            admin_first_name="Cora",
            admin_last_name="Owner",
        )

        account = created.account
        assert account.parent_id == franchise.account_id
        assert account.type == "individual"
        assert account.plan_status == "trial"
        delta = account.trial_ends_at - account.created_at
        assert abs(delta.days - settings.sub_account_trial_days) <= 1
        assert created.admin_user.role == Role.TENANT_ADMIN.value
        assert created.admin_user.status == "invited"

        override = db.query(AccountOverride).filter_by(account_id=account.account_id).one()
        assert override.custom_limits["max_customers"] == settings.fallback_max_customers
        assert override.custom_limits["max_users"] == 5

    def test_create_sub_account_under_individual_rejected(self, db, factory, hierarchy):
        individual = factory.account("Bakery").account
        plan = factory.plan()
        before = db.query(Account).count()

        with pytest.raises(InvariantViolationError):
            hierarchy.create_sub_account(
                individual.account_id,
                name="Corner Shop",
                plan_id=plan.plan_id,
                admin_email="owner@corner.example.com",
                admin_first_name="Cora",
                admin_last_name="Owner",
            )
        assert db.query(Account).count() == before
