"""Tests for transaction and read-only scopes."""

from decimal import Decimal

import pytest

from admin_panel.models import Plan
from admin_panel.services import PlanService
from database.transaction import read_only_scope, transaction_scope


def _count(session_factory) -> int:
    with session_factory() as session:
        return session.query(Plan).count()


class TestTransactionScope:

    def test_commits_on_success(self, session_factory):
        with transaction_scope(session_factory) as session:
            PlanService(session).create_plan(name="Solo", plan_type="individual", price=Decimal("5.00"))

        assert _count(session_factory) == 1

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with transaction_scope(session_factory) as session:
                PlanService(session).create_plan(name="Solo", plan_type="individual", price=Decimal("5.00"))
                raise RuntimeError("boom")

        assert _count(session_factory) == 0


class TestReadOnlyScope:

    def test_never_persists(self, session_factory):
        with read_only_scope(session_factory) as session:
            PlanService(session).create_plan(name="Solo", plan_type="individual", price=Decimal("5.00"))
            assert session.query(Plan).count() == 1

        assert _count(session_factory) == 0
