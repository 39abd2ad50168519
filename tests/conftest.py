"""Pytest configuration and fixtures for the tenancy test suite."""

import itertools
import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

# Run with the test environment unless told otherwise
os.environ.setdefault("TENANCY_ENVIRONMENT", "test")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from admin_panel.models import Account, Plan, User  # noqa: E402
from admin_panel.services import AccountService, CreatedAccount, PlanService, UserService  # noqa: E402
from admin_panel.support.impersonation_service import ImpersonationService  # noqa: E402
from config.database import DatabaseSettings  # noqa: E402
from config.settings import Settings  # noqa: E402
from database.connection import build_engine, create_session_factory, init_schema  # noqa: E402
from rbac.capabilities import CapabilitySet, PlanFeatures  # noqa: E402
from rbac.roles import Role  # noqa: E402


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def settings():
    """Default engine settings, isolated from the environment."""
    return Settings(_env_file=None, environment="test")


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with the full schema."""
    engine = build_engine(DatabaseSettings(_env_file=None, url="sqlite://"))
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    """A session for service-level tests; never committed unless a test does so."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Injectable clock: call it for the current time, move it with advance()."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def impersonation(settings, clock):
    return ImpersonationService(settings, clock=clock)


# =============================================================================
# DATA FACTORY
# =============================================================================

class TenancyFactory:
    """Builds plans, accounts and users through the real services."""

    def __init__(self, db, settings: Settings):
        self.db = db
        self.settings = settings
        self._seq = itertools.count(1)

    def _n(self) -> int:
        return next(self._seq)

    def plan(
        self,
        name: Optional[str] = None,
        plan_type: str = "individual",
        features: Optional[PlanFeatures] = None,
        capabilities: Optional[CapabilitySet] = None,
    ) -> Plan:
        return PlanService(self.db).create_plan(
            name=name or f"Plan {self._n()}",
            plan_type=plan_type,
            price=Decimal("10.00"),
            features=features or PlanFeatures(max_users=5, data_retention=365),
            default_capabilities=capabilities,
        )

    def account(
        self,
        name: str,
        account_type: str = "individual",
        plan: Optional[Plan] = None,
        parent: Optional[Account] = None,
        **kwargs,
    ) -> CreatedAccount:
        plan = plan or self.plan(plan_type=account_type)
        n = self._n()
        created = AccountService(self.db, self.settings).create_account(
            name=name,
            account_type=account_type,
            plan_id=plan.plan_id,
            admin_email=kwargs.pop("admin_email", f"admin{n}@example.com"),
            admin_first_name="Ada",
            admin_last_name=f"Admin{n}",
            parent_id=parent.account_id if parent is not None else None,
            **kwargs,
        )
        self._sign_in(created.admin_user)
        return created

    def franchise(self, name: str, **kwargs) -> CreatedAccount:
        return self.account(name, account_type="franchise", **kwargs)

    def user(
        self,
        account: Account,
        role: str = Role.TENANT_MEMBER.value,
        email: Optional[str] = None,
        signed_in: bool = True,
    ) -> User:
        """A user of ``account``; ``signed_in=False`` leaves an invite nobody has claimed yet."""
        n = self._n()
        user = UserService(self.db, self.settings).create_user(
            account_id=account.account_id,
            email=email or f"user{n}@example.com",
            first_name="Uma",
            last_name=f"User{n}",
            role=role,
        )
        if signed_in:
            self._sign_in(user)
        return user

    def _sign_in(self, user: User) -> None:
        """Link the user to an identity-provider id, as ensure_profile would."""
        user.external_id = f"ext-{user.email}"
        self.db.flush()

    def operator(self, email: str = "ops@example.com") -> User:
        user = User(
            external_id=f"ext-{email}",
            email=email,
            first_name="Olly",
            last_name="Operator",
            role=Role.OPERATOR.value,
            status="active",
            email_verified=True,
        )
        self.db.add(user)
        self.db.flush()
        return user


@pytest.fixture
def factory(db, settings):
    return TenancyFactory(db, settings)
