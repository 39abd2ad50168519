"""
Impersonation Service

Lets a platform operator act as a tenant user for a bounded time.
Manages session lifecycle; expiry is checked lazily on every validate,
there is no background sweeper.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database.models import utcnow
from rbac.context import AuthContext
from rbac.roles import get_role_info
from security.api_errors import (
    InvariantViolationError,
    NotFoundError,
    UnauthenticatedError,
    UnauthorizedError,
)

from ..models import Account, User
from .impersonation_models import TOKEN_PREFIX, ImpersonationGrant, ImpersonationSession

logger = logging.getLogger(__name__)


class ImpersonationService:
    """
    Service for managing impersonation sessions.

    Provides:
    - Session creation (operator only, CSPRNG tokens)
    - Validation returning a grant or None ("no session" is not an error)
    - Idempotent revocation
    - Building the effective AuthContext for a request
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self.clock = clock

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def _generate_token(self) -> str:
        return f"{TOKEN_PREFIX}{secrets.token_urlsafe(self.settings.impersonation_token_bytes)}"

    @staticmethod
    def _require_operator(ctx: Optional[AuthContext]) -> AuthContext:
        if ctx is None:
            raise UnauthenticatedError("Authentication required")
        if not get_role_info(ctx.role).can_impersonate or ctx.impersonating:
            raise UnauthorizedError("Operator access required for impersonation")
        return ctx

    def _ttl(self, ttl_seconds: Optional[int]) -> int:
        if ttl_seconds is None:
            return self.settings.impersonation_default_ttl_seconds
        if ttl_seconds <= 0:
            raise InvariantViolationError("Session lifetime must be positive", ttl_seconds=ttl_seconds)
        return min(ttl_seconds, self.settings.impersonation_max_ttl_seconds)

    @staticmethod
    def _by_token(db: Session, token: str) -> Optional[ImpersonationSession]:
        return db.query(ImpersonationSession).filter(ImpersonationSession.token == token).first()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def create(
        self,
        db: Session,
        ctx: Optional[AuthContext],
        target_account_id: str,
        target_user_id: str,
        ttl_seconds: Optional[int] = None,
    ) -> ImpersonationSession:
        """
        Start a session for ``ctx`` (an operator) as ``target_user_id``.

        Raises:
            UnauthenticatedError / UnauthorizedError: Caller is not an operator.
            NotFoundError: Target account or user absent.
            InvariantViolationError: User not in the account, or bad ttl.
        """
        ctx = self._require_operator(ctx)

        account = db.get(Account, target_account_id)
        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=target_account_id)

        user = db.get(User, target_user_id)
        if user is None:
            raise NotFoundError("User not found", resource="user", resource_id=target_user_id)

        if user.account_id != account.account_id:
            raise InvariantViolationError(
                "User does not belong to this account",
                user_id=target_user_id,
                account_id=target_account_id,
            )

        ttl = self._ttl(ttl_seconds)
        now = self.clock()

        session = ImpersonationSession(
            operator_id=ctx.user_id,
            target_account_id=account.account_id,
            target_user_id=user.user_id,
            token=self._generate_token(),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            is_active=True,
        )
        db.add(session)
        db.flush()

        logger.info(
            f"[IMPERSONATION] Started | operator={ctx.user_id} | account={account.name} ({account.account_id}) | "
            f"user={user.email} | ttl={ttl}s"
        )
        return session

    def validate(self, db: Session, token: Optional[str]) -> Optional[ImpersonationGrant]:
        """
        Resolve a token to its target user and account.

        Returns None when the token is missing, unknown, revoked or expired,
        or when the target no longer matches. Never raises for those cases.
        """
        if not token:
            return None

        session = self._by_token(db, token)
        if session is None or not session.is_valid_at(self.clock()):
            return None

        user = db.get(User, session.target_user_id)
        account = db.get(Account, session.target_account_id)
        if user is None or account is None or user.account_id != account.account_id:
            return None

        return ImpersonationGrant(session=session, target_user=user, target_account=account)

    def revoke(
        self,
        db: Session,
        ctx: Optional[AuthContext],
        token: str,
    ) -> Optional[ImpersonationSession]:
        """
        End a session. Idempotent; an unknown token returns None.

        Any operator may revoke any session.
        """
        ctx = self._require_operator(ctx)

        session = self._by_token(db, token)
        if session is None:
            return None

        if not session.is_active:
            return session

        session.is_active = False
        session.ended_at = self.clock()
        session.ended_by = ctx.user_id
        db.flush()

        duration = int((session.ended_at - session.created_at).total_seconds())
        if ctx.user_id == session.operator_id:
            logger.info(
                f"[IMPERSONATION] Ended | operator={session.operator_id} | "
                f"user={session.target_user_id} | duration={duration}s"
            )
        else:
            logger.warning(
                f"[IMPERSONATION] REVOKED | operator={session.operator_id} | "
                f"user={session.target_user_id} | revoked_by={ctx.user_id}"
            )
        return session

    def apply(self, db: Session, ctx: AuthContext, token: Optional[str]) -> AuthContext:
        """
        Effective AuthContext for a request carrying ``token``.

        The impersonated user becomes the effective principal and the
        operator is kept as impersonator. With no valid session, or a token
        issued to a different operator, the real principal is returned.
        """
        if not token:
            return ctx

        grant = self.validate(db, token)
        if grant is None:
            logger.info(f"[IMPERSONATION] No session for token | principal={ctx.user_id}")
            return ctx

        if not ctx.is_operator or ctx.impersonating or grant.operator_id != ctx.user_id:
            logger.warning(
                f"[IMPERSONATION] Token not issued to principal, ignoring | principal={ctx.user_id} | "
                f"session={grant.session.session_id}"
            )
            return ctx

        return ctx.impersonate(grant.target_user, grant.session.session_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_active(self, db: Session, operator_id: Optional[str] = None) -> List[ImpersonationSession]:
        """Sessions that are valid right now, newest first."""
        query = db.query(ImpersonationSession).filter(
            ImpersonationSession.is_active.is_(True),
            ImpersonationSession.expires_at > self.clock(),
        )
        if operator_id:
            query = query.filter(ImpersonationSession.operator_id == operator_id)
        return query.order_by(ImpersonationSession.created_at.desc()).all()

    def list_for_account(
        self,
        db: Session,
        account_id: str,
        include_ended: bool = False,
    ) -> List[ImpersonationSession]:
        query = db.query(ImpersonationSession).filter(
            ImpersonationSession.target_account_id == account_id
        )
        sessions = query.order_by(ImpersonationSession.created_at.desc()).all()
        if include_ended:
            return sessions
        now = self.clock()
        return [s for s in sessions if s.is_valid_at(now)]
