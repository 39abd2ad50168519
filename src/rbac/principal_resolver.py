"""
Principal Resolver

Maps the trusted principal id supplied by the identity provider to an
internal user record and builds the AuthContext for it.

Only ``users.external_id`` is matched. Internal user ids are never
accepted as principals, so an identity-provider id that happens to equal
some user's internal id cannot sign in as that user.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from admin_panel.models import User
from security.api_errors import UnauthenticatedError, UnauthorizedError

from .context import AuthContext
from .roles import Level

logger = logging.getLogger(__name__)


class PrincipalResolver:
    """Resolves verified identities to AuthContexts."""

    def find_user(self, session: Session, principal_id: str) -> Optional[User]:
        return (
            session.query(User)
            .filter(User.external_id == principal_id)
            .first()
        )

    def resolve(self, session: Session, principal_id: Optional[str]) -> AuthContext:
        """
        Resolve a principal id to an AuthContext.

        Raises:
            UnauthenticatedError: No principal id, or no user profile for it.
            UnauthorizedError: The user is suspended and is not an operator.
        """
        if not principal_id:
            raise UnauthenticatedError("Authentication required")

        user = self.find_user(session, principal_id)
        if user is None:
            logger.info(f"No user profile for principal {principal_id}")
            raise UnauthenticatedError("No user profile for principal", principal_id=principal_id)

        ctx = AuthContext.from_user(user)
        if user.is_suspended and ctx.level != Level.PLATFORM:
            logger.warning(f"Suspended user attempted access | user={user.user_id}")
            raise UnauthorizedError("User account is suspended", user_id=user.user_id)

        return ctx
