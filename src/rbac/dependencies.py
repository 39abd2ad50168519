"""
FastAPI Dependencies

Request identity for the HTTP surface. Credential verification happens
upstream (gateway or identity provider); by the time a request reaches
these routes it carries the verified principal id in a header.

    X-Principal-Id      verified external identity (required by every route
                        except profile bootstrap, where it is the new id)
    ?session_token=     optional "view as user" session token, passed like
                        any other operation argument (ending a session
                        takes it in the request body instead)

The middleware in ``admin_panel.api.app`` binds the principal header for
logging; these dependencies only read it.

Usage:
    @router.get("/accounts/{account_id}")
    def get_account(
        account_id: str,
        identity: RequestIdentity = Depends(get_identity),
        ops: AdminOperations = Depends(get_operations),
    ):
        return ops.get_account(identity.principal_id, account_id, identity.session_token)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Query, Request

logger = logging.getLogger(__name__)

PRINCIPAL_HEADER = "X-Principal-Id"
SESSION_TOKEN_PARAM = "session_token"


@dataclass(frozen=True)
class RequestIdentity:
    """Raw identity carried by a request; resolved to an AuthContext per operation."""
    principal_id: Optional[str]
    session_token: Optional[str] = None


def get_identity(
    x_principal_id: Optional[str] = Header(None, alias=PRINCIPAL_HEADER),
    session_token: Optional[str] = Query(None, alias=SESSION_TOKEN_PARAM),
) -> RequestIdentity:
    """
    Read the principal header and the optional impersonation token.

    Does NOT enforce authentication: a missing principal is rejected by the
    PrincipalResolver inside the operation, so the error goes through the
    same classified path as every other failure.
    """
    return RequestIdentity(
        principal_id=x_principal_id or None,
        session_token=session_token or None,
    )


def get_operations(request: Request):
    """The AdminOperations instance the app was created with."""
    return request.app.state.operations
