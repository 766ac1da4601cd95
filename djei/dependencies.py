"""
FastAPI dependencies for authentication, authorization and integrations.

Dependency chain:

  get_current_identity (Bearer JWT -> Identity)
      └── require_admin (Identity -> Identity)   [elevated privilege]

  get_catalog / get_payments (app.state -> integration client)

Every protected endpoint declares one of these as a parameter. If a
dependency fails (missing token, wrong privilege) the request is rejected
before the route handler runs, and before any ledger mutation.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from djei.exceptions import AuthenticationError, AuthorizationError
from djei.security import Identity, verify_identity
from djei.services.catalog_service import SpotifyCatalog
from djei.services.payment_service import StripePayments


# auto_error=False: a missing header becomes our 401 envelope rather than
# FastAPI's default response
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """
    Verify the bearer token and return the caller's Identity.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authorization header missing or invalid format")
    return verify_identity(credentials.credentials)


async def require_admin(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """
    Require elevated privilege (used by /tokens/admin/*).

    Raises:
        AuthorizationError: If the caller is authenticated but not an admin.
    """
    if not identity.is_admin:
        raise AuthorizationError("Admin privileges required")
    return identity


def get_catalog(request: Request) -> SpotifyCatalog:
    """The catalog client built in the app lifespan."""
    return request.app.state.catalog


def get_payments(request: Request) -> StripePayments:
    """The payment provider client built in the app lifespan."""
    return request.app.state.payments
