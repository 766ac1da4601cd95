"""
Security utilities: verifying identity-provider JWTs.

Authentication is delegated to the identity provider (Supabase). It signs
access tokens with HS256 using a project secret we share; this module only
checks them:

  - signature (SUPABASE_JWT_SECRET / JWT_ALGORITHM)
  - expiry ("exp")
  - audience ("aud" must equal JWT_AUDIENCE, "authenticated" by default)
  - presence of a subject ("sub", the user id)

A successful check yields an Identity: {id, email, metadata, app_metadata}.

create_access_token() mints tokens of the same shape. It exists for tests and
for demo/mint_token.py; the running service never issues tokens.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from djei.config import settings
from djei.exceptions import AuthenticationError


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as asserted by the identity provider."""

    id: str
    email: str = ""
    metadata: dict = field(default_factory=dict)
    app_metadata: dict = field(default_factory=dict)

    @property
    def name(self) -> str:
        return (
            self.metadata.get("full_name")
            or self.metadata.get("name")
            or (self.email.split("@")[0] if self.email else "")
            or "User"
        )

    @property
    def avatar_url(self) -> str | None:
        return self.metadata.get("avatar_url") or self.metadata.get("picture")

    @property
    def is_admin(self) -> bool:
        """
        Elevated privilege: granted by the provider through
        app_metadata.role (users cannot edit app_metadata themselves), or by
        listing the user id in ADMIN_USER_IDS.
        """
        return self.app_metadata.get("role") == "admin" or self.id in settings.ADMIN_USER_IDS


def create_access_token(
    user_id: str,
    email: str = "",
    user_metadata: dict | None = None,
    app_metadata: dict | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT shaped like the identity provider's access tokens.

    Args:
        user_id: Becomes the "sub" claim.
        email: The user's email.
        user_metadata: Profile claims (full_name, avatar_url, ...).
        app_metadata: Provider-controlled claims (role, provider, ...).
        expires_delta: Custom lifetime. Defaults to ACCESS_TOKEN_EXPIRE_MINUTES.

    Returns:
        An encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "sub": user_id,
        "email": email,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "user_metadata": user_metadata or {},
        "app_metadata": app_metadata or {},
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Raises:
        JWTError: If the token is expired, tampered with, or for another audience.

    Returns:
        The decoded claims.
    """
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
    )


def verify_identity(token: str) -> Identity:
    """
    Turn a bearer token into an Identity.

    Raises:
        AuthenticationError: If the token fails verification or has no subject.
    """
    try:
        claims = decode_access_token(token)
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid or expired token")

    return Identity(
        id=str(user_id),
        email=claims.get("email") or "",
        metadata=claims.get("user_metadata") or {},
        app_metadata=claims.get("app_metadata") or {},
    )
