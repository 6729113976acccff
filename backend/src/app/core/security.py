"""Identity provider contract.

Tokens are issued elsewhere. The core only decodes the bearer token into the
caller's id and role and trusts those claims as given.
"""

from dataclasses import dataclass
from uuid import UUID

import jwt

from app.core.config import settings

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: UUID
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT, returning its payload or None if invalid."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.PyJWTError:
        return None


def principal_from_payload(payload: dict) -> Principal | None:
    """Build a Principal from token claims (``sub`` user id, optional ``role``)."""
    subject = payload.get("sub")
    if subject is None:
        return None
    try:
        user_id = UUID(str(subject))
    except ValueError:
        return None
    return Principal(user_id=user_id, role=payload.get("role", ROLE_USER))
