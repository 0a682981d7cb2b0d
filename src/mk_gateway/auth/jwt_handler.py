"""JWT verification for tokens issued by the external auth service.

HS256 with the shared JWT_SECRET. Tokens carry:
    sub   user id
    role  buyer / seller / admin
    type  "access"

create_access_token exists for local tooling and tests; production tokens are
minted by the auth service.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from config.settings import settings
from src.mk_common.enums import Role
from src.mk_common.errors import NotAuthenticatedError
from src.mk_gateway.auth.principal import Principal

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_VALID_ROLES = {r.value for r in Role}


def create_access_token(user_id: str, role: str = Role.BUYER, minutes: int = 30) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": str(Role(role).value),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Raises:
        NotAuthenticatedError: Token invalid, expired, or not an access token.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise NotAuthenticatedError() from None

    if payload.get("type") != "access":
        raise NotAuthenticatedError()
    return payload


def principal_from_token(token: str) -> Principal:
    payload = decode_token(token)
    user_id = payload.get("sub")
    role = payload.get("role", Role.BUYER)
    if not user_id or role not in _VALID_ROLES:
        raise NotAuthenticatedError()
    return Principal(user_id=str(user_id), role=str(role))
