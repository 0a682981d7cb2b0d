"""FastAPI dependency: get_principal.

Pipeline order is authenticate -> authorize -> execute. This module does the
first step; ownership checks happen in the settlement service, which knows
the order.

Usage in any protected router:
    from src.mk_gateway.auth.dependencies import get_principal

    @router.get("/protected")
    async def protected(principal: Principal = Depends(get_principal)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.mk_common.errors import NotAuthenticatedError
from src.mk_gateway.auth.jwt_handler import principal_from_token
from src.mk_gateway.auth.principal import Principal

# auto_error=False so a missing header gets the same 401 body as a bad token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    """Extract and validate the JWT Bearer token.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    if not token:
        raise _CREDENTIALS_EXCEPTION
    try:
        return principal_from_token(token)
    except NotAuthenticatedError:
        raise _CREDENTIALS_EXCEPTION from None
