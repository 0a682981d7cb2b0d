"""Tests for JWT verification, Principal and the get_principal dependency."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from config.settings import settings
from src.mk_common.enums import Role
from src.mk_common.errors import NotAuthenticatedError
from src.mk_gateway.auth.dependencies import get_principal
from src.mk_gateway.auth.jwt_handler import create_access_token, decode_token, principal_from_token
from src.mk_gateway.auth.principal import Principal


def _raw_token(**claims) -> str:  # type: ignore[no-untyped-def]
    payload = {"sub": "u1", "role": "buyer", "type": "access", "exp": datetime.now(UTC) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


class TestJwt:
    def test_round_trip(self) -> None:
        token = create_access_token("seller-1", Role.SELLER)
        principal = principal_from_token(token)
        assert principal == Principal(user_id="seller-1", role="seller")
        assert principal.is_seller
        assert not principal.is_admin

    def test_expired(self) -> None:
        token = create_access_token("u1", minutes=-1)
        with pytest.raises(NotAuthenticatedError):
            decode_token(token)

    def test_wrong_secret(self) -> None:
        token = jwt.encode({"sub": "u1", "type": "access"}, "not-the-secret", algorithm="HS256")
        with pytest.raises(NotAuthenticatedError):
            decode_token(token)

    def test_refresh_token_rejected(self) -> None:
        with pytest.raises(NotAuthenticatedError):
            decode_token(_raw_token(type="refresh"))

    def test_unknown_role_rejected(self) -> None:
        with pytest.raises(NotAuthenticatedError):
            principal_from_token(_raw_token(role="superuser"))

    def test_missing_sub_rejected(self) -> None:
        with pytest.raises(NotAuthenticatedError):
            principal_from_token(_raw_token(sub=""))

    def test_role_defaults_to_buyer(self) -> None:
        token = jwt.encode(
            {"sub": "u1", "type": "access", "exp": datetime.now(UTC) + timedelta(minutes=5)},
            settings.JWT_SECRET,
            algorithm="HS256",
        )
        assert principal_from_token(token).role == Role.BUYER


class TestGetPrincipal:
    async def test_valid(self) -> None:
        principal = await get_principal(create_access_token("admin-1", Role.ADMIN))
        assert principal.is_admin

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    async def test_invalid_is_401(self, token: str | None) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_principal(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
