import jwt
import pytest

from app.core.config import settings
from app.core.security import TokenError, create_access_token, decode_token


def test_access_token_round_trip():
    payload = decode_token(create_access_token(user_id=12, role="partner"))
    assert payload["sub"] == "12"
    assert payload["role"] == "partner"


def test_expired_token():
    with pytest.raises(TokenError, match="expired"):
        decode_token(create_access_token(user_id=1, role="member", minutes=-1))


def test_token_signed_with_another_secret():
    token = jwt.encode({"sub": "1", "exp": 9999999999}, "not-the-secret", algorithm=settings.JWT_ALG)
    with pytest.raises(TokenError, match="Invalid"):
        decode_token(token)


def test_refresh_token_is_not_accepted():
    token = jwt.encode(
        {"sub": "1", "type": "refresh", "exp": 9999999999},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
    )
    with pytest.raises(TokenError, match="access"):
        decode_token(token)


def test_token_without_subject():
    token = jwt.encode({"exp": 9999999999}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
    with pytest.raises(TokenError):
        decode_token(token)
