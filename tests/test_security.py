from datetime import timedelta

import pytest
from jose import jwt

from product_service.core.exceptions import InvalidTokenError
from product_service.core.security import create_access_token, validate_token

SECRET = "unit-test-secret"


def test_token_round_trip():
    token = create_access_token(7, secret=SECRET)
    assert validate_token(token, secret=SECRET) == 7


def test_wrong_secret_is_rejected():
    token = create_access_token(7, secret=SECRET)
    with pytest.raises(InvalidTokenError):
        validate_token(token, secret="other")


def test_expired_token_is_rejected():
    token = create_access_token(7, expires_delta=timedelta(seconds=-10), secret=SECRET)
    with pytest.raises(InvalidTokenError):
        validate_token(token, secret=SECRET)


@pytest.mark.parametrize("user_id, expected", [(5.0, 5), ("12", 12)])
def test_numeric_user_id_claims_are_accepted(user_id, expected):
    token = jwt.encode({"user_id": user_id, "exp": 9999999999}, SECRET, algorithm="HS256")
    assert validate_token(token, secret=SECRET) == expected


@pytest.mark.parametrize("claims", [{"exp": 9999999999}, {"user_id": "abc", "exp": 9999999999}, {"user_id": True, "exp": 9999999999}])
def test_bad_user_id_claims_are_rejected(claims):
    token = jwt.encode(claims, SECRET, algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        validate_token(token, secret=SECRET)


def test_token_without_expiry_is_rejected():
    token = jwt.encode({"user_id": 1}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        validate_token(token, secret=SECRET)
