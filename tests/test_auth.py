"""Tests for JWT authentication."""

import time

import jwt
import pytest

from jigsync.auth import ALGORITHM, CurrentUser, JWTAuthProvider, bearer_token


@pytest.fixture
def provider() -> JWTAuthProvider:
    return JWTAuthProvider("secret", ttl_seconds=60)


def test_issue_and_resolve_token(provider):
    token = provider.issue_token("u1", "u1@example.com")
    assert provider.current_user(token) == CurrentUser(id="u1", email="u1@example.com")


def test_token_without_email(provider):
    assert provider.current_user(provider.issue_token("u1")) == CurrentUser(id="u1")


@pytest.mark.parametrize("token", [None, "", "not.a.token"])
def test_missing_or_malformed_token(provider, token):
    assert provider.current_user(token) is None


def test_wrong_secret_rejected(provider):
    token = JWTAuthProvider("other-secret").issue_token("u1")
    assert provider.current_user(token) is None


def test_expired_token_rejected(provider):
    now = int(time.time())
    token = jwt.encode({"sub": "u1", "exp": now - 10}, "secret", algorithm=ALGORITHM)
    assert provider.current_user(token) is None


def test_token_without_sub_rejected(provider):
    token = jwt.encode({"exp": int(time.time()) + 60}, "secret", algorithm=ALGORITHM)
    assert provider.current_user(token) is None


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc", "abc"),
        ("Bearer   abc  ", "abc"),
        ("Bearer ", None),
        ("Basic abc", None),
        (None, None),
    ],
)
def test_bearer_token(header, expected):
    assert bearer_token(header) == expected
