from datetime import timedelta

import jwt
import pytest

from security.credentials import CredentialIssuer, SessionClaims
from security.results import ErrorKind

from tests.conftest import FakeClock

SECRET = "unit-test-signing-secret-0123456789"


@pytest.fixture
def fixed_clock():
    return FakeClock()


@pytest.fixture
def credentials(fixed_clock):
    return CredentialIssuer(SECRET, clock=fixed_clock)


def test_issue_then_validate(credentials, fixed_clock):
    token = credentials.issue(42, "STUDENT")

    result = credentials.validate(token)
    assert result.ok
    claims = result.value
    assert isinstance(claims, SessionClaims)
    assert claims.sub == "42"
    assert claims.role == "STUDENT"
    assert claims.issued_at == fixed_clock()
    assert claims.expires_at == fixed_clock() + timedelta(days=7)


def test_token_carries_standard_claims(credentials):
    payload = jwt.decode(credentials.issue(7, "ADMIN"), SECRET, algorithms=["HS256"],
                         options={"verify_exp": False, "verify_iat": False})
    assert set(payload) == {"sub", "role", "iat", "exp"}
    assert payload["exp"] - payload["iat"] == 7 * 24 * 3600


def test_expired_token(credentials, fixed_clock):
    token = credentials.issue(1, "EXPERT")

    fixed_clock.advance(days=6, hours=23)
    assert credentials.validate(token).ok

    fixed_clock.advance(hours=1)
    result = credentials.validate(token)
    assert result.error is ErrorKind.UNAUTHORIZED
    assert result.detail == "Token expired"


def test_tampered_token(credentials):
    token = credentials.issue(1, "STUDENT")
    header, payload, signature = token.split(".")
    forged = jwt.encode({"sub": "1", "role": "ADMIN", "iat": 0, "exp": 9999999999},
                        "attacker-chosen-secret-0123456789", algorithm="HS256").split(".")[1]

    assert credentials.validate(f"{header}.{forged}.{signature}").error is ErrorKind.UNAUTHORIZED


def test_wrong_secret(fixed_clock):
    token = CredentialIssuer("another-secret-entirely-abcdef0123", clock=fixed_clock).issue(1, "STUDENT")
    result = CredentialIssuer(SECRET, clock=fixed_clock).validate(token)
    assert result.error is ErrorKind.UNAUTHORIZED


@pytest.mark.parametrize("token", [None, "", "not-a-jwt", 123])
def test_garbage_tokens(credentials, token):
    assert credentials.validate(token).error is ErrorKind.UNAUTHORIZED


def test_token_missing_role_is_rejected(credentials, fixed_clock):
    token = jwt.encode({"sub": "1", "iat": 0, "exp": 9999999999}, SECRET, algorithm="HS256")
    assert credentials.validate(token).error is ErrorKind.UNAUTHORIZED


def test_issue_requires_subject_and_role(credentials):
    with pytest.raises(ValueError):
        credentials.issue(None, "STUDENT")
    with pytest.raises(ValueError):
        credentials.issue(1, "")


def test_issuer_requires_secret():
    with pytest.raises(ValueError):
        CredentialIssuer("")
