import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from flask import current_app

from security.results import ErrorKind, Result
from utils.clock import utcnow


@dataclass(frozen=True)
class SessionClaims:
    sub: str
    role: str
    issued_at: datetime
    expires_at: datetime


_EPOCH = datetime(1970, 1, 1)


def _ts(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


class CredentialIssuer:
    """
    Mints and checks signed session tokens.

    Tokens live for their full lifetime; there is no refresh or sliding
    renewal. Callers that need shorter access must re-authenticate.
    """

    def __init__(self, secret: str, *, lifetime=timedelta(days=7), algorithm="HS256", clock=utcnow):
        if not secret:
            raise ValueError("A session signing secret is required")
        self._secret = secret
        self.lifetime = lifetime
        self.algorithm = algorithm
        self.clock = clock

    def issue(self, user_id, role: str) -> str:
        if user_id is None or str(user_id) == "":
            raise ValueError("user_id is required")
        if not isinstance(role, str) or not role:
            raise ValueError("role is required")

        now = self.clock()
        payload = {
            "sub": str(user_id),
            "role": role,
            "iat": _ts(now),
            "exp": _ts(now + self.lifetime),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def validate(self, token) -> Result:
        """Result value is SessionClaims."""
        if not token or not isinstance(token, str):
            return Result.failure(ErrorKind.UNAUTHORIZED, "Missing token")

        try:
            # Signature is checked here; time claims are checked against our
            # own clock below so every component agrees on "now".
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "require": ["sub", "role", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError:
            return Result.failure(ErrorKind.UNAUTHORIZED, "Invalid token")

        try:
            exp = int(payload["exp"])
            iat = int(payload["iat"])
        except (TypeError, ValueError):
            return Result.failure(ErrorKind.UNAUTHORIZED, "Invalid token")

        if _ts(self.clock()) >= exp:
            return Result.failure(ErrorKind.UNAUTHORIZED, "Token expired")

        return Result.success(SessionClaims(
            sub=str(payload["sub"]),
            role=str(payload["role"]),
            issued_at=_EPOCH + timedelta(seconds=iat),
            expires_at=_EPOCH + timedelta(seconds=exp),
        ))


def get_credential_issuer() -> CredentialIssuer:
    return current_app.extensions["credentials"]
