"""
Anti-CSRF state tokens for identity-provider logins.

A state is issued when the login starts and must come back exactly once on
the provider callback. Consumption is a conditional DELETE; the affected-row
count decides which of several racing callbacks wins.
"""
import secrets
import time
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.oauth_state import OAuthState
from security.results import ErrorKind, Result
from utils.clock import utcnow
from utils.logger import get_logger

logger = get_logger("oauth_state")

# 32 random bytes -> 256 bits, well above the 128-bit floor
STATE_ENTROPY_BYTES = 32

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def new_state_token() -> str:
    # The timestamp prefix is only there to eyeball token age in logs.
    # Uniqueness and unguessability come from the random part alone.
    return f"{_base36(int(time.time() * 1000))}_{secrets.token_urlsafe(STATE_ENTROPY_BYTES)}"


class OAuthStateManager:
    def __init__(self, *, ttl_minutes=10, clock=utcnow):
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    def generate_state(self, provider, redirect_uri=None, ttl_minutes=None) -> Result:
        """Result value is the opaque state token."""
        provider = (provider or "").strip().lower()
        if not provider:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "provider is required")

        ttl = self.ttl_minutes if ttl_minutes is None else ttl_minutes
        if ttl <= 0:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "ttl_minutes must be positive")

        now = self.clock()
        for _ in range(2):
            state = new_state_token()
            db.session.add(OAuthState(
                state=state,
                provider=provider,
                redirect_uri=redirect_uri or None,
                created_at=now,
                expires_at=now + timedelta(minutes=ttl),
            ))
            try:
                db.session.commit()
            except IntegrityError:
                # 256-bit collision; regenerate rather than reuse
                db.session.rollback()
                continue
            logger.info("OAuth state issued for %s (%s...)", provider, state[:12])
            return Result.success(state)

        logger.error("Could not allocate a unique OAuth state for %s", provider)
        return Result.failure(ErrorKind.VALIDATION_ERROR, "Could not allocate a unique state, try again")

    def validate_and_consume(self, state, provider) -> Result:
        """Result value is the redirect_uri bound at issue time (may be None)."""
        provider = (provider or "").strip().lower()
        if not state or not isinstance(state, str):
            return Result.failure(ErrorKind.NOT_FOUND, "Invalid state parameter")

        row = OAuthState.query.filter_by(state=state).first()
        if row is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Invalid state parameter")

        if row.provider != provider:
            # Left in place: the legitimate callback may still arrive
            logger.warning("OAuth state provider mismatch: bound to %s, got %s", row.provider, provider)
            return Result.failure(ErrorKind.PROVIDER_MISMATCH, "State provider mismatch")

        now = self.clock()
        redirect_uri = row.redirect_uri

        if now > row.expires_at:
            deleted = OAuthState.query.filter_by(state=state).delete(synchronize_session=False)
            db.session.commit()
            if deleted != 1:
                return Result.failure(ErrorKind.NOT_FOUND, "Invalid state parameter")
            return Result.failure(ErrorKind.EXPIRED, "State has expired")

        consumed = (
            OAuthState.query
            .filter(
                OAuthState.state == state,
                OAuthState.provider == provider,
                OAuthState.expires_at >= now,
            )
            .delete(synchronize_session=False)
        )
        db.session.commit()

        if consumed != 1:
            return Result.failure(ErrorKind.NOT_FOUND, "Invalid state parameter")

        logger.info("OAuth state consumed for %s (%s...)", provider, state[:12])
        return Result.success(redirect_uri)

    def cleanup_expired(self) -> int:
        removed = (
            OAuthState.query
            .filter(OAuthState.expires_at < self.clock())
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return removed


def get_oauth_states() -> OAuthStateManager:
    return current_app.extensions["oauth_states"]
