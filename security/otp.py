"""
One-time code ledger, keyed by (channel, canonical target).

Lifecycle of an OtpRecord:
  request_code  -> any previous row for the pair is deleted, a new one is
                   committed, then the code is dispatched; a failed dispatch
                   deletes the new row again.
  verify_code   -> wrong code bumps attempt_count (the code it replaced reads
                   as NotFound instead); the right code sets
                   consumed_at through a conditional UPDATE, so only one
                   concurrent verifier can win.
  cleanup_expired -> removes expired rows and consumed tombstones.
"""
from datetime import timedelta
from enum import Enum

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.otp_record import OtpRecord
from security import phone
from security.hashing import generate_code, hash_code, verify_code_hash
from security.rate_limit import check_otp_send_allowed, otp_send_usage, record_otp_send
from security.results import ErrorKind, Result
from utils.clock import utcnow
from utils.logger import get_logger

logger = get_logger("otp")


class Channel(str, Enum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"


def _coerce_channel(channel):
    if isinstance(channel, Channel):
        return channel
    try:
        return Channel(str(channel or "").strip().upper())
    except ValueError:
        return None


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def _is_valid_email(email: str) -> bool:
    if not email or len(email) > 255 or " " in email:
        return False
    local, sep, domain = email.partition("@")
    return bool(sep and local and "." in domain and not domain.startswith("."))


class OtpLedger:
    def __init__(self, gateway, *, ttl_minutes=10, max_attempts=5, code_length=6,
                 hash_rounds=10, send_limits=None, country_code=phone.DEFAULT_COUNTRY_CODE,
                 leading_digits=phone.DEFAULT_LEADING_DIGITS, clock=utcnow):
        self.gateway = gateway
        self.ttl = timedelta(minutes=ttl_minutes)
        self.max_attempts = max_attempts
        self.code_length = code_length
        self.hash_rounds = hash_rounds
        self.send_limits = send_limits or {}
        self.country_code = country_code
        self.leading_digits = leading_digits
        self.clock = clock

    # -- helpers -----------------------------------------------------------

    def canonical_target(self, channel, target) -> Result:
        """Result value is (Channel, canonical target)."""
        ch = _coerce_channel(channel)
        if ch is None:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "channel must be EMAIL or PHONE")
        if not isinstance(target, str) or not target.strip():
            return Result.failure(ErrorKind.VALIDATION_ERROR, "target is required")

        if ch is Channel.PHONE:
            if not phone.is_valid_mobile(target, self.country_code, self.leading_digits):
                return Result.failure(ErrorKind.VALIDATION_ERROR, "Invalid mobile number")
            return Result.success((ch, phone.normalize(target, self.country_code)))

        email = normalize_email(target)
        if not _is_valid_email(email):
            return Result.failure(ErrorKind.VALIDATION_ERROR, "Invalid email")
        return Result.success((ch, email))

    def display_target(self, channel: Channel, canonical: str) -> str:
        if channel is Channel.PHONE:
            return phone.format_for_display(canonical, self.country_code)
        local, _, domain = canonical.partition("@")
        return f"{local[:1]}***@{domain}"

    def _active(self, channel: Channel, target: str):
        return (
            OtpRecord.query
            .filter_by(channel=channel.value, target=target, consumed_at=None)
            .first()
        )

    def _dispatch(self, channel: Channel, target: str, code: str) -> Result:
        minutes = int(self.ttl.total_seconds() // 60)
        if channel is Channel.PHONE:
            body = f"Your verification code is {code}. It expires in {minutes} minutes."
            return self.gateway.send_sms(target, body)

        body = (
            f"Your verification code is: {code}\n\n"
            f"This code expires in {minutes} minutes. Do not share it with anyone.\n"
            "If you did not request this code, you can ignore this email."
        )
        return self.gateway.send_email(target, "Your verification code", body)

    def _replace_record(self, channel: Channel, target: str, code_hash: str, now):
        """Returns (id, expires_at) of the new row."""
        superseded_hash = (
            db.session.query(OtpRecord.code_hash)
            .filter_by(channel=channel.value, target=target, consumed_at=None)
            .scalar()
        )

        # Latest wins: drop whatever exists for the pair, consumed tombstones included
        OtpRecord.query.filter_by(channel=channel.value, target=target).delete()
        row = OtpRecord(
            channel=channel.value,
            target=target,
            code_hash=code_hash,
            superseded_hash=superseded_hash,
            created_at=now,
            expires_at=now + self.ttl,
            attempt_count=0,
        )
        db.session.add(row)
        db.session.flush()
        row_id, expires_at = row.id, row.expires_at
        db.session.commit()
        return row_id, expires_at

    # -- operations --------------------------------------------------------

    def request_code(self, channel, target) -> Result:
        resolved = self.canonical_target(channel, target)
        if not resolved.ok:
            return resolved
        ch, canonical = resolved.value
        now = self.clock()

        allowed, retry_after = check_otp_send_allowed(ch.value, canonical, now, self.send_limits)
        if not allowed:
            logger.info("OTP send throttled for %s %s", ch.value, self.display_target(ch, canonical))
            return Result.failure(
                ErrorKind.RATE_LIMITED,
                f"Please wait {retry_after} seconds before requesting another code.",
                retry_after=retry_after,
            )

        code = generate_code(self.code_length)
        code_hash = hash_code(code, self.hash_rounds)

        try:
            row_id, expires_at = self._replace_record(ch, canonical, code_hash, now)
        except IntegrityError:
            # A concurrent request for the same pair inserted first; retry once
            db.session.rollback()
            try:
                row_id, expires_at = self._replace_record(ch, canonical, code_hash, now)
            except IntegrityError:
                db.session.rollback()
                return Result.failure(ErrorKind.RATE_LIMITED, "Another code request is in progress.", retry_after=1)

        try:
            sent = self._dispatch(ch, canonical, code)
        except Exception:
            logger.exception("OTP gateway raised for %s %s", ch.value, self.display_target(ch, canonical))
            sent = Result.failure(ErrorKind.SEND_FAILED, "Gateway error")

        if not sent.ok:
            # Never leave a valid code behind that the user was not shown
            OtpRecord.query.filter_by(id=row_id).delete(synchronize_session=False)
            db.session.commit()
            logger.warning("OTP dispatch failed for %s %s: %s", ch.value,
                           self.display_target(ch, canonical), sent.detail)
            return Result.failure(ErrorKind.SEND_FAILED, "Failed to send verification code")

        try:
            record_otp_send(ch.value, canonical, now)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not record OTP send window for %s", ch.value)

        logger.info("OTP issued for %s %s", ch.value, self.display_target(ch, canonical))
        return Result.success({
            "channel": ch.value,
            "target": canonical,
            "expires_at": expires_at,
            "message_id": sent.value,
        })

    def verify_code(self, channel, target, submitted) -> Result:
        resolved = self.canonical_target(channel, target)
        if not resolved.ok:
            return resolved
        ch, canonical = resolved.value

        row = self._active(ch, canonical)
        if row is None:
            return Result.failure(ErrorKind.NOT_FOUND, "No active code for this target")

        now = self.clock()
        if now > row.expires_at:
            OtpRecord.query.filter_by(id=row.id).delete(synchronize_session=False)
            db.session.commit()
            return Result.failure(ErrorKind.EXPIRED, "Code expired")

        if row.attempt_count >= self.max_attempts:
            return Result.failure(ErrorKind.TOO_MANY_ATTEMPTS, "Too many attempts. Request a new code.")

        attempts = row.attempt_count
        code = str(submitted or "").strip()
        if not verify_code_hash(code, row.code_hash):
            if verify_code_hash(code, row.superseded_hash):
                # an older code for this pair; it no longer exists, no attempt charged
                return Result.failure(ErrorKind.NOT_FOUND, "This code was replaced by a newer one")

            OtpRecord.query.filter_by(id=row.id).update(
                {OtpRecord.attempt_count: OtpRecord.attempt_count + 1},
                synchronize_session=False,
            )
            db.session.commit()
            remaining = max(self.max_attempts - attempts - 1, 0)
            return Result.failure(ErrorKind.INVALID_CODE, f"Invalid code. {remaining} attempt(s) left.")

        consumed = (
            OtpRecord.query
            .filter(
                OtpRecord.id == row.id,
                OtpRecord.consumed_at.is_(None),
                OtpRecord.attempt_count < self.max_attempts,
            )
            .update({OtpRecord.consumed_at: now}, synchronize_session=False)
        )
        db.session.commit()

        if consumed != 1:
            # Someone else consumed or replaced it between our read and write
            return Result.failure(ErrorKind.NOT_FOUND, "No active code for this target")

        logger.info("OTP verified for %s %s", ch.value, self.display_target(ch, canonical))
        return Result.success({"channel": ch.value, "target": canonical})

    def usage(self, channel, target) -> Result:
        resolved = self.canonical_target(channel, target)
        if not resolved.ok:
            return resolved
        ch, canonical = resolved.value
        return Result.success(otp_send_usage(ch.value, canonical, self.clock(), self.send_limits))

    def cleanup_expired(self) -> int:
        now = self.clock()
        removed = (
            OtpRecord.query
            .filter(or_(OtpRecord.expires_at < now, OtpRecord.consumed_at.isnot(None)))
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return removed


def get_otp_ledger() -> OtpLedger:
    return current_app.extensions["otp_ledger"]
