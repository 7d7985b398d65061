from datetime import timedelta

from models import db
from models.otp_send_window import OtpSendWindow

_DEFAULT_LIMITS = {"max_per_hour": 5, "max_per_day": 20, "cooldown_seconds": 60}

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


def _limits_for(channel: str, limits: dict | None) -> dict:
    merged = dict(_DEFAULT_LIMITS)
    merged.update((limits or {}).get(channel, {}))
    return merged


def _current_counts(row: OtpSendWindow | None, now) -> tuple[int, int]:
    """(hour_count, day_count) with windows that have rolled over treated as empty."""
    if row is None:
        return 0, 0
    hour_count = row.hour_count if now < row.hour_window_start + HOUR else 0
    day_count = row.day_count if now < row.day_window_start + DAY else 0
    return hour_count, day_count


def check_otp_send_allowed(channel: str, target: str, now, limits: dict | None = None) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed hourly and daily windows per (channel, target) plus a cooldown
    since the last successful send. Read-only; see record_otp_send.
    """
    cfg = _limits_for(channel, limits)
    row = OtpSendWindow.query.filter_by(channel=channel, target=target).first()
    if row is None:
        return True, 0

    if row.last_sent_at is not None:
        cooldown_end = row.last_sent_at + timedelta(seconds=cfg["cooldown_seconds"])
        if now < cooldown_end:
            return False, max(int((cooldown_end - now).total_seconds()), 1)

    hour_count, day_count = _current_counts(row, now)

    if day_count >= cfg["max_per_day"]:
        retry_after = int((row.day_window_start + DAY - now).total_seconds())
        return False, max(retry_after, 1)

    if hour_count >= cfg["max_per_hour"]:
        retry_after = int((row.hour_window_start + HOUR - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0


def record_otp_send(channel: str, target: str, now) -> None:
    """Counts one successful dispatch against the (channel, target) windows."""
    row = OtpSendWindow.query.filter_by(channel=channel, target=target).first()
    if not row:
        row = OtpSendWindow(
            channel=channel,
            target=target,
            hour_window_start=now,
            hour_count=0,
            day_window_start=now,
            day_count=0,
        )
        db.session.add(row)

    # Reset windows if expired
    if now >= row.hour_window_start + HOUR:
        row.hour_window_start = now
        row.hour_count = 0
    if now >= row.day_window_start + DAY:
        row.day_window_start = now
        row.day_count = 0

    row.hour_count += 1
    row.day_count += 1
    row.last_sent_at = now
    db.session.commit()


def otp_send_usage(channel: str, target: str, now, limits: dict | None = None) -> dict:
    cfg = _limits_for(channel, limits)
    row = OtpSendWindow.query.filter_by(channel=channel, target=target).first()
    hour_count, day_count = _current_counts(row, now)
    allowed, retry_after = check_otp_send_allowed(channel, target, now, limits)

    return {
        "hourly_count": hour_count,
        "daily_count": day_count,
        "hourly_limit": cfg["max_per_hour"],
        "daily_limit": cfg["max_per_day"],
        "cooldown_seconds": cfg["cooldown_seconds"],
        "can_request_now": allowed,
        "seconds_until_next_request": retry_after,
    }
