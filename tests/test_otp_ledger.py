import threading
from datetime import timedelta

import httpx

from models import db
from models.otp_record import OtpRecord
from security.otp import Channel
from security.results import ErrorKind
from utils.notifications import TransportGateway
from utils.sms import TwilioSms


EMAIL = "Student@Example.com"


def _codes(monkeypatch, *codes):
    it = iter(codes)
    monkeypatch.setattr("security.otp.generate_code", lambda length: next(it))


def test_request_and_verify_email_code(otp_ledger, gateway):
    sent = otp_ledger.request_code("EMAIL", EMAIL)
    assert sent.ok
    assert sent.value["target"] == "student@example.com"
    assert gateway.emails[0][0] == "student@example.com"
    assert gateway.emails[0][1] == "Your verification code"

    result = otp_ledger.verify_code("email", "student@example.com", gateway.last_code())
    assert result.ok
    assert result.value == {"channel": "EMAIL", "target": "student@example.com"}


def test_phone_spellings_resolve_to_same_record(otp_ledger, gateway):
    assert otp_ledger.request_code("PHONE", "98765 43210").ok
    assert gateway.sms[0][0] == "+919876543210"

    result = otp_ledger.verify_code("PHONE", "+919876543210", gateway.last_code())
    assert result.ok


def test_code_is_stored_hashed(otp_ledger, gateway):
    otp_ledger.request_code("EMAIL", EMAIL)
    code = gateway.last_code()

    row = OtpRecord.query.one()
    assert row.code_hash != code
    assert code not in row.code_hash
    assert row.code_hash.startswith("$2")


def test_code_is_single_use(otp_ledger, gateway):
    otp_ledger.request_code("EMAIL", EMAIL)
    code = gateway.last_code()

    assert otp_ledger.verify_code("EMAIL", EMAIL, code).ok
    again = otp_ledger.verify_code("EMAIL", EMAIL, code)
    assert again.error is ErrorKind.NOT_FOUND


def test_latest_request_replaces_previous_code(otp_ledger, clock, monkeypatch):
    _codes(monkeypatch, "111111", "222222")

    otp_ledger.request_code("EMAIL", EMAIL)
    clock.advance(seconds=61)
    otp_ledger.request_code("EMAIL", EMAIL)

    assert OtpRecord.query.count() == 1
    assert otp_ledger.verify_code("EMAIL", EMAIL, "111111").error is ErrorKind.NOT_FOUND
    # the stale code did not use up an attempt
    assert OtpRecord.query.one().attempt_count == 0
    assert otp_ledger.verify_code("EMAIL", EMAIL, "222222").ok


def test_expired_code(otp_ledger, gateway, clock):
    otp_ledger.request_code("EMAIL", EMAIL)
    code = gateway.last_code()

    clock.advance(minutes=10, seconds=1)
    assert otp_ledger.verify_code("EMAIL", EMAIL, code).error is ErrorKind.EXPIRED
    # expired row is gone afterwards
    assert otp_ledger.verify_code("EMAIL", EMAIL, code).error is ErrorKind.NOT_FOUND


def test_code_valid_right_up_to_expiry(otp_ledger, gateway, clock):
    otp_ledger.request_code("EMAIL", EMAIL)
    clock.advance(minutes=10)
    assert otp_ledger.verify_code("EMAIL", EMAIL, gateway.last_code()).ok


def test_wrong_codes_count_down_then_lock(otp_ledger, monkeypatch):
    _codes(monkeypatch, "123456")
    otp_ledger.request_code("EMAIL", EMAIL)

    details = []
    for _ in range(5):
        result = otp_ledger.verify_code("EMAIL", EMAIL, "000000")
        assert result.error is ErrorKind.INVALID_CODE
        details.append(result.detail)

    assert details[0] == "Invalid code. 4 attempt(s) left."
    assert details[-1] == "Invalid code. 0 attempt(s) left."

    # even the right code is refused now
    locked = otp_ledger.verify_code("EMAIL", EMAIL, "123456")
    assert locked.error is ErrorKind.TOO_MANY_ATTEMPTS


def test_new_request_resets_attempts(otp_ledger, clock, monkeypatch):
    _codes(monkeypatch, "123456", "654321")
    otp_ledger.request_code("EMAIL", EMAIL)
    for _ in range(5):
        otp_ledger.verify_code("EMAIL", EMAIL, "000000")

    clock.advance(seconds=61)
    otp_ledger.request_code("EMAIL", EMAIL)
    assert otp_ledger.verify_code("EMAIL", EMAIL, "654321").ok


def test_send_failure_leaves_no_usable_code(otp_ledger, gateway):
    gateway.fail_email = True

    result = otp_ledger.request_code("EMAIL", EMAIL)
    assert result.error is ErrorKind.SEND_FAILED
    assert OtpRecord.query.count() == 0
    assert otp_ledger.verify_code("EMAIL", EMAIL, "123456").error is ErrorKind.NOT_FOUND

    # a failed send does not count against the limits
    usage = otp_ledger.usage("EMAIL", EMAIL).value
    assert usage["hourly_count"] == 0
    assert usage["can_request_now"] is True


def test_send_failure_drops_previous_code_too(otp_ledger, gateway, clock, monkeypatch):
    _codes(monkeypatch, "111111", "222222")
    otp_ledger.request_code("EMAIL", EMAIL)

    clock.advance(seconds=61)
    gateway.fail_email = True
    assert otp_ledger.request_code("EMAIL", EMAIL).error is ErrorKind.SEND_FAILED
    assert otp_ledger.verify_code("EMAIL", EMAIL, "111111").error is ErrorKind.NOT_FOUND


def test_validation_errors(otp_ledger, gateway):
    assert otp_ledger.request_code("FAX", EMAIL).error is ErrorKind.VALIDATION_ERROR
    assert otp_ledger.request_code("EMAIL", "not-an-email").error is ErrorKind.VALIDATION_ERROR
    assert otp_ledger.request_code("PHONE", "12345").error is ErrorKind.VALIDATION_ERROR
    assert otp_ledger.request_code("PHONE", None).error is ErrorKind.VALIDATION_ERROR
    assert gateway.outbox == []


def test_cooldown_between_sends(otp_ledger, clock):
    assert otp_ledger.request_code("PHONE", "9876543210").ok

    blocked = otp_ledger.request_code("PHONE", "9876543210")
    assert blocked.error is ErrorKind.RATE_LIMITED
    assert blocked.retry_after == 120

    clock.advance(seconds=120)
    assert otp_ledger.request_code("PHONE", "9876543210").ok


def test_hourly_limit(otp_ledger, clock):
    for _ in range(5):
        assert otp_ledger.request_code("EMAIL", EMAIL).ok
        clock.advance(seconds=61)

    blocked = otp_ledger.request_code("EMAIL", EMAIL)
    assert blocked.error is ErrorKind.RATE_LIMITED
    assert 0 < blocked.retry_after <= 3600

    clock.advance(hours=1)
    assert otp_ledger.request_code("EMAIL", EMAIL).ok


def test_limits_are_per_target(otp_ledger):
    assert otp_ledger.request_code("EMAIL", EMAIL).ok
    assert otp_ledger.request_code("EMAIL", "other@example.com").ok


def test_usage_reports_counts(otp_ledger, clock):
    otp_ledger.request_code("EMAIL", EMAIL)
    clock.advance(seconds=10)

    usage = otp_ledger.usage("EMAIL", EMAIL).value
    assert usage["hourly_count"] == 1
    assert usage["daily_count"] == 1
    assert usage["hourly_limit"] == 5
    assert usage["daily_limit"] == 20
    assert usage["can_request_now"] is False
    assert usage["seconds_until_next_request"] == 50


def test_cleanup_removes_expired_and_consumed(otp_ledger, gateway, clock):
    otp_ledger.request_code("EMAIL", "a@example.com")
    otp_ledger.verify_code("EMAIL", "a@example.com", gateway.last_code())
    otp_ledger.request_code("EMAIL", "b@example.com")

    clock.advance(minutes=5)
    otp_ledger.request_code("EMAIL", "c@example.com")

    clock.advance(minutes=6)
    # a: consumed, b: expired, c: still live
    assert otp_ledger.cleanup_expired() == 2
    assert [r.target for r in OtpRecord.query.all()] == ["c@example.com"]


def test_concurrent_verifiers_only_one_wins(app, otp_ledger, gateway):
    otp_ledger.request_code("EMAIL", EMAIL)
    code = gateway.last_code()

    workers = 6
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def verify():
        with app.app_context():
            barrier.wait()
            result = otp_ledger.verify_code("EMAIL", EMAIL, code)
            db.session.remove()
        with lock:
            results.append(result)

    threads = [threading.Thread(target=verify) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == workers
    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error is ErrorKind.NOT_FOUND for r in results if not r.ok)


def test_display_target(otp_ledger):
    assert otp_ledger.display_target(Channel.PHONE, "+919876543210") == "+91 98*******0"
    assert otp_ledger.display_target(Channel.EMAIL, "student@example.com") == "s***@example.com"


def test_expiry_is_ttl_after_request(otp_ledger, clock):
    sent = otp_ledger.request_code("EMAIL", EMAIL)
    assert sent.value["expires_at"] == clock() + timedelta(minutes=10)


def test_gateway_exception_is_a_send_failure(app, otp_ledger, monkeypatch):
    def explode(to, body):
        raise AttributeError("'list' object has no attribute 'get'")

    monkeypatch.setattr(otp_ledger.gateway, "send_sms", explode)

    result = otp_ledger.request_code("PHONE", "9876543210")
    assert result.error is ErrorKind.SEND_FAILED
    assert OtpRecord.query.count() == 0
    assert otp_ledger.usage("PHONE", "9876543210").value["hourly_count"] == 0


def test_twilio_non_object_error_body_rolls_back(app, otp_ledger, monkeypatch):
    sms = TwilioSms("AC123", "token", "+15005550006",
                    transport=httpx.MockTransport(lambda request: httpx.Response(400, json=[{"code": 21211}])))
    monkeypatch.setattr(otp_ledger, "gateway", TransportGateway(mailer=None, sms=sms))

    result = otp_ledger.request_code("PHONE", "9876543210")
    assert result.error is ErrorKind.SEND_FAILED
    assert OtpRecord.query.count() == 0
