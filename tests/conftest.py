import re
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from security.results import ErrorKind, Result


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 15, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway:
    """Records outbound messages instead of sending them."""

    def __init__(self):
        self.sms = []
        self.emails = []
        self.outbox = []  # bodies in send order, both channels
        self.fail_sms = False
        self.fail_email = False

    def send_sms(self, to, body):
        if self.fail_sms:
            return Result.failure(ErrorKind.SEND_FAILED, "sms down")
        self.sms.append((to, body))
        self.outbox.append(body)
        return Result.success(f"sms-{len(self.sms)}")

    def send_email(self, to, subject, body):
        if self.fail_email:
            return Result.failure(ErrorKind.SEND_FAILED, "smtp down")
        self.emails.append((to, subject, body))
        self.outbox.append(body)
        return Result.success(f"email-{len(self.emails)}")

    def last_code(self):
        return re.search(r"\b(\d{6})\b", self.outbox[-1]).group(1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, clock, gateway):
    # A file database so worker threads in the race tests share it
    class _Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "identity-test.db")

    app = create_app(_Config, gateway=gateway, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def otp_ledger(app):
    return app.extensions["otp_ledger"]


@pytest.fixture
def oauth_states(app):
    return app.extensions["oauth_states"]


@pytest.fixture
def issuer(app):
    return app.extensions["credentials"]
