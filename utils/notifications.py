"""
Outbound delivery of one-time codes.

OtpLedger only knows the NotificationGateway interface; the concrete adapter
is built once in create_app and passed in.
"""
import uuid
from abc import ABC, abstractmethod

from security.results import ErrorKind, Result
from utils.emailer import SmtpMailer
from utils.logger import get_logger
from utils.sms import TwilioSms

logger = get_logger("notifications")


class NotificationGateway(ABC):
    @abstractmethod
    def send_sms(self, to: str, body: str) -> Result:
        """Result value is the provider message id."""

    @abstractmethod
    def send_email(self, to: str, subject: str, body: str) -> Result:
        ...


class ConsoleGateway(NotificationGateway):
    """Development adapter: logs the message instead of delivering it."""

    def send_sms(self, to, body):
        message_id = f"console-{uuid.uuid4().hex[:12]}"
        logger.info("[SMS] %s => %s (%s)", to, body, message_id)
        return Result.success(message_id)

    def send_email(self, to, subject, body):
        message_id = f"console-{uuid.uuid4().hex[:12]}"
        logger.info("[EMAIL] %s | %s => %s (%s)", to, subject, body, message_id)
        return Result.success(message_id)


class TransportGateway(NotificationGateway):
    def __init__(self, mailer: SmtpMailer, sms: TwilioSms):
        self.mailer = mailer
        self.sms = sms

    def send_sms(self, to, body):
        sid, error = self.sms.send(to, body)
        if error:
            logger.warning("SMS delivery failed: %s", error)
            return Result.failure(ErrorKind.SEND_FAILED, error)
        return Result.success(sid)

    def send_email(self, to, subject, body):
        ok, error = self.mailer.send(to, subject, body)
        if not ok:
            logger.warning("Email delivery failed: %s", error)
            return Result.failure(ErrorKind.SEND_FAILED, error)
        return Result.success(None)


def build_gateway(config) -> NotificationGateway:
    backend = (config.get("NOTIFICATION_BACKEND") or "console").lower()
    if backend == "live":
        return TransportGateway(SmtpMailer.from_config(config), TwilioSms.from_config(config))
    if backend != "console":
        raise ValueError(f"Unknown NOTIFICATION_BACKEND: {backend!r}")
    return ConsoleGateway()
