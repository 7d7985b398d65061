from .db import db
from .user import User
from .audit_log import AuditLog
from .otp_record import OtpRecord
from .otp_send_window import OtpSendWindow
from .oauth_state import OAuthState
