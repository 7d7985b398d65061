from utils.clock import utcnow
from models.db import db

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. OTP_SENT, OAUTH_STATE_FAIL
    subject = db.Column(db.String(64), nullable=True)   # user id when known
    channel = db.Column(db.String(32), nullable=True)   # EMAIL, PHONE or an OAuth provider
    target_masked = db.Column(db.String(255), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
