from utils.clock import utcnow
from models.db import db


class OtpRecord(db.Model):
    __tablename__ = "otp_records"
    __table_args__ = (
        # latest-wins: one row per (channel, target), consumed rows included
        db.UniqueConstraint("channel", "target", name="uq_otp_records_channel_target"),
    )

    id = db.Column(db.Integer, primary_key=True)
    channel = db.Column(db.String(16), nullable=False)  # EMAIL, PHONE
    target = db.Column(db.String(255), nullable=False, index=True)  # canonical form

    # bcrypt hash of the numeric code, never the code itself
    code_hash = db.Column(db.String(128), nullable=False)
    # hash of the unconsumed code this row replaced, so a stale code reads as gone
    superseded_hash = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    consumed_at = db.Column(db.DateTime, nullable=True)

    attempt_count = db.Column(db.Integer, default=0, nullable=False)
