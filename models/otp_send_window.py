from utils.clock import utcnow
from models.db import db


class OtpSendWindow(db.Model):
    __tablename__ = "otp_send_windows"
    __table_args__ = (
        db.UniqueConstraint("channel", "target", name="uq_otp_send_windows_channel_target"),
    )

    id = db.Column(db.Integer, primary_key=True)
    channel = db.Column(db.String(16), nullable=False)
    target = db.Column(db.String(255), nullable=False, index=True)

    # Two fixed windows: hourly and daily
    hour_window_start = db.Column(db.DateTime, nullable=False)
    hour_count = db.Column(db.Integer, default=0, nullable=False)
    day_window_start = db.Column(db.DateTime, nullable=False)
    day_count = db.Column(db.Integer, default=0, nullable=False)

    last_sent_at = db.Column(db.DateTime, nullable=True)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
