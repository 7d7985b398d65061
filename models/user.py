from utils.clock import utcnow
from models.db import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    # stored in canonical "+<cc><number>" form so OTP targets match it directly
    phone_number = db.Column(db.String(20), unique=True, nullable=True, index=True)
    full_name = db.Column(db.String(120), nullable=True)

    role = db.Column(db.String(20), default="STUDENT", nullable=False)  # STUDENT, EXPERT, ADMIN

    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    phone_verified = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
