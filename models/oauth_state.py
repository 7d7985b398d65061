from utils.clock import utcnow
from models.db import db


class OAuthState(db.Model):
    __tablename__ = "oauth_states"

    id = db.Column(db.Integer, primary_key=True)
    state = db.Column(db.String(128), unique=True, nullable=False, index=True)
    provider = db.Column(db.String(32), nullable=False)
    redirect_uri = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<OAuthState {self.provider} {self.state[:8]}...>"
