import json
from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog

def log_event(action: str, subject=None, channel=None, target_masked=None, metadata=None):
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        action=action,
        subject=str(subject) if subject is not None else None,
        channel=channel,
        target_masked=target_masked,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
