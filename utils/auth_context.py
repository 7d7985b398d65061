from functools import wraps
from flask import g, jsonify, request
from security.credentials import get_credential_issuer

def _bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header.split(" ", 1)[1].strip() or None

def load_current_claims():
    g.claims = None
    token = _bearer_token()
    if not token:
        return
    result = get_credential_issuer().validate(token)
    if result.ok:
        g.claims = result.value

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "claims", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
