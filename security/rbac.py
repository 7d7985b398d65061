from functools import wraps
from flask import g, jsonify

from utils.roles import ROLES


def current_role() -> str | None:
    claims = getattr(g, "claims", None)
    return claims.role if claims is not None else None


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    Trusts the role carried in the signed session token; no database lookup.
    """
    unknown = set(role_names) - ROLES
    if unknown:
        raise ValueError(f"Unknown role(s): {', '.join(sorted(unknown))}")

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            role = current_role()
            if role is None:
                return jsonify(error="Authentication required"), 401

            if role not in role_names:
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
