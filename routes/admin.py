from flask import Blueprint, jsonify, g
from jobs.cleanup import get_cleanup_scheduler
from security.rbac import require_roles
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.post("/maintenance/cleanup")
@require_roles("ADMIN")
def run_cleanup():
    counts = get_cleanup_scheduler().run_once()
    log_event("CLEANUP_MANUAL", subject=g.claims.sub, metadata=counts)
    return jsonify(message="Cleanup complete", removed=counts), 200
