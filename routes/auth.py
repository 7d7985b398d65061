from flask import Blueprint, request, jsonify, g

from models import db
from models.user import User
from security.credentials import get_credential_issuer
from security.oauth_state import get_oauth_states
from security.otp import Channel, get_otp_ledger
from security.results import ErrorKind
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

STATUS_BY_ERROR = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXPIRED: 410,
    ErrorKind.INVALID_CODE: 400,
    ErrorKind.TOO_MANY_ATTEMPTS: 429,
    ErrorKind.PROVIDER_MISMATCH: 400,
    ErrorKind.SEND_FAILED: 502,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.RATE_LIMITED: 429,
}


def _error_response(result):
    body = {"error": result.detail or result.error.value, "kind": result.error.value}
    if result.retry_after:
        body["retry_after_seconds"] = result.retry_after
    return jsonify(body), STATUS_BY_ERROR.get(result.error, 400)


def _user_for_target(channel: str, target: str):
    if channel == Channel.PHONE.value:
        return User.query.filter_by(phone_number=target).first()
    return User.query.filter_by(email=target).first()


@auth_bp.post("/otp/send")
def send_otp():
    data = request.get_json(silent=True) or {}
    ledger = get_otp_ledger()

    result = ledger.request_code(data.get("channel"), data.get("target"))
    if not result.ok:
        log_event("OTP_SEND_FAIL", channel=str(data.get("channel") or "")[:32] or None,
                  metadata={"kind": result.error.value})
        return _error_response(result)

    sent = result.value
    masked = ledger.display_target(Channel(sent["channel"]), sent["target"])
    log_event("OTP_SENT", channel=sent["channel"], target_masked=masked)
    return jsonify(
        message="Verification code sent",
        channel=sent["channel"],
        target=masked,
        expires_at=sent["expires_at"].isoformat() + "Z",
    ), 200


@auth_bp.post("/otp/verify")
def verify_otp():
    data = request.get_json(silent=True) or {}
    ledger = get_otp_ledger()

    result = ledger.verify_code(data.get("channel"), data.get("target"), data.get("code"))
    if not result.ok:
        log_event("OTP_VERIFY_FAIL", channel=str(data.get("channel") or "")[:32] or None,
                  metadata={"kind": result.error.value})
        return _error_response(result)

    channel, target = result.value["channel"], result.value["target"]
    masked = ledger.display_target(Channel(channel), target)

    user = _user_for_target(channel, target)
    if not user:
        log_event("OTP_VERIFY_NO_ACCOUNT", channel=channel, target_masked=masked)
        return jsonify(error="Account not found"), 404

    if channel == Channel.PHONE.value:
        user.phone_verified = True
    else:
        user.email_verified = True
    db.session.commit()

    issuer = get_credential_issuer()
    token = issuer.issue(user.id, user.role)
    log_event("OTP_VERIFY_OK", subject=user.id, channel=channel, target_masked=masked)

    return jsonify(
        access_token=token,
        token_type="bearer",
        expires_in=int(issuer.lifetime.total_seconds()),
        user={"id": user.id, "email": user.email, "role": user.role},
    ), 200


@auth_bp.get("/otp/usage")
def otp_usage():
    result = get_otp_ledger().usage(request.args.get("channel"), request.args.get("target"))
    if not result.ok:
        return _error_response(result)
    return jsonify(result.value), 200


@auth_bp.post("/oauth/<provider>/state")
def start_oauth(provider):
    data = request.get_json(silent=True) or {}
    redirect_uri = data.get("redirect_uri")
    if redirect_uri is not None and (not isinstance(redirect_uri, str) or len(redirect_uri) > 2048):
        return jsonify(error="Invalid redirect_uri"), 400

    manager = get_oauth_states()
    result = manager.generate_state(provider, redirect_uri)
    if not result.ok:
        return _error_response(result)

    log_event("OAUTH_STATE_ISSUED", channel=provider.lower())
    return jsonify(state=result.value, provider=provider.lower(),
                   expires_in_minutes=manager.ttl_minutes), 201


@auth_bp.route("/oauth/<provider>/callback", methods=["GET", "POST"])
def oauth_callback(provider):
    data = request.get_json(silent=True) or {}
    state = data.get("state") or request.args.get("state")

    result = get_oauth_states().validate_and_consume(state, provider)
    if not result.ok:
        log_event("OAUTH_STATE_FAIL", channel=provider.lower(), metadata={"kind": result.error.value})
        return _error_response(result)

    # Authorization-code exchange with the provider happens after this point
    log_event("OAUTH_STATE_OK", channel=provider.lower())
    return jsonify(provider=provider.lower(), redirect_uri=result.value), 200


@auth_bp.get("/me")
@login_required
def me():
    claims = g.claims
    return jsonify(
        sub=claims.sub,
        role=claims.role,
        issued_at=claims.issued_at.isoformat() + "Z",
        expires_at=claims.expires_at.isoformat() + "Z",
    ), 200
