# Overview: Flask API routes for sign-in, sign-up, sign-out and password recovery.

"""
Authentication API routes.

Credentials and sessions belong to the hosted Auth Provider. A successful
login stores the provider's access token in the Flask session (and returns
it for Bearer use); the profile behind it is resolved through the active
backend, which syncs it into the Local Store on desktop.
"""

from flask import Blueprint, request, jsonify, current_app, session, g

from ..extensions import datastore
from ..decorators import require_auth
from ..services.auth_provider import AuthProviderError
from ..services.audit_service import log_login
from ..services.identity_bridge import current_access_token
from ..services.remote_client import RemoteStoreError
from ..validation import USER_ROLES


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password.

    Returns the access token and the profile. 403 when the identity has no
    profile row (the account exists with the provider but not in the shop).
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    try:
        auth_session = datastore.auth_provider.sign_in(email, password)
    except AuthProviderError as e:
        if e.status_code is None or e.status_code >= 500:
            current_app.logger.exception("Auth provider sign-in failed")
            return jsonify({"error": "Authentication service unavailable"}), 502
        return jsonify({"error": str(e) or "Invalid email or password"}), 401

    access_token = auth_session.get("access_token")
    if not access_token:
        return jsonify({"error": "Email not confirmed"}), 401

    session["access_token"] = access_token
    session["refresh_token"] = auth_session.get("refresh_token")
    datastore.forget_identity()

    profile = datastore.get_current_user()
    if profile is None:
        session.pop("access_token", None)
        session.pop("refresh_token", None)
        return jsonify({"error": "User profile not found. Please contact administrator."}), 403

    log_login(profile)
    return jsonify({
        "access_token": access_token,
        "refresh_token": auth_session.get("refresh_token"),
        "user": profile,
    }), 200


@auth_bp.post("/signup")
def signup_route():
    """Create an account with the provider; the profile row is created from its metadata."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    username = (data.get("username") or "").strip()
    name = (data.get("name") or "").strip() or username
    role = data.get("role") or "staff"

    if not all([email, password, username]):
        return jsonify({"error": "email, password and username are required"}), 400
    if data.get("confirm_password") is not None and data.get("confirm_password") != password:
        return jsonify({"error": "Passwords do not match"}), 400
    if role not in USER_ROLES:
        return jsonify({"error": f"role must be one of {', '.join(USER_ROLES)}"}), 400

    try:
        if datastore.remote_profiles.find_by_username(username):
            return jsonify({"error": "Username already exists"}), 409
        result = datastore.auth_provider.sign_up(
            email,
            password,
            metadata={"username": username, "name": name, "role": role},
            redirect_to=data.get("redirect_to"),
        )
    except AuthProviderError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteStoreError:
        current_app.logger.exception("Username lookup failed during signup")
        return jsonify({"error": "Signup is unavailable"}), 502

    user = result.get("user") or result
    return jsonify({
        "user": {"id": user.get("id"), "email": user.get("email") or email},
        "confirmation_required": not result.get("access_token"),
    }), 201


@auth_bp.post("/logout")
def logout_route():
    token = current_access_token()
    if token:
        try:
            datastore.auth_provider.sign_out(token)
        except AuthProviderError:
            current_app.logger.warning("Auth provider sign-out failed", exc_info=True)
    session.clear()
    datastore.forget_identity()
    return jsonify({"status": "logged_out"}), 200


@auth_bp.post("/password-reset")
def password_reset_route():
    """Ask the provider to email a recovery link."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    if not email:
        return jsonify({"error": "Email is required"}), 400
    try:
        datastore.auth_provider.reset_password(email, redirect_to=data.get("redirect_to"))
    except AuthProviderError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"status": "sent"}), 200


@auth_bp.post("/password-update")
def password_update_route():
    """Set a new password using the token from the recovery link."""
    data = request.get_json(silent=True) or {}
    token = current_access_token()
    password = data.get("password") or ""
    if not token:
        return jsonify({"error": "Recovery token required"}), 401
    if len(password) < 6:
        return jsonify({"error": "Password must be at least 6 characters"}), 400
    try:
        datastore.auth_provider.update_password(token, password)
    except AuthProviderError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"status": "updated"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user,
        "is_admin": g.current_user.get("role") == "admin",
        "backend": datastore.backend_name,
    }), 200
