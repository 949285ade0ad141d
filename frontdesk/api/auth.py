import functools

from flask import Blueprint, g, jsonify, request, session

from frontdesk.services.auth_service import AuthService, current_session
from frontdesk.services.activity_logger import log_activity, ActionType

bp = Blueprint("auth", __name__, url_prefix="/auth")


@bp.route("/login", methods=("POST",))
def login():
    payload = request.get_json(silent=True) or request.form
    username = payload.get("username", "")
    password = payload.get("password", "")

    user = AuthService().validate(username, password)
    if user is None:
        return jsonify({
            "error": "Unauthorized",
            "message": "Incorrect username or password, or the account is temporarily locked.",
        }), 401

    session.clear()
    session["user_id"] = user.id
    session["username"] = user.username
    session["role"] = user.role

    log_activity(ActionType.LOGIN, description=f"{user.role} {user.username} signed in",
                 user_id=user.id, username=user.username)

    return jsonify(_session_payload()), 200


@bp.route("/logout", methods=("POST",))
def logout():
    current = current_session()
    if current is not None:
        log_activity(ActionType.LOGOUT, description=f"{current.role} {current.username} signed out",
                     user_id=current.subject_id, username=current.username)
    session.clear()
    return jsonify({"success": True}), 200


@bp.route("/me")
def me():
    if current_session() is None:
        return jsonify({"error": "Unauthorized", "message": "Sign in first."}), 401
    return jsonify(_session_payload()), 200


@bp.route("/me", methods=("PATCH",))
def update_me():
    """Change the signed-in user's display name."""
    current = current_session()
    if current is None:
        return jsonify({"error": "Unauthorized", "message": "Sign in first."}), 401
    payload = request.get_json(silent=True) or {}
    AuthService().update_full_name(current.subject_id, payload.get("full_name"))
    return jsonify(_session_payload()), 200


def _session_payload() -> dict:
    current = current_session()
    user = AuthService().users.get(current.subject_id)
    return {
        "user_id": current.subject_id,
        "username": current.username,
        "role": current.role,
        "full_name": user.full_name if user else None,
        "display_name": user.display_name if user else current.username,
        "capabilities": sorted(current.capabilities),
    }


def login_required(view):
    @functools.wraps(view)
    def wrapped_view(**kwargs):
        g.session = current_session()
        if g.session is None:
            return jsonify({"error": "Unauthorized", "message": "Sign in first."}), 401
        return view(**kwargs)

    return wrapped_view


def requires(capability: str):
    """Gate a view on a capability of the signed-in role."""
    def decorator(view):
        @functools.wraps(view)
        @login_required
        def wrapped_view(**kwargs):
            if capability not in g.session.capabilities:
                return jsonify({
                    "error": "Forbidden",
                    "message": f"{g.session.role} cannot {capability.replace('_', ' ')}",
                }), 403
            return view(**kwargs)
        return wrapped_view
    return decorator
