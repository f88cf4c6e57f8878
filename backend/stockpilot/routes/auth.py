# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockpilot/routes/auth.py
"""
Authentication API routes.

Users are created by administrators only (/api/admin/users or the CLI).
"""

from flask import Blueprint, g

from ..decorators import require_auth
from ..results import ActionResult, run_action
from ..services import auth_service, session_service
from .common import read_json

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    Wrong email and wrong password get the same message.
    """
    data = read_json()
    return run_action(auth_service.login, data.get("email"), data.get("password")).to_response()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    session_service.revoke_session(g.session_token, reason="User logout")
    return ActionResult.ok({"logged_out": True}).to_response()


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with the capabilities granted by their role."""
    return ActionResult.ok(auth_service.describe_user(g.current_user)).to_response()
