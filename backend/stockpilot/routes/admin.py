# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/stockpilot/routes/admin.py
"""
User administration (admin role only).

Deleting a user deactivates the account and revokes its sessions; the user
stays on record so orders and movements remain attributable.
"""

from flask import Blueprint, g

from ..decorators import require_auth, require_permission
from ..permissions import MANAGE_USERS
from ..results import run_action
from ..services import auth_service
from .common import read_json

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_permission(MANAGE_USERS)
def list_users_route():
    return run_action(auth_service.list_users, actor=g.current_user).to_response()


@admin_bp.post("/users")
@require_auth
@require_permission(MANAGE_USERS)
def create_user_route():
    """JSON: name, email, password, role (admin | employee, default employee)."""
    return run_action(
        auth_service.admin_create_user, payload=read_json(), actor=g.current_user, success_status=201
    ).to_response()


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_permission(MANAGE_USERS)
def delete_user_route(user_id: int):
    return run_action(auth_service.delete_user, user_id=user_id, actor=g.current_user).to_response()
