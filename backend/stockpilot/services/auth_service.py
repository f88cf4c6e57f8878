# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user management.

WHY: Every stock movement and order is attributed to a user. Uses bcrypt
for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 6 characters required
- Login failures never reveal whether the email exists
- Session tokens managed separately (see session_service.py)
"""

import logging

import bcrypt
from flask import current_app, has_app_context

from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import MANAGE_USERS, ROLE_EMPLOYEE, ROLES, capabilities_for, require_capability
from ..validation import FieldErrors
from . import session_service
from stockpilot.time_utils import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password."


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, field_errors={"password": [message]})


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Unreadable password hash encountered during login")
        return False


def _normalize_email(email) -> str:
    return str(email or "").strip().lower()


def create_user(*, name: str, email: str, password: str, role: str = ROLE_EMPLOYEE) -> User:
    """
    Create a user. Email is unique (case-insensitive).

    Raises ValidationError (field errors) or ConflictError for a taken email.
    """
    errors = FieldErrors()
    name = str(name or "").strip()
    email = _normalize_email(email)
    if not name:
        errors.add("name", "is required")
    if not email or "@" not in email:
        errors.add("email", "must be a valid email address")
    if role not in ROLES:
        errors.add("role", f"must be one of: {', '.join(ROLES)}")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.add("password", f"must be at least {MIN_PASSWORD_LENGTH} characters long")
    errors.raise_if_any()

    if db.session.query(User).filter(User.email == email).first():
        raise ConflictError("A user with this email already exists.", details={"field": "email"})

    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    logger.info("Created user %s with role %s", email, role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active User for valid credentials, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == _normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user or not password:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def login(email: str, password: str) -> dict:
    """Authenticate and open a session. Returns {"user", "token"}."""
    user = authenticate(email, password)
    if not user:
        raise AuthenticationError(INVALID_CREDENTIALS)
    _, token = session_service.create_session(user.id)
    return {"user": describe_user(user), "token": token}


def describe_user(user: User) -> dict:
    data = user.to_dict()
    data["permissions"] = sorted(capabilities_for(user.role))
    return data


def list_users(*, actor: User) -> list[dict]:
    require_capability(actor, MANAGE_USERS)
    users = (
        db.session.query(User)
        .filter(User.is_active.is_(True))
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return [u.to_dict() for u in users]


def admin_create_user(*, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_USERS)
    payload = payload or {}
    user = create_user(
        name=payload.get("name"),
        email=payload.get("email"),
        password=payload.get("password"),
        role=payload.get("role") or ROLE_EMPLOYEE,
    )
    return user.to_dict()


def delete_user(*, user_id: int, actor: User) -> dict:
    """
    Deactivate a user and revoke their sessions.

    Users are kept (inactive) so movements and orders stay attributable.
    An admin cannot delete their own account.
    """
    require_capability(actor, MANAGE_USERS)
    if user_id == actor.id:
        raise ConflictError("You cannot delete your own account.")

    user = db.session.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if not user:
        raise NotFoundError("User not found.")

    user.is_active = False
    db.session.commit()
    session_service.revoke_all_user_sessions(user.id, reason="User deleted")
    logger.info("User %s deactivated by %s", user.email, actor.email)
    return {"id": user.id, "deleted": True}
