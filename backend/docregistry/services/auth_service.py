# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every registry action must be attributable. Uses bcrypt for password
hashing and validates password strength at account creation.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper/lower case letter and a digit required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..constants import UserRole, values
from ..errors import ValidationFailed
from ..extensions import db
from ..models import User
from docregistry.time_utils import utcnow


class PasswordValidationError(ValidationFailed):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, {"password": message})


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes never verify.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    parish_id: int | None = None,
    role: str = UserRole.CLERK.value,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Username and email must be unique or ValidationFailed is raised.
    """
    errors = {}
    if not username:
        errors["username"] = "is required"
    if not email:
        errors["email"] = "is required"
    if role not in values(UserRole):
        errors["role"] = f"must be one of: {', '.join(values(UserRole))}"
    if errors:
        raise ValidationFailed.from_fields(errors)

    if db.session.query(User).filter_by(username=username).first():
        raise ValidationFailed.for_field("username", "already exists")
    if db.session.query(User).filter_by(email=email).first():
        raise ValidationFailed.for_field("email", "already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        parish_id=parish_id,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user by username (or email) and password.

    Returns the User on success, None otherwise. Inactive users never
    authenticate.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username)
    ).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
