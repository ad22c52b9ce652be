# Overview: Service-layer operations for staff accounts; password hashing and sign-in.

"""
Staff authentication.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Only admin and staff roles may obtain a staff token
"""

import bcrypt

from ..extensions import db
from ..errors import ConflictError, Forbidden, Unauthenticated, ValidationError
from ..models import User
from ..models.auth import STAFF_ROLES, USER_ROLES
from ..validation import normalize_email
from deskhub.time_utils import utcnow


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", field="password")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (strength checked first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    email: str,
    name: str,
    password: str,
    role: str = "staff",
    phone: str | None = None,
) -> User:
    """
    Create a user account.

    Raises:
        ValidationError: bad email, role or password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("A valid email is required", field="email")
    if not name or not name.strip():
        raise ValidationError("name is required", field="name")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}", field="role")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email already registered", field="email")

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        role=role,
        phone=phone,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """
    Verify credentials for a staff sign-in.

    Raises Unauthenticated for unknown email, wrong password or inactive
    account, and Forbidden for accounts whose role cannot hold a staff token.
    Updates last_login_at on success.
    """
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("email and password are required")

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")

    if user.role not in STAFF_ROLES:
        raise Forbidden("Account is not allowed to access the staff area")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id).first()
