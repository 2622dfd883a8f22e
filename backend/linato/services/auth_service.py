# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every order, payment, and stock movement must be attributable to a
staff account. Passwords and PINs are bcrypt-hashed.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one letter and one digit
- PINs are 4-6 digits, bcrypt-hashed like passwords
- Void authorization accepts the PIN of ANY active admin, not only the
  logged-in user, so a cashier can call a manager over to the register
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..validation import ValidationError, ConflictError, NotFoundError
from linato.time_utils import utcnow


ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"
ROLE_KITCHEN = "kitchen"

VALID_ROLES = [ROLE_ADMIN, ROLE_CASHIER, ROLE_KITCHEN]

PIN_RE = re.compile(r"^\d{4,6}$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class PinValidationError(ValidationError):
    """Raised when a PIN is not 4-6 digits."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def _bcrypt_hash(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def _bcrypt_check(secret: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash the password."""
    validate_password_strength(password)
    return _bcrypt_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return _bcrypt_check(password, password_hash)


def hash_pin(pin: str) -> str:
    if not isinstance(pin, str) or not PIN_RE.match(pin):
        raise PinValidationError("PIN must be 4 to 6 digits")
    return _bcrypt_hash(pin)


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """Timing-safe PIN check; False for users without a PIN."""
    return _bcrypt_check(pin, pin_hash)


def find_admin_by_pin(pin: str) -> User | None:
    """
    Return the first active admin whose PIN matches, or None.

    Each candidate costs one bcrypt check; restaurants have a handful of
    admins so a linear scan is fine.
    """
    if not pin:
        return None
    admins = (
        db.session.query(User)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True), User.pin_hash.isnot(None))
        .order_by(User.id)
        .all()
    )
    for admin in admins:
        if verify_pin(pin, admin.pin_hash):
            return admin
    return None


def authenticate(email: str, password: str) -> User | None:
    """
    Return the user for valid credentials, else None.

    Inactive users are returned as-is; the caller distinguishes
    "bad credentials" (401) from "inactive" (403).
    """
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    if user.is_active:
        user.last_login_at = utcnow()
        db.session.commit()

    return user


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = ROLE_CASHIER,
    pin: str | None = None,
) -> User:
    """
    Create a staff account.

    Raises:
        ValidationError: bad role, weak password, malformed PIN
        ConflictError: email already registered
    """
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")

    normalized_email = email.strip().lower()
    if db.session.query(User).filter_by(email=normalized_email).first():
        raise ConflictError(f"Email '{normalized_email}' already registered")

    user = User(
        name=name,
        email=normalized_email,
        password_hash=hash_password(password),
        pin_hash=hash_pin(pin) if pin else None,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def set_pin(user_id: int, pin: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    user.pin_hash = hash_pin(pin)
    db.session.commit()
    return user


def set_active(user_id: int, is_active: bool) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    user.is_active = is_active
    db.session.commit()
    return user
