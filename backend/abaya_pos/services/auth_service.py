# Overview: Service-layer operations for employee accounts and password checks.

"""
Employee Authentication Service

WHY: Every sale, refund approval and stock change is attributed to an
employee. Passwords are bcrypt-hashed and must meet strength rules.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Branch, User, Role, UserRole
from ..permissions import ROLE_DESCRIPTIONS
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    name: str | None = None,
    branch_id: int | None = None,
    position: str | None = None,
    employee_code: str | None = None,
    rounds: int = 12,
) -> User:
    """
    Create an employee account.

    Raises:
        ValueError: username/email taken or branch missing
        PasswordValidationError: weak password
    """
    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    if branch_id is not None:
        branch = db.session.query(Branch).get(branch_id)
        if not branch:
            raise ValueError("Branch not found")

    user = User(
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password, rounds=rounds),
        branch_id=branch_id,
        position=position,
        employee_code=employee_code,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Look up an active user by username or email and check the password.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign role to user."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role


def create_default_roles() -> int:
    """Create admin/manager/cashier roles if missing. Returns count created."""
    created = 0
    for name, desc in ROLE_DESCRIPTIONS.items():
        if not db.session.query(Role).filter_by(name=name).first():
            db.session.add(Role(name=name, description=desc))
            created += 1
    db.session.commit()
    return created
