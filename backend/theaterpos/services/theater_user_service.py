# Overview: Service-layer operations for theater staff accounts; encapsulates business logic and database work.

"""
Theater Users

Staff accounts live in the theater's TheaterUserArray document. Login is a
two-step check: username + password, then the 4-digit PIN.

SECURITY NOTES:
- Passwords hashed with bcrypt; the hash never leaves this module
- Usernames are lower-cased and unique within the theater
- PINs are unique across ALL theaters (claimed in theateruserpins), so a PIN
  alone identifies a user
- `role` must name an active role of the same theater at write time
- MAX_FAILED_ATTEMPTS failures lock the account for LOCKOUT_DURATION
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import TheaterUserArray, TheaterUserPin
from ..validation import (
    DuplicateKeyError,
    FieldSpec,
    ItemValidationPolicy,
    NotFoundError,
    ValidationError,
)
from .array_store import TheaterArrayStore, _index_of
from .concurrency import run_write
from .role_service import get_role
from theaterpos.time_utils import utcnow, to_utc_z, parse_iso_datetime


MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=15)
PIN_GENERATION_ATTEMPTS = 100


class AccountLockedError(Exception):
    """Raised when a locked account attempts to log in."""

    def __init__(self, seconds_remaining: int):
        super().__init__(f"Account locked. Try again in {seconds_remaining} seconds")
        self.seconds_remaining = seconds_remaining


USER_POLICY = ItemValidationPolicy(
    fields={
        "username": FieldSpec("str", nullable=False, min_length=3, max_length=50, lower=True),
        "email": FieldSpec("str", nullable=False, max_length=100, lower=True),
        "password": FieldSpec("str", nullable=False, min_length=6, max_length=128),
        "pin": FieldSpec("str", nullable=False, min_length=4, max_length=4),
        "full_name": FieldSpec("str", nullable=False, max_length=100),
        "phone_number": FieldSpec("str", nullable=False, max_length=20),
        "role": FieldSpec("str"),
        "is_active": FieldSpec("bool", nullable=False),
    },
    writable_fields={"username", "email", "password", "pin", "full_name", "phone_number", "role", "is_active"},
    required_on_create={"username", "email", "password", "full_name", "phone_number"},
    defaults={"role": None, "is_active": True},
)


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def _all_pins(exclude_user_id: str | None = None) -> set[str]:
    query = db.session.query(TheaterUserPin.pin)
    if exclude_user_id is not None:
        query = query.filter(TheaterUserPin.user_id != exclude_user_id)
    return {row[0] for row in query.all()}


def _claim_pin(theater_id: int, user_id: str, pin: str) -> None:
    """
    Record the user's PIN in the cross-theater claim table. A concurrent
    claim of the same PIN fails at commit and the caller's write is retried.
    """
    claim = db.session.query(TheaterUserPin).filter_by(user_id=user_id).first()
    if claim is None:
        db.session.add(TheaterUserPin(pin=pin, theater_id=theater_id, user_id=user_id))
    elif claim.pin != pin:
        claim.pin = pin


def _release_pin(user_id: str) -> None:
    db.session.query(TheaterUserPin).filter_by(user_id=user_id).delete(synchronize_session=False)


def _require_text(value, key: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{key} is required", {key: "is required"})
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", {key: "must be a string"})
    return value


def generate_unique_pin() -> str:
    """Random 4-digit PIN (1000-9999) not used by any theater user."""
    taken = _all_pins()
    for _ in range(PIN_GENERATION_ATTEMPTS):
        pin = str(1000 + secrets.randbelow(9000))
        if pin not in taken:
            return pin
    raise DuplicateKeyError("Unable to generate a unique PIN")


def _check_pin(pin: str, exclude_user_id: str | None = None) -> None:
    if not pin.isdigit():
        raise ValidationError("PIN must be exactly 4 digits", {"pin": "must be exactly 4 digits"})
    if pin in _all_pins(exclude_user_id):
        raise DuplicateKeyError("PIN already in use")


def _check_role(theater_id: int, role_id: str | None) -> None:
    if role_id is None:
        return
    role = get_role(theater_id, role_id)
    if role is None or not role.get("is_active", True):
        raise ValidationError("Role not found in this theater", {"role": "unknown or inactive role"})


def _username_taken(items: list[dict], username: str, exclude_id: str | None = None) -> bool:
    return any(u.get("username") == username and u.get("_id") != exclude_id for u in items)


class TheaterUserStore(TheaterArrayStore):
    model = TheaterUserArray
    policy = USER_POLICY
    search_fields = ("username", "full_name", "email", "phone_number")
    filter_fields = ("is_active", "role")

    def prepare_new_item(self, theater_id, items, item):
        if _username_taken(items, item["username"]):
            raise DuplicateKeyError("Username already exists in this theater")

        _check_role(theater_id, item.get("role"))

        if item.get("pin"):
            _check_pin(item["pin"])
        else:
            item["pin"] = generate_unique_pin()
        _claim_pin(theater_id, item["_id"], item["pin"])

        item["password_hash"] = hash_password(item.pop("password"))
        item["login_attempts"] = 0
        item["lock_until"] = None
        item["last_login"] = None

    def prepare_update(self, theater_id, items, current, patch):
        if "username" in patch and _username_taken(items, patch["username"], exclude_id=current["_id"]):
            raise DuplicateKeyError("Username already exists in this theater")

        if "role" in patch:
            _check_role(theater_id, patch["role"])

        if "pin" in patch:
            _check_pin(patch["pin"], exclude_user_id=current["_id"])
            _claim_pin(theater_id, current["_id"], patch["pin"])

        if "password" in patch:
            patch["password_hash"] = hash_password(patch.pop("password"))

    def before_remove(self, theater_id, item):
        _release_pin(item["_id"])

    def sort_key(self, item):
        return item.get("username", "")

    def public_item(self, item):
        return {k: v for k, v in item.items() if k != "password_hash"}


theater_users = TheaterUserStore()


def get_user(theater_id: int, user_id: str) -> dict | None:
    """Raw user item (includes password_hash) or None."""
    doc = theater_users.get_document(theater_id)
    return doc.find_item(user_id) if doc else None


def find_by_username(theater_id: int, username: str) -> dict | None:
    if not isinstance(username, str):
        return None
    doc = theater_users.get_document(theater_id)
    if not doc:
        return None
    username = username.strip().lower()
    for user in doc.copy_items():
        if user.get("username") == username:
            return user
    return None


def _lock_remaining(user: dict, now: datetime) -> int | None:
    lock_until = parse_iso_datetime(user.get("lock_until"))
    if lock_until and lock_until > now:
        return int((lock_until - now).total_seconds())
    return None


def _record_attempt(theater_id: int, user_id: str, success: bool) -> dict:
    """Persist the outcome of one credential check on the user item."""
    def _op():
        doc = theater_users.get_document(theater_id)
        items = doc.copy_items() if doc else []
        index = _index_of(items, user_id)
        if index is None:
            raise NotFoundError("User not found")

        user = items[index]
        now = utcnow()
        if success:
            user["login_attempts"] = 0
            user["lock_until"] = None
        else:
            attempts = user.get("login_attempts", 0) + 1
            if attempts >= MAX_FAILED_ATTEMPTS:
                user["lock_until"] = to_utc_z(now + LOCKOUT_DURATION)
                attempts = 0
                current_app.logger.warning(
                    "Theater user %s locked after %d failed attempts (theater %s)",
                    user.get("username"), MAX_FAILED_ATTEMPTS, theater_id,
                )
            user["login_attempts"] = attempts

        doc.set_items(items)
        db.session.commit()
        return user

    return run_write(_op, what="login attempt")


def verify_credentials(theater_id: int, username: str, password: str) -> dict | None:
    """
    First login step. Returns the public user item when the password matches
    an active account, None otherwise.

    Raises AccountLockedError while the account is locked.
    """
    username = _require_text(username, "username")
    password = _require_text(password, "password")

    user = find_by_username(theater_id, username)
    if not user or not user.get("is_active", True):
        return None

    remaining = _lock_remaining(user, utcnow())
    if remaining is not None:
        raise AccountLockedError(remaining)

    ok = verify_password(password, user.get("password_hash"))
    user = _record_attempt(theater_id, user["_id"], success=ok)
    return theater_users.public_item(user) if ok else None


def verify_pin(theater_id: int, user_id: str, pin: str) -> dict | None:
    """
    Second login step. On success stamps last_login and returns the public
    user item; a wrong PIN counts as a failed attempt.
    """
    user_id = _require_text(user_id, "user_id")
    pin = _require_text(pin, "pin")

    user = get_user(theater_id, user_id)
    if not user or not user.get("is_active", True):
        return None

    remaining = _lock_remaining(user, utcnow())
    if remaining is not None:
        raise AccountLockedError(remaining)

    if not secrets.compare_digest(pin.encode("utf-8"), str(user.get("pin") or "").encode("utf-8")):
        _record_attempt(theater_id, user_id, success=False)
        return None

    _record_attempt(theater_id, user_id, success=True)
    return record_login(theater_id, user_id)


def record_login(theater_id: int, user_id: str) -> dict:
    def _op():
        doc = theater_users.get_document(theater_id)
        items = doc.copy_items() if doc else []
        index = _index_of(items, user_id)
        if index is None:
            raise NotFoundError("User not found")
        items[index]["last_login"] = to_utc_z(utcnow())
        doc.set_items(items)
        db.session.commit()
        return items[index]

    return theater_users.public_item(run_write(_op, what="last login"))
