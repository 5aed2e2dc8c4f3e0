# Overview: Service-layer operations for identity; resolves bearer tokens to users.

"""
Identity adapter.

The real identity provider lives outside the engine. This module is the
seam: it registers principals, mints opaque bearer tokens for them and
resolves a presented token back to a user id. Nothing else in the engine
looks at tokens; every service takes the resolved actor id explicitly.

- Tokens are 32 random bytes, hex encoded, shown once
- Only the SHA-256 hash is stored
- Tokens expire after SESSION_TOKEN_TTL_HOURS and can be revoked
"""

import secrets
import hashlib
from datetime import timedelta

from flask import current_app

from ..errors import ValidationError, NotFoundError
from ..extensions import db
from ..models import User, SessionToken
from splitledger.time_utils import utcnow, normalize_utc


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_user(email: str, name: str, upi_id: str | None = None) -> User:
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not name:
        raise ValidationError("Name is required")

    if db.session.query(User).filter_by(email=email).first():
        raise ValidationError(f"User with email '{email}' already exists")

    user = User(email=email, name=name, upi_id=(upi_id or "").strip() or None)
    db.session.add(user)
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def issue_token(user_id: int, ttl_hours: int | None = None) -> tuple[SessionToken, str]:
    """
    Mint a bearer token for an existing user.

    Returns (token_record, plaintext_token). Only the hash is persisted.
    """
    get_user(user_id)
    if ttl_hours is None:
        ttl_hours = current_app.config.get("SESSION_TOKEN_TTL_HOURS", 24)

    token = generate_token()
    now = utcnow()
    record = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def validate_token(token: str) -> User | None:
    """Resolve a plaintext bearer token to its user, or None."""
    if not token:
        return None

    record = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if record is None or record.is_revoked:
        return None
    if normalize_utc(record.expires_at) <= utcnow():
        return None
    return record.user


def revoke_token(token: str) -> bool:
    record = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if record is None or record.is_revoked:
        return False
    record.is_revoked = True
    db.session.commit()
    return True
