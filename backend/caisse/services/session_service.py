"""
Login Session Token Service

WHY: Secure session management with automatic expiry and revocation.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout from SESSION_TTL_HOURS (default 24h)
- Revocable on logout (delete_session) or for every device (delete_user_sessions)
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..client import DbClient, storage_errors
from ..models import Session, Utilisateur
from ..time_utils import utcnow
from .query_helpers import to_record
from ..validation import ValidationError
from .tenant_service import TenantAccessError, get_scoped, scoped_query

__all__ = [
    "create_session",
    "get_session_by_token",
    "delete_session",
    "delete_user_sessions",
    "purge_expired_sessions",
]


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token handed to the caller (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(client: DbClient, utilisateur_id: str) -> tuple[dict, str]:
    """
    Open a login session for an employee.

    Returns (session record, plaintext token). Only the hash is stored.
    """
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))
    token = generate_token()
    with storage_errors(client):
        user = get_scoped(client, Utilisateur, utilisateur_id)
        if user is None or not user.actif:
            raise ValidationError("utilisateur_id is not an active employee")
        session = Session(utilisateur_id=user.id, token=hash_token(token), expires_at=utcnow() + ttl)
        client.session.add(session)
        client.session.commit()
    return to_record(session, "sessions"), token


def get_session_by_token(client: DbClient, token: str) -> dict | None:
    """Unexpired session for a plaintext token, with its employee (redacted)."""
    if not token:
        return None
    with storage_errors(client):
        row = scoped_query(client, Session).filter(
            Session.token == hash_token(token),
            Session.expires_at > utcnow(),
        ).first()
        if row is None:
            return None
        user = client.session.get(Utilisateur, row.utilisateur_id)
        if user is None or not user.actif:
            return None
        record = to_record(row, "sessions")
        record["utilisateur"] = to_record(user, "utilisateurs")
        return record


def delete_session(client: DbClient, token: str) -> bool:
    with storage_errors(client):
        row = scoped_query(client, Session).filter(Session.token == hash_token(token or "")).first()
        if row is None:
            return False
        client.session.delete(row)
        client.session.commit()
    return True


def delete_user_sessions(client: DbClient, utilisateur_id: str) -> int:
    """Revoke every session of an employee (password change, deactivation)."""
    with storage_errors(client):
        rows = scoped_query(client, Session).filter(Session.utilisateur_id == utilisateur_id).all()
        for row in rows:
            client.session.delete(row)
        client.session.commit()
    return len(rows)


def purge_expired_sessions(client: DbClient) -> int:
    """
    Maintenance: delete expired sessions across all establishments.

    SECURITY: Requires the privileged service client.
    """
    if not client.privileged:
        raise TenantAccessError("purge_expired_sessions requires the service client")
    with storage_errors(client):
        deleted = (
            client.session.query(Session)
            .filter(Session.expires_at <= utcnow())
            .delete(synchronize_session=False)
        )
        client.session.commit()
    current_app.logger.info("Purged %s expired sessions", deleted)
    return deleted
