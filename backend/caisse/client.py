# Overview: Context-bound database clients and the storage error policy.

"""
Database Client Provider

WHY: Every data-layer call runs against a client bound to the caller's
security context (user, establishment, role). On PostgreSQL the context is
pushed into transaction-local settings consumed by row-level security
policies; the data layer also filters by tenant itself, so SQLite dev and
test databases get the same isolation.

TWO FLAVORS:
- create_authenticated_client(context): request-scoped, subject to RLS.
- create_service_client(reason=...): privileged, bypasses RLS. Only for
  trusted server-side maintenance. The reason is logged; nothing on the
  request-scoped path can select this client.

STATELESS: Each call builds a fresh Session. No client or identity is cached
at module level, so one request's context can never leak into another's.

USAGE:
    ctx = SecurityContext(user_id=u.id, etablissement_id=u.etablissement_id, role=u.role)
    with create_authenticated_client(ctx) as client:
        produits = list_products(client, ctx.etablissement_id, actif=True)
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from flask import current_app
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .enums import ROLES
from .extensions import db
from .utils import get_error_message
from .validation import ValidationError


class StorageError(Exception):
    """Any failure reported by the database engine, with a readable message."""

    def __init__(self, message: str, *, original: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.original = original


class RecordNotFoundError(StorageError):
    """A write targeted a row that does not exist in the caller's scope."""


@dataclass(frozen=True)
class SecurityContext:
    """Acting identity attached to every query of a request-scoped client."""
    user_id: str
    etablissement_id: str
    role: str

    def __post_init__(self):
        if not self.user_id:
            raise ValidationError("user_id is required")
        if not self.etablissement_id:
            raise ValidationError("etablissement_id is required")
        if self.role not in ROLES:
            raise ValidationError(f"Unknown role: {self.role}")

    @property
    def is_super_admin(self) -> bool:
        return self.role == "SUPER_ADMIN"


_SETTING_PREFIX = re.compile(r"^[a-z_][a-z0-9_]*$")


def rls_setting_prefix() -> str:
    """
    Namespace of the RLS session settings (RLS_SETTING_PREFIX, default app).

    Shared by the request clients and the row-level security migration so
    set_config and current_setting always name the same keys. The prefix is
    spliced into policy SQL, so only a lowercase identifier is accepted.
    """
    prefix = current_app.config.get("RLS_SETTING_PREFIX") or "app"
    if not _SETTING_PREFIX.match(prefix):
        raise ValueError(f"RLS_SETTING_PREFIX must be a lowercase identifier, got {prefix!r}")
    return prefix


def rls_settings(context: SecurityContext, prefix: str = "app") -> list[tuple[str, str]]:
    return [
        (f"{prefix}.user_id", str(context.user_id)),
        (f"{prefix}.etablissement_id", str(context.etablissement_id)),
        (f"{prefix}.role", context.role),
    ]


def apply_rls_context(connection, context: SecurityContext, prefix: str = "app") -> bool:
    """
    Push the security context into transaction-local settings.

    `SET ... = $1` can't be parameterized, so set_config(name, value, is_local)
    is used instead. is_local=true scopes the values to the current
    transaction: a pooled connection never carries them into the next request.
    Returns False on engines without row-level security (SQLite).
    """
    if connection.dialect.name != "postgresql":
        return False
    for name, value in rls_settings(context, prefix):
        connection.execute(
            text("SELECT set_config(:name, :value, true)"),
            {"name": name, "value": value},
        )
    return True


class DbClient:
    """
    One ORM session plus the identity it acts for.

    Use as a context manager: the session is rolled back on error and
    closed on exit. Service functions commit their own writes.
    """

    def __init__(self, session: Session, *, context: SecurityContext | None = None, privileged: bool = False):
        self.session = session
        self.context = context
        self.privileged = privileged

    @property
    def etablissement_id(self) -> str | None:
        return self.context.etablissement_id if self.context else None

    def commit(self) -> None:
        with storage_errors(self):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "DbClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
        self.close()

    def __repr__(self) -> str:
        kind = "service" if self.privileged else "authenticated"
        return f"<DbClient {kind} etablissement_id={self.etablissement_id}>"


@contextmanager
def storage_errors(client: DbClient) -> Iterator[None]:
    """
    Error policy for every data-layer call.

    SQLAlchemy failures are rolled back and re-raised as StorageError with a
    readable message. Other exceptions (ValidationError, ConflictError, ...)
    are rolled back and propagate unchanged.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        client.rollback()
        message = get_error_message(exc)
        current_app.logger.error("Storage failure (%s): %s", client, message)
        raise StorageError(message, original=exc) from exc
    except Exception:
        client.rollback()
        raise


def create_authenticated_client(context: SecurityContext) -> DbClient:
    """
    Request-scoped client bound to `context`.

    SECURITY: Always runs on the default engine. An after_begin hook applies
    the RLS settings at the start of every transaction the session opens.
    """
    if not isinstance(context, SecurityContext):
        raise ValidationError("A security context is required")

    prefix = rls_setting_prefix()
    session = Session(bind=db.engine, expire_on_commit=False)

    @event.listens_for(session, "after_begin")
    def _bind_context(sess, transaction, connection):
        apply_rls_context(connection, context, prefix)

    return DbClient(session, context=context)


def create_service_client(*, reason: str) -> DbClient:
    """
    Privileged client that bypasses row-level security.

    SECURITY: Explicit, keyword-only, and logged. Callers must state why they
    need it (e.g. "purge expired sessions"). Uses the `service` bind when
    SERVICE_DATABASE_URL is configured.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("A reason is required for a privileged client")

    current_app.logger.warning("Privileged database client created: %s", reason)
    engine = db.engines.get("service") or db.engine
    session = Session(bind=engine, expire_on_commit=False)
    return DbClient(session, privileged=True)
