"""
Employee Service

WHY: Every action must be attributable to an employee. Employees log in with
email + password, or with a short numeric PIN at the till.

MULTI-TENANT: Employees belong to exactly one establishment. Email is unique
system-wide (it is the login); PINs are unique within an establishment.

SECURITY NOTES:
- Passwords and PINs hashed with bcrypt (cost factor from BCRYPT_ROUNDS)
- The layer owns hashing: callers pass plaintext, never a hash
- Every employee leaving this module has password and pin_code set to None
- Deactivation is a soft delete (actif=False); sales keep their cashier
"""

from __future__ import annotations

from contextlib import contextmanager

import bcrypt
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..client import DbClient, RecordNotFoundError, StorageError, storage_errors
from ..enums import ADMIN_ROLES, ROLES
from ..models import Utilisateur
from ..validation import ConflictError, ValidationError, policy, require_choice, validate_payload
from .query_helpers import (
    apply_search, fetch_all, fetch_by_id, fetch_paginated, insert, soft_delete_by_id,
    to_record, update_by_id,
)
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_employees",
    "list_employees_paginated",
    "get_employee_by_id",
    "get_employee_by_email",
    "create_employee",
    "update_employee",
    "set_employee_password",
    "set_employee_pin",
    "clear_employee_pin",
    "deactivate_employee",
    "email_exists",
    "pin_exists",
    "count_employees",
    "authenticate_employee",
    "authenticate_employee_pin",
    "can_access_route",
]

ENTITY = "utilisateurs"

PASSWORD_MIN_LENGTH = 8
PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 8

# Role defaults when an employee has no explicit allow-list.
# SUPER_ADMIN and ADMIN bypass route checks (except /admin for ADMIN).
ROLE_DEFAULT_ROUTES = {
    "MANAGER": (
        "/dashboard", "/caisse", "/salle", "/produits", "/stocks",
        "/clients", "/employes", "/rapports", "/parametres",
    ),
    "CAISSIER": ("/caisse", "/salle", "/clients", "/parametres/profil"),
    "SERVEUR": ("/salle", "/caisse", "/parametres/profil"),
}
SUPER_ADMIN_ONLY_ROUTES = ("/admin",)

EMPLOYEE_POLICY = policy(
    {"etablissement_id", "email", "nom", "prenom", "role", "actif", "allowed_routes"},
    required={"etablissement_id", "email", "nom", "role"},
)


# =============================================================================
# HASHING
# =============================================================================

def _hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def _check_secret(secret: str, hashed: str | None) -> bool:
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def _validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"password must be at least {PASSWORD_MIN_LENGTH} characters")
    return password


def _validate_pin(pin) -> str:
    pin = str(pin).strip() if pin is not None else ""
    if not pin.isdigit() or not PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH:
        raise ValidationError(f"pin_code must be {PIN_MIN_LENGTH} to {PIN_MAX_LENGTH} digits")
    return pin


def _normalize_email(email) -> str:
    email = str(email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("email is invalid")
    return email


def _check_rules(patch: dict) -> None:
    if "role" in patch:
        require_choice("role", patch["role"], ROLES)
    if "email" in patch:
        patch["email"] = _normalize_email(patch["email"])
    if patch.get("allowed_routes") is not None:
        routes = patch["allowed_routes"]
        if not isinstance(routes, (list, tuple)) or not all(isinstance(r, str) for r in routes):
            raise ValidationError("allowed_routes must be a list of paths")
        patch["allowed_routes"] = [r.strip() for r in routes if r.strip()]


# =============================================================================
# READS
# =============================================================================

def _filtered(client: DbClient, etablissement_id: str, actif=None, role=None, search=None):
    query = scoped_query(client, Utilisateur, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Utilisateur.actif.is_(bool(actif)))
    if role is not None:
        query = query.filter(Utilisateur.role == role)
    query = apply_search(query, [Utilisateur.nom, Utilisateur.prenom, Utilisateur.email], search)
    return query.order_by(Utilisateur.nom.asc(), Utilisateur.prenom.asc(), Utilisateur.id.asc())


def list_employees(client: DbClient, etablissement_id: str, *, actif=None, role=None, search=None) -> list[dict]:
    return fetch_all(client, _filtered(client, etablissement_id, actif, role, search), ENTITY)


def list_employees_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    actif=None,
    role=None,
    search=None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    query = _filtered(client, etablissement_id, actif, role, search)
    return fetch_paginated(
        client, query, entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def get_employee_by_id(client: DbClient, employee_id: str) -> dict | None:
    return fetch_by_id(client, Utilisateur, employee_id, ENTITY)


def get_employee_by_email(client: DbClient, email: str) -> dict | None:
    with storage_errors(client):
        user = scoped_query(client, Utilisateur).filter(
            Utilisateur.email == str(email or "").strip().lower()
        ).first()
        return to_record(user, ENTITY)


def email_exists(client: DbClient, email: str, *, exclude_id: str | None = None) -> bool:
    """
    System-wide check (emails are logins). Only a boolean leaves this
    function, never another tenant's row.

    On PostgreSQL a request client only sees its own tenant here; writes
    still map the unique index violation to ConflictError.
    """
    with storage_errors(client):
        query = client.session.query(Utilisateur.id).filter(
            Utilisateur.email == str(email or "").strip().lower()
        )
        if exclude_id:
            query = query.filter(Utilisateur.id != exclude_id)
        return query.first() is not None


def _employees_with_pin(client: DbClient, etablissement_id: str, exclude_id: str | None = None):
    query = scoped_query(client, Utilisateur, require_tenant(client, etablissement_id)).filter(
        Utilisateur.pin_code.isnot(None)
    )
    if exclude_id:
        query = query.filter(Utilisateur.id != exclude_id)
    return query.all()


def pin_exists(client: DbClient, etablissement_id: str, pin: str, *, exclude_id: str | None = None) -> bool:
    """PINs are salted hashes, so uniqueness is checked by verifying against each one."""
    with storage_errors(client):
        return any(_check_secret(str(pin), u.pin_code) for u in _employees_with_pin(client, etablissement_id, exclude_id))


def count_employees(client: DbClient, etablissement_id: str, *, actif=None) -> int:
    query = scoped_query(client, Utilisateur, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Utilisateur.actif.is_(bool(actif)))
    with storage_errors(client):
        return query.with_entities(func.count(Utilisateur.id)).scalar() or 0


# =============================================================================
# WRITES
# =============================================================================

@contextmanager
def _email_is_unique():
    # Under RLS a request client can't see other tenants' rows, so
    # email_exists may miss a duplicate the unique index still rejects
    try:
        yield
    except StorageError as exc:
        if isinstance(exc.original, IntegrityError) and "email" in str(exc.original).lower():
            raise ConflictError("An employee with this email already exists") from exc
        raise


def create_employee(client: DbClient, payload: dict) -> dict:
    """
    Create an employee from plaintext credentials.

    payload: etablissement_id, email, nom, role, password (required),
    prenom, pin_code, allowed_routes, actif (optional).

    Raises:
        ValidationError: bad input (weak password, malformed PIN, unknown role)
        ConflictError: email already used, PIN already used in the establishment
    """
    payload = dict(payload or {})
    password = _validate_password(payload.pop("password", None))
    pin = payload.pop("pin_code", None)
    pin = _validate_pin(pin) if pin not in (None, "") else None

    patch = validate_payload(model=Utilisateur, payload=payload, policy=EMPLOYEE_POLICY, partial=False)
    _check_rules(patch)
    require_tenant(client, patch["etablissement_id"])

    if email_exists(client, patch["email"]):
        raise ConflictError("An employee with this email already exists")
    if pin is not None and pin_exists(client, patch["etablissement_id"], pin):
        raise ConflictError("This PIN is already used in this establishment")

    user = Utilisateur(**patch, password=_hash_secret(password), pin_code=_hash_secret(pin) if pin else None)
    with _email_is_unique():
        return insert(client, user, ENTITY)


def update_employee(client: DbClient, employee_id: str, payload: dict) -> dict:
    """Profile/role update. Credentials go through set_employee_password / set_employee_pin."""
    payload = dict(payload or {})
    if "password" in payload or "pin_code" in payload:
        raise ValidationError("Use set_employee_password / set_employee_pin to change credentials")
    if "etablissement_id" in payload:
        raise ValidationError("Field not allowed: etablissement_id")

    patch = validate_payload(model=Utilisateur, payload=payload, policy=EMPLOYEE_POLICY, partial=True)
    _check_rules(patch)
    if "email" in patch and email_exists(client, patch["email"], exclude_id=employee_id):
        raise ConflictError("An employee with this email already exists")
    with _email_is_unique():
        return update_by_id(client, Utilisateur, employee_id, patch, ENTITY)


def set_employee_password(client: DbClient, employee_id: str, password: str) -> dict:
    hashed = _hash_secret(_validate_password(password))
    return update_by_id(client, Utilisateur, employee_id, {"password": hashed}, ENTITY)


def set_employee_pin(client: DbClient, employee_id: str, pin: str) -> dict:
    pin = _validate_pin(pin)
    with storage_errors(client):
        user = get_scoped(client, Utilisateur, employee_id)
        if user is None:
            raise RecordNotFoundError(f"utilisateurs {employee_id} not found")
        etablissement_id = user.etablissement_id
    if pin_exists(client, etablissement_id, pin, exclude_id=employee_id):
        raise ConflictError("This PIN is already used in this establishment")
    return update_by_id(client, Utilisateur, employee_id, {"pin_code": _hash_secret(pin)}, ENTITY)


def clear_employee_pin(client: DbClient, employee_id: str) -> dict:
    return update_by_id(client, Utilisateur, employee_id, {"pin_code": None}, ENTITY)


def deactivate_employee(client: DbClient, employee_id: str) -> None:
    soft_delete_by_id(client, Utilisateur, employee_id)


# =============================================================================
# AUTHENTICATION
# =============================================================================

def authenticate_employee(client: DbClient, email: str, password: str) -> dict | None:
    """
    Email + password login.

    Returns the redacted employee if the credentials match an active
    account, None otherwise. Login happens before any tenant context exists,
    so this is normally called with the service client.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    """
    try:
        email = _normalize_email(email)
    except ValidationError:
        return None
    with storage_errors(client):
        user = scoped_query(client, Utilisateur).filter(
            Utilisateur.email == email,
            Utilisateur.actif.is_(True),
        ).first()
    if user is None or not _check_secret(password or "", user.password):
        return None
    return to_record(user, ENTITY)


def authenticate_employee_pin(client: DbClient, etablissement_id: str, pin: str) -> dict | None:
    """Fast till login: the PIN identifies an active employee of the establishment."""
    pin = str(pin or "").strip()
    if not pin:
        return None
    with storage_errors(client):
        for user in _employees_with_pin(client, etablissement_id):
            if user.actif and _check_secret(pin, user.pin_code):
                return to_record(user, ENTITY)
    return None


def _route_matches(path: str, route: str) -> bool:
    route = route.rstrip("/") or "/"
    return path == route or path.startswith(route + "/")


def can_access_route(employee: dict, path: str) -> bool:
    """
    Route authorization for an employee record.

    - SUPER_ADMIN: everything
    - ADMIN: everything except SUPER_ADMIN-only areas
    - otherwise a non-empty allowed_routes list replaces the role defaults
    Matching is exact path or path prefix followed by "/".
    """
    if not employee or not employee.get("actif", True):
        return False
    path = (path or "/").split("?", 1)[0].rstrip("/") or "/"
    role = employee.get("role")

    if role == "SUPER_ADMIN":
        return True
    if any(_route_matches(path, r) for r in SUPER_ADMIN_ONLY_ROUTES):
        return False
    if role in ADMIN_ROLES:
        return True

    routes = employee.get("allowed_routes") or ROLE_DEFAULT_ROUTES.get(role, ())
    return any(_route_matches(path, r) for r in routes)
