"""
Customer (Client) Service

MULTI-TENANT: Customers are scoped to establishments.

BALANCES: Loyalty points, prepaid balance and credit balance change through
server-side increments (`col = col + delta`) in a single UPDATE. Two tills
crediting the same customer at once both land; nothing is read first.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, update

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..models import Client
from ..time_utils import utcnow
from ..validation import ValidationError, policy, validate_payload
from .query_helpers import (
    apply_search, fetch_all, fetch_by_id, fetch_paginated, insert, soft_delete_by_id,
    to_record, update_by_id,
)
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_clients",
    "list_clients_paginated",
    "get_client_by_id",
    "get_client_by_phone",
    "create_client",
    "update_client",
    "deactivate_client",
    "add_loyalty_points",
    "adjust_prepaid_balance",
    "adjust_credit_balance",
    "count_clients",
]

ENTITY = "clients"

CLIENT_POLICY = policy(
    {
        "etablissement_id", "nom", "prenom", "telephone", "email", "adresse",
        "credit_autorise", "limit_credit", "actif",
    },
    required={"etablissement_id", "nom"},
    non_negative={"limit_credit"},
)

SORTABLE_COLUMNS = {
    "nom": Client.nom,
    "created_at": Client.created_at,
    "points_fidelite": Client.points_fidelite,
}


def _filtered(client: DbClient, etablissement_id: str, actif=None, search=None):
    query = scoped_query(client, Client, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Client.actif.is_(bool(actif)))
    return apply_search(query, [Client.nom, Client.prenom, Client.telephone, Client.email], search)


def list_clients(client: DbClient, etablissement_id: str, *, actif=None, search: str | None = None) -> list[dict]:
    query = _filtered(client, etablissement_id, actif, search)
    return fetch_all(client, query.order_by(Client.nom.asc(), Client.prenom.asc(), Client.id.asc()), ENTITY)


def list_clients_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    actif=None,
    search: str | None = None,
    sort_by: str = "nom",
    sort_order: str = "asc",
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORTABLE_COLUMNS)}")
    column = SORTABLE_COLUMNS[sort_by]
    ordering = column.desc() if sort_order == "desc" else column.asc()
    query = _filtered(client, etablissement_id, actif, search).order_by(ordering, Client.id.asc())
    return fetch_paginated(
        client, query, entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def get_client_by_id(client: DbClient, client_id: str) -> dict | None:
    return fetch_by_id(client, Client, client_id, ENTITY)


def get_client_by_phone(client: DbClient, etablissement_id: str, telephone: str) -> dict | None:
    if not telephone:
        return None
    query = scoped_query(client, Client, require_tenant(client, etablissement_id)).filter(
        Client.telephone == telephone.strip()
    )
    with storage_errors(client):
        return to_record(query.order_by(Client.created_at.asc()).first(), ENTITY)


def create_client(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
    require_tenant(client, patch["etablissement_id"])
    return insert(client, Client(**patch), ENTITY)


def update_client(client: DbClient, client_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
    return update_by_id(client, Client, client_id, patch, ENTITY)


def deactivate_client(client: DbClient, client_id: str) -> None:
    soft_delete_by_id(client, Client, client_id)


def _increment(client: DbClient, client_id: str, column: str, delta) -> dict:
    with storage_errors(client):
        customer = get_scoped(client, Client, client_id)
        if customer is None:
            raise RecordNotFoundError(f"clients {client_id} not found")
        col = getattr(Client, column)
        client.session.execute(
            update(Client)
            .where(Client.id == customer.id)
            .values({column: col + delta, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )
        client.session.commit()
        client.session.refresh(customer)
        return to_record(customer, ENTITY)


def _as_decimal(field: str, value) -> Decimal:
    try:
        d = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return d


def add_loyalty_points(client: DbClient, client_id: str, points: int) -> dict:
    """Add (or, with a negative value, redeem) loyalty points."""
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError("points must be an integer")
    return _increment(client, client_id, "points_fidelite", points)


def adjust_prepaid_balance(client: DbClient, client_id: str, delta) -> dict:
    """Top-up (positive) or spend (negative) the prepaid balance."""
    return _increment(client, client_id, "solde_prepaye", _as_decimal("delta", delta))


def adjust_credit_balance(client: DbClient, client_id: str, delta) -> dict:
    """Increase (sale on account) or settle (negative) the customer's debt."""
    return _increment(client, client_id, "solde_credit", _as_decimal("delta", delta))


def count_clients(client: DbClient, etablissement_id: str, *, actif=None) -> int:
    query = scoped_query(client, Client, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Client.actif.is_(bool(actif)))
    with storage_errors(client):
        return query.with_entities(func.count(Client.id)).scalar() or 0
