"""
Category Service

MULTI-TENANT: Categories are scoped to establishments.
Display order comes from `ordre`. Categories have no dependent ledger, so
delete_category removes the row; deactivate_category is the soft variant
for categories that still have products.
"""

from __future__ import annotations

from sqlalchemy import func

from ..client import DbClient, storage_errors
from ..models import Categorie
from ..time_utils import utcnow
from ..validation import ValidationError, policy, validate_payload
from .query_helpers import (
    fetch_all, fetch_by_id, fetch_paginated, hard_delete_by_id, insert, soft_delete_by_id, update_by_id,
)
from .tenant_service import require_tenant, scoped_query

__all__ = [
    "list_categories",
    "list_categories_paginated",
    "get_category_by_id",
    "create_category",
    "update_category",
    "delete_category",
    "deactivate_category",
    "reorder_categories",
    "count_categories",
]

ENTITY = "categories"

CATEGORY_POLICY = policy(
    {"etablissement_id", "nom", "couleur", "icone", "ordre", "actif", "imprimante_id"},
    required={"etablissement_id", "nom"},
    non_negative={"ordre"},
)


def _filtered(client: DbClient, etablissement_id: str, actif=None):
    query = scoped_query(client, Categorie, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Categorie.actif.is_(bool(actif)))
    return query.order_by(Categorie.ordre.asc(), Categorie.nom.asc(), Categorie.id.asc())


def list_categories(client: DbClient, etablissement_id: str, *, actif=None) -> list[dict]:
    return fetch_all(client, _filtered(client, etablissement_id, actif), ENTITY)


def list_categories_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    actif=None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    return fetch_paginated(
        client, _filtered(client, etablissement_id, actif),
        entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def get_category_by_id(client: DbClient, category_id: str) -> dict | None:
    return fetch_by_id(client, Categorie, category_id, ENTITY)


def create_category(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Categorie, payload=payload, policy=CATEGORY_POLICY, partial=False)
    require_tenant(client, patch["etablissement_id"])
    return insert(client, Categorie(**patch), ENTITY)


def update_category(client: DbClient, category_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Categorie, payload=payload, policy=CATEGORY_POLICY, partial=True)
    return update_by_id(client, Categorie, category_id, patch, ENTITY)


def delete_category(client: DbClient, category_id: str) -> bool:
    return hard_delete_by_id(client, Categorie, category_id)


def deactivate_category(client: DbClient, category_id: str) -> None:
    soft_delete_by_id(client, Categorie, category_id)


def reorder_categories(client: DbClient, etablissement_id: str, ordered_ids: list[str]) -> list[dict]:
    """Set `ordre` to each id's position in `ordered_ids`. Unknown ids are ignored."""
    query = scoped_query(client, Categorie, require_tenant(client, etablissement_id))
    positions = {cid: i for i, cid in enumerate(ordered_ids or [])}
    now = utcnow()
    with storage_errors(client):
        for cat in query.filter(Categorie.id.in_(list(positions))).all():
            cat.ordre = positions[cat.id]
            cat.updated_at = now
        client.session.commit()
    return list_categories(client, etablissement_id)


def count_categories(client: DbClient, etablissement_id: str, *, actif=None) -> int:
    query = scoped_query(client, Categorie, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Categorie.actif.is_(bool(actif)))
    with storage_errors(client):
        return query.with_entities(func.count(Categorie.id)).scalar() or 0
