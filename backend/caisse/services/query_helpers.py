"""
Shared query plumbing for the entity services.

Every entity service follows the same contract: list (tenant-scoped, ordered,
unpaginated), list_*_paginated (same filters + exact count + window),
get_*_by_id (None when absent or out of scope), create, update (stamps
updated_at), soft delete (actif=False, idempotent). These helpers keep that
contract identical across modules.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy import or_

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..time_utils import utcnow
from ..utils import (
    PRICE_FIELDS, pagination_params, paginated_result, sanitize_search_term, serialize_prices,
)
from .tenant_service import get_scoped


def to_record(obj, entity: str | None = None) -> dict | None:
    """Model -> plain dict with numeric fields normalized."""
    if obj is None:
        return None
    return serialize_prices(obj.to_dict(), PRICE_FIELDS.get(entity or obj.__tablename__, ()))


def to_records(objs, entity: str | None = None) -> list[dict]:
    return [to_record(o, entity) for o in objs]


def apply_search(query, columns, term: str | None):
    """Case-insensitive substring match across `columns` (OR)."""
    cleaned = sanitize_search_term(term)
    if not cleaned:
        return query
    pattern = f"%{cleaned}%"
    return query.filter(or_(*[c.ilike(pattern) for c in columns]))


def apply_date_range(query, column, date_debut=None, date_fin=None):
    if date_debut is not None:
        query = query.filter(column >= date_debut)
    if date_fin is not None:
        query = query.filter(column <= date_fin)
    return query


def fetch_all(client: DbClient, query, entity: str | None = None) -> list[dict]:
    with storage_errors(client):
        return to_records(query.all(), entity)


def fetch_paginated(
    client: DbClient,
    query,
    *,
    entity: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
    serializer: Callable | None = None,
) -> dict:
    """
    Exact count + bounded window over an already filtered and ordered query.

    total_pages = ceil(count / page_size)
    """
    start, size, page, page_size = pagination_params(page, page_size, offset, limit)
    with storage_errors(client):
        count = query.order_by(None).count()
        rows = query.offset(start).limit(size).all()
    serialize = serializer or (lambda o: to_record(o, entity))
    return paginated_result([serialize(r) for r in rows], count, page, page_size)


def fetch_by_id(client: DbClient, model, record_id: str | None, entity: str | None = None) -> dict | None:
    with storage_errors(client):
        return to_record(get_scoped(client, model, record_id), entity)


def insert(client: DbClient, obj, entity: str | None = None) -> dict:
    with storage_errors(client):
        client.session.add(obj)
        client.session.commit()
    return to_record(obj, entity)


def apply_patch(obj, patch: dict) -> None:
    for k, v in patch.items():
        setattr(obj, k, v)
    obj.updated_at = utcnow()


def update_by_id(client: DbClient, model, record_id: str, patch: dict, entity: str | None = None) -> dict:
    """Partial update that always stamps updated_at. Raises RecordNotFoundError."""
    with storage_errors(client):
        obj = get_scoped(client, model, record_id)
        if obj is None:
            raise RecordNotFoundError(f"{model.__tablename__} {record_id} not found")
        apply_patch(obj, patch)
        client.session.commit()
    return to_record(obj, entity)


def soft_delete_by_id(client: DbClient, model, record_id: str, flag: str = "actif") -> None:
    """
    Deactivate instead of deleting so historical sales and movements keep
    their references. Idempotent; a missing id is a no-op.
    """
    with storage_errors(client):
        obj = get_scoped(client, model, record_id)
        if obj is None:
            return
        setattr(obj, flag, False)
        obj.updated_at = utcnow()
        client.session.commit()


def hard_delete_by_id(client: DbClient, model, record_id: str) -> bool:
    """Physical delete, only for entities with no dependent ledger."""
    with storage_errors(client):
        obj = get_scoped(client, model, record_id)
        if obj is None:
            return False
        client.session.delete(obj)
        client.session.commit()
    return True
