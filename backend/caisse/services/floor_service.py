"""
Floor Plan Service: Zones and Tables

MULTI-TENANT: Zones and tables are scoped to establishments. Table numbers
are unique within an establishment (ConflictError otherwise).

Zones and tables carry no sales history of their own (sales keep table_id
as a plain reference), so delete_zone / delete_table remove rows.
Deleting a zone detaches its tables instead of deleting them.
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import FORMES_TABLE, STATUTS_TABLE
from ..models import Table, Zone
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, policy, require_choice, validate_payload
from .query_helpers import (
    fetch_all, fetch_by_id, hard_delete_by_id, insert, to_record, update_by_id,
)
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    # zones
    "list_zones",
    "get_zone_by_id",
    "create_zone",
    "update_zone",
    "delete_zone",
    "count_zones",
    "zone_name_exists",
    "reorder_zones",
    "list_zones_with_table_count",
    "get_last_zone",
    # tables
    "list_tables",
    "get_table_by_id",
    "get_table_by_number",
    "create_table",
    "update_table",
    "set_table_status",
    "move_table",
    "move_tables",
    "delete_table",
    "count_tables",
    "count_tables_by_status",
    "list_free_tables",
    "table_number_exists",
]

ZONE_POLICY = policy(
    {
        "etablissement_id", "nom", "description", "couleur", "ordre", "active",
        "position_x", "position_y", "largeur", "hauteur", "frais_livraison", "delai_estime",
    },
    required={"etablissement_id", "nom"},
    non_negative={"ordre", "largeur", "hauteur", "frais_livraison", "delai_estime"},
)
TABLE_POLICY = policy(
    {
        "etablissement_id", "zone_id", "numero", "capacite", "forme", "statut", "active",
        "position_x", "position_y", "largeur", "hauteur",
    },
    required={"etablissement_id", "numero"},
    non_negative={"capacite", "largeur", "hauteur"},
)


# =============================================================================
# ZONES
# =============================================================================

def _zones(client: DbClient, etablissement_id: str, active=None):
    query = scoped_query(client, Zone, require_tenant(client, etablissement_id))
    if active is not None:
        query = query.filter(Zone.active.is_(bool(active)))
    return query.order_by(Zone.ordre.asc(), Zone.nom.asc(), Zone.id.asc())


def list_zones(client: DbClient, etablissement_id: str, *, active=None) -> list[dict]:
    return fetch_all(client, _zones(client, etablissement_id, active), "zones")


def get_zone_by_id(client: DbClient, zone_id: str) -> dict | None:
    return fetch_by_id(client, Zone, zone_id, "zones")


def zone_name_exists(client: DbClient, etablissement_id: str, nom: str, *, exclude_id: str | None = None) -> bool:
    query = scoped_query(client, Zone, require_tenant(client, etablissement_id)).filter(
        func.lower(Zone.nom) == str(nom or "").strip().lower()
    )
    if exclude_id:
        query = query.filter(Zone.id != exclude_id)
    with storage_errors(client):
        return query.first() is not None


def create_zone(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Zone, payload=payload, policy=ZONE_POLICY, partial=False)
    etablissement_id = require_tenant(client, patch["etablissement_id"])
    if zone_name_exists(client, etablissement_id, patch["nom"]):
        raise ConflictError("A zone with this name already exists")
    if "ordre" not in patch:
        last = get_last_zone(client, etablissement_id)
        patch["ordre"] = (last["ordre"] + 1) if last else 0
    return insert(client, Zone(**patch), "zones")


def update_zone(client: DbClient, zone_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Zone, payload=payload, policy=ZONE_POLICY, partial=True)
    if "nom" in patch:
        with storage_errors(client):
            zone = get_scoped(client, Zone, zone_id)
        if zone is None:
            raise RecordNotFoundError(f"zones {zone_id} not found")
        if zone_name_exists(client, zone.etablissement_id, patch["nom"], exclude_id=zone_id):
            raise ConflictError("A zone with this name already exists")
    return update_by_id(client, Zone, zone_id, patch, "zones")


def delete_zone(client: DbClient, zone_id: str) -> bool:
    with storage_errors(client):
        zone = get_scoped(client, Zone, zone_id)
        if zone is None:
            return False
        client.session.execute(
            update(Table)
            .where(Table.zone_id == zone.id)
            .values(zone_id=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        client.session.expire_all()
    return hard_delete_by_id(client, Zone, zone_id)


def count_zones(client: DbClient, etablissement_id: str, *, active=None) -> int:
    query = scoped_query(client, Zone, require_tenant(client, etablissement_id))
    if active is not None:
        query = query.filter(Zone.active.is_(bool(active)))
    with storage_errors(client):
        return query.with_entities(func.count(Zone.id)).scalar() or 0


def reorder_zones(client: DbClient, etablissement_id: str, ordered_ids: list[str]) -> list[dict]:
    query = scoped_query(client, Zone, require_tenant(client, etablissement_id))
    positions = {zid: i for i, zid in enumerate(ordered_ids or [])}
    now = utcnow()
    with storage_errors(client):
        for zone in query.filter(Zone.id.in_(list(positions))).all():
            zone.ordre = positions[zone.id]
            zone.updated_at = now
        client.session.commit()
    return list_zones(client, etablissement_id)


def list_zones_with_table_count(client: DbClient, etablissement_id: str) -> list[dict]:
    """Zones in display order, each with `nombre_tables` (active tables only)."""
    etablissement_id = require_tenant(client, etablissement_id)
    counts = (
        scoped_query(client, Table, etablissement_id)
        .filter(Table.active.is_(True), Table.zone_id.isnot(None))
        .with_entities(Table.zone_id, func.count(Table.id))
        .group_by(Table.zone_id)
    )
    with storage_errors(client):
        per_zone = dict(counts.all())
        zones = _zones(client, etablissement_id).all()
    out = []
    for zone in zones:
        record = to_record(zone, "zones")
        record["nombre_tables"] = per_zone.get(zone.id, 0)
        out.append(record)
    return out


def get_last_zone(client: DbClient, etablissement_id: str) -> dict | None:
    """Zone with the highest `ordre` (used to append new zones at the end)."""
    query = scoped_query(client, Zone, require_tenant(client, etablissement_id))
    with storage_errors(client):
        return to_record(query.order_by(Zone.ordre.desc(), Zone.created_at.desc()).first(), "zones")


# =============================================================================
# TABLES
# =============================================================================

def _check_table_rules(client: DbClient, etablissement_id: str, patch: dict, table_id: str | None = None) -> None:
    if patch.get("forme") is not None:
        require_choice("forme", patch["forme"], FORMES_TABLE)
    if patch.get("statut") is not None:
        require_choice("statut", patch["statut"], STATUTS_TABLE)
    if patch.get("zone_id"):
        zone = scoped_query(client, Zone, etablissement_id).filter(Zone.id == patch["zone_id"]).first()
        if zone is None:
            raise ValidationError("zone_id does not exist in this establishment")
    if "numero" in patch and table_number_exists(client, etablissement_id, patch["numero"], exclude_id=table_id):
        raise ConflictError(f"Table {patch['numero']} already exists")


def list_tables(
    client: DbClient,
    etablissement_id: str,
    *,
    active=None,
    zone_id: str | None = None,
    statut: str | None = None,
) -> list[dict]:
    query = scoped_query(client, Table, require_tenant(client, etablissement_id))
    if active is not None:
        query = query.filter(Table.active.is_(bool(active)))
    if zone_id is not None:
        query = query.filter(Table.zone_id == zone_id)
    if statut is not None:
        query = query.filter(Table.statut == statut)
    return fetch_all(client, query.order_by(Table.numero.asc(), Table.id.asc()), "tables")


def get_table_by_id(client: DbClient, table_id: str) -> dict | None:
    return fetch_by_id(client, Table, table_id, "tables")


def get_table_by_number(client: DbClient, etablissement_id: str, numero: str) -> dict | None:
    query = scoped_query(client, Table, require_tenant(client, etablissement_id)).filter(
        Table.numero == str(numero).strip()
    )
    with storage_errors(client):
        return to_record(query.first(), "tables")


def table_number_exists(client: DbClient, etablissement_id: str, numero, *, exclude_id: str | None = None) -> bool:
    query = scoped_query(client, Table, require_tenant(client, etablissement_id)).filter(
        Table.numero == str(numero).strip()
    )
    if exclude_id:
        query = query.filter(Table.id != exclude_id)
    with storage_errors(client):
        return query.first() is not None


def create_table(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Table, payload=payload, policy=TABLE_POLICY, partial=False)
    etablissement_id = require_tenant(client, patch["etablissement_id"])
    _check_table_rules(client, etablissement_id, patch)
    return insert(client, Table(**patch), "tables")


def update_table(client: DbClient, table_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Table, payload=payload, policy=TABLE_POLICY, partial=True)
    with storage_errors(client):
        table = get_scoped(client, Table, table_id)
    if table is None:
        raise RecordNotFoundError(f"tables {table_id} not found")
    _check_table_rules(client, table.etablissement_id, patch, table_id=table_id)
    return update_by_id(client, Table, table_id, patch, "tables")


def set_table_status(client: DbClient, table_id: str, statut: str) -> dict:
    require_choice("statut", statut, STATUTS_TABLE)
    return update_by_id(client, Table, table_id, {"statut": statut}, "tables")


def move_table(client: DbClient, table_id: str, *, position_x: int, position_y: int) -> dict:
    patch = validate_payload(
        model=Table,
        payload={"position_x": position_x, "position_y": position_y},
        policy=TABLE_POLICY,
        partial=True,
    )
    return update_by_id(client, Table, table_id, patch, "tables")


def move_tables(client: DbClient, etablissement_id: str, positions: list[dict]) -> int:
    """
    Batch floor-plan save. positions: [{"id", "position_x", "position_y"}, ...]
    Returns the number of tables moved. Ids outside the establishment are skipped.
    """
    by_id = {}
    for p in positions or []:
        patch = validate_payload(
            model=Table,
            payload={"position_x": p.get("position_x"), "position_y": p.get("position_y")},
            policy=TABLE_POLICY,
            partial=True,
        )
        by_id[p.get("id")] = patch

    query = scoped_query(client, Table, require_tenant(client, etablissement_id))
    now = utcnow()
    moved = 0
    with storage_errors(client):
        for table in query.filter(Table.id.in_([k for k in by_id if k])).all():
            for k, v in by_id[table.id].items():
                setattr(table, k, v)
            table.updated_at = now
            moved += 1
        client.session.commit()
    return moved


def delete_table(client: DbClient, table_id: str) -> bool:
    return hard_delete_by_id(client, Table, table_id)


def count_tables(client: DbClient, etablissement_id: str, *, active=None) -> int:
    query = scoped_query(client, Table, require_tenant(client, etablissement_id))
    if active is not None:
        query = query.filter(Table.active.is_(bool(active)))
    with storage_errors(client):
        return query.with_entities(func.count(Table.id)).scalar() or 0


def count_tables_by_status(client: DbClient, etablissement_id: str) -> dict[str, int]:
    """Active tables per status; every status is present (0 when empty)."""
    query = (
        scoped_query(client, Table, require_tenant(client, etablissement_id))
        .filter(Table.active.is_(True))
        .with_entities(Table.statut, func.count(Table.id))
        .group_by(Table.statut)
    )
    with storage_errors(client):
        found = dict(query.all())
    return {s: found.get(s, 0) for s in STATUTS_TABLE}


def list_free_tables(client: DbClient, etablissement_id: str) -> list[dict]:
    return list_tables(client, etablissement_id, active=True, statut="LIBRE")
