"""
Printer Service

MULTI-TENANT: Printers are scoped to establishments; names are unique
within one. Printers hold no history, so delete_printer removes the row
(categories routed to it fall back to no printer).
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import TYPES_CONNEXION, TYPES_IMPRIMANTE
from ..models import Categorie, Imprimante
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, policy, require_choice, validate_payload
from .query_helpers import apply_patch, fetch_all, fetch_by_id, hard_delete_by_id, insert, to_record, update_by_id
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_printers",
    "get_printer_by_id",
    "get_ticket_printer",
    "list_kitchen_printers",
    "list_bar_printers",
    "create_printer",
    "update_printer",
    "delete_printer",
    "toggle_printer",
    "printer_name_exists",
    "count_printers_by_type",
]

ENTITY = "imprimantes"

PRINTER_POLICY = policy(
    {
        "etablissement_id", "nom", "type", "type_connexion", "adresse_ip", "port",
        "path_usb", "largeur_papier", "actif",
    },
    required={"etablissement_id", "nom", "type", "type_connexion"},
    non_negative={"port", "largeur_papier"},
)


def _check_rules(patch: dict) -> None:
    if patch.get("type") is not None:
        require_choice("type", patch["type"], TYPES_IMPRIMANTE)
    if patch.get("type_connexion") is not None:
        require_choice("type_connexion", patch["type_connexion"], TYPES_CONNEXION)
    if patch.get("type_connexion") == "RESEAU" and "adresse_ip" in patch and not patch.get("adresse_ip"):
        raise ValidationError("adresse_ip is required for network printers")


def _by_type(client: DbClient, etablissement_id: str, type_: str, actif=True):
    query = scoped_query(client, Imprimante, require_tenant(client, etablissement_id)).filter(
        Imprimante.type == type_
    )
    if actif is not None:
        query = query.filter(Imprimante.actif.is_(bool(actif)))
    return query.order_by(Imprimante.nom.asc(), Imprimante.id.asc())


def list_printers(client: DbClient, etablissement_id: str, *, actif=None, type: str | None = None) -> list[dict]:
    query = scoped_query(client, Imprimante, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Imprimante.actif.is_(bool(actif)))
    if type is not None:
        query = query.filter(Imprimante.type == type)
    return fetch_all(client, query.order_by(Imprimante.nom.asc(), Imprimante.id.asc()), ENTITY)


def get_printer_by_id(client: DbClient, printer_id: str) -> dict | None:
    return fetch_by_id(client, Imprimante, printer_id, ENTITY)


def get_ticket_printer(client: DbClient, etablissement_id: str) -> dict | None:
    """First active receipt printer, by name."""
    with storage_errors(client):
        return to_record(_by_type(client, etablissement_id, "TICKET").first(), ENTITY)


def list_kitchen_printers(client: DbClient, etablissement_id: str) -> list[dict]:
    return fetch_all(client, _by_type(client, etablissement_id, "CUISINE"), ENTITY)


def list_bar_printers(client: DbClient, etablissement_id: str) -> list[dict]:
    return fetch_all(client, _by_type(client, etablissement_id, "BAR"), ENTITY)


def printer_name_exists(client: DbClient, etablissement_id: str, nom: str, *, exclude_id: str | None = None) -> bool:
    query = scoped_query(client, Imprimante, require_tenant(client, etablissement_id)).filter(
        func.lower(Imprimante.nom) == str(nom or "").strip().lower()
    )
    if exclude_id:
        query = query.filter(Imprimante.id != exclude_id)
    with storage_errors(client):
        return query.first() is not None


def create_printer(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Imprimante, payload=payload, policy=PRINTER_POLICY, partial=False)
    _check_rules(patch)
    etablissement_id = require_tenant(client, patch["etablissement_id"])
    if printer_name_exists(client, etablissement_id, patch["nom"]):
        raise ConflictError("A printer with this name already exists")
    return insert(client, Imprimante(**patch), ENTITY)


def update_printer(client: DbClient, printer_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Imprimante, payload=payload, policy=PRINTER_POLICY, partial=True)
    _check_rules(patch)
    if "nom" in patch:
        with storage_errors(client):
            printer = get_scoped(client, Imprimante, printer_id)
        if printer is None:
            raise RecordNotFoundError(f"imprimantes {printer_id} not found")
        if printer_name_exists(client, printer.etablissement_id, patch["nom"], exclude_id=printer_id):
            raise ConflictError("A printer with this name already exists")
    return update_by_id(client, Imprimante, printer_id, patch, ENTITY)


def delete_printer(client: DbClient, printer_id: str) -> bool:
    with storage_errors(client):
        printer = get_scoped(client, Imprimante, printer_id)
        if printer is None:
            return False
        client.session.execute(
            update(Categorie)
            .where(Categorie.imprimante_id == printer.id)
            .values(imprimante_id=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        client.session.expire_all()
    return hard_delete_by_id(client, Imprimante, printer_id)


def toggle_printer(client: DbClient, printer_id: str) -> dict:
    """Flip actif."""
    with storage_errors(client):
        printer = get_scoped(client, Imprimante, printer_id)
        if printer is None:
            raise RecordNotFoundError(f"imprimantes {printer_id} not found")
        apply_patch(printer, {"actif": not printer.actif})
        client.session.commit()
        return to_record(printer, ENTITY)


def count_printers_by_type(client: DbClient, etablissement_id: str) -> dict[str, int]:
    query = (
        scoped_query(client, Imprimante, require_tenant(client, etablissement_id))
        .with_entities(Imprimante.type, func.count(Imprimante.id))
        .group_by(Imprimante.type)
    )
    with storage_errors(client):
        found = dict(query.all())
    return {t: found.get(t, 0) for t in TYPES_IMPRIMANTE}
