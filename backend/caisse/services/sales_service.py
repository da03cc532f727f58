"""
Sales Service: tickets, lines, line add-ons and payments

MULTI-TENANT: Sales are scoped to establishments; lines and payments are
scoped through their sale.

LIFECYCLE:
- create_sale -> EN_COURS, with a ticket number from next_ticket_number
  unless the caller brings one
- mark_sale_paid -> PAYEE
- cancel_sale -> ANNULEE (idempotent)
Lines can only be added or removed while the sale is EN_COURS.

PRICES: Unit prices are tax-inclusive. A line's montant_tva is the VAT
contained in its total at the line's rate.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import MODES_PAIEMENT, STATUTS_PREPARATION, STATUTS_VENTE, TYPES_REMISE, TYPES_VENTE
from ..models import Client, LigneVente, LigneVenteSupplement, Paiement, Produit, SessionCaisse, Table, Utilisateur, Vente
from ..utils import parse_decimal
from ..validation import ConflictError, ValidationError, policy, require_choice, validate_payload
from .establishment_service import next_ticket_number
from .query_helpers import (
    apply_date_range, apply_patch, fetch_all, fetch_paginated, insert, to_record, update_by_id,
)
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_sales",
    "list_sales_paginated",
    "get_sale_by_id",
    "get_sale_by_ticket_number",
    "get_open_sale_for_table",
    "create_sale",
    "update_sale",
    "cancel_sale",
    "mark_sale_paid",
    "create_sale_line",
    "create_sale_lines",
    "set_sale_line_status",
    "delete_sale_line",
    "create_sale_line_supplement",
    "create_payment",
    "create_payments",
    "list_sale_payments",
    "count_sales",
    "total_sales",
]

ENTITY = "ventes"

SALE_FIELDS = {
    "type", "utilisateur_id", "client_id", "table_id", "session_caisse_id",
    "sous_total", "total_tva", "total_remise", "total_final",
    "type_remise", "valeur_remise", "adresse_livraison", "frais_livraison", "notes",
}
SALE_POLICY = policy(
    SALE_FIELDS | {"etablissement_id", "numero_ticket"},
    required={"etablissement_id", "utilisateur_id", "type"},
    non_negative={"sous_total", "total_tva", "total_remise", "total_final", "valeur_remise", "frais_livraison"},
)
LINE_POLICY = policy(
    {
        "vente_id", "produit_id", "quantite", "prix_unitaire", "taux_tva",
        "sous_total", "montant_tva", "total", "statut_preparation", "notes",
    },
    required={"vente_id", "produit_id", "quantite", "prix_unitaire"},
    non_negative={"quantite", "prix_unitaire", "taux_tva", "sous_total", "montant_tva", "total"},
)
LINE_SUPPLEMENT_POLICY = policy(
    {"ligne_vente_id", "supplement_produit_id", "nom", "prix"},
    required={"ligne_vente_id", "nom"},
    non_negative={"prix"},
)
PAYMENT_POLICY = policy(
    {"vente_id", "mode_paiement", "montant", "montant_recu", "monnaie_rendue", "reference"},
    required={"vente_id", "mode_paiement", "montant"},
    non_negative={"montant", "montant_recu", "monnaie_rendue"},
)


# =============================================================================
# SERIALIZATION
# =============================================================================

def _line_record(client: DbClient, line: LigneVente) -> dict:
    # Sessions keep loaded objects across commits; rows added by foreign key
    # must be reloaded into the collections
    client.session.expire(line, ["supplements"])
    record = to_record(line, "lignes_vente")
    record["supplements"] = [to_record(s, "lignes_vente_supplements") for s in line.supplements]
    return record


def _sale_detail(client: DbClient, sale: Vente) -> dict:
    client.session.expire(sale, ["lignes", "paiements"])
    record = to_record(sale, ENTITY)
    record["lignes"] = [_line_record(client, line) for line in sale.lignes]
    record["paiements"] = [to_record(p, "paiements") for p in sale.paiements]
    return record


# =============================================================================
# READS
# =============================================================================

def _filtered(
    client: DbClient,
    etablissement_id: str,
    statut=None,
    type=None,
    utilisateur_id=None,
    client_id=None,
    table_id=None,
    session_caisse_id=None,
    date_debut=None,
    date_fin=None,
):
    query = scoped_query(client, Vente, require_tenant(client, etablissement_id))
    if statut is not None:
        query = query.filter(Vente.statut == statut)
    if type is not None:
        query = query.filter(Vente.type == type)
    if utilisateur_id is not None:
        query = query.filter(Vente.utilisateur_id == utilisateur_id)
    if client_id is not None:
        query = query.filter(Vente.client_id == client_id)
    if table_id is not None:
        query = query.filter(Vente.table_id == table_id)
    if session_caisse_id is not None:
        query = query.filter(Vente.session_caisse_id == session_caisse_id)
    query = apply_date_range(query, Vente.created_at, date_debut, date_fin)
    return query.order_by(Vente.created_at.desc(), Vente.numero_ticket.desc())


def list_sales(client: DbClient, etablissement_id: str, **filters) -> list[dict]:
    """
    Newest first. Filters: statut, type, utilisateur_id, client_id, table_id,
    session_caisse_id, date_debut, date_fin.
    """
    return fetch_all(client, _filtered(client, etablissement_id, **filters), ENTITY)


def list_sales_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
    **filters,
) -> dict:
    return fetch_paginated(
        client, _filtered(client, etablissement_id, **filters),
        entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def get_sale_by_id(client: DbClient, sale_id: str) -> dict | None:
    """Sale with its lines (and their add-ons) and payments."""
    with storage_errors(client):
        sale = get_scoped(client, Vente, sale_id)
        return _sale_detail(client, sale) if sale is not None else None


def get_sale_by_ticket_number(client: DbClient, etablissement_id: str, numero_ticket: str) -> dict | None:
    query = scoped_query(client, Vente, require_tenant(client, etablissement_id)).filter(
        Vente.numero_ticket == str(numero_ticket).strip()
    )
    with storage_errors(client):
        sale = query.first()
        return _sale_detail(client, sale) if sale is not None else None


def get_open_sale_for_table(client: DbClient, etablissement_id: str, table_id: str) -> dict | None:
    query = scoped_query(client, Vente, require_tenant(client, etablissement_id)).filter(
        Vente.table_id == table_id,
        Vente.statut == "EN_COURS",
    )
    with storage_errors(client):
        sale = query.order_by(Vente.created_at.desc()).first()
        return _sale_detail(client, sale) if sale is not None else None


def count_sales(client: DbClient, etablissement_id: str, *, statut=None, date_debut=None, date_fin=None) -> int:
    query = scoped_query(client, Vente, require_tenant(client, etablissement_id))
    if statut is not None:
        query = query.filter(Vente.statut == statut)
    query = apply_date_range(query, Vente.created_at, date_debut, date_fin)
    with storage_errors(client):
        return query.with_entities(func.count(Vente.id)).scalar() or 0


def total_sales(client: DbClient, etablissement_id: str, *, date_debut=None, date_fin=None):
    """Sum of total_final over paid sales."""
    query = scoped_query(client, Vente, require_tenant(client, etablissement_id)).filter(Vente.statut == "PAYEE")
    query = apply_date_range(query, Vente.created_at, date_debut, date_fin)
    with storage_errors(client):
        total = query.with_entities(func.coalesce(func.sum(Vente.total_final), 0)).scalar()
    return parse_decimal(total)


# =============================================================================
# SALE WRITES
# =============================================================================

def _check_sale_rules(client: DbClient, etablissement_id: str, patch: dict) -> None:
    if patch.get("type") is not None:
        require_choice("type", patch["type"], TYPES_VENTE)
    if patch.get("type_remise") is not None:
        require_choice("type_remise", patch["type_remise"], TYPES_REMISE)

    references = (
        ("utilisateur_id", Utilisateur),
        ("client_id", Client),
        ("table_id", Table),
        ("session_caisse_id", SessionCaisse),
    )
    for field, model in references:
        if patch.get(field):
            found = scoped_query(client, model, etablissement_id).filter(model.id == patch[field]).first()
            if found is None:
                raise ValidationError(f"{field} does not exist in this establishment")


def create_sale(client: DbClient, payload: dict) -> dict:
    """
    Open a sale ticket.

    numero_ticket is allocated with next_ticket_number unless provided.
    TABLE sales require table_id.
    """
    patch = validate_payload(model=Vente, payload=payload, policy=SALE_POLICY, partial=False)
    etablissement_id = require_tenant(client, patch["etablissement_id"])
    _check_sale_rules(client, etablissement_id, patch)
    if patch["type"] == "TABLE" and not patch.get("table_id"):
        raise ValidationError("table_id is required for TABLE sales")

    if not patch.get("numero_ticket"):
        patch["numero_ticket"] = next_ticket_number(client, etablissement_id)

    sale = Vente(**patch, statut="EN_COURS")
    insert(client, sale, ENTITY)
    return get_sale_by_id(client, sale.id)


def update_sale(client: DbClient, sale_id: str, payload: dict) -> dict:
    """Totals, discount, delivery info, links. Status changes use cancel_sale / mark_sale_paid."""
    payload = dict(payload or {})
    for forbidden in ("etablissement_id", "numero_ticket", "statut"):
        if forbidden in payload:
            raise ValidationError(f"Field not allowed: {forbidden}")
    patch = validate_payload(model=Vente, payload=payload, policy=SALE_POLICY, partial=True)
    with storage_errors(client):
        sale = get_scoped(client, Vente, sale_id)
    if sale is None:
        raise RecordNotFoundError(f"ventes {sale_id} not found")
    _check_sale_rules(client, sale.etablissement_id, patch)
    update_by_id(client, Vente, sale_id, patch, ENTITY)
    return get_sale_by_id(client, sale_id)


def _set_status(client: DbClient, sale_id: str, statut: str, allowed_from: tuple[str, ...], extra: dict | None = None) -> dict:
    require_choice("statut", statut, STATUTS_VENTE)
    with storage_errors(client):
        sale = get_scoped(client, Vente, sale_id)
        if sale is None:
            raise RecordNotFoundError(f"ventes {sale_id} not found")
        if sale.statut != statut:
            if sale.statut not in allowed_from:
                raise ConflictError(f"Cannot move a {sale.statut} sale to {statut}")
            apply_patch(sale, {"statut": statut, **(extra or {})})
            client.session.commit()
        return _sale_detail(client, sale)


def cancel_sale(client: DbClient, sale_id: str, *, motif: str | None = None) -> dict:
    """EN_COURS or PAYEE -> ANNULEE. The reason is appended to notes."""
    extra = {}
    if motif:
        with storage_errors(client):
            sale = get_scoped(client, Vente, sale_id)
        if sale is not None:
            extra["notes"] = f"{sale.notes}\n" if sale.notes else ""
            extra["notes"] += f"Annulation: {motif.strip()}"
    return _set_status(client, sale_id, "ANNULEE", ("EN_COURS", "PAYEE"), extra)


def mark_sale_paid(client: DbClient, sale_id: str) -> dict:
    """EN_COURS -> PAYEE. Paying a cancelled sale is a ConflictError."""
    return _set_status(client, sale_id, "PAYEE", ("EN_COURS",))


# =============================================================================
# LINES
# =============================================================================

def _open_sale(client: DbClient, sale_id: str) -> Vente:
    sale = get_scoped(client, Vente, sale_id)
    if sale is None:
        raise ValidationError("vente_id does not exist in this establishment")
    if sale.statut != "EN_COURS":
        raise ConflictError(f"Sale {sale.numero_ticket} is {sale.statut}; lines can no longer change")
    return sale


def _complete_line_totals(patch: dict) -> dict:
    quantite = patch["quantite"]
    if quantite <= 0:
        raise ValidationError("quantite must be > 0")
    taux = patch.get("taux_tva") or Decimal(0)
    if patch.get("sous_total") is None:
        patch["sous_total"] = (quantite * patch["prix_unitaire"]).quantize(Decimal("0.01"))
    if patch.get("total") is None:
        patch["total"] = patch["sous_total"]
    if patch.get("montant_tva") is None:
        # VAT contained in a tax-inclusive total
        patch["montant_tva"] = (patch["total"] - patch["total"] / (1 + taux / 100)).quantize(Decimal("0.01"))
    patch["taux_tva"] = taux
    if patch.get("statut_preparation") is not None:
        require_choice("statut_preparation", patch["statut_preparation"], STATUTS_PREPARATION)
    return patch


def _prepare_line(client: DbClient, payload: dict) -> LigneVente:
    patch = validate_payload(model=LigneVente, payload=payload, policy=LINE_POLICY, partial=False)
    patch = _complete_line_totals(patch)
    sale = _open_sale(client, patch["vente_id"])
    product = scoped_query(client, Produit, sale.etablissement_id).filter(Produit.id == patch["produit_id"]).first()
    if product is None:
        raise ValidationError("produit_id does not exist in this establishment")
    return LigneVente(**patch)


def _add_all(client: DbClient, rows: list) -> None:
    # One transaction; flushing row by row keeps created_at in call order
    for row in rows:
        client.session.add(row)
        client.session.flush()
    client.session.commit()


def create_sale_line(client: DbClient, payload: dict) -> dict:
    with storage_errors(client):
        line = _prepare_line(client, payload)
        _add_all(client, [line])
        return _line_record(client, line)


def create_sale_lines(client: DbClient, sale_id: str, lines: list[dict]) -> list[dict]:
    """All or nothing: every line is checked before any is written."""
    with storage_errors(client):
        rows = [_prepare_line(client, {**line, "vente_id": sale_id}) for line in lines or []]
        _add_all(client, rows)
        return [_line_record(client, line) for line in rows]


def set_sale_line_status(client: DbClient, line_id: str, statut_preparation: str) -> dict:
    """Kitchen/bar progress: EN_ATTENTE -> EN_PREPARATION -> PRETE -> SERVIE."""
    require_choice("statut_preparation", statut_preparation, STATUTS_PREPARATION)
    with storage_errors(client):
        line = get_scoped(client, LigneVente, line_id)
        if line is None:
            raise RecordNotFoundError(f"lignes_vente {line_id} not found")
        apply_patch(line, {"statut_preparation": statut_preparation})
        client.session.commit()
        return _line_record(client, line)


def delete_sale_line(client: DbClient, line_id: str) -> bool:
    with storage_errors(client):
        line = get_scoped(client, LigneVente, line_id)
        if line is None:
            return False
        _open_sale(client, line.vente_id)
        client.session.delete(line)
        client.session.commit()
    return True


def create_sale_line_supplement(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(
        model=LigneVenteSupplement, payload=payload, policy=LINE_SUPPLEMENT_POLICY, partial=False,
    )
    with storage_errors(client):
        line = get_scoped(client, LigneVente, patch["ligne_vente_id"])
        if line is None:
            raise ValidationError("ligne_vente_id does not exist in this establishment")
        _open_sale(client, line.vente_id)
    return insert(client, LigneVenteSupplement(**patch), "lignes_vente_supplements")


# =============================================================================
# PAYMENTS
# =============================================================================

def _prepare_payment(client: DbClient, payload: dict) -> Paiement:
    patch = validate_payload(model=Paiement, payload=payload, policy=PAYMENT_POLICY, partial=False)
    require_choice("mode_paiement", patch["mode_paiement"], MODES_PAIEMENT)
    if patch["montant"] <= 0:
        raise ValidationError("montant must be > 0")

    if patch["mode_paiement"] == "ESPECES":
        recu = patch.get("montant_recu")
        if recu is None:
            recu = patch["montant"]
        if recu < patch["montant"]:
            raise ValidationError("montant_recu must cover montant for cash payments")
        patch["montant_recu"] = recu
        patch["monnaie_rendue"] = recu - patch["montant"]

    sale = get_scoped(client, Vente, patch["vente_id"])
    if sale is None:
        raise ValidationError("vente_id does not exist in this establishment")
    if sale.statut == "ANNULEE":
        raise ConflictError("Cannot pay a cancelled sale")
    return Paiement(**patch)


def create_payment(client: DbClient, payload: dict) -> dict:
    """
    Record a payment against a sale.

    ESPECES: montant_recu defaults to montant and must cover it;
    monnaie_rendue = montant_recu - montant.
    """
    with storage_errors(client):
        payment = _prepare_payment(client, payload)
        _add_all(client, [payment])
    return to_record(payment, "paiements")


def create_payments(client: DbClient, sale_id: str, payments: list[dict]) -> list[dict]:
    """Split payment: one row per mode, written together or not at all."""
    with storage_errors(client):
        rows = [_prepare_payment(client, {**p, "vente_id": sale_id}) for p in payments or []]
        _add_all(client, rows)
    return [to_record(p, "paiements") for p in rows]


def list_sale_payments(client: DbClient, sale_id: str) -> list[dict]:
    query = scoped_query(client, Paiement).filter(Paiement.vente_id == sale_id)
    return fetch_all(client, query.order_by(Paiement.created_at.asc(), Paiement.id.asc()), "paiements")
