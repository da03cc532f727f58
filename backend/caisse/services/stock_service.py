"""
Stock Movement Service (append-only ledger)

WHY: Every stock change is recorded with a before/after snapshot so the
history can be audited. Rows are never modified after insert (the mapper
refuses UPDATE and DELETE on MouvementStock).

LEDGER EQUATION (enforced on every insert):
- ENTREE:                quantite_apres = quantite_avant + quantite
- SORTIE, PERTE:         quantite_apres = quantite_avant - quantite
- AJUSTEMENT, INVENTAIRE: quantite_apres = target,
                          quantite = |target - quantite_avant|

quantite is never negative; the direction comes from the type. A SORTIE may
leave quantite_apres below zero: refusing oversell is the caller's decision.

MULTI-TENANT: Movements are scoped through produits.etablissement_id.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..client import DbClient, storage_errors
from ..enums import TYPES_MOUVEMENT
from ..models import MouvementStock, Produit
from ..utils import parse_decimal
from ..validation import ValidationError, policy, require_choice, validate_payload
from .query_helpers import apply_date_range, fetch_all, fetch_paginated, insert
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_stock_movements",
    "list_stock_movements_paginated",
    "create_stock_movement",
    "record_stock_entry",
    "record_stock_exit",
    "record_stock_adjustment",
    "record_stock_loss",
    "record_inventory_count",
    "total_entries",
    "total_exits",
]

ENTITY = "mouvements_stock"

MOVEMENT_POLICY = policy(
    {
        "produit_id", "type", "quantite", "quantite_avant", "quantite_apres",
        "prix_unitaire", "motif", "reference", "utilisateur_id",
    },
    required={"produit_id", "type", "quantite_avant"},
    non_negative={"quantite", "prix_unitaire"},
)

INCREASING_TYPES = ("ENTREE",)
DECREASING_TYPES = ("SORTIE", "PERTE")
TARGET_TYPES = ("AJUSTEMENT", "INVENTAIRE")


def compute_quantite_apres(type_: str, quantite: Decimal, quantite_avant: Decimal) -> Decimal:
    """Stock after an ENTREE/SORTIE/PERTE movement."""
    if type_ in INCREASING_TYPES:
        return quantite_avant + quantite
    if type_ in DECREASING_TYPES:
        return quantite_avant - quantite
    raise ValidationError(f"{type_} movements set the stock directly; quantite_apres is required")


def _complete_ledger_pair(patch: dict) -> dict:
    """Fill in and check quantite / quantite_apres for the movement type."""
    type_ = require_choice("type", patch["type"], TYPES_MOUVEMENT)
    avant = patch["quantite_avant"]

    if type_ in TARGET_TYPES:
        apres = patch.get("quantite_apres")
        if apres is None:
            raise ValidationError(f"quantite_apres (target stock) is required for {type_}")
        expected_qty = abs(apres - avant)
        if patch.get("quantite") is not None and patch["quantite"] != expected_qty:
            raise ValidationError("quantite must equal |quantite_apres - quantite_avant|")
        patch["quantite"] = expected_qty
        return patch

    if patch.get("quantite") is None:
        raise ValidationError("quantite is required")
    expected = compute_quantite_apres(type_, patch["quantite"], avant)
    if patch.get("quantite_apres") is not None and patch["quantite_apres"] != expected:
        raise ValidationError(
            f"quantite_apres must be {parse_decimal(expected)} for a {type_} of {parse_decimal(patch['quantite'])}"
        )
    patch["quantite_apres"] = expected
    return patch


def _filtered(client: DbClient, etablissement_id: str, produit_id=None, type=None, date_debut=None, date_fin=None):
    query = scoped_query(client, MouvementStock, require_tenant(client, etablissement_id))
    if produit_id is not None:
        query = query.filter(MouvementStock.produit_id == produit_id)
    if type is not None:
        query = query.filter(MouvementStock.type == type)
    query = apply_date_range(query, MouvementStock.created_at, date_debut, date_fin)
    return query.order_by(MouvementStock.created_at.desc(), MouvementStock.id.desc())


def list_stock_movements(
    client: DbClient,
    etablissement_id: str,
    *,
    produit_id: str | None = None,
    type: str | None = None,
    date_debut=None,
    date_fin=None,
) -> list[dict]:
    query = _filtered(client, etablissement_id, produit_id, type, date_debut, date_fin)
    return fetch_all(client, query, ENTITY)


def list_stock_movements_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    produit_id: str | None = None,
    type: str | None = None,
    date_debut=None,
    date_fin=None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    query = _filtered(client, etablissement_id, produit_id, type, date_debut, date_fin)
    return fetch_paginated(
        client, query, entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def create_stock_movement(client: DbClient, payload: dict) -> dict:
    """
    Append a movement after checking the ledger equation.

    Raises:
        ValidationError: negative quantity, unknown type, inconsistent pair,
                         or a product outside the caller's establishment
    """
    patch = validate_payload(model=MouvementStock, payload=payload, policy=MOVEMENT_POLICY, partial=False)
    patch = _complete_ledger_pair(patch)
    with storage_errors(client):
        if get_scoped(client, Produit, patch["produit_id"]) is None:
            raise ValidationError("produit_id does not exist in this establishment")
    return insert(client, MouvementStock(**patch), ENTITY)


def record_stock_entry(client: DbClient, *, produit_id: str, quantite, quantite_avant, **extra) -> dict:
    """Goods received: after = before + quantite."""
    return create_stock_movement(client, {
        "produit_id": produit_id, "type": "ENTREE",
        "quantite": quantite, "quantite_avant": quantite_avant, **extra,
    })


def record_stock_exit(client: DbClient, *, produit_id: str, quantite, quantite_avant, **extra) -> dict:
    """Goods sold or consumed: after = before - quantite."""
    return create_stock_movement(client, {
        "produit_id": produit_id, "type": "SORTIE",
        "quantite": quantite, "quantite_avant": quantite_avant, **extra,
    })


def record_stock_loss(client: DbClient, *, produit_id: str, quantite, quantite_avant, **extra) -> dict:
    """Breakage, expiry, theft: after = before - quantite."""
    return create_stock_movement(client, {
        "produit_id": produit_id, "type": "PERTE",
        "quantite": quantite, "quantite_avant": quantite_avant, **extra,
    })


def record_stock_adjustment(client: DbClient, *, produit_id: str, nouvelle_quantite, quantite_avant, **extra) -> dict:
    """Manual correction to a known level: after = nouvelle_quantite."""
    return create_stock_movement(client, {
        "produit_id": produit_id, "type": "AJUSTEMENT",
        "quantite_avant": quantite_avant, "quantite_apres": nouvelle_quantite, **extra,
    })


def record_inventory_count(client: DbClient, *, produit_id: str, quantite_comptee, quantite_avant, **extra) -> dict:
    """Physical count: after = counted quantity."""
    return create_stock_movement(client, {
        "produit_id": produit_id, "type": "INVENTAIRE",
        "quantite_avant": quantite_avant, "quantite_apres": quantite_comptee, **extra,
    })


def _sum_quantities(client: DbClient, etablissement_id: str, types, produit_id=None, date_debut=None, date_fin=None):
    query = scoped_query(client, MouvementStock, require_tenant(client, etablissement_id)).filter(
        MouvementStock.type.in_(types)
    )
    if produit_id is not None:
        query = query.filter(MouvementStock.produit_id == produit_id)
    query = apply_date_range(query, MouvementStock.created_at, date_debut, date_fin)
    with storage_errors(client):
        total = query.with_entities(func.coalesce(func.sum(MouvementStock.quantite), 0)).scalar()
    return parse_decimal(total)


def total_entries(client: DbClient, etablissement_id: str, *, produit_id=None, date_debut=None, date_fin=None):
    return _sum_quantities(client, etablissement_id, INCREASING_TYPES, produit_id, date_debut, date_fin)


def total_exits(client: DbClient, etablissement_id: str, *, produit_id=None, date_debut=None, date_fin=None):
    """SORTIE + PERTE."""
    return _sum_quantities(client, etablissement_id, DECREASING_TYPES, produit_id, date_debut, date_fin)
