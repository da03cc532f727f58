# backend/caisse/services/product_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- list_products requires etablissement_id
- create_product validates the category belongs to the same establishment
- barcodes are unique within an establishment (ConflictError otherwise)

STOCK: adjust_product_stock runs as a single server-side UPDATE
(stock_actuel = stock_actuel + delta). Ledger entries for the change are
recorded by stock_service.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import and_, func, update

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import DISPONIBILITE_PAR_TYPE, TAUX_TVA, TYPES_VENTE
from ..models import Categorie, Produit, SupplementProduit
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, policy, require_choice, validate_payload
from .query_helpers import (
    apply_search, fetch_all, fetch_by_id, fetch_paginated, insert, soft_delete_by_id,
    to_record, update_by_id,
)
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "list_products",
    "list_products_paginated",
    "get_product_by_id",
    "get_product_by_barcode",
    "create_product",
    "update_product",
    "deactivate_product",
    "adjust_product_stock",
    "list_product_supplements",
    "create_product_supplement",
    "delete_product_supplement",
    "count_products",
    "list_low_stock_products",
]

ENTITY = "produits"

PRODUCT_MUTABLE_FIELDS = {
    "categorie_id", "nom", "description", "code_barre", "image", "unite",
    "prix_vente", "prix_achat", "taux_tva", "gerer_stock",
    "stock_actuel", "stock_min", "stock_max",
    "disponible_direct", "disponible_table", "disponible_livraison", "disponible_emporter",
    "actif",
}
PRODUCT_POLICY = policy(
    PRODUCT_MUTABLE_FIELDS | {"etablissement_id"},
    required={"etablissement_id", "categorie_id", "nom", "prix_vente"},
    non_negative={"prix_vente", "prix_achat", "stock_min", "stock_max"},
)
SUPPLEMENT_POLICY = policy({"produit_id", "nom", "prix"}, required={"produit_id", "nom"}, non_negative={"prix"})

SORTABLE_COLUMNS = {
    "nom": Produit.nom,
    "prix_vente": Produit.prix_vente,
    "created_at": Produit.created_at,
    "stock_actuel": Produit.stock_actuel,
}

STOCK_OPERATIONS = ("set", "add", "subtract")


def _check_rules(client: DbClient, etablissement_id: str, patch: dict, product_id: str | None = None) -> None:
    if patch.get("taux_tva") is not None:
        require_choice("taux_tva", patch["taux_tva"], TAUX_TVA)

    if patch.get("categorie_id"):
        category = scoped_query(client, Categorie, etablissement_id).filter(
            Categorie.id == patch["categorie_id"]
        ).first()
        if category is None:
            raise ValidationError("categorie_id does not exist in this establishment")

    if patch.get("code_barre"):
        query = scoped_query(client, Produit, etablissement_id).filter(Produit.code_barre == patch["code_barre"])
        if product_id:
            query = query.filter(Produit.id != product_id)
        if query.first() is not None:
            raise ConflictError("A product with this barcode already exists")
    elif "code_barre" in patch:
        patch["code_barre"] = None


def _filtered(client: DbClient, etablissement_id: str, actif=None, categorie_id=None, type_vente=None, search=None):
    query = scoped_query(client, Produit, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Produit.actif.is_(bool(actif)))
    if categorie_id is not None:
        query = query.filter(Produit.categorie_id == categorie_id)
    if type_vente is not None:
        require_choice("type_vente", type_vente, TYPES_VENTE)
        query = query.filter(getattr(Produit, DISPONIBILITE_PAR_TYPE[type_vente]).is_(True))
    return apply_search(query, [Produit.nom, Produit.code_barre, Produit.description], search)


def list_products(
    client: DbClient,
    etablissement_id: str,
    *,
    actif=None,
    categorie_id: str | None = None,
    type_vente: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """
    Tenant-scoped product listing, name order.

    type_vente restricts to products available on that channel
    (disponible_direct / _table / _livraison / _emporter).
    """
    query = _filtered(client, etablissement_id, actif, categorie_id, type_vente, search)
    return fetch_all(client, query.order_by(Produit.nom.asc(), Produit.id.asc()), ENTITY)


def list_products_paginated(
    client: DbClient,
    etablissement_id: str,
    *,
    actif=None,
    categorie_id: str | None = None,
    type_vente: str | None = None,
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

    query = _filtered(client, etablissement_id, actif, categorie_id, type_vente, search)
    return fetch_paginated(
        client, query.order_by(ordering, Produit.id.asc()),
        entity=ENTITY, page=page, page_size=page_size, offset=offset, limit=limit,
    )


def get_product_by_id(client: DbClient, product_id: str) -> dict | None:
    return fetch_by_id(client, Produit, product_id, ENTITY)


def get_product_by_barcode(client: DbClient, etablissement_id: str, code_barre: str) -> dict | None:
    if not code_barre:
        return None
    query = scoped_query(client, Produit, require_tenant(client, etablissement_id))
    with storage_errors(client):
        return to_record(query.filter(Produit.code_barre == code_barre.strip()).first(), ENTITY)


def create_product(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=Produit, payload=payload, policy=PRODUCT_POLICY, partial=False)
    etablissement_id = require_tenant(client, patch["etablissement_id"])
    _check_rules(client, etablissement_id, patch)
    return insert(client, Produit(**patch), ENTITY)


def update_product(client: DbClient, product_id: str, payload: dict) -> dict:
    if "etablissement_id" in (payload or {}):
        raise ValidationError("Field not allowed: etablissement_id")
    patch = validate_payload(model=Produit, payload=payload, policy=PRODUCT_POLICY, partial=True)
    with storage_errors(client):
        product = get_scoped(client, Produit, product_id)
        if product is None:
            raise RecordNotFoundError(f"produits {product_id} not found")
        _check_rules(client, product.etablissement_id, patch, product_id=product_id)
    return update_by_id(client, Produit, product_id, patch, ENTITY)


def deactivate_product(client: DbClient, product_id: str) -> None:
    soft_delete_by_id(client, Produit, product_id)


def adjust_product_stock(client: DbClient, product_id: str, quantite, operation: str = "set") -> dict:
    """
    Change stock_actuel in one server-side UPDATE.

    operation:
    - "set": stock_actuel = quantite
    - "add": stock_actuel = stock_actuel + quantite
    - "subtract": stock_actuel = stock_actuel - quantite

    A NULL stock counts as 0. The result may go negative on subtract;
    refusing oversell is the caller's decision.
    """
    require_choice("operation", operation, STOCK_OPERATIONS)
    try:
        amount = Decimal(str(quantite))
    except ArithmeticError:
        raise ValidationError("quantite must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("quantite must be >= 0")

    current = func.coalesce(Produit.stock_actuel, 0)
    new_value = {"set": amount, "add": current + amount, "subtract": current - amount}[operation]

    with storage_errors(client):
        product = get_scoped(client, Produit, product_id)
        if product is None:
            raise RecordNotFoundError(f"produits {product_id} not found")
        client.session.execute(
            update(Produit)
            .where(Produit.id == product.id)
            .values(stock_actuel=new_value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        client.session.commit()
        client.session.refresh(product)
        return to_record(product, ENTITY)


def list_product_supplements(client: DbClient, product_id: str) -> list[dict]:
    query = scoped_query(client, SupplementProduit).filter(SupplementProduit.produit_id == product_id)
    return fetch_all(client, query.order_by(SupplementProduit.nom.asc()), "supplements_produits")


def create_product_supplement(client: DbClient, payload: dict) -> dict:
    patch = validate_payload(model=SupplementProduit, payload=payload, policy=SUPPLEMENT_POLICY, partial=False)
    with storage_errors(client):
        if get_scoped(client, Produit, patch["produit_id"]) is None:
            raise ValidationError("produit_id does not exist in this establishment")
    return insert(client, SupplementProduit(**patch), "supplements_produits")


def delete_product_supplement(client: DbClient, supplement_id: str) -> bool:
    with storage_errors(client):
        supplement = scoped_query(client, SupplementProduit).filter(SupplementProduit.id == supplement_id).first()
        if supplement is None:
            return False
        client.session.delete(supplement)
        client.session.commit()
    return True


def count_products(client: DbClient, etablissement_id: str, *, actif=None) -> int:
    query = scoped_query(client, Produit, require_tenant(client, etablissement_id))
    if actif is not None:
        query = query.filter(Produit.actif.is_(bool(actif)))
    with storage_errors(client):
        return query.with_entities(func.count(Produit.id)).scalar() or 0


def list_low_stock_products(client: DbClient, etablissement_id: str) -> list[dict]:
    """Active, stock-managed products at or below their minimum level."""
    query = scoped_query(client, Produit, require_tenant(client, etablissement_id)).filter(
        Produit.actif.is_(True),
        Produit.gerer_stock.is_(True),
        and_(Produit.stock_min.isnot(None), func.coalesce(Produit.stock_actuel, 0) <= Produit.stock_min),
    )
    return fetch_all(client, query.order_by(Produit.stock_actuel.asc(), Produit.nom.asc()), ENTITY)
