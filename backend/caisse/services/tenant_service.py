"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across entity services.
Every query is scoped to an establishment, and cross-tenant access must be
explicitly denied.

SECURITY INVARIANTS:
1. Every list operation receives an explicit etablissement_id (required filter)
2. A request-scoped client may only name its own establishment
   (SUPER_ADMIN and the privileged service client may name any)
3. Single-row reads and writes are filtered by the client's establishment,
   so a foreign id behaves exactly like a missing one
4. Cross-tenant attempts are logged

Child tables carry no etablissement_id of their own; they are scoped through
their parent (produit, vente, utilisateur).

USAGE:
    from caisse.services.tenant_service import require_tenant, scoped_query

    etablissement_id = require_tenant(client, etablissement_id)
    query = scoped_query(client, Produit, etablissement_id)
"""

from flask import current_app

from ..client import DbClient
from ..models import (
    Etablissement, Session, LigneVente, LigneVenteSupplement, MouvementStock,
    Paiement, Produit, SupplementProduit, Utilisateur, Vente,
)
from ..validation import ValidationError


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def _parent_joins():
    # model -> [(parent, onclause), ...] walked until a table with etablissement_id
    return {
        SupplementProduit: [(Produit, SupplementProduit.produit_id == Produit.id)],
        MouvementStock: [(Produit, MouvementStock.produit_id == Produit.id)],
        LigneVente: [(Vente, LigneVente.vente_id == Vente.id)],
        Paiement: [(Vente, Paiement.vente_id == Vente.id)],
        LigneVenteSupplement: [
            (LigneVente, LigneVenteSupplement.ligne_vente_id == LigneVente.id),
            (Vente, LigneVente.vente_id == Vente.id),
        ],
        Session: [(Utilisateur, Session.utilisateur_id == Utilisateur.id)],
    }


def _can_cross_tenants(client: DbClient) -> bool:
    return client.privileged or (client.context is not None and client.context.is_super_admin)


def require_tenant(client: DbClient, etablissement_id: str | None) -> str:
    """
    Validate the establishment a call is scoped to.

    SECURITY: Core tenant isolation check. Call this before any operation
    that uses an etablissement_id from caller input.

    Raises:
        ValidationError: etablissement_id missing (contract violation)
        TenantAccessError: request-scoped client naming another establishment
    """
    if not etablissement_id:
        raise ValidationError("etablissement_id is required")

    if _can_cross_tenants(client):
        return etablissement_id

    if client.context is None:
        raise TenantAccessError("Tenant context not established")

    if client.context.etablissement_id != etablissement_id:
        # CRITICAL: Cross-tenant access attempt
        current_app.logger.warning(
            "Cross-tenant access denied: user %s (etablissement %s) requested etablissement %s",
            client.context.user_id,
            client.context.etablissement_id,
            etablissement_id,
        )
        raise TenantAccessError("Etablissement not found")  # Don't reveal it exists

    return etablissement_id


def effective_tenant(client: DbClient, etablissement_id: str | None = None) -> str | None:
    """
    Establishment a query must be filtered by, or None for an unscoped
    privileged read (service client or SUPER_ADMIN without an explicit id).
    """
    if etablissement_id:
        return require_tenant(client, etablissement_id)
    if _can_cross_tenants(client):
        return None
    if client.context is None:
        raise TenantAccessError("Tenant context not established")
    return client.context.etablissement_id


def tenant_filter(query, model, etablissement_id: str | None):
    """Add the joins and the etablissement_id predicate for `model` to a query."""
    if etablissement_id is None:
        return query
    if model is Etablissement:
        return query.filter(Etablissement.id == etablissement_id)

    owner = model
    for parent, onclause in _parent_joins().get(model, []):
        query = query.join(parent, onclause)
        owner = parent
    return query.filter(owner.etablissement_id == etablissement_id)


def scoped_query(client: DbClient, model, etablissement_id: str | None = None):
    """
    Tenant-scoped query for `model`.

    With no explicit etablissement_id, the client's own establishment is used.
    """
    tenant = effective_tenant(client, etablissement_id)
    return tenant_filter(client.session.query(model), model, tenant)


def get_scoped(client: DbClient, model, record_id: str | None):
    """Single row by id within the caller's scope, or None."""
    if not record_id:
        return None
    return scoped_query(client, model).filter(model.id == record_id).first()
