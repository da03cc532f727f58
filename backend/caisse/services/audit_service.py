"""
Audit Log Service

WHY: Every sensitive action (logins, cash session open/close, cancellations,
discounts, data changes) leaves a trace attributable to an employee.

Snapshots (ancienne_valeur / nouvelle_valeur) are stored as JSON text.
Decimals and datetimes are serialized as strings.
"""

from __future__ import annotations

import json

from sqlalchemy import func

from ..client import DbClient, storage_errors
from ..enums import ACTIONS_AUDIT
from ..models import AuditLog
from ..validation import policy, require_choice, validate_payload
from .query_helpers import apply_date_range, fetch_all, fetch_paginated, insert
from .tenant_service import require_tenant, scoped_query

__all__ = [
    "list_audit_logs",
    "list_audit_logs_paginated",
    "create_audit_log",
    "log_action",
    "log_login",
    "log_logout",
    "log_cash_session_opened",
    "log_cash_session_closed",
    "log_sale_cancelled",
    "log_discount_applied",
    "count_audit_logs_by_action",
]

ENTITY = "audit_logs"

AUDIT_POLICY = policy(
    {
        "etablissement_id", "utilisateur_id", "action", "entite", "entite_id",
        "description", "ancienne_valeur", "nouvelle_valeur", "adresse_ip",
    },
    required={"etablissement_id", "action", "entite"},
)


def _snapshot(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False, sort_keys=True)


def _filtered(client: DbClient, etablissement_id: str, action=None, entite=None, utilisateur_id=None,
              date_debut=None, date_fin=None):
    query = scoped_query(client, AuditLog, require_tenant(client, etablissement_id))
    if action is not None:
        query = query.filter(AuditLog.action == action)
    if entite is not None:
        query = query.filter(AuditLog.entite == entite)
    if utilisateur_id is not None:
        query = query.filter(AuditLog.utilisateur_id == utilisateur_id)
    query = apply_date_range(query, AuditLog.created_at, date_debut, date_fin)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def list_audit_logs(client: DbClient, etablissement_id: str, *, limit: int | None = None, **filters) -> list[dict]:
    """Newest first. Filters: action, entite, utilisateur_id, date_debut, date_fin."""
    query = _filtered(client, etablissement_id, **filters)
    if limit:
        query = query.limit(limit)
    return fetch_all(client, query, ENTITY)


def list_audit_logs_paginated(
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


def create_audit_log(client: DbClient, payload: dict) -> dict:
    payload = dict(payload or {})
    for key in ("ancienne_valeur", "nouvelle_valeur"):
        if key in payload:
            payload[key] = _snapshot(payload[key])
    patch = validate_payload(model=AuditLog, payload=payload, policy=AUDIT_POLICY, partial=False)
    require_choice("action", patch["action"], ACTIONS_AUDIT)
    require_tenant(client, patch["etablissement_id"])
    return insert(client, AuditLog(**patch), ENTITY)


def log_action(
    client: DbClient,
    *,
    etablissement_id: str,
    action: str,
    entite: str,
    entite_id: str | None = None,
    utilisateur_id: str | None = None,
    description: str | None = None,
    ancienne_valeur=None,
    nouvelle_valeur=None,
    adresse_ip: str | None = None,
) -> dict:
    """Record an action; the acting employee defaults to the client's user."""
    if utilisateur_id is None and client.context is not None:
        utilisateur_id = client.context.user_id
    return create_audit_log(client, {
        "etablissement_id": etablissement_id,
        "utilisateur_id": utilisateur_id,
        "action": action,
        "entite": entite,
        "entite_id": entite_id,
        "description": description,
        "ancienne_valeur": ancienne_valeur,
        "nouvelle_valeur": nouvelle_valeur,
        "adresse_ip": adresse_ip,
    })


def log_login(client: DbClient, *, etablissement_id: str, utilisateur_id: str, adresse_ip: str | None = None,
              methode: str = "password") -> dict:
    return log_action(
        client, etablissement_id=etablissement_id, utilisateur_id=utilisateur_id,
        action="LOGIN", entite="utilisateurs", entite_id=utilisateur_id,
        description=f"Connexion ({methode})", adresse_ip=adresse_ip,
    )


def log_logout(client: DbClient, *, etablissement_id: str, utilisateur_id: str, adresse_ip: str | None = None) -> dict:
    return log_action(
        client, etablissement_id=etablissement_id, utilisateur_id=utilisateur_id,
        action="LOGOUT", entite="utilisateurs", entite_id=utilisateur_id,
        description="Deconnexion", adresse_ip=adresse_ip,
    )


def log_cash_session_opened(client: DbClient, *, etablissement_id: str, session_caisse: dict) -> dict:
    return log_action(
        client, etablissement_id=etablissement_id, utilisateur_id=session_caisse.get("utilisateur_id"),
        action="CAISSE_OUVERTURE", entite="sessions_caisse", entite_id=session_caisse.get("id"),
        description=f"Ouverture de caisse, fond {session_caisse.get('fond_caisse')}",
        nouvelle_valeur=session_caisse,
    )


def log_cash_session_closed(client: DbClient, *, etablissement_id: str, session_caisse: dict) -> dict:
    return log_action(
        client, etablissement_id=etablissement_id, utilisateur_id=session_caisse.get("utilisateur_id"),
        action="CAISSE_CLOTURE", entite="sessions_caisse", entite_id=session_caisse.get("id"),
        description=f"Cloture de caisse, ecart {session_caisse.get('ecart')}",
        nouvelle_valeur=session_caisse,
    )


def log_sale_cancelled(client: DbClient, *, etablissement_id: str, vente: dict, motif: str | None = None) -> dict:
    return log_action(
        client, etablissement_id=etablissement_id,
        action="ANNULATION_VENTE", entite="ventes", entite_id=vente.get("id"),
        description=f"Annulation du ticket {vente.get('numero_ticket')}" + (f": {motif}" if motif else ""),
        ancienne_valeur={"statut": vente.get("statut"), "total_final": vente.get("total_final")},
        nouvelle_valeur={"statut": "ANNULEE"},
    )


def log_discount_applied(client: DbClient, *, etablissement_id: str, vente: dict, type_remise: str,
                         valeur_remise, montant_remise) -> dict:
    return log_action(
        client, etablissement_id=etablissement_id,
        action="REMISE_APPLIQUEE", entite="ventes", entite_id=vente.get("id"),
        description=f"Remise sur le ticket {vente.get('numero_ticket')}",
        nouvelle_valeur={
            "type_remise": type_remise,
            "valeur_remise": valeur_remise,
            "montant_remise": montant_remise,
        },
    )


def count_audit_logs_by_action(client: DbClient, etablissement_id: str, *, date_debut=None, date_fin=None) -> dict[str, int]:
    query = scoped_query(client, AuditLog, require_tenant(client, etablissement_id))
    query = apply_date_range(query, AuditLog.created_at, date_debut, date_fin)
    query = query.with_entities(AuditLog.action, func.count(AuditLog.id)).group_by(AuditLog.action)
    with storage_errors(client):
        found = dict(query.all())
    return {a: found.get(a, 0) for a in ACTIONS_AUDIT}
