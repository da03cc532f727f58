"""
Cash Session (Till Shift) Service

WHY: Track each employee's working period at the till and reconcile the
cash drawer at close.

DESIGN PRINCIPLES:
- One open session per employee at a time (date_cloture IS NULL)
- Closing stamps date_cloture; a closed session can't be closed again
- Closing totals come from the sales attached to the session
- Variance tracking: ecart = especes_comptees - (fond_caisse + total_especes)
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import MOBILE_MONEY_MODES
from ..models import Paiement, SessionCaisse, Utilisateur, Vente
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, policy, validate_payload
from .query_helpers import apply_date_range, fetch_all, fetch_by_id, insert, to_record, apply_patch
from .tenant_service import get_scoped, require_tenant, scoped_query

__all__ = [
    "get_open_cash_session",
    "get_cash_session_by_id",
    "open_cash_session",
    "close_cash_session",
    "list_cash_sessions",
]

ENTITY = "sessions_caisse"

OPEN_POLICY = policy(
    {"etablissement_id", "utilisateur_id", "fond_caisse"},
    required={"etablissement_id", "utilisateur_id"},
    non_negative={"fond_caisse"},
)
CLOSE_POLICY = policy(
    {
        "total_ventes", "total_especes", "total_cartes", "total_mobile_money", "total_autres",
        "nombre_ventes", "nombre_annulations", "especes_comptees", "ecart", "notes_cloture",
    },
    required={"especes_comptees"},
    non_negative={
        "total_ventes", "total_especes", "total_cartes", "total_mobile_money", "total_autres",
        "nombre_ventes", "nombre_annulations", "especes_comptees",
    },
)


def get_open_cash_session(client: DbClient, etablissement_id: str, utilisateur_id: str) -> dict | None:
    query = scoped_query(client, SessionCaisse, require_tenant(client, etablissement_id)).filter(
        SessionCaisse.utilisateur_id == utilisateur_id,
        SessionCaisse.date_cloture.is_(None),
    )
    with storage_errors(client):
        return to_record(query.order_by(SessionCaisse.date_ouverture.desc()).first(), ENTITY)


def get_cash_session_by_id(client: DbClient, session_id: str) -> dict | None:
    return fetch_by_id(client, SessionCaisse, session_id, ENTITY)


def open_cash_session(client: DbClient, payload: dict) -> dict:
    """
    Open a till session for an employee.

    Raises:
        ValidationError: employee not in this establishment
        ConflictError: the employee already has an open session
    """
    patch = validate_payload(model=SessionCaisse, payload=payload, policy=OPEN_POLICY, partial=False)
    etablissement_id = require_tenant(client, patch["etablissement_id"])

    with storage_errors(client):
        employee = scoped_query(client, Utilisateur, etablissement_id).filter(
            Utilisateur.id == patch["utilisateur_id"]
        ).first()
    if employee is None or not employee.actif:
        raise ValidationError("utilisateur_id is not an active employee of this establishment")

    if get_open_cash_session(client, etablissement_id, patch["utilisateur_id"]) is not None:
        raise ConflictError("This employee already has an open cash session. Close it first.")

    return insert(client, SessionCaisse(**patch, date_ouverture=utcnow()), ENTITY)


def _session_totals(client: DbClient, session: SessionCaisse) -> dict:
    """Totals of the sales rung up on `session`: PAYEE sales and their payments, ANNULEE count."""
    sales = client.session.query(Vente.statut, func.count(Vente.id), func.coalesce(func.sum(Vente.total_final), 0)).filter(
        Vente.session_caisse_id == session.id,
        Vente.statut.in_(("PAYEE", "ANNULEE")),
    ).group_by(Vente.statut)
    by_status = {statut: (count, total) for statut, count, total in sales}

    payments = client.session.query(Paiement.mode_paiement, func.coalesce(func.sum(Paiement.montant), 0)).join(
        Vente, Paiement.vente_id == Vente.id
    ).filter(
        Vente.session_caisse_id == session.id,
        Vente.statut == "PAYEE",
    ).group_by(Paiement.mode_paiement)

    buckets = {"total_especes": 0, "total_cartes": 0, "total_mobile_money": 0, "total_autres": 0}
    for mode, montant in payments:
        if mode == "ESPECES":
            key = "total_especes"
        elif mode == "CARTE_BANCAIRE":
            key = "total_cartes"
        elif mode in MOBILE_MONEY_MODES:
            key = "total_mobile_money"
        else:
            key = "total_autres"
        buckets[key] += Decimal(str(montant))

    paid_count, paid_total = by_status.get("PAYEE", (0, 0))
    return {
        "total_ventes": Decimal(str(paid_total)),
        "nombre_ventes": paid_count,
        "nombre_annulations": by_status.get("ANNULEE", (0, 0))[0],
        **{k: Decimal(str(v)) for k, v in buckets.items()},
    }


def close_cash_session(client: DbClient, session_id: str, payload: dict) -> dict:
    """
    Close a session with the drawer count.

    Totals the caller leaves out are computed from the sales attached to the
    session (session_caisse_id). ecart (variance) is computed as counted -
    expected cash unless the caller supplies it:
    especes_comptees - (fond_caisse + total_especes).
    Positive = overage, negative = shortage.
    """
    patch = validate_payload(model=SessionCaisse, payload=payload, policy=CLOSE_POLICY, partial=False)
    with storage_errors(client):
        session = get_scoped(client, SessionCaisse, session_id)
        if session is None:
            raise RecordNotFoundError(f"sessions_caisse {session_id} not found")
        if session.date_cloture is not None:
            raise ConflictError("Cash session is already closed")

        for field, value in _session_totals(client, session).items():
            if patch.get(field) is None:
                patch[field] = value

        if patch.get("ecart") is None:
            expected = (session.fond_caisse or 0) + patch["total_especes"]
            patch["ecart"] = patch["especes_comptees"] - expected

        apply_patch(session, patch)
        session.date_cloture = utcnow()
        client.session.commit()
    return to_record(session, ENTITY)


def list_cash_sessions(
    client: DbClient,
    etablissement_id: str,
    *,
    utilisateur_id: str | None = None,
    closed_only: bool = False,
    date_debut=None,
    date_fin=None,
    limit: int | None = None,
) -> list[dict]:
    """Newest first. closed_only keeps sessions with a date_cloture."""
    query = scoped_query(client, SessionCaisse, require_tenant(client, etablissement_id))
    if utilisateur_id is not None:
        query = query.filter(SessionCaisse.utilisateur_id == utilisateur_id)
    if closed_only:
        query = query.filter(SessionCaisse.date_cloture.isnot(None))
    query = apply_date_range(query, SessionCaisse.date_ouverture, date_debut, date_fin)
    query = query.order_by(SessionCaisse.date_ouverture.desc(), SessionCaisse.id.desc())
    if limit:
        query = query.limit(limit)
    return fetch_all(client, query, ENTITY)
