# Overview: Tenant-scoped aggregate reads for dashboards and the daily Z report.

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy import func

from ..client import DbClient, StorageError, storage_errors
from ..enums import MODES_PAIEMENT
from ..models import LigneVente, Paiement, Produit, SessionCaisse, Vente
from ..time_utils import day_bounds, month_bounds, to_iso_date
from ..utils import parse_decimal, to_amount
from .product_service import list_low_stock_products
from .query_helpers import to_records
from .tenant_service import require_tenant, scoped_query

__all__ = [
    "get_sales_stats",
    "get_sales_stats_for_day",
    "get_sales_stats_for_month",
    "get_payment_stats_by_mode",
    "get_top_products",
    "build_z_report",
    "get_dashboard_summary",
]


def _in_range(query, column, start: datetime | None, end: datetime | None):
    # [start, end)
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query


def get_sales_stats(
    client: DbClient,
    etablissement_id: str,
    *,
    date_debut: datetime | None = None,
    date_fin: datetime | None = None,
) -> dict:
    """
    Paid-sales totals over [date_debut, date_fin).

    panier_moyen is total_ventes / nombre_ventes (0 with no sales).
    nombre_annulations counts ANNULEE sales over the same window.
    """
    etablissement_id = require_tenant(client, etablissement_id)
    base = _in_range(scoped_query(client, Vente, etablissement_id), Vente.created_at, date_debut, date_fin)

    with storage_errors(client):
        total, count, tva, remises = base.filter(Vente.statut == "PAYEE").with_entities(
            func.coalesce(func.sum(Vente.total_final), 0),
            func.count(Vente.id),
            func.coalesce(func.sum(Vente.total_tva), 0),
            func.coalesce(func.sum(Vente.total_remise), 0),
        ).one()
        cancelled = base.filter(Vente.statut == "ANNULEE").with_entities(func.count(Vente.id)).scalar() or 0

    total = parse_decimal(total)
    return {
        "total_ventes": total,
        "nombre_ventes": count or 0,
        "panier_moyen": to_amount(total / count) if count else 0,
        "total_tva": parse_decimal(tva),
        "total_remises": parse_decimal(remises),
        "nombre_annulations": cancelled,
    }


def get_sales_stats_for_day(client: DbClient, etablissement_id: str, day: date | None = None) -> dict:
    start, end = day_bounds(day)
    return get_sales_stats(client, etablissement_id, date_debut=start, date_fin=end)


def get_sales_stats_for_month(client: DbClient, etablissement_id: str, day: date | None = None) -> dict:
    start, end = month_bounds(day)
    return get_sales_stats(client, etablissement_id, date_debut=start, date_fin=end)


def get_payment_stats_by_mode(
    client: DbClient,
    etablissement_id: str,
    *,
    date_debut: datetime | None = None,
    date_fin: datetime | None = None,
) -> dict[str, dict]:
    """Amount and count per payment mode, paid sales only. Every mode is present."""
    etablissement_id = require_tenant(client, etablissement_id)
    query = scoped_query(client, Paiement, etablissement_id).filter(Vente.statut == "PAYEE")
    query = _in_range(query, Vente.created_at, date_debut, date_fin)
    query = query.with_entities(
        Paiement.mode_paiement,
        func.coalesce(func.sum(Paiement.montant), 0),
        func.count(Paiement.id),
    ).group_by(Paiement.mode_paiement)

    with storage_errors(client):
        rows = query.all()

    found = {mode: {"montant": parse_decimal(total), "nombre": n} for mode, total, n in rows}
    return {m: found.get(m, {"montant": 0, "nombre": 0}) for m in MODES_PAIEMENT}


def get_top_products(
    client: DbClient,
    etablissement_id: str,
    *,
    limit: int = 10,
    date_debut: datetime | None = None,
    date_fin: datetime | None = None,
) -> list[dict]:
    """Best sellers by quantity over paid sales."""
    etablissement_id = require_tenant(client, etablissement_id)
    quantite = func.coalesce(func.sum(LigneVente.quantite), 0)
    query = (
        scoped_query(client, LigneVente, etablissement_id)
        .join(Produit, LigneVente.produit_id == Produit.id)
        .filter(Vente.statut == "PAYEE")
    )
    query = _in_range(query, Vente.created_at, date_debut, date_fin)
    query = (
        query.with_entities(
            LigneVente.produit_id,
            Produit.nom,
            quantite.label("quantite"),
            func.coalesce(func.sum(LigneVente.total), 0).label("total"),
        )
        .group_by(LigneVente.produit_id, Produit.nom)
        .order_by(quantite.desc(), Produit.nom.asc())
        .limit(limit)
    )
    with storage_errors(client):
        rows = query.all()
    return [
        {"produit_id": pid, "nom": nom, "quantite": parse_decimal(q), "total": parse_decimal(t)}
        for pid, nom, q, t in rows
    ]


def build_z_report(client: DbClient, etablissement_id: str, day: date | None = None) -> dict:
    """
    End-of-day (Z) report: totals, payment breakdown, best sellers and the
    cash sessions opened that day.
    """
    start, end = day_bounds(day)
    etablissement_id = require_tenant(client, etablissement_id)

    sessions_query = _in_range(
        scoped_query(client, SessionCaisse, etablissement_id), SessionCaisse.date_ouverture, start, end,
    ).order_by(SessionCaisse.date_ouverture.asc())
    with storage_errors(client):
        sessions = to_records(sessions_query.all(), "sessions_caisse")

    return {
        "date": to_iso_date(start.date()),
        "ventes": get_sales_stats(client, etablissement_id, date_debut=start, date_fin=end),
        "paiements": get_payment_stats_by_mode(client, etablissement_id, date_debut=start, date_fin=end),
        "top_produits": get_top_products(client, etablissement_id, limit=10, date_debut=start, date_fin=end),
        "sessions_caisse": sessions,
        "ecart_total": sum(s["ecart"] for s in sessions if s["date_cloture"]),
    }


def get_dashboard_summary(client: DbClient, etablissement_id: str) -> dict | None:
    """
    Compact stats widget. Best-effort: a storage failure is logged and
    yields None so the dashboard can render without it.
    """
    try:
        return {
            "aujourd_hui": get_sales_stats_for_day(client, etablissement_id),
            "mois": get_sales_stats_for_month(client, etablissement_id),
            "produits_stock_bas": len(list_low_stock_products(client, etablissement_id)),
        }
    except StorageError as exc:
        current_app.logger.warning("Dashboard summary unavailable for %s: %s", etablissement_id, exc.message)
        return None
