# Overview: Pytest coverage for sales statistics, the Z report and the dashboard summary.

from datetime import datetime, timedelta

import pytest

from caisse.client import StorageError
from caisse.services import reporting_service
from caisse.services.product_service import adjust_product_stock, create_product
from caisse.services.register_service import close_cash_session, open_cash_session
from caisse.services.reporting_service import (
    build_z_report, get_dashboard_summary, get_payment_stats_by_mode, get_sales_stats,
    get_sales_stats_for_day, get_sales_stats_for_month, get_top_products,
)
from caisse.services.sales_service import (
    cancel_sale, create_payment, create_sale, create_sale_line, mark_sale_paid, update_sale,
)
from caisse.services.tenant_service import TenantAccessError
from caisse.time_utils import utcnow

WIDE = {"date_debut": datetime(2000, 1, 1), "date_fin": utcnow() + timedelta(days=2)}


def _sale(client, etab, employee, lines, payment, total_final, statut="PAYEE"):
    sale = create_sale(client, {"etablissement_id": etab["id"], "utilisateur_id": employee["id"], "type": "DIRECT"})
    for produit, quantite, prix in lines:
        create_sale_line(client, {
            "vente_id": sale["id"], "produit_id": produit["id"], "quantite": quantite, "prix_unitaire": prix,
        })
    update_sale(client, sale["id"], {"total_final": total_final, "total_tva": 100, "total_remise": 50})
    mode, montant = payment
    create_payment(client, {"vente_id": sale["id"], "mode_paiement": mode, "montant": montant})
    if statut == "PAYEE":
        mark_sale_paid(client, sale["id"])
    else:
        cancel_sale(client, sale["id"])
    return sale


@pytest.fixture
def brochette(client_a, etab_a, categorie_a):
    return create_product(client_a, {
        "etablissement_id": etab_a["id"], "categorie_id": categorie_a["id"], "nom": "Brochette", "prix_vente": 1500,
    })


@pytest.fixture
def trading_day(client_a, etab_a, admin_a, produit_a, brochette):
    _sale(client_a, etab_a, admin_a, [(produit_a, 3, 1000)], ("ESPECES", 3000), 3000)
    _sale(client_a, etab_a, admin_a, [(produit_a, 1, 1000), (brochette, 2, 1500)], ("AIRTEL_MONEY", 4000), 4000)
    _sale(client_a, etab_a, admin_a, [(brochette, 10, 1500)], ("CARTE_BANCAIRE", 500), 15000, statut="ANNULEE")


class TestSalesStats:

    def test_totals_cover_paid_sales_only(self, client_a, etab_a, trading_day):
        stats = get_sales_stats(client_a, etab_a["id"], **WIDE)
        assert stats == {
            "total_ventes": 7000,
            "nombre_ventes": 2,
            "panier_moyen": 3500,
            "total_tva": 200,
            "total_remises": 100,
            "nombre_annulations": 1,
        }

    def test_empty_window(self, client_a, etab_a, trading_day):
        stats = get_sales_stats(client_a, etab_a["id"], date_debut=datetime(2000, 1, 1), date_fin=datetime(2000, 1, 2))
        assert stats["nombre_ventes"] == 0
        assert stats["panier_moyen"] == 0
        assert stats["total_ventes"] == 0

    def test_today_and_this_month(self, client_a, etab_a, trading_day):
        assert get_sales_stats_for_day(client_a, etab_a["id"])["total_ventes"] == 7000
        assert get_sales_stats_for_month(client_a, etab_a["id"])["nombre_ventes"] == 2

    def test_other_tenant_denied(self, client_b, etab_a):
        with pytest.raises(TenantAccessError):
            get_sales_stats(client_b, etab_a["id"])


class TestBreakdowns:

    def test_payments_by_mode(self, client_a, etab_a, trading_day):
        by_mode = get_payment_stats_by_mode(client_a, etab_a["id"], **WIDE)
        assert by_mode["ESPECES"] == {"montant": 3000, "nombre": 1}
        assert by_mode["AIRTEL_MONEY"] == {"montant": 4000, "nombre": 1}
        assert by_mode["CARTE_BANCAIRE"] == {"montant": 0, "nombre": 0}
        assert set(by_mode) >= {"MOOV_MONEY", "CHEQUE", "COMPTE_CLIENT"}

    def test_top_products(self, client_a, etab_a, produit_a, brochette, trading_day):
        top = get_top_products(client_a, etab_a["id"], **WIDE)
        assert top == [
            {"produit_id": produit_a["id"], "nom": "Regab 65cl", "quantite": 4, "total": 4000},
            {"produit_id": brochette["id"], "nom": "Brochette", "quantite": 2, "total": 3000},
        ]
        assert len(get_top_products(client_a, etab_a["id"], limit=1, **WIDE)) == 1


class TestZReport:

    def test_z_report(self, client_a, etab_a, admin_a, trading_day):
        shift = open_cash_session(client_a, {"etablissement_id": etab_a["id"], "utilisateur_id": admin_a["id"], "fond_caisse": 10000})
        close_cash_session(client_a, shift["id"], {"total_especes": 3000, "especes_comptees": 12500})

        report = build_z_report(client_a, etab_a["id"])
        assert report["date"] == utcnow().date().isoformat()
        assert report["ventes"]["total_ventes"] == 7000
        assert report["paiements"]["ESPECES"]["montant"] == 3000
        assert report["top_produits"][0]["nom"] == "Regab 65cl"
        assert [s["id"] for s in report["sessions_caisse"]] == [shift["id"]]
        assert report["ecart_total"] == -500

    def test_open_sessions_do_not_count_towards_variance(self, client_a, etab_a, admin_a):
        open_cash_session(client_a, {"etablissement_id": etab_a["id"], "utilisateur_id": admin_a["id"]})
        report = build_z_report(client_a, etab_a["id"])
        assert len(report["sessions_caisse"]) == 1
        assert report["ecart_total"] == 0


class TestDashboard:

    def test_summary(self, client_a, etab_a, produit_a, trading_day):
        adjust_product_stock(client_a, produit_a["id"], 1, "set")
        summary = get_dashboard_summary(client_a, etab_a["id"])
        assert summary["aujourd_hui"]["nombre_ventes"] == 2
        assert summary["mois"]["total_ventes"] == 7000
        assert summary["produits_stock_bas"] == 1

    def test_storage_failure_yields_none(self, client_a, etab_a, monkeypatch, caplog):
        def broken(*args, **kwargs):
            raise StorageError("database is locked")

        monkeypatch.setattr(reporting_service, "get_sales_stats_for_day", broken)
        assert get_dashboard_summary(client_a, etab_a["id"]) is None
        assert "Dashboard summary unavailable" in caplog.text
