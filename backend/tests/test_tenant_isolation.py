# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two establishments with separate admins, then verify that:
1. Admin A cannot read or write data in Establishment B
2. Passing a foreign etablissement_id is rejected
3. Cross-tenant lookups by id return None (not errors that reveal existence)
4. Child rows (lines, payments, stock movements) are scoped through their parent
5. SUPER_ADMIN and the service client see every establishment
"""

import pytest

from caisse.client import RecordNotFoundError
from caisse.services.category_service import list_categories
from caisse.services.client_service import create_client, get_client_by_id
from caisse.services.employee_service import create_employee, list_employees
from caisse.services.establishment_service import get_establishment_by_id, next_ticket_number
from caisse.services.product_service import (
    create_product, deactivate_product, get_product_by_barcode, get_product_by_id,
    list_products, update_product,
)
from caisse.services.sales_service import (
    create_payment, create_sale, create_sale_line, get_sale_by_id, list_sale_payments,
)
from caisse.services.stock_service import list_stock_movements, record_stock_entry
from caisse.services.tenant_service import TenantAccessError, effective_tenant, require_tenant
from caisse.validation import ValidationError

PASSWORD = "Password123!"


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_tenant_own_establishment(self, client_a, etab_a):
        assert require_tenant(client_a, etab_a["id"]) == etab_a["id"]

    def test_require_tenant_cross_tenant(self, client_a, etab_b):
        with pytest.raises(TenantAccessError):
            require_tenant(client_a, etab_b["id"])

    def test_require_tenant_missing_id(self, client_a):
        with pytest.raises(ValidationError):
            require_tenant(client_a, None)

    def test_cross_tenant_attempt_is_logged(self, client_a, etab_b, caplog):
        with pytest.raises(TenantAccessError):
            require_tenant(client_a, etab_b["id"])
        assert "Cross-tenant access denied" in caplog.text

    def test_effective_tenant_defaults_to_context(self, client_a, etab_a, service):
        assert effective_tenant(client_a) == etab_a["id"]
        assert effective_tenant(service) is None


class TestProductIsolation:

    def test_list_other_tenant_denied(self, client_a, etab_b, produit_b):
        with pytest.raises(TenantAccessError):
            list_products(client_a, etab_b["id"])

    def test_get_by_id_other_tenant_returns_none(self, client_a, produit_b):
        assert get_product_by_id(client_a, produit_b["id"]) is None

    def test_barcode_lookup_is_per_tenant(self, client_a, client_b, etab_a, etab_b, produit_a, categorie_b):
        create_product(client_b, {
            "etablissement_id": etab_b["id"],
            "categorie_id": categorie_b["id"],
            "nom": "Regab B",
            "code_barre": produit_a["code_barre"],
            "prix_vente": 1100,
        })
        found_a = get_product_by_barcode(client_a, etab_a["id"], produit_a["code_barre"])
        found_b = get_product_by_barcode(client_b, etab_b["id"], produit_a["code_barre"])
        assert found_a["id"] == produit_a["id"]
        assert found_b["nom"] == "Regab B"

    def test_update_other_tenant_not_found(self, client_a, produit_b):
        with pytest.raises(RecordNotFoundError):
            update_product(client_a, produit_b["id"], {"prix_vente": 1})

    def test_deactivate_other_tenant_is_noop(self, client_a, client_b, produit_b):
        deactivate_product(client_a, produit_b["id"])
        assert get_product_by_id(client_b, produit_b["id"])["actif"] is True

    def test_create_with_foreign_establishment_denied(self, client_a, etab_b, categorie_b):
        with pytest.raises(TenantAccessError):
            create_product(client_a, {
                "etablissement_id": etab_b["id"],
                "categorie_id": categorie_b["id"],
                "nom": "Intrus",
                "prix_vente": 100,
            })

    def test_create_with_foreign_category_rejected(self, client_a, etab_a, categorie_b):
        with pytest.raises(ValidationError):
            create_product(client_a, {
                "etablissement_id": etab_a["id"],
                "categorie_id": categorie_b["id"],
                "nom": "Intrus",
                "prix_vente": 100,
            })

    def test_cannot_move_product_to_other_tenant(self, client_a, produit_a, etab_b):
        with pytest.raises(ValidationError):
            update_product(client_a, produit_a["id"], {"etablissement_id": etab_b["id"]})


class TestChildRowIsolation:

    def test_sale_line_with_foreign_product_rejected(self, client_a, etab_a, admin_a, produit_b):
        sale = create_sale(client_a, {
            "etablissement_id": etab_a["id"], "utilisateur_id": admin_a["id"], "type": "DIRECT",
        })
        with pytest.raises(ValidationError):
            create_sale_line(client_a, {
                "vente_id": sale["id"], "produit_id": produit_b["id"],
                "quantite": 1, "prix_unitaire": 4500,
            })

    def test_payments_scoped_through_sale(self, client_a, client_b, etab_b, admin_b):
        sale = create_sale(client_b, {
            "etablissement_id": etab_b["id"], "utilisateur_id": admin_b["id"], "type": "EMPORTER",
        })
        create_payment(client_b, {"vente_id": sale["id"], "mode_paiement": "ESPECES", "montant": 4500})

        assert get_sale_by_id(client_a, sale["id"]) is None
        assert list_sale_payments(client_a, sale["id"]) == []
        assert len(list_sale_payments(client_b, sale["id"])) == 1

    def test_payment_on_foreign_sale_rejected(self, client_a, client_b, etab_b, admin_b):
        sale = create_sale(client_b, {
            "etablissement_id": etab_b["id"], "utilisateur_id": admin_b["id"], "type": "DIRECT",
        })
        with pytest.raises(ValidationError):
            create_payment(client_a, {"vente_id": sale["id"], "mode_paiement": "ESPECES", "montant": 10})

    def test_stock_movements_scoped_through_product(self, client_a, client_b, etab_a, produit_b):
        record_stock_entry(client_b, produit_id=produit_b["id"], quantite=10, quantite_avant=0)
        assert list_stock_movements(client_a, etab_a["id"]) == []
        with pytest.raises(ValidationError):
            record_stock_entry(client_a, produit_id=produit_b["id"], quantite=1, quantite_avant=10)

    def test_sale_for_foreign_employee_rejected(self, client_a, etab_a, admin_b):
        with pytest.raises(ValidationError):
            create_sale(client_a, {
                "etablissement_id": etab_a["id"], "utilisateur_id": admin_b["id"], "type": "DIRECT",
            })


class TestOtherEntities:

    def test_establishment_reads(self, client_a, etab_a, etab_b):
        assert get_establishment_by_id(client_a, etab_a["id"])["nom"] == "Maquis A"
        assert get_establishment_by_id(client_a, etab_b["id"]) is None

    def test_ticket_counter_of_other_tenant_denied(self, client_a, etab_b):
        with pytest.raises(TenantAccessError):
            next_ticket_number(client_a, etab_b["id"])

    def test_customers(self, client_a, client_b, etab_b):
        customer = create_client(client_b, {"etablissement_id": etab_b["id"], "nom": "Moussavou"})
        assert get_client_by_id(client_a, customer["id"]) is None

    def test_employees_listing(self, client_a, client_b, etab_a, admin_b):
        emails = [e["email"] for e in list_employees(client_a, etab_a["id"])]
        assert admin_b["email"] not in emails


class TestCrossTenantRoles:

    def test_super_admin_reads_every_establishment(
        self, service, make_client, etab_a, etab_b, produit_a, produit_b, categorie_a, categorie_b
    ):
        root = create_employee(service, {
            "etablissement_id": etab_a["id"],
            "email": "root@caisse.ga",
            "nom": "Root",
            "role": "SUPER_ADMIN",
            "password": PASSWORD,
        })
        client = make_client(root)

        assert [p["id"] for p in list_products(client, etab_b["id"])] == [produit_b["id"]]
        assert get_product_by_id(client, produit_b["id"])["nom"] == "Poulet braise"
        assert list_categories(client, etab_b["id"])[0]["id"] == categorie_b["id"]

    def test_service_client_reads_every_establishment(self, service, produit_a, produit_b):
        assert get_product_by_id(service, produit_a["id"]) is not None
        assert get_product_by_id(service, produit_b["id"]) is not None
