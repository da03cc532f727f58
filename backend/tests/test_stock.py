# Overview: Pytest coverage for the append-only stock movement ledger.

import pytest

from caisse.models import ImmutableLedgerError, MouvementStock
from caisse.services.stock_service import (
    create_stock_movement, list_stock_movements, list_stock_movements_paginated,
    record_inventory_count, record_stock_adjustment, record_stock_entry, record_stock_exit,
    record_stock_loss, total_entries, total_exits,
)
from caisse.validation import ValidationError


class TestLedgerEquation:

    def test_entry_adds(self, client_a, produit_a):
        mv = record_stock_entry(client_a, produit_id=produit_a["id"], quantite=10, quantite_avant=5)
        assert mv["type"] == "ENTREE"
        assert mv["quantite_apres"] == 15

    def test_exit_and_loss_subtract(self, client_a, produit_a):
        assert record_stock_exit(client_a, produit_id=produit_a["id"], quantite=2, quantite_avant=5)["quantite_apres"] == 3
        assert record_stock_loss(client_a, produit_id=produit_a["id"], quantite=1, quantite_avant=3)["quantite_apres"] == 2

    def test_exit_may_go_below_zero(self, client_a, produit_a):
        mv = record_stock_exit(client_a, produit_id=produit_a["id"], quantite=8, quantite_avant=5)
        assert mv["quantite_apres"] == -3

    def test_adjustment_sets_target(self, client_a, produit_a):
        mv = record_stock_adjustment(client_a, produit_id=produit_a["id"], nouvelle_quantite=3, quantite_avant=5)
        assert mv["quantite_apres"] == 3
        assert mv["quantite"] == 2

    def test_inventory_count(self, client_a, produit_a):
        mv = record_inventory_count(client_a, produit_id=produit_a["id"], quantite_comptee=9, quantite_avant=5)
        assert (mv["type"], mv["quantite"], mv["quantite_apres"]) == ("INVENTAIRE", 4, 9)

    def test_adjustment_requires_target(self, client_a, produit_a):
        with pytest.raises(ValidationError):
            create_stock_movement(client_a, {
                "produit_id": produit_a["id"], "type": "AJUSTEMENT", "quantite": 2, "quantite_avant": 5,
            })

    def test_inconsistent_pair_rejected(self, client_a, produit_a):
        with pytest.raises(ValidationError):
            create_stock_movement(client_a, {
                "produit_id": produit_a["id"], "type": "ENTREE",
                "quantite": 10, "quantite_avant": 5, "quantite_apres": 14,
            })

    def test_negative_quantity_rejected(self, client_a, produit_a):
        with pytest.raises(ValidationError):
            record_stock_entry(client_a, produit_id=produit_a["id"], quantite=-1, quantite_avant=5)

    def test_unknown_type_rejected(self, client_a, produit_a):
        with pytest.raises(ValidationError):
            create_stock_movement(client_a, {
                "produit_id": produit_a["id"], "type": "VOL", "quantite": 1, "quantite_avant": 5,
            })

    def test_fractional_quantities(self, client_a, produit_a):
        mv = record_stock_exit(client_a, produit_id=produit_a["id"], quantite="0.5", quantite_avant="2.25")
        assert mv["quantite_apres"] == 1.75


class TestImmutability:

    def test_update_refused(self, client_a, service, produit_a):
        mv = record_stock_entry(client_a, produit_id=produit_a["id"], quantite=1, quantite_avant=5)
        row = service.session.get(MouvementStock, mv["id"])
        row.motif = "corrige"
        with pytest.raises(ImmutableLedgerError):
            service.session.commit()
        service.session.rollback()

    def test_delete_refused(self, client_a, service, produit_a):
        mv = record_stock_entry(client_a, produit_id=produit_a["id"], quantite=1, quantite_avant=5)
        service.session.delete(service.session.get(MouvementStock, mv["id"]))
        with pytest.raises(ImmutableLedgerError):
            service.session.commit()
        service.session.rollback()
        assert service.session.get(MouvementStock, mv["id"]) is not None


class TestListingAndTotals:

    def test_newest_first_and_filters(self, client_a, etab_a, produit_a):
        record_stock_entry(client_a, produit_id=produit_a["id"], quantite=10, quantite_avant=5, reference="BL-1")
        record_stock_exit(client_a, produit_id=produit_a["id"], quantite=3, quantite_avant=15)

        movements = list_stock_movements(client_a, etab_a["id"])
        assert len(movements) == 2
        assert [m["type"] for m in list_stock_movements(client_a, etab_a["id"], type="ENTREE")] == ["ENTREE"]
        assert list_stock_movements(client_a, etab_a["id"], produit_id="other") == []

        page = list_stock_movements_paginated(client_a, etab_a["id"], page_size=1)
        assert page["count"] == 2
        assert page["total_pages"] == 2

    def test_totals(self, client_a, etab_a, produit_a):
        record_stock_entry(client_a, produit_id=produit_a["id"], quantite=10, quantite_avant=5)
        record_stock_entry(client_a, produit_id=produit_a["id"], quantite=4, quantite_avant=15)
        record_stock_exit(client_a, produit_id=produit_a["id"], quantite=3, quantite_avant=19)
        record_stock_loss(client_a, produit_id=produit_a["id"], quantite=1, quantite_avant=16)
        record_stock_adjustment(client_a, produit_id=produit_a["id"], nouvelle_quantite=20, quantite_avant=15)

        assert total_entries(client_a, etab_a["id"]) == 14
        assert total_exits(client_a, etab_a["id"]) == 4
        assert total_exits(client_a, etab_a["id"], produit_id=produit_a["id"]) == 4

    def test_totals_empty(self, client_a, etab_a):
        assert total_entries(client_a, etab_a["id"]) == 0
