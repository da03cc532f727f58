# Overview: Pytest coverage for floor-plan zones and tables.

import pytest

from caisse.client import RecordNotFoundError
from caisse.services.floor_service import (
    count_tables, count_tables_by_status, count_zones, create_table, create_zone, delete_table,
    delete_zone, get_last_zone, get_table_by_id, get_table_by_number, get_zone_by_id,
    list_free_tables, list_tables, list_zones, list_zones_with_table_count, move_table, move_tables,
    reorder_zones, set_table_status, table_number_exists, update_table, update_zone,
    zone_name_exists,
)
from caisse.validation import ConflictError, ValidationError


@pytest.fixture
def terrasse(client_a, etab_a):
    return create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "Terrasse"})


def _table(client, etab, numero, **extra):
    return create_table(client, {"etablissement_id": etab["id"], "numero": numero, **extra})


class TestZones:

    def test_new_zones_append_to_the_end(self, client_a, etab_a, terrasse):
        salle = create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "Salle"})
        assert (terrasse["ordre"], salle["ordre"]) == (0, 1)
        assert get_last_zone(client_a, etab_a["id"])["id"] == salle["id"]
        assert [z["nom"] for z in list_zones(client_a, etab_a["id"])] == ["Terrasse", "Salle"]

    def test_name_is_unique_case_insensitive(self, client_a, etab_a, terrasse):
        assert zone_name_exists(client_a, etab_a["id"], " terrasse ")
        with pytest.raises(ConflictError):
            create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "TERRASSE"})

    def test_rename(self, client_a, etab_a, terrasse):
        create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "VIP"})
        assert update_zone(client_a, terrasse["id"], {"nom": "Jardin"})["nom"] == "Jardin"
        with pytest.raises(ConflictError):
            update_zone(client_a, terrasse["id"], {"nom": "vip"})
        with pytest.raises(RecordNotFoundError):
            update_zone(client_a, "missing", {"nom": "X"})

    def test_reorder(self, client_a, etab_a, terrasse):
        salle = create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "Salle"})
        result = reorder_zones(client_a, etab_a["id"], [salle["id"], terrasse["id"]])
        assert [z["nom"] for z in result] == ["Salle", "Terrasse"]

    def test_table_counts_per_zone(self, client_a, etab_a, terrasse):
        _table(client_a, etab_a, "1", zone_id=terrasse["id"])
        _table(client_a, etab_a, "2", zone_id=terrasse["id"])
        _table(client_a, etab_a, "3", zone_id=terrasse["id"], active=False)
        create_zone(client_a, {"etablissement_id": etab_a["id"], "nom": "Vide"})

        counts = {z["nom"]: z["nombre_tables"] for z in list_zones_with_table_count(client_a, etab_a["id"])}
        assert counts == {"Terrasse": 2, "Vide": 0}

    def test_delete_detaches_tables(self, client_a, etab_a, terrasse):
        table = _table(client_a, etab_a, "1", zone_id=terrasse["id"])
        assert delete_zone(client_a, terrasse["id"]) is True
        assert get_zone_by_id(client_a, terrasse["id"]) is None
        assert get_table_by_id(client_a, table["id"])["zone_id"] is None
        assert count_zones(client_a, etab_a["id"]) == 0
        assert delete_zone(client_a, terrasse["id"]) is False


class TestTables:

    def test_defaults(self, client_a, etab_a):
        table = _table(client_a, etab_a, "12")
        assert (table["statut"], table["capacite"], table["forme"]) == ("LIBRE", 4, "CARREE")

    def test_number_unique_per_establishment(self, client_a, client_b, etab_a, etab_b):
        _table(client_a, etab_a, "7")
        assert table_number_exists(client_a, etab_a["id"], " 7 ")
        with pytest.raises(ConflictError):
            _table(client_a, etab_a, "7")
        assert _table(client_b, etab_b, "7")["numero"] == "7"

    def test_renumber_conflict(self, client_a, etab_a):
        _table(client_a, etab_a, "1")
        two = _table(client_a, etab_a, "2")
        assert update_table(client_a, two["id"], {"numero": "2", "capacite": 6})["capacite"] == 6
        with pytest.raises(ConflictError):
            update_table(client_a, two["id"], {"numero": "1"})

    def test_foreign_zone_rejected(self, client_a, client_b, etab_a, etab_b):
        zone_b = create_zone(client_b, {"etablissement_id": etab_b["id"], "nom": "Etage"})
        with pytest.raises(ValidationError):
            _table(client_a, etab_a, "1", zone_id=zone_b["id"])

    def test_bad_shape_or_status_rejected(self, client_a, etab_a):
        with pytest.raises(ValidationError):
            _table(client_a, etab_a, "1", forme="OVALE")
        table = _table(client_a, etab_a, "1")
        with pytest.raises(ValidationError):
            set_table_status(client_a, table["id"], "RESERVEE")

    def test_status_counts_and_free_tables(self, client_a, etab_a):
        one = _table(client_a, etab_a, "1")
        _table(client_a, etab_a, "2")
        set_table_status(client_a, one["id"], "OCCUPEE")

        counts = count_tables_by_status(client_a, etab_a["id"])
        assert counts["LIBRE"] == 1
        assert counts["OCCUPEE"] == 1
        assert counts["A_NETTOYER"] == 0
        assert [t["numero"] for t in list_free_tables(client_a, etab_a["id"])] == ["2"]
        assert [t["numero"] for t in list_tables(client_a, etab_a["id"], statut="OCCUPEE")] == ["1"]

    def test_move_one_and_many(self, client_a, client_b, etab_a, etab_b):
        one = _table(client_a, etab_a, "1")
        two = _table(client_a, etab_a, "2")
        foreign = _table(client_b, etab_b, "9")

        moved = move_table(client_a, one["id"], position_x=120, position_y=40)
        assert (moved["position_x"], moved["position_y"]) == (120, 40)

        count = move_tables(client_a, etab_a["id"], [
            {"id": one["id"], "position_x": 10, "position_y": 20},
            {"id": two["id"], "position_x": 30, "position_y": 40},
            {"id": foreign["id"], "position_x": 0, "position_y": 0},
        ])
        assert count == 2
        assert get_table_by_number(client_a, etab_a["id"], "2")["position_x"] == 30

    def test_move_rejects_fractional_positions(self, client_a, etab_a):
        table = _table(client_a, etab_a, "1")
        with pytest.raises(ValidationError):
            move_table(client_a, table["id"], position_x=1.5, position_y=0)

    def test_delete(self, client_a, etab_a):
        table = _table(client_a, etab_a, "1")
        assert delete_table(client_a, table["id"]) is True
        assert count_tables(client_a, etab_a["id"]) == 0
