# Overview: Pytest coverage for establishment settings and ticket numbering.

from datetime import date

import pytest

from caisse.client import SecurityContext, create_authenticated_client
from caisse.services import establishment_service
from caisse.services.establishment_service import (
    create_establishment, get_establishment_by_id, get_establishment_settings, next_ticket_number,
    update_establishment, update_legal_info, update_logo, update_vat_rates,
)
from caisse.services.sales_service import create_sale
from caisse.validation import ValidationError


class TestEstablishmentProfile:

    def test_defaults(self, etab_a):
        assert etab_a["devise"] == "FCFA"
        assert etab_a["taux_tva_standard"] == 18
        assert etab_a["dernier_numero_ticket"] == 0

    def test_request_client_cannot_create_tenant(self, client_a):
        with pytest.raises(ValidationError):
            create_establishment(client_a, {"nom": "Pirate"})

    def test_update(self, client_a, etab_a):
        updated = update_establishment(client_a, etab_a["id"], {"message_ticket": "Merci !", "mode_vente_defaut": "TABLE"})
        assert updated["message_ticket"] == "Merci !"
        assert updated["mode_vente_defaut"] == "TABLE"

    def test_unknown_sale_mode_rejected(self, client_a, etab_a):
        with pytest.raises(ValidationError):
            update_establishment(client_a, etab_a["id"], {"mode_vente_defaut": "DRIVE"})

    def test_vat_rates(self, client_a, etab_a):
        updated = update_vat_rates(client_a, etab_a["id"], taux_tva_standard="18", taux_tva_reduit="5.5")
        assert updated["taux_tva_reduit"] == 5.5
        with pytest.raises(ValidationError):
            update_vat_rates(client_a, etab_a["id"], taux_tva_standard=120, taux_tva_reduit=10)

    def test_legal_info_and_logo(self, client_a, etab_a):
        update_legal_info(client_a, etab_a["id"], nif="NIF-001", rccm="RCCM-LBV-2024")
        update_logo(client_a, etab_a["id"], "data:image/png;base64,AAAA")
        settings = get_establishment_settings(client_a, etab_a["id"])
        assert settings["nif"] == "NIF-001"
        assert settings["logo"].startswith("data:image/png")
        assert "dernier_numero_ticket" not in settings

    def test_settings_of_unknown_establishment(self, client_a):
        assert get_establishment_settings(client_a, "missing") is None


class TestTicketNumbers:

    def test_sequence_within_a_day(self, client_a, etab_a, monkeypatch):
        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 15))
        assert next_ticket_number(client_a, etab_a["id"]) == "2024031500001"
        assert next_ticket_number(client_a, etab_a["id"]) == "2024031500002"
        assert next_ticket_number(client_a, etab_a["id"]) == "2024031500003"

    def test_counter_resets_on_new_day(self, client_a, etab_a, monkeypatch):
        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 15))
        next_ticket_number(client_a, etab_a["id"])
        next_ticket_number(client_a, etab_a["id"])

        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 16))
        assert next_ticket_number(client_a, etab_a["id"]) == "2024031600001"

        record = get_establishment_by_id(client_a, etab_a["id"])
        assert record["dernier_numero_ticket"] == 1
        assert record["date_numero_ticket"] == "2024-03-16"

    def test_counters_are_per_establishment(self, client_a, client_b, etab_a, etab_b, monkeypatch):
        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 15))
        next_ticket_number(client_a, etab_a["id"])
        next_ticket_number(client_a, etab_a["id"])
        assert next_ticket_number(client_b, etab_b["id"]) == "2024031500001"

    def test_numbers_unique_across_clients(self, admin_a, etab_a, monkeypatch):
        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 15))
        ctx = SecurityContext(admin_a["id"], etab_a["id"], "ADMIN")
        with create_authenticated_client(ctx) as one, create_authenticated_client(ctx) as two:
            numbers = [next_ticket_number(c, etab_a["id"]) for c in (one, two, one, two)]
        assert len(set(numbers)) == 4
        assert numbers == sorted(numbers)

    def test_sale_gets_ticket_number(self, client_a, etab_a, admin_a, monkeypatch):
        monkeypatch.setattr(establishment_service, "today", lambda: date(2024, 3, 15))
        first = create_sale(client_a, {"etablissement_id": etab_a["id"], "utilisateur_id": admin_a["id"], "type": "DIRECT"})
        second = create_sale(client_a, {"etablissement_id": etab_a["id"], "utilisateur_id": admin_a["id"], "type": "DIRECT"})
        assert first["numero_ticket"] == "2024031500001"
        assert second["numero_ticket"] == "2024031500002"
