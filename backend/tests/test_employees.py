# Overview: Pytest coverage for employee accounts, credentials and route access.

import pytest

from caisse.services import employee_service
from caisse.services.employee_service import (
    authenticate_employee, authenticate_employee_pin, can_access_route, clear_employee_pin,
    count_employees, create_employee, deactivate_employee, email_exists, get_employee_by_email,
    get_employee_by_id, list_employees, list_employees_paginated, pin_exists, set_employee_password,
    set_employee_pin, update_employee,
)
from caisse.validation import ConflictError, ValidationError

PASSWORD = "Password123!"


@pytest.fixture
def caissier(client_a, etab_a):
    return create_employee(client_a, {
        "etablissement_id": etab_a["id"],
        "email": "Caisse1@Maquis-A.ga",
        "nom": "Nzamba",
        "prenom": "Aline",
        "role": "CAISSIER",
        "password": PASSWORD,
        "pin_code": "1234",
    })


class TestRedaction:

    def test_credentials_never_returned(self, caissier, client_a):
        assert caissier["password"] is None
        assert caissier["pin_code"] is None
        fetched = get_employee_by_id(client_a, caissier["id"])
        assert fetched["password"] is None
        assert fetched["pin_code"] is None

    def test_listing_is_redacted(self, client_a, etab_a, caissier):
        for employee in list_employees(client_a, etab_a["id"]):
            assert employee["password"] is None
            assert employee["pin_code"] is None


class TestCreateAndUpdate:

    def test_email_is_normalized(self, caissier, client_a):
        assert caissier["email"] == "caisse1@maquis-a.ga"
        assert get_employee_by_email(client_a, " CAISSE1@maquis-a.ga ")["id"] == caissier["id"]

    def test_weak_password_rejected(self, client_a, etab_a):
        with pytest.raises(ValidationError):
            create_employee(client_a, {
                "etablissement_id": etab_a["id"], "email": "x@y.ga", "nom": "X", "role": "SERVEUR", "password": "short",
            })

    def test_malformed_pin_rejected(self, client_a, etab_a):
        with pytest.raises(ValidationError):
            create_employee(client_a, {
                "etablissement_id": etab_a["id"], "email": "x@y.ga", "nom": "X", "role": "SERVEUR",
                "password": PASSWORD, "pin_code": "12a4",
            })

    def test_unknown_role_rejected(self, client_a, etab_a):
        with pytest.raises(ValidationError):
            create_employee(client_a, {
                "etablissement_id": etab_a["id"], "email": "x@y.ga", "nom": "X", "role": "PATRON", "password": PASSWORD,
            })

    def test_duplicate_email_conflict_across_tenants(self, client_b, etab_b, caissier):
        with pytest.raises(ConflictError):
            create_employee(client_b, {
                "etablissement_id": etab_b["id"], "email": caissier["email"], "nom": "Y", "role": "SERVEUR",
                "password": PASSWORD,
            })

    def test_unique_index_violation_is_a_conflict(self, client_a, client_b, etab_b, caissier, monkeypatch):
        # Row-level security hides other tenants' rows from the pre-check
        monkeypatch.setattr(employee_service, "email_exists", lambda *args, **kwargs: False)
        with pytest.raises(ConflictError):
            create_employee(client_b, {
                "etablissement_id": etab_b["id"], "email": caissier["email"], "nom": "Y", "role": "SERVEUR",
                "password": PASSWORD,
            })

        other = create_employee(client_b, {
            "etablissement_id": etab_b["id"], "email": "serveur@restaurant-b.ga", "nom": "Y", "role": "SERVEUR",
            "password": PASSWORD,
        })
        with pytest.raises(ConflictError):
            update_employee(client_b, other["id"], {"email": caissier["email"]})
        assert get_employee_by_email(client_a, caissier["email"])["id"] == caissier["id"]

    def test_duplicate_pin_conflict_within_establishment(self, client_a, etab_a, caissier):
        with pytest.raises(ConflictError):
            create_employee(client_a, {
                "etablissement_id": etab_a["id"], "email": "serveur@maquis-a.ga", "nom": "Y", "role": "SERVEUR",
                "password": PASSWORD, "pin_code": "1234",
            })

    def test_same_pin_allowed_in_other_establishment(self, client_b, etab_b, caissier):
        created = create_employee(client_b, {
            "etablissement_id": etab_b["id"], "email": "serveur@restaurant-b.ga", "nom": "Y", "role": "SERVEUR",
            "password": PASSWORD, "pin_code": "1234",
        })
        assert created["id"]

    def test_update_cannot_touch_credentials(self, client_a, caissier):
        with pytest.raises(ValidationError):
            update_employee(client_a, caissier["id"], {"password": "NewPassword1!"})

    def test_update_role_and_routes(self, client_a, caissier):
        updated = update_employee(client_a, caissier["id"], {"role": "SERVEUR", "allowed_routes": [" /salle ", ""]})
        assert updated["role"] == "SERVEUR"
        assert updated["allowed_routes"] == ["/salle"]

    def test_update_email_conflict(self, client_a, admin_a, caissier):
        with pytest.raises(ConflictError):
            update_employee(client_a, caissier["id"], {"email": admin_a["email"]})

    def test_email_and_pin_exists(self, client_a, etab_a, caissier):
        assert email_exists(client_a, "CAISSE1@maquis-a.ga")
        assert not email_exists(client_a, caissier["email"], exclude_id=caissier["id"])
        assert pin_exists(client_a, etab_a["id"], "1234")
        assert not pin_exists(client_a, etab_a["id"], "9999")


class TestAuthentication:

    def test_password_login(self, service, caissier):
        user = authenticate_employee(service, "caisse1@maquis-a.ga", PASSWORD)
        assert user["id"] == caissier["id"]
        assert user["password"] is None
        assert authenticate_employee(service, "caisse1@maquis-a.ga", "wrong-password") is None
        assert authenticate_employee(service, "nobody@maquis-a.ga", PASSWORD) is None
        assert authenticate_employee(service, "not-an-email", PASSWORD) is None

    def test_password_change(self, client_a, service, caissier):
        set_employee_password(client_a, caissier["id"], "Another-secret-9")
        assert authenticate_employee(service, caissier["email"], PASSWORD) is None
        assert authenticate_employee(service, caissier["email"], "Another-secret-9")["id"] == caissier["id"]

    def test_pin_login(self, client_a, etab_a, caissier):
        assert authenticate_employee_pin(client_a, etab_a["id"], "1234")["id"] == caissier["id"]
        assert authenticate_employee_pin(client_a, etab_a["id"], "0000") is None
        assert authenticate_employee_pin(client_a, etab_a["id"], "") is None

    def test_pin_change_and_clear(self, client_a, etab_a, caissier):
        set_employee_pin(client_a, caissier["id"], "5678")
        assert authenticate_employee_pin(client_a, etab_a["id"], "1234") is None
        assert authenticate_employee_pin(client_a, etab_a["id"], "5678")["id"] == caissier["id"]
        clear_employee_pin(client_a, caissier["id"])
        assert authenticate_employee_pin(client_a, etab_a["id"], "5678") is None

    def test_inactive_employee_cannot_log_in(self, client_a, service, etab_a, caissier):
        deactivate_employee(client_a, caissier["id"])
        deactivate_employee(client_a, caissier["id"])
        assert authenticate_employee(service, caissier["email"], PASSWORD) is None
        assert authenticate_employee_pin(client_a, etab_a["id"], "1234") is None


class TestListing:

    def test_filters_and_counts(self, client_a, etab_a, admin_a, caissier):
        assert count_employees(client_a, etab_a["id"]) == 2
        assert [e["id"] for e in list_employees(client_a, etab_a["id"], role="CAISSIER")] == [caissier["id"]]
        assert [e["id"] for e in list_employees(client_a, etab_a["id"], search="nzam")] == [caissier["id"]]

        deactivate_employee(client_a, caissier["id"])
        assert count_employees(client_a, etab_a["id"], actif=True) == 1

    def test_paginated(self, client_a, etab_a, admin_a, caissier):
        page = list_employees_paginated(client_a, etab_a["id"], page_size=1)
        assert page["count"] == 2
        assert len(page["data"]) == 1


class TestRouteAccess:

    def test_super_admin_everywhere(self):
        assert can_access_route({"role": "SUPER_ADMIN", "actif": True}, "/admin/etablissements")

    def test_admin_everywhere_but_admin_area(self):
        admin = {"role": "ADMIN", "actif": True}
        assert can_access_route(admin, "/rapports")
        assert not can_access_route(admin, "/admin")

    def test_role_defaults(self):
        caissier = {"role": "CAISSIER", "actif": True, "allowed_routes": []}
        assert can_access_route(caissier, "/caisse")
        assert can_access_route(caissier, "/caisse/ticket/42?print=1")
        assert not can_access_route(caissier, "/rapports")

    def test_explicit_list_replaces_defaults(self):
        serveur = {"role": "SERVEUR", "actif": True, "allowed_routes": ["/stocks"]}
        assert can_access_route(serveur, "/stocks/inventaire")
        assert not can_access_route(serveur, "/salle")

    def test_prefix_must_end_at_segment(self):
        manager = {"role": "MANAGER", "actif": True, "allowed_routes": ["/caisse"]}
        assert not can_access_route(manager, "/caisses-secretes")

    def test_inactive_or_missing(self):
        assert not can_access_route({"role": "ADMIN", "actif": False}, "/caisse")
        assert not can_access_route(None, "/caisse")
