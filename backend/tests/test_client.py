# Overview: Pytest coverage for context-bound clients and the storage error policy.

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from caisse.client import (
    DbClient,
    SecurityContext,
    StorageError,
    apply_rls_context,
    create_authenticated_client,
    create_service_client,
    rls_setting_prefix,
    rls_settings,
    storage_errors,
)
from caisse.models import Categorie
from caisse.validation import ValidationError


def _load_migration(name):
    path = Path(__file__).resolve().parents[1] / "migrations" / "versions" / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


RLS_MIGRATION = _load_migration("c002_row_level_security")


class TestSecurityContext:

    def test_requires_all_fields(self):
        with pytest.raises(ValidationError):
            SecurityContext(user_id="", etablissement_id="e1", role="ADMIN")
        with pytest.raises(ValidationError):
            SecurityContext(user_id="u1", etablissement_id=None, role="ADMIN")

    def test_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            SecurityContext(user_id="u1", etablissement_id="e1", role="ROOT")

    def test_super_admin_flag(self):
        assert SecurityContext("u1", "e1", "SUPER_ADMIN").is_super_admin
        assert not SecurityContext("u1", "e1", "MANAGER").is_super_admin


class TestRowLevelSecurityContext:

    def test_settings_use_prefix(self):
        ctx = SecurityContext("u1", "e1", "CAISSIER")
        assert rls_settings(ctx, "caisse") == [
            ("caisse.user_id", "u1"),
            ("caisse.etablissement_id", "e1"),
            ("caisse.role", "CAISSIER"),
        ]

    def test_postgres_connection_gets_transaction_local_settings(self):
        connection = MagicMock()
        connection.dialect.name = "postgresql"
        ctx = SecurityContext("u1", "e1", "ADMIN")

        assert apply_rls_context(connection, ctx) is True
        assert connection.execute.call_count == 3

        statement, params = connection.execute.call_args_list[1].args
        assert "set_config(:name, :value, true)" in str(statement)
        assert params == {"name": "app.etablissement_id", "value": "e1"}

    def test_prefix_comes_from_config(self, app, monkeypatch):
        assert rls_setting_prefix() == "app"
        monkeypatch.setitem(app.config, "RLS_SETTING_PREFIX", "pos")
        assert rls_setting_prefix() == "pos"

    def test_prefix_must_be_an_identifier(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "RLS_SETTING_PREFIX", "app'; DROP TABLE ventes; --")
        with pytest.raises(ValueError):
            rls_setting_prefix()

    def test_migration_policies_read_the_settings_the_client_writes(self):
        ctx = SecurityContext("u1", "e1", "ADMIN")
        written = {name for name, _ in rls_settings(ctx, "pos")}
        policies = RLS_MIGRATION.tenant_policies("pos")

        assert {table for table, _ in policies} >= {"etablissements", "ventes", "paiements", "sessions"}
        for table, predicate in policies:
            assert "current_setting('pos.etablissement_id', true)" in predicate, table
            assert "current_setting('pos.role', true) = 'SUPER_ADMIN'" in predicate, table
            assert "'app." not in predicate, table
        assert {"pos.etablissement_id", "pos.role"} <= written

    def test_sqlite_connection_is_left_alone(self):
        connection = MagicMock()
        connection.dialect.name = "sqlite"

        assert apply_rls_context(connection, SecurityContext("u1", "e1", "ADMIN")) is False
        connection.execute.assert_not_called()


class TestClientFactories:

    def test_authenticated_client_carries_context(self, db_session, admin_a):
        ctx = SecurityContext(admin_a["id"], admin_a["etablissement_id"], "ADMIN")
        with create_authenticated_client(ctx) as client:
            assert client.context is ctx
            assert client.etablissement_id == admin_a["etablissement_id"]
            assert not client.privileged

    def test_authenticated_client_requires_context(self, db_session):
        with pytest.raises(ValidationError):
            create_authenticated_client(None)

    def test_service_client_requires_reason(self, db_session):
        with pytest.raises(ValidationError):
            create_service_client(reason="")
        with pytest.raises(TypeError):
            create_service_client()

    def test_service_client_is_logged(self, db_session, caplog):
        with create_service_client(reason="nightly purge") as client:
            assert client.privileged
            assert client.context is None
        assert "nightly purge" in caplog.text

    def test_factories_never_share_sessions(self, db_session):
        one = create_service_client(reason="a")
        two = create_service_client(reason="b")
        try:
            assert one.session is not two.session
        finally:
            one.close()
            two.close()


class TestStorageErrors:

    def test_database_failure_becomes_storage_error(self, service, etab_a):
        # categories.nom is NOT NULL
        with pytest.raises(StorageError) as exc_info:
            with storage_errors(service):
                service.session.add(Categorie(etablissement_id=etab_a["id"], nom=None))
                service.session.commit()

        assert exc_info.value.message
        assert exc_info.value.original is not None

    def test_session_usable_after_failure(self, service, etab_a):
        with pytest.raises(StorageError):
            with storage_errors(service):
                service.session.add(Categorie(etablissement_id=etab_a["id"], nom=None))
                service.session.commit()

        with storage_errors(service):
            service.session.add(Categorie(etablissement_id=etab_a["id"], nom="Desserts"))
            service.session.commit()
        assert service.session.query(Categorie).count() == 1

    def test_other_exceptions_propagate_unchanged(self, service):
        with pytest.raises(KeyError):
            with storage_errors(service):
                raise KeyError("x")

    def test_repr_names_kind(self, service):
        assert "service" in repr(service)
        assert isinstance(service, DbClient)
