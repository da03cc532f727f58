# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

from caisse.models import Etablissement, Session
from caisse.time_utils import utcnow


class TestEstablishmentCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["etablissements", "create", "--nom", "Maquis Chez Tantie", "--telephone", "+241 06 00 00 00"])
        assert result.exit_code == 0
        assert "PASS Created establishment: Maquis Chez Tantie" in result.output
        assert db_session.query(Etablissement).filter_by(nom="Maquis Chez Tantie").count() == 1

        listing = runner.invoke(args=["etablissements", "list"])
        assert listing.exit_code == 0
        assert "Maquis Chez Tantie" in listing.output
        assert "+241 06 00 00 00" in listing.output

    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["etablissements", "list"])
        assert "No establishments found." in result.output

    def test_create_rejects_bad_input(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["etablissements", "create", "--nom", "x" * 300])
        assert result.exit_code == 0
        assert "FAIL Could not create establishment" in result.output


class TestSystemCommands:

    def test_init_db_is_idempotent(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init-db"])
        assert result.exit_code == 0
        assert "PASS Schema ready" in result.output

    def test_reset_requires_confirmation(self, app, db_session, etab_a):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")
        assert result.exit_code != 0
        assert db_session.query(Etablissement).count() == 1


class TestMaintenanceCommands:

    def test_purge_sessions(self, app, db_session, admin_a):
        db_session.add(Session(utilisateur_id=admin_a["id"], token="a" * 64, expires_at=utcnow() - timedelta(hours=1)))
        db_session.add(Session(utilisateur_id=admin_a["id"], token="b" * 64, expires_at=utcnow() + timedelta(hours=1)))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "purge-sessions"])
        assert result.exit_code == 0
        assert "Deleted 1 expired sessions." in result.output
        assert db_session.query(Session).count() == 1
