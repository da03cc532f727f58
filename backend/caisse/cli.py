# Overview: Flask CLI command groups for schema bootstrap, tenants and maintenance.

# backend/caisse/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="caisse:create_app").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Production schemas go through `flask db upgrade`.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Establishments (MULTI-TENANT):
# - python -m flask etablissements list
#   List all establishments.
# - python -m flask etablissements create --nom "Maquis Chez Tantie" --telephone "+225 0700000000"
#   Create a new establishment (tenant).
#
# Maintenance:
# - python -m flask maintenance purge-sessions
#   Delete expired login sessions in every establishment.

import click
from flask.cli import with_appcontext

from .client import StorageError, create_service_client
from .extensions import db
from .models import Etablissement, Utilisateur
from .services.establishment_service import create_establishment
from .services.session_service import purge_expired_sessions
from .validation import ValidationError


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that don't exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Schema ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


# =============================================================================
# ESTABLISHMENT MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('etablissements')
def etablissements_group():
    """Establishment (tenant) management commands."""


@etablissements_group.command('list')
@with_appcontext
def list_etablissements():
    """List all establishments."""
    with create_service_client(reason="cli: list establishments") as client:
        rows = client.session.query(Etablissement).order_by(Etablissement.created_at.asc()).all()

        if not rows:
            click.echo("No establishments found.")
            return

        click.echo("\n" + "="*92)
        click.echo(f"{'ID':<38} {'Nom':<30} {'Telephone':<16} {'Users'}")
        click.echo("="*92)

        for etab in rows:
            user_count = client.session.query(Utilisateur).filter_by(etablissement_id=etab.id).count()
            click.echo(f"{etab.id:<38} {etab.nom:<30} {etab.telephone or '-':<16} {user_count}")

        click.echo("="*92 + "\n")


@etablissements_group.command('create')
@click.option('--nom', required=True, help='Establishment name')
@click.option('--adresse', default=None, help='Street address')
@click.option('--telephone', default=None, help='Phone number')
@click.option('--email', default=None, help='Contact email')
@with_appcontext
def create_etablissement_cli(nom, adresse, telephone, email):
    """Create a new establishment (tenant)."""
    payload = {"nom": nom, "adresse": adresse, "telephone": telephone, "email": email}
    payload = {k: v for k, v in payload.items() if v is not None}

    with create_service_client(reason="cli: create establishment") as client:
        try:
            etab = create_establishment(client, payload)
        except (ValidationError, StorageError) as e:
            click.echo(f"FAIL Could not create establishment: {e}")
            return

    click.echo(f"PASS Created establishment: {etab['nom']} (ID: {etab['id']})")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('purge-sessions')
@with_appcontext
def purge_sessions_cli():
    """Delete expired login sessions."""
    with create_service_client(reason="cli: purge expired sessions") as client:
        deleted = purge_expired_sessions(client)
    click.echo(f"Deleted {deleted} expired sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(etablissements_group)
    app.cli.add_command(maintenance_group)
