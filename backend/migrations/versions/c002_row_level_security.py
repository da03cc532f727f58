"""Row-level security: tenant policies driven by the per-transaction settings

MULTI-TENANT MIGRATION (PostgreSQL only, no-op elsewhere):
1. Enables RLS on every tenant-owned table
2. Direct tables match etablissement_id against
   current_setting('<prefix>.etablissement_id', true)
3. Child tables (lines, payments, supplements, stock movements, login sessions)
   match through their parent row
4. SUPER_ADMIN (<prefix>.role) sees every establishment

<prefix> is RLS_SETTING_PREFIX (default app), the same namespace the
request clients pass to set_config(..., true) at the start of each
transaction. Changing it later requires re-running this migration.
The service role used by SERVICE_DATABASE_URL must be created with BYPASSRLS.

Revision ID: c002_row_level_security
Revises: c001_initial_schema
Create Date: 2026-09-28
"""
from alembic import op

from caisse.client import rls_setting_prefix


# revision identifiers, used by Alembic.
revision = 'c002_row_level_security'
down_revision = 'c001_initial_schema'
branch_labels = None
depends_on = None

DIRECT_TABLES = (
    'utilisateurs', 'imprimantes', 'categories', 'produits', 'clients', 'zones',
    'tables', 'sessions_caisse', 'ventes', 'audit_logs',
)

# table -> predicate reaching etablissement_id through the parent row;
# {tenant} is the current_setting(...) expression
CHILD_TABLES = {
    'sessions': (
        "EXISTS (SELECT 1 FROM utilisateurs u WHERE u.id = sessions.utilisateur_id "
        "AND u.etablissement_id = {tenant})"
    ),
    'supplements_produits': (
        "EXISTS (SELECT 1 FROM produits p WHERE p.id = supplements_produits.produit_id "
        "AND p.etablissement_id = {tenant})"
    ),
    'mouvements_stock': (
        "EXISTS (SELECT 1 FROM produits p WHERE p.id = mouvements_stock.produit_id "
        "AND p.etablissement_id = {tenant})"
    ),
    'lignes_vente': (
        "EXISTS (SELECT 1 FROM ventes v WHERE v.id = lignes_vente.vente_id "
        "AND v.etablissement_id = {tenant})"
    ),
    'paiements': (
        "EXISTS (SELECT 1 FROM ventes v WHERE v.id = paiements.vente_id "
        "AND v.etablissement_id = {tenant})"
    ),
    'lignes_vente_supplements': (
        "EXISTS (SELECT 1 FROM lignes_vente l JOIN ventes v ON v.id = l.vente_id "
        "WHERE l.id = lignes_vente_supplements.ligne_vente_id "
        "AND v.etablissement_id = {tenant})"
    ),
}


def tenant_policies(prefix):
    """(table, predicate) pairs for the settings namespace `prefix`."""
    tenant = f"current_setting('{prefix}.etablissement_id', true)"
    super_admin = f"current_setting('{prefix}.role', true) = 'SUPER_ADMIN'"

    predicates = [('etablissements', f"id = {tenant}")]
    predicates += [(table, f"etablissement_id = {tenant}") for table in DIRECT_TABLES]
    predicates += [(table, predicate.format(tenant=tenant)) for table, predicate in CHILD_TABLES.items()]
    return [(table, f"({predicate}) OR {super_admin}") for table, predicate in predicates]


def _is_postgres():
    return op.get_bind().dialect.name == 'postgresql'


def upgrade():
    if not _is_postgres():
        return

    for table, predicate in tenant_policies(rls_setting_prefix()):
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            f"USING ({predicate}) WITH CHECK ({predicate})"
        )


def downgrade():
    if not _is_postgres():
        return

    for table in ('etablissements', *DIRECT_TABLES, *CHILD_TABLES):
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
