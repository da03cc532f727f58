"""Initial schema: establishments, staff, catalog, floor, sales, till, stock, audit

TABLES (creation order follows foreign keys):
1. etablissements (tenant root)
2. utilisateurs, sessions
3. imprimantes, categories, produits, supplements_produits
4. clients, zones, tables
5. sessions_caisse, ventes, lignes_vente, lignes_vente_supplements, paiements
6. mouvements_stock (append-only), audit_logs

Revision ID: c001_initial_schema
Revises:
Create Date: 2026-09-28
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.String(length=36), nullable=False)


def _etab_fk():
    return sa.Column('etablissement_id', sa.String(length=36), sa.ForeignKey('etablissements.id'), nullable=False)


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def _money(name, nullable=True, default=None):
    kwargs = {'server_default': default} if default is not None else {}
    return sa.Column(name, sa.Numeric(14, 2), nullable=nullable, **kwargs)


def _qty(name, nullable=True):
    return sa.Column(name, sa.Numeric(14, 3), nullable=nullable)


def upgrade():
    # ==========================================================================
    # TENANT ROOT
    # ==========================================================================
    op.create_table('etablissements',
        _id(),
        sa.Column('nom', sa.String(length=255), nullable=False),
        sa.Column('adresse', sa.String(length=255), nullable=True),
        sa.Column('telephone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('nif', sa.String(length=64), nullable=True),
        sa.Column('rccm', sa.String(length=64), nullable=True),
        sa.Column('logo', sa.Text(), nullable=True),
        sa.Column('taux_tva_standard', sa.Numeric(5, 2), nullable=False, server_default='18'),
        sa.Column('taux_tva_reduit', sa.Numeric(5, 2), nullable=False, server_default='10'),
        sa.Column('dernier_numero_ticket', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date_numero_ticket', sa.Date(), nullable=True),
        sa.Column('devise', sa.String(length=8), nullable=False, server_default='FCFA'),
        sa.Column('message_ticket', sa.String(length=255), nullable=True),
        sa.Column('afficher_tva_sur_ticket', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('impression_auto_ticket', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mode_vente_defaut', sa.String(length=16), nullable=False, server_default='DIRECT'),
        sa.Column('fidelite_actif', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('credit_client_actif', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    # ==========================================================================
    # STAFF AND LOGIN SESSIONS
    # ==========================================================================
    op.create_table('utilisateurs',
        _id(),
        _etab_fk(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=False),
        sa.Column('pin_code', sa.String(length=255), nullable=True),
        sa.Column('nom', sa.String(length=120), nullable=False),
        sa.Column('prenom', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='CAISSIER'),
        sa.Column('actif', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('allowed_routes', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_utilisateurs_etablissement_id', 'utilisateurs', ['etablissement_id'])
    op.create_index('ix_utilisateurs_email', 'utilisateurs', ['email'], unique=True)
    op.create_index('ix_utilisateurs_role', 'utilisateurs', ['role'])
    op.create_index('ix_utilisateurs_etab_actif', 'utilisateurs', ['etablissement_id', 'actif'])

    op.create_table('sessions',
        _id(),
        sa.Column('utilisateur_id', sa.String(length=36), sa.ForeignKey('utilisateurs.id'), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sessions_utilisateur_id', 'sessions', ['utilisateur_id'])
    op.create_index('ix_sessions_token', 'sessions', ['token'], unique=True)
    op.create_index('ix_sessions_expires_at', 'sessions', ['expires_at'])

    # ==========================================================================
    # CATALOG
    # ==========================================================================
    op.create_table('imprimantes',
        _id(),
        _etab_fk(),
        sa.Column('nom', sa.String(length=120), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='TICKET'),
        sa.Column('type_connexion', sa.String(length=16), nullable=False, server_default='RESEAU'),
        sa.Column('adresse_ip', sa.String(length=64), nullable=True),
        sa.Column('port', sa.Integer(), nullable=True),
        sa.Column('path_usb', sa.String(length=255), nullable=True),
        sa.Column('largeur_papier', sa.Integer(), nullable=False, server_default='80'),
        sa.Column('actif', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('etablissement_id', 'nom', name='uq_imprimantes_etab_nom')
    )
    op.create_index('ix_imprimantes_etablissement_id', 'imprimantes', ['etablissement_id'])

    op.create_table('categories',
        _id(),
        _etab_fk(),
        sa.Column('nom', sa.String(length=120), nullable=False),
        sa.Column('couleur', sa.String(length=16), nullable=True),
        sa.Column('icone', sa.String(length=64), nullable=True),
        sa.Column('ordre', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('actif', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('imprimante_id', sa.String(length=36), sa.ForeignKey('imprimantes.id'), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_categories_etablissement_id', 'categories', ['etablissement_id'])
    op.create_index('ix_categories_etab_ordre', 'categories', ['etablissement_id', 'ordre'])

    op.create_table('produits',
        _id(),
        _etab_fk(),
        sa.Column('categorie_id', sa.String(length=36), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('nom', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('code_barre', sa.String(length=64), nullable=True),
        sa.Column('image', sa.Text(), nullable=True),
        sa.Column('unite', sa.String(length=16), nullable=True),
        _money('prix_vente', nullable=False),
        _money('prix_achat'),
        sa.Column('taux_tva', sa.String(length=16), nullable=False, server_default='STANDARD'),
        sa.Column('gerer_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        _qty('stock_actuel'),
        _qty('stock_min'),
        _qty('stock_max'),
        sa.Column('disponible_direct', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('disponible_table', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('disponible_livraison', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('disponible_emporter', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('actif', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('etablissement_id', 'code_barre', name='uq_produits_etab_code_barre')
    )
    op.create_index('ix_produits_etablissement_id', 'produits', ['etablissement_id'])
    op.create_index('ix_produits_categorie_id', 'produits', ['categorie_id'])
    op.create_index('ix_produits_etab_nom', 'produits', ['etablissement_id', 'nom'])
    op.create_index('ix_produits_etab_actif', 'produits', ['etablissement_id', 'actif'])

    op.create_table('supplements_produits',
        _id(),
        sa.Column('produit_id', sa.String(length=36), sa.ForeignKey('produits.id'), nullable=False),
        sa.Column('nom', sa.String(length=120), nullable=False),
        _money('prix', nullable=False, default='0'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_supplements_produits_produit_id', 'supplements_produits', ['produit_id'])

    # ==========================================================================
    # CUSTOMERS AND FLOOR PLAN
    # ==========================================================================
    op.create_table('clients',
        _id(),
        _etab_fk(),
        sa.Column('nom', sa.String(length=120), nullable=False),
        sa.Column('prenom', sa.String(length=120), nullable=True),
        sa.Column('telephone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('adresse', sa.String(length=255), nullable=True),
        _money('solde_prepaye', nullable=False, default='0'),
        _money('solde_credit', nullable=False, default='0'),
        sa.Column('credit_autorise', sa.Boolean(), nullable=False, server_default=sa.false()),
        _money('limit_credit'),
        sa.Column('points_fidelite', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('actif', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clients_etablissement_id', 'clients', ['etablissement_id'])
    op.create_index('ix_clients_etab_nom', 'clients', ['etablissement_id', 'nom'])
    op.create_index('ix_clients_etab_telephone', 'clients', ['etablissement_id', 'telephone'])

    op.create_table('zones',
        _id(),
        _etab_fk(),
        sa.Column('nom', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('couleur', sa.String(length=16), nullable=True),
        sa.Column('ordre', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('position_x', sa.Integer(), nullable=True),
        sa.Column('position_y', sa.Integer(), nullable=True),
        sa.Column('largeur', sa.Integer(), nullable=True),
        sa.Column('hauteur', sa.Integer(), nullable=True),
        _money('frais_livraison'),
        sa.Column('delai_estime', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('etablissement_id', 'nom', name='uq_zones_etab_nom')
    )
    op.create_index('ix_zones_etablissement_id', 'zones', ['etablissement_id'])

    op.create_table('tables',
        _id(),
        _etab_fk(),
        sa.Column('zone_id', sa.String(length=36), sa.ForeignKey('zones.id'), nullable=True),
        sa.Column('numero', sa.String(length=16), nullable=False),
        sa.Column('capacite', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('forme', sa.String(length=16), nullable=False, server_default='CARREE'),
        sa.Column('statut', sa.String(length=16), nullable=False, server_default='LIBRE'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('position_x', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position_y', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('largeur', sa.Integer(), nullable=True),
        sa.Column('hauteur', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('etablissement_id', 'numero', name='uq_tables_etab_numero')
    )
    op.create_index('ix_tables_etablissement_id', 'tables', ['etablissement_id'])
    op.create_index('ix_tables_zone_id', 'tables', ['zone_id'])
    op.create_index('ix_tables_statut', 'tables', ['statut'])

    # ==========================================================================
    # TILL AND SALES
    # ==========================================================================
    op.create_table('sessions_caisse',
        _id(),
        _etab_fk(),
        sa.Column('utilisateur_id', sa.String(length=36), sa.ForeignKey('utilisateurs.id'), nullable=False),
        sa.Column('date_ouverture', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('date_cloture', sa.DateTime(timezone=True), nullable=True),
        _money('fond_caisse', nullable=False, default='0'),
        _money('total_ventes'),
        _money('total_especes'),
        _money('total_cartes'),
        _money('total_mobile_money'),
        _money('total_autres'),
        sa.Column('nombre_ventes', sa.Integer(), nullable=True),
        sa.Column('nombre_annulations', sa.Integer(), nullable=True),
        _money('especes_comptees'),
        _money('ecart'),
        sa.Column('notes_cloture', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sessions_caisse_etablissement_id', 'sessions_caisse', ['etablissement_id'])
    op.create_index('ix_sessions_caisse_utilisateur_id', 'sessions_caisse', ['utilisateur_id'])
    op.create_index('ix_sessions_caisse_date_cloture', 'sessions_caisse', ['date_cloture'])
    op.create_index('ix_sessions_caisse_etab_ouverture', 'sessions_caisse', ['etablissement_id', 'date_ouverture'])

    op.create_table('ventes',
        _id(),
        _etab_fk(),
        sa.Column('numero_ticket', sa.String(length=16), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='DIRECT'),
        sa.Column('statut', sa.String(length=16), nullable=False, server_default='EN_COURS'),
        sa.Column('utilisateur_id', sa.String(length=36), sa.ForeignKey('utilisateurs.id'), nullable=False),
        sa.Column('client_id', sa.String(length=36), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('table_id', sa.String(length=36), sa.ForeignKey('tables.id'), nullable=True),
        sa.Column('session_caisse_id', sa.String(length=36), sa.ForeignKey('sessions_caisse.id'), nullable=True),
        _money('sous_total', nullable=False, default='0'),
        _money('total_tva', nullable=False, default='0'),
        _money('total_remise', nullable=False, default='0'),
        _money('total_final', nullable=False, default='0'),
        sa.Column('type_remise', sa.String(length=16), nullable=True),
        _money('valeur_remise'),
        sa.Column('adresse_livraison', sa.String(length=255), nullable=True),
        _money('frais_livraison'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('etablissement_id', 'numero_ticket', name='uq_ventes_etab_ticket')
    )
    op.create_index('ix_ventes_etablissement_id', 'ventes', ['etablissement_id'])
    op.create_index('ix_ventes_utilisateur_id', 'ventes', ['utilisateur_id'])
    op.create_index('ix_ventes_client_id', 'ventes', ['client_id'])
    op.create_index('ix_ventes_table_id', 'ventes', ['table_id'])
    op.create_index('ix_ventes_session_caisse_id', 'ventes', ['session_caisse_id'])
    op.create_index('ix_ventes_etab_created', 'ventes', ['etablissement_id', 'created_at'])
    op.create_index('ix_ventes_etab_statut', 'ventes', ['etablissement_id', 'statut'])

    op.create_table('lignes_vente',
        _id(),
        sa.Column('vente_id', sa.String(length=36), sa.ForeignKey('ventes.id'), nullable=False),
        sa.Column('produit_id', sa.String(length=36), sa.ForeignKey('produits.id'), nullable=False),
        _qty('quantite', nullable=False),
        _money('prix_unitaire', nullable=False),
        sa.Column('taux_tva', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('sous_total', nullable=False),
        _money('montant_tva', nullable=False, default='0'),
        _money('total', nullable=False),
        sa.Column('statut_preparation', sa.String(length=16), nullable=False, server_default='EN_ATTENTE'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_lignes_vente_vente_id', 'lignes_vente', ['vente_id'])
    op.create_index('ix_lignes_vente_produit_id', 'lignes_vente', ['produit_id'])

    op.create_table('lignes_vente_supplements',
        _id(),
        sa.Column('ligne_vente_id', sa.String(length=36), sa.ForeignKey('lignes_vente.id'), nullable=False),
        sa.Column('supplement_produit_id', sa.String(length=36), sa.ForeignKey('supplements_produits.id'), nullable=True),
        sa.Column('nom', sa.String(length=120), nullable=False),
        _money('prix', nullable=False, default='0'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_lignes_vente_supplements_ligne_vente_id', 'lignes_vente_supplements', ['ligne_vente_id'])

    op.create_table('paiements',
        _id(),
        sa.Column('vente_id', sa.String(length=36), sa.ForeignKey('ventes.id'), nullable=False),
        sa.Column('mode_paiement', sa.String(length=16), nullable=False),
        _money('montant', nullable=False),
        _money('montant_recu'),
        _money('monnaie_rendue'),
        sa.Column('reference', sa.String(length=128), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_paiements_vente_id', 'paiements', ['vente_id'])

    # ==========================================================================
    # STOCK LEDGER AND AUDIT TRAIL
    # ==========================================================================
    op.create_table('mouvements_stock',
        _id(),
        sa.Column('produit_id', sa.String(length=36), sa.ForeignKey('produits.id'), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        _qty('quantite', nullable=False),
        _qty('quantite_avant', nullable=False),
        _qty('quantite_apres', nullable=False),
        _money('prix_unitaire'),
        sa.Column('motif', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('utilisateur_id', sa.String(length=36), sa.ForeignKey('utilisateurs.id'), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_mouvements_stock_produit_id', 'mouvements_stock', ['produit_id'])
    op.create_index('ix_mouvements_stock_type', 'mouvements_stock', ['type'])
    op.create_index('ix_mouvements_stock_created_at', 'mouvements_stock', ['created_at'])
    op.create_index('ix_mouvements_stock_produit_created', 'mouvements_stock', ['produit_id', 'created_at'])

    op.create_table('audit_logs',
        _id(),
        _etab_fk(),
        sa.Column('utilisateur_id', sa.String(length=36), sa.ForeignKey('utilisateurs.id'), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('entite', sa.String(length=64), nullable=False),
        sa.Column('entite_id', sa.String(length=36), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ancienne_valeur', sa.Text(), nullable=True),
        sa.Column('nouvelle_valeur', sa.Text(), nullable=True),
        sa.Column('adresse_ip', sa.String(length=64), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_etablissement_id', 'audit_logs', ['etablissement_id'])
    op.create_index('ix_audit_logs_utilisateur_id', 'audit_logs', ['utilisateur_id'])
    op.create_index('ix_audit_logs_etab_created', 'audit_logs', ['etablissement_id', 'created_at'])
    op.create_index('ix_audit_logs_etab_action', 'audit_logs', ['etablissement_id', 'action'])


def downgrade():
    for name in (
        'audit_logs', 'mouvements_stock', 'paiements', 'lignes_vente_supplements',
        'lignes_vente', 'ventes', 'sessions_caisse', 'tables', 'zones', 'clients',
        'supplements_produits', 'produits', 'categories', 'imprimantes', 'sessions',
        'utilisateurs', 'etablissements',
    ):
        op.drop_table(name)
