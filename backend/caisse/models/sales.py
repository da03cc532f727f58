from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class Vente(db.Model):
    """
    Sale ticket.

    MULTI-TENANT: Scoped to establishments; numero_ticket is unique per
    establishment (YYYYMMDD + daily sequence).

    LIFECYCLE: EN_COURS -> PAYEE | ANNULEE. Lines and payments hang off the
    sale and inherit its tenant.
    """
    __tablename__ = "ventes"
    __table_args__ = (
        db.UniqueConstraint("etablissement_id", "numero_ticket", name="uq_ventes_etab_ticket"),
        db.Index("ix_ventes_etab_created", "etablissement_id", "created_at"),
        db.Index("ix_ventes_etab_statut", "etablissement_id", "statut"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    numero_ticket = db.Column(db.String(16), nullable=False)

    type = db.Column(db.String(16), nullable=False, default="DIRECT")  # DIRECT, TABLE, LIVRAISON, EMPORTER
    statut = db.Column(db.String(16), nullable=False, default="EN_COURS")  # EN_COURS, PAYEE, ANNULEE

    utilisateur_id = db.Column(db.String(36), db.ForeignKey("utilisateurs.id"), nullable=False, index=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=True, index=True)
    table_id = db.Column(db.String(36), db.ForeignKey("tables.id"), nullable=True, index=True)
    session_caisse_id = db.Column(db.String(36), db.ForeignKey("sessions_caisse.id"), nullable=True, index=True)

    sous_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_tva = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_remise = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_final = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    type_remise = db.Column(db.String(16), nullable=True)  # POURCENTAGE, MONTANT_FIXE
    valeur_remise = db.Column(db.Numeric(14, 2), nullable=True)

    adresse_livraison = db.Column(db.String(255), nullable=True)
    frais_livraison = db.Column(db.Numeric(14, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    lignes = db.relationship(
        "LigneVente", backref="vente", lazy=True, order_by="LigneVente.created_at",
    )
    paiements = db.relationship(
        "Paiement", backref="vente", lazy=True, order_by="Paiement.created_at",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "numero_ticket": self.numero_ticket,
            "type": self.type,
            "statut": self.statut,
            "utilisateur_id": self.utilisateur_id,
            "client_id": self.client_id,
            "table_id": self.table_id,
            "session_caisse_id": self.session_caisse_id,
            "sous_total": self.sous_total,
            "total_tva": self.total_tva,
            "total_remise": self.total_remise,
            "total_final": self.total_final,
            "type_remise": self.type_remise,
            "valeur_remise": self.valeur_remise,
            "adresse_livraison": self.adresse_livraison,
            "frais_livraison": self.frais_livraison,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LigneVente(db.Model):
    """Sale line: product, quantity, unit price and computed totals."""
    __tablename__ = "lignes_vente"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    vente_id = db.Column(db.String(36), db.ForeignKey("ventes.id"), nullable=False, index=True)
    produit_id = db.Column(db.String(36), db.ForeignKey("produits.id"), nullable=False, index=True)

    quantite = db.Column(db.Numeric(14, 3), nullable=False)
    prix_unitaire = db.Column(db.Numeric(14, 2), nullable=False)
    taux_tva = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    sous_total = db.Column(db.Numeric(14, 2), nullable=False)
    montant_tva = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    statut_preparation = db.Column(db.String(16), nullable=False, default="EN_ATTENTE")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    produit = db.relationship("Produit", lazy="joined")
    supplements = db.relationship(
        "LigneVenteSupplement", backref="ligne_vente", lazy=True, cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vente_id": self.vente_id,
            "produit_id": self.produit_id,
            "produit": {"id": self.produit.id, "nom": self.produit.nom} if self.produit is not None else None,
            "quantite": self.quantite,
            "prix_unitaire": self.prix_unitaire,
            "taux_tva": self.taux_tva,
            "sous_total": self.sous_total,
            "montant_tva": self.montant_tva,
            "total": self.total,
            "statut_preparation": self.statut_preparation,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LigneVenteSupplement(db.Model):
    """Add-on applied to a sale line. nom/prix are snapshots taken at sale time."""
    __tablename__ = "lignes_vente_supplements"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    ligne_vente_id = db.Column(db.String(36), db.ForeignKey("lignes_vente.id"), nullable=False, index=True)
    supplement_produit_id = db.Column(db.String(36), db.ForeignKey("supplements_produits.id"), nullable=True)
    nom = db.Column(db.String(120), nullable=False)
    prix = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ligne_vente_id": self.ligne_vente_id,
            "supplement_produit_id": self.supplement_produit_id,
            "nom": self.nom,
            "prix": self.prix,
            "created_at": to_utc_z(self.created_at),
        }


class Paiement(db.Model):
    """
    Payment against a sale.

    For ESPECES, montant_recu is the cash handed over and monnaie_rendue the
    change given back (montant_recu - montant).
    """
    __tablename__ = "paiements"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    vente_id = db.Column(db.String(36), db.ForeignKey("ventes.id"), nullable=False, index=True)
    mode_paiement = db.Column(db.String(16), nullable=False)
    montant = db.Column(db.Numeric(14, 2), nullable=False)
    montant_recu = db.Column(db.Numeric(14, 2), nullable=True)
    monnaie_rendue = db.Column(db.Numeric(14, 2), nullable=True)
    reference = db.Column(db.String(128), nullable=True)  # mobile money / card reference
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vente_id": self.vente_id,
            "mode_paiement": self.mode_paiement,
            "montant": self.montant,
            "montant_recu": self.montant_recu,
            "monnaie_rendue": self.monnaie_rendue,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
