from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class Zone(db.Model):
    """
    Floor-plan zone (terrace, main room) or delivery zone.

    Delivery zones carry frais_livraison and delai_estime (minutes).
    """
    __tablename__ = "zones"
    __table_args__ = (
        db.UniqueConstraint("etablissement_id", "nom", name="uq_zones_etab_nom"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    nom = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    couleur = db.Column(db.String(16), nullable=True)
    ordre = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)

    position_x = db.Column(db.Integer, nullable=True)
    position_y = db.Column(db.Integer, nullable=True)
    largeur = db.Column(db.Integer, nullable=True)
    hauteur = db.Column(db.Integer, nullable=True)

    frais_livraison = db.Column(db.Numeric(14, 2), nullable=True)
    delai_estime = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "nom": self.nom,
            "description": self.description,
            "couleur": self.couleur,
            "ordre": self.ordre,
            "active": self.active,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "largeur": self.largeur,
            "hauteur": self.hauteur,
            "frais_livraison": self.frais_livraison,
            "delai_estime": self.delai_estime,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Table(db.Model):
    """
    Restaurant table on the floor plan.

    MULTI-TENANT: Table numbers are unique within an establishment.
    statut: LIBRE, OCCUPEE, EN_PREPARATION, ADDITION, A_NETTOYER
    """
    __tablename__ = "tables"
    __table_args__ = (
        db.UniqueConstraint("etablissement_id", "numero", name="uq_tables_etab_numero"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    zone_id = db.Column(db.String(36), db.ForeignKey("zones.id"), nullable=True, index=True)
    numero = db.Column(db.String(16), nullable=False)
    capacite = db.Column(db.Integer, nullable=False, default=4)
    forme = db.Column(db.String(16), nullable=False, default="CARREE")
    statut = db.Column(db.String(16), nullable=False, default="LIBRE", index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    position_x = db.Column(db.Integer, nullable=False, default=0)
    position_y = db.Column(db.Integer, nullable=False, default=0)
    largeur = db.Column(db.Integer, nullable=True)
    hauteur = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    zone = db.relationship("Zone", backref=db.backref("tables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "zone_id": self.zone_id,
            "numero": self.numero,
            "capacite": self.capacite,
            "forme": self.forme,
            "statut": self.statut,
            "active": self.active,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "largeur": self.largeur,
            "hauteur": self.hauteur,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
