from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class SessionCaisse(db.Model):
    """
    Cash session (till shift).

    WHY: Each session is a period of accountability for one employee.
    An employee has at most one open session (date_cloture IS NULL).

    VARIANCE: ecart = especes_comptees - (fond_caisse + total_especes),
    i.e. counted minus expected cash.
    """
    __tablename__ = "sessions_caisse"
    __table_args__ = (
        db.Index("ix_sessions_caisse_etab_ouverture", "etablissement_id", "date_ouverture"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    utilisateur_id = db.Column(db.String(36), db.ForeignKey("utilisateurs.id"), nullable=False, index=True)

    date_ouverture = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    date_cloture = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    fond_caisse = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_ventes = db.Column(db.Numeric(14, 2), nullable=True)
    total_especes = db.Column(db.Numeric(14, 2), nullable=True)
    total_cartes = db.Column(db.Numeric(14, 2), nullable=True)
    total_mobile_money = db.Column(db.Numeric(14, 2), nullable=True)
    total_autres = db.Column(db.Numeric(14, 2), nullable=True)
    nombre_ventes = db.Column(db.Integer, nullable=True)
    nombre_annulations = db.Column(db.Integer, nullable=True)

    especes_comptees = db.Column(db.Numeric(14, 2), nullable=True)
    ecart = db.Column(db.Numeric(14, 2), nullable=True)
    notes_cloture = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    utilisateur = db.relationship("Utilisateur", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "utilisateur_id": self.utilisateur_id,
            "utilisateur": (
                {"id": self.utilisateur.id, "nom": self.utilisateur.nom, "prenom": self.utilisateur.prenom}
                if self.utilisateur is not None else None
            ),
            "date_ouverture": to_utc_z(self.date_ouverture),
            "date_cloture": to_utc_z(self.date_cloture),
            "fond_caisse": self.fond_caisse,
            "total_ventes": self.total_ventes,
            "total_especes": self.total_especes,
            "total_cartes": self.total_cartes,
            "total_mobile_money": self.total_mobile_money,
            "total_autres": self.total_autres,
            "nombre_ventes": self.nombre_ventes,
            "nombre_annulations": self.nombre_annulations,
            "especes_comptees": self.especes_comptees,
            "ecart": self.ecart,
            "notes_cloture": self.notes_cloture,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Imprimante(db.Model):
    """
    Receipt or order printer.

    type: TICKET (customer receipts), CUISINE, BAR (order tickets)
    type_connexion: USB, RESEAU, SERIE, BLUETOOTH
    """
    __tablename__ = "imprimantes"
    __table_args__ = (
        db.UniqueConstraint("etablissement_id", "nom", name="uq_imprimantes_etab_nom"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    nom = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="TICKET")
    type_connexion = db.Column(db.String(16), nullable=False, default="RESEAU")
    adresse_ip = db.Column(db.String(64), nullable=True)
    port = db.Column(db.Integer, nullable=True)
    path_usb = db.Column(db.String(255), nullable=True)
    largeur_papier = db.Column(db.Integer, nullable=False, default=80)  # mm
    actif = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "nom": self.nom,
            "type": self.type,
            "type_connexion": self.type_connexion,
            "adresse_ip": self.adresse_ip,
            "port": self.port,
            "path_usb": self.path_usb,
            "largeur_papier": self.largeur_papier,
            "actif": self.actif,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
