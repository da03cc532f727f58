from __future__ import annotations

from uuid import uuid4

from ..extensions import db
from caisse.time_utils import to_iso_date, to_utc_z, utcnow


def new_id() -> str:
    return str(uuid4())


class Etablissement(db.Model):
    """
    Multi-tenant root: every tenant is an establishment.

    WHY: Shared-database multi-tenancy with strict isolation.
    Every other table carries etablissement_id, directly or through its parent
    (produit, vente, utilisateur). No data may cross establishment boundaries.

    TICKETS: dernier_numero_ticket + date_numero_ticket form the per-day
    counter behind sale ticket numbers. Only establishment_service.next_ticket_number
    writes them, with server-side increments.
    """
    __tablename__ = "etablissements"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    nom = db.Column(db.String(255), nullable=False)
    adresse = db.Column(db.String(255), nullable=True)
    telephone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Legal identifiers
    nif = db.Column(db.String(64), nullable=True)
    rccm = db.Column(db.String(64), nullable=True)
    logo = db.Column(db.Text, nullable=True)

    # VAT rates in percent
    taux_tva_standard = db.Column(db.Numeric(5, 2), nullable=False, default=18)
    taux_tva_reduit = db.Column(db.Numeric(5, 2), nullable=False, default=10)

    dernier_numero_ticket = db.Column(db.Integer, nullable=False, default=0)
    date_numero_ticket = db.Column(db.Date, nullable=True)

    # Display settings
    devise = db.Column(db.String(8), nullable=False, default="FCFA")
    message_ticket = db.Column(db.String(255), nullable=True)
    afficher_tva_sur_ticket = db.Column(db.Boolean, nullable=False, default=True)
    impression_auto_ticket = db.Column(db.Boolean, nullable=False, default=False)
    mode_vente_defaut = db.Column(db.String(16), nullable=False, default="DIRECT")
    fidelite_actif = db.Column(db.Boolean, nullable=False, default=False)
    credit_client_actif = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Etablissement id={self.id} nom={self.nom!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nom": self.nom,
            "adresse": self.adresse,
            "telephone": self.telephone,
            "email": self.email,
            "nif": self.nif,
            "rccm": self.rccm,
            "logo": self.logo,
            "taux_tva_standard": self.taux_tva_standard,
            "taux_tva_reduit": self.taux_tva_reduit,
            "dernier_numero_ticket": self.dernier_numero_ticket,
            "date_numero_ticket": to_iso_date(self.date_numero_ticket),
            "devise": self.devise,
            "message_ticket": self.message_ticket,
            "afficher_tva_sur_ticket": self.afficher_tva_sur_ticket,
            "impression_auto_ticket": self.impression_auto_ticket,
            "mode_vente_defaut": self.mode_vente_defaut,
            "fidelite_actif": self.fidelite_actif,
            "credit_client_actif": self.credit_client_actif,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
