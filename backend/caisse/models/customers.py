from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class Client(db.Model):
    """
    Customer account.

    MULTI-TENANT: Scoped to establishments via etablissement_id.

    BALANCES: solde_prepaye, solde_credit and points_fidelite only change
    through client_service adjustments, which run `col = col + delta`
    server-side so concurrent tills can't lose an update.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_etab_nom", "etablissement_id", "nom"),
        db.Index("ix_clients_etab_telephone", "etablissement_id", "telephone"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    nom = db.Column(db.String(120), nullable=False)
    prenom = db.Column(db.String(120), nullable=True)
    telephone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    adresse = db.Column(db.String(255), nullable=True)

    solde_prepaye = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    solde_credit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    credit_autorise = db.Column(db.Boolean, nullable=False, default=False)
    limit_credit = db.Column(db.Numeric(14, 2), nullable=True)
    points_fidelite = db.Column(db.Integer, nullable=False, default=0)

    actif = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "nom": self.nom,
            "prenom": self.prenom,
            "telephone": self.telephone,
            "email": self.email,
            "adresse": self.adresse,
            "solde_prepaye": self.solde_prepaye,
            "solde_credit": self.solde_credit,
            "credit_autorise": self.credit_autorise,
            "limit_credit": self.limit_credit,
            "points_fidelite": self.points_fidelite,
            "actif": self.actif,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
