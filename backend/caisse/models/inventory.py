from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class ImmutableLedgerError(Exception):
    """Raised when code tries to rewrite or delete a stock movement."""


class MouvementStock(db.Model):
    """
    Append-only stock ledger.

    WHY: quantite_avant/quantite_apres are an audit pair captured when the
    movement is recorded. Rewriting a row would break the history, so the
    mapper refuses UPDATE and DELETE outright.

    LEDGER EQUATION:
    - ENTREE:               apres = avant + quantite
    - SORTIE, PERTE:        apres = avant - quantite
    - AJUSTEMENT, INVENTAIRE: apres = target, quantite = |target - avant|

    MULTI-TENANT: Scoped through produits.etablissement_id.
    """
    __tablename__ = "mouvements_stock"
    __table_args__ = (
        db.Index("ix_mouvements_stock_produit_created", "produit_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    produit_id = db.Column(db.String(36), db.ForeignKey("produits.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)  # ENTREE, SORTIE, AJUSTEMENT, PERTE, INVENTAIRE

    quantite = db.Column(db.Numeric(14, 3), nullable=False)
    quantite_avant = db.Column(db.Numeric(14, 3), nullable=False)
    quantite_apres = db.Column(db.Numeric(14, 3), nullable=False)
    prix_unitaire = db.Column(db.Numeric(14, 2), nullable=True)

    motif = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    utilisateur_id = db.Column(db.String(36), db.ForeignKey("utilisateurs.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    produit = db.relationship("Produit", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "produit_id": self.produit_id,
            "produit": {"id": self.produit.id, "nom": self.produit.nom} if self.produit is not None else None,
            "type": self.type,
            "quantite": self.quantite,
            "quantite_avant": self.quantite_avant,
            "quantite_apres": self.quantite_apres,
            "prix_unitaire": self.prix_unitaire,
            "motif": self.motif,
            "reference": self.reference,
            "utilisateur_id": self.utilisateur_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(MouvementStock, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableLedgerError("Stock movements are append-only and cannot be modified")


@event.listens_for(MouvementStock, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableLedgerError("Stock movements are append-only and cannot be deleted")
