from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class Categorie(db.Model):
    """
    Product category.

    MULTI-TENANT: Scoped to establishments via etablissement_id.
    `ordre` drives display order; imprimante_id routes order tickets
    (kitchen/bar) for products of this category.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_etab_ordre", "etablissement_id", "ordre"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    nom = db.Column(db.String(120), nullable=False)
    couleur = db.Column(db.String(16), nullable=True)
    icone = db.Column(db.String(64), nullable=True)
    ordre = db.Column(db.Integer, nullable=False, default=0)
    actif = db.Column(db.Boolean, nullable=False, default=True)
    imprimante_id = db.Column(db.String(36), db.ForeignKey("imprimantes.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "nom": self.nom,
            "couleur": self.couleur,
            "icone": self.icone,
            "ordre": self.ordre,
            "actif": self.actif,
            "imprimante_id": self.imprimante_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Produit(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to establishments via etablissement_id.
    Barcodes are unique within an establishment, not globally.

    STOCK: stock_actuel is the running level. Every change that matters for
    audit also goes through the mouvements_stock ledger.
    """
    __tablename__ = "produits"
    __table_args__ = (
        db.UniqueConstraint("etablissement_id", "code_barre", name="uq_produits_etab_code_barre"),
        db.Index("ix_produits_etab_nom", "etablissement_id", "nom"),
        db.Index("ix_produits_etab_actif", "etablissement_id", "actif"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    categorie_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=False, index=True)

    nom = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code_barre = db.Column(db.String(64), nullable=True)
    image = db.Column(db.Text, nullable=True)
    unite = db.Column(db.String(16), nullable=True)

    prix_vente = db.Column(db.Numeric(14, 2), nullable=False)
    prix_achat = db.Column(db.Numeric(14, 2), nullable=True)
    taux_tva = db.Column(db.String(16), nullable=False, default="STANDARD")  # STANDARD, REDUIT, EXONERE

    gerer_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock_actuel = db.Column(db.Numeric(14, 3), nullable=True)
    stock_min = db.Column(db.Numeric(14, 3), nullable=True)
    stock_max = db.Column(db.Numeric(14, 3), nullable=True)

    # Per-channel availability
    disponible_direct = db.Column(db.Boolean, nullable=False, default=True)
    disponible_table = db.Column(db.Boolean, nullable=False, default=True)
    disponible_livraison = db.Column(db.Boolean, nullable=False, default=True)
    disponible_emporter = db.Column(db.Boolean, nullable=False, default=True)

    actif = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    categorie = db.relationship("Categorie", lazy="joined")

    def __repr__(self) -> str:
        return f"<Produit id={self.id} nom={self.nom!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "categorie_id": self.categorie_id,
            "categorie": (
                {"id": self.categorie.id, "nom": self.categorie.nom, "couleur": self.categorie.couleur}
                if self.categorie is not None else None
            ),
            "nom": self.nom,
            "description": self.description,
            "code_barre": self.code_barre,
            "image": self.image,
            "unite": self.unite,
            "prix_vente": self.prix_vente,
            "prix_achat": self.prix_achat,
            "taux_tva": self.taux_tva,
            "gerer_stock": self.gerer_stock,
            "stock_actuel": self.stock_actuel,
            "stock_min": self.stock_min,
            "stock_max": self.stock_max,
            "disponible_direct": self.disponible_direct,
            "disponible_table": self.disponible_table,
            "disponible_livraison": self.disponible_livraison,
            "disponible_emporter": self.disponible_emporter,
            "actif": self.actif,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SupplementProduit(db.Model):
    """Optional add-on (extra cheese, side) offered with a product."""
    __tablename__ = "supplements_produits"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    produit_id = db.Column(db.String(36), db.ForeignKey("produits.id"), nullable=False, index=True)
    nom = db.Column(db.String(120), nullable=False)
    prix = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "produit_id": self.produit_id,
            "nom": self.nom,
            "prix": self.prix,
            "created_at": to_utc_z(self.created_at),
        }
