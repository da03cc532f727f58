from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class AuditLog(db.Model):
    """
    Audit trail entry.

    ancienne_valeur / nouvelle_valeur hold JSON-serialized snapshots of the
    entity before and after the action.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_etab_created", "etablissement_id", "created_at"),
        db.Index("ix_audit_logs_etab_action", "etablissement_id", "action"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)
    utilisateur_id = db.Column(db.String(36), db.ForeignKey("utilisateurs.id"), nullable=True, index=True)

    action = db.Column(db.String(32), nullable=False)
    entite = db.Column(db.String(64), nullable=False)
    entite_id = db.Column(db.String(36), nullable=True)
    description = db.Column(db.Text, nullable=True)
    ancienne_valeur = db.Column(db.Text, nullable=True)
    nouvelle_valeur = db.Column(db.Text, nullable=True)
    adresse_ip = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "utilisateur_id": self.utilisateur_id,
            "action": self.action,
            "entite": self.entite,
            "entite_id": self.entite_id,
            "description": self.description,
            "ancienne_valeur": self.ancienne_valeur,
            "nouvelle_valeur": self.nouvelle_valeur,
            "adresse_ip": self.adresse_ip,
            "created_at": to_utc_z(self.created_at),
        }
