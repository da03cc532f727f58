from __future__ import annotations

from ..extensions import db
from caisse.time_utils import to_utc_z, utcnow
from .tenancy import new_id


class Utilisateur(db.Model):
    """
    Employee account.

    MULTI-TENANT: Employees belong to exactly one establishment.
    Email is unique system-wide (it is the login); the PIN is unique within
    an establishment. Both secrets are stored as bcrypt hashes.

    SECURITY: to_dict() never emits password or pin_code. Read paths go
    through employee_service, which also redacts them to None.
    """
    __tablename__ = "utilisateurs"
    __table_args__ = (
        db.Index("ix_utilisateurs_etab_actif", "etablissement_id", "actif"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    etablissement_id = db.Column(db.String(36), db.ForeignKey("etablissements.id"), nullable=False, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password = db.Column(db.String(255), nullable=False)  # bcrypt hash
    pin_code = db.Column(db.String(255), nullable=True)  # bcrypt hash

    nom = db.Column(db.String(120), nullable=False)
    prenom = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="CAISSIER", index=True)
    actif = db.Column(db.Boolean, nullable=False, default=True)

    # Explicit route allow-list; overrides the role defaults when non-empty
    allowed_routes = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Utilisateur id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "etablissement_id": self.etablissement_id,
            "email": self.email,
            "nom": self.nom,
            "prenom": self.prenom,
            "role": self.role,
            "actif": self.actif,
            "allowed_routes": list(self.allowed_routes or []),
            "password": None,
            "pin_code": None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Session(db.Model):
    """
    Login session token.

    SECURITY: Only the SHA-256 hash of the token is stored. The plaintext
    is returned once by session_service.create_session.
    """
    __tablename__ = "sessions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    utilisateur_id = db.Column(db.String(36), db.ForeignKey("utilisateurs.id"), nullable=False, index=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "utilisateur_id": self.utilisateur_id,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }
