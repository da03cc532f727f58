"""
Establishment Service

WHY: The establishment is the tenant root. Besides its profile, it owns the
per-day ticket counter used to number sales.

TICKET NUMBERS: YYYYMMDD + 5-digit sequence, unique per establishment per
day, strictly increasing within a day, reset to 1 on the first sale of a
new (UTC) day. The counter is advanced with server-side UPDATEs, never
read-modify-write, so two tills can't draw the same number.
"""

from __future__ import annotations

from sqlalchemy import or_, select, update

from ..client import DbClient, RecordNotFoundError, storage_errors
from ..enums import TYPES_VENTE
from ..models import Etablissement
from ..time_utils import today, utcnow
from ..utils import format_ticket_number
from ..validation import ValidationError, policy, require_choice, validate_payload
from .query_helpers import fetch_by_id, insert, update_by_id
from .tenant_service import require_tenant

__all__ = [
    "get_establishment_by_id",
    "create_establishment",
    "update_establishment",
    "next_ticket_number",
    "update_vat_rates",
    "update_legal_info",
    "update_logo",
    "get_establishment_settings",
]

ENTITY = "etablissements"

PROFILE_FIELDS = {
    "nom", "adresse", "telephone", "email", "nif", "rccm", "logo",
    "taux_tva_standard", "taux_tva_reduit", "devise", "message_ticket",
    "afficher_tva_sur_ticket", "impression_auto_ticket", "mode_vente_defaut",
    "fidelite_actif", "credit_client_actif",
}
ESTABLISHMENT_POLICY = policy(
    PROFILE_FIELDS,
    required={"nom"},
    non_negative={"taux_tva_standard", "taux_tva_reduit"},
)

SETTINGS_FIELDS = (
    "id", "nom", "adresse", "telephone", "email", "nif", "rccm", "logo",
    "taux_tva_standard", "taux_tva_reduit", "devise", "message_ticket",
    "afficher_tva_sur_ticket", "impression_auto_ticket", "mode_vente_defaut",
    "fidelite_actif", "credit_client_actif",
)


def _check_rules(patch: dict) -> None:
    if patch.get("mode_vente_defaut") is not None:
        require_choice("mode_vente_defaut", patch["mode_vente_defaut"], TYPES_VENTE)
    for field in ("taux_tva_standard", "taux_tva_reduit"):
        if patch.get(field) is not None and patch[field] > 100:
            raise ValidationError(f"{field} must be <= 100")


def get_establishment_by_id(client: DbClient, etablissement_id: str) -> dict | None:
    return fetch_by_id(client, Etablissement, etablissement_id, ENTITY)


def create_establishment(client: DbClient, payload: dict) -> dict:
    """
    Create a tenant.

    SECURITY: Tenants are provisioned by trusted code only; a request-scoped
    client cannot create one.
    """
    if not client.privileged and not (client.context and client.context.is_super_admin):
        raise ValidationError("Establishments can only be created by a privileged client")
    patch = validate_payload(model=Etablissement, payload=payload, policy=ESTABLISHMENT_POLICY, partial=False)
    _check_rules(patch)
    return insert(client, Etablissement(**patch), ENTITY)


def update_establishment(client: DbClient, etablissement_id: str, payload: dict) -> dict:
    require_tenant(client, etablissement_id)
    patch = validate_payload(model=Etablissement, payload=payload, policy=ESTABLISHMENT_POLICY, partial=True)
    _check_rules(patch)
    return update_by_id(client, Etablissement, etablissement_id, patch, ENTITY)


def update_vat_rates(client: DbClient, etablissement_id: str, *, taux_tva_standard, taux_tva_reduit) -> dict:
    return update_establishment(
        client,
        etablissement_id,
        {"taux_tva_standard": taux_tva_standard, "taux_tva_reduit": taux_tva_reduit},
    )


def update_legal_info(client: DbClient, etablissement_id: str, *, nif: str | None, rccm: str | None) -> dict:
    return update_establishment(client, etablissement_id, {"nif": nif, "rccm": rccm})


def update_logo(client: DbClient, etablissement_id: str, logo: str | None) -> dict:
    return update_establishment(client, etablissement_id, {"logo": logo})


def get_establishment_settings(client: DbClient, etablissement_id: str) -> dict | None:
    """Display subset used by receipts and the settings screen."""
    record = get_establishment_by_id(client, etablissement_id)
    if record is None:
        return None
    return {k: record[k] for k in SETTINGS_FIELDS}


def next_ticket_number(client: DbClient, etablissement_id: str) -> str:
    """
    Atomically allocate the next ticket number for an establishment.

    Two conditional UPDATEs:
    1. same day: dernier_numero_ticket += 1 WHERE date_numero_ticket = today
    2. otherwise: reset to 1 and store today WHERE date differs (or is unset)
    If a concurrent caller wins the reset between the two, step 1 is retried.
    """
    etablissement_id = require_tenant(client, etablissement_id)
    day = today()

    increment = (
        update(Etablissement)
        .where(Etablissement.id == etablissement_id, Etablissement.date_numero_ticket == day)
        .values(dernier_numero_ticket=Etablissement.dernier_numero_ticket + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    reset = (
        update(Etablissement)
        .where(
            Etablissement.id == etablissement_id,
            or_(Etablissement.date_numero_ticket.is_(None), Etablissement.date_numero_ticket != day),
        )
        .values(dernier_numero_ticket=1, date_numero_ticket=day, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    with storage_errors(client):
        result = client.session.execute(increment)
        if not result.rowcount:
            result = client.session.execute(reset)
            if not result.rowcount:
                result = client.session.execute(increment)
                if not result.rowcount:
                    raise RecordNotFoundError(f"etablissements {etablissement_id} not found")

        sequence = client.session.execute(
            select(Etablissement.dernier_numero_ticket).where(Etablissement.id == etablissement_id)
        ).scalar_one()
        client.session.commit()
        # Loaded Etablissement rows are stale after the bulk UPDATE
        client.session.expire_all()

    return format_ticket_number(sequence, day)
