# Overview: Shared helpers for price normalization, pagination, ticket numbers and messages.

from __future__ import annotations

import math
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from flask import current_app, has_app_context


GENERIC_ERROR_MESSAGE = "Une erreur inattendue est survenue"

# Numeric columns that the driver hands back as Decimal (or str on some
# backends) and that must leave the data layer as plain numbers.
PRICE_FIELDS: dict[str, tuple[str, ...]] = {
    "produits": ("prix_vente", "prix_achat", "stock_actuel", "stock_min", "stock_max"),
    "clients": ("solde_prepaye", "solde_credit", "limit_credit"),
    "ventes": (
        "sous_total", "total_tva", "total_remise", "total_final",
        "frais_livraison", "valeur_remise",
    ),
    "lignes_vente": ("prix_unitaire", "quantite", "sous_total", "montant_tva", "total", "taux_tva"),
    "paiements": ("montant", "montant_recu", "monnaie_rendue"),
    "sessions_caisse": (
        "fond_caisse", "total_ventes", "total_especes", "total_cartes",
        "total_mobile_money", "total_autres", "especes_comptees", "ecart",
    ),
    "mouvements_stock": ("quantite", "quantite_avant", "quantite_apres", "prix_unitaire"),
    "supplements_produits": ("prix",),
    "lignes_vente_supplements": ("prix",),
    "zones": ("frais_livraison",),
    "etablissements": ("taux_tva_standard", "taux_tva_reduit"),
}

# VAT rates in percent, keyed by the product's taux_tva code
VAT_RATES = {
    "STANDARD": 18,
    "REDUIT": 10,
    "EXONERE": 0,
}

SEARCH_TERM_MAX_LENGTH = 200
_SEARCH_STRIP = re.compile(r"""[%_\\'"();:!<>=~*&|{}\[\]]""")


# =============================================================================
# NUMBERS
# =============================================================================

def parse_decimal(value: Any) -> int | float:
    """
    Parse a decimal-like value into a plain number.

    None, blanks, unparsable input, NaN and infinities all give 0.
    Integral values come back as int ("1250.00" -> 1250).
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return 0
    if not d.is_finite():
        return 0
    if d == d.to_integral_value():
        return int(d)
    return float(d)


def to_amount(value: Any) -> int:
    """Round half up to whole FCFA (the currency has no minor unit)."""
    return int(Decimal(str(parse_decimal(value))).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def serialize_prices(row: dict | None, fields: Iterable[str]) -> dict | None:
    if row is None:
        return None
    out = dict(row)
    for f in fields:
        if f in out:
            out[f] = parse_decimal(out[f])
    return out


def serialize_prices_list(rows: Iterable[dict], fields: Iterable[str]) -> list[dict]:
    fields = tuple(fields)
    return [serialize_prices(r, fields) for r in rows]


def calculate_vat(amount_ht: Any, rate: Any) -> int:
    """VAT due on a tax-exclusive amount, in whole FCFA. `rate` is a percentage or a taux_tva code."""
    pct = VAT_RATES.get(rate, rate) if isinstance(rate, str) else rate
    return to_amount(Decimal(str(parse_decimal(amount_ht))) * Decimal(str(parse_decimal(pct))) / 100)


def calculate_ht(amount_ttc: Any, rate: Any) -> int:
    """Tax-exclusive amount from a tax-inclusive one, in whole FCFA."""
    pct = VAT_RATES.get(rate, rate) if isinstance(rate, str) else rate
    divisor = 1 + Decimal(str(parse_decimal(pct))) / 100
    return to_amount(Decimal(str(parse_decimal(amount_ttc))) / divisor)


def format_fcfa(amount: Any) -> str:
    """1234567 -> '1 234 567 FCFA'."""
    return f"{to_amount(amount):,}".replace(",", " ") + " FCFA"


# =============================================================================
# PAGINATION
# =============================================================================

def _page_size_limits() -> tuple[int, int]:
    if has_app_context():
        return (
            current_app.config.get("DEFAULT_PAGE_SIZE", 50),
            current_app.config.get("MAX_PAGE_SIZE", 500),
        )
    return 50, 500


def pagination_params(
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> tuple[int, int, int, int]:
    """
    Resolve pagination input into (offset, limit, page, page_size).

    An explicit offset/limit pair wins over page/page_size; page is then
    derived from the offset.
    """
    default_size, max_size = _page_size_limits()

    size = limit if limit is not None else page_size
    size = min(max(int(size or default_size), 1), max_size)

    if offset is not None:
        start = max(int(offset), 0)
        return start, size, start // size + 1, size

    page = max(int(page or 1), 1)
    return (page - 1) * size, size, page, size


def paginated_result(data: list, count: int, page: int, page_size: int) -> dict:
    return {
        "data": data,
        "count": count,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(count / page_size) if page_size else 0,
    }


# =============================================================================
# TICKETS
# =============================================================================

def format_ticket_number(sequence: int, day: date) -> str:
    """YYYYMMDD + 5-digit daily sequence, e.g. 2024031500042."""
    return f"{day:%Y%m%d}{sequence:05d}"


def generate_ticket_number(last_number: int | None, day: date) -> str:
    return format_ticket_number((last_number or 0) + 1, day)


def is_ticket_date_today(value: date | str | None, day: date) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value[:10] == day.isoformat()
    return value == day


# =============================================================================
# FILTERS AND MESSAGES
# =============================================================================

def build_filters(filters: dict | None) -> dict:
    """Drop filters the caller left unset (None or empty string)."""
    return {k: v for k, v in (filters or {}).items() if v is not None and v != ""}


def sanitize_search_term(term: str | None) -> str:
    """Strip LIKE/filter metacharacters so user text can't widen a search."""
    if not term:
        return ""
    cleaned = _SEARCH_STRIP.sub("", str(term)).replace("..", "")
    return cleaned.strip()[:SEARCH_TERM_MAX_LENGTH]


def get_error_message(error: Any, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """
    Human-readable message for any failure shape.

    Order: a `message` attribute or key, then the DBAPI driver's error
    (SQLAlchemy's `orig`), then str(error), then the fallback.
    """
    if error is None:
        return fallback
    if isinstance(error, dict):
        msg = error.get("message")
        return str(msg) if msg else fallback
    if isinstance(error, str):
        return error or fallback

    msg = getattr(error, "message", None)
    if isinstance(msg, str) and msg:
        return msg

    orig = getattr(error, "orig", None)
    if orig is not None and str(orig):
        return str(orig).strip()

    text = str(error)
    return text if text else fallback
