# Overview: Single `queries` namespace re-exporting every service operation.

"""
Aggregation facade.

USAGE:
    from caisse.facade import queries

    queries.list_products(client, etablissement_id, actif=True)
    queries.products.list_products(client, etablissement_id)   # same function

Flat names come from each service module's __all__. A name exported by two
modules is a programming error and fails at import.
"""

from __future__ import annotations

from types import ModuleType, SimpleNamespace

from .services import (
    audit_service,
    category_service,
    client_service,
    employee_service,
    establishment_service,
    floor_service,
    printer_service,
    product_service,
    register_service,
    reporting_service,
    sales_service,
    session_service,
    stock_service,
)

GROUPS: dict[str, ModuleType] = {
    "establishments": establishment_service,
    "employees": employee_service,
    "categories": category_service,
    "products": product_service,
    "clients": client_service,
    "floor": floor_service,
    "sales": sales_service,
    "stock": stock_service,
    "cash_sessions": register_service,
    "printers": printer_service,
    "audit": audit_service,
    "sessions": session_service,
    "reports": reporting_service,
}


def build_queries(groups: dict[str, ModuleType]) -> SimpleNamespace:
    flat: dict[str, object] = {}
    owners: dict[str, str] = {}
    namespace = SimpleNamespace()

    for group_name, module in groups.items():
        exported = {name: getattr(module, name) for name in module.__all__}
        for name, func in exported.items():
            if name in groups:
                raise ImportError(f"{module.__name__}.{name} shadows the '{name}' group")
            if name in flat:
                raise ImportError(
                    f"Duplicate query name '{name}' in {module.__name__} and {owners[name]}"
                )
            flat[name] = func
            owners[name] = module.__name__
        setattr(namespace, group_name, SimpleNamespace(**exported))

    for name, func in flat.items():
        setattr(namespace, name, func)
    return namespace


queries = build_queries(GROUPS)

__all__ = ["queries", "build_queries", "GROUPS"]
