"""
Pytest fixtures for caisse data-layer tests.

Provides an in-memory database, two establishments (tenants) with an admin
each, and a context-bound client per tenant.
"""

import pytest

from caisse import create_app
from caisse.client import SecurityContext, create_authenticated_client, create_service_client
from caisse.extensions import db
from caisse.services.category_service import create_category
from caisse.services.employee_service import create_employee
from caisse.services.establishment_service import create_establishment
from caisse.services.product_service import create_product

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def service(db_session):
    """Privileged client (bypasses tenant checks)."""
    client = create_service_client(reason="test fixtures")
    yield client
    client.close()


@pytest.fixture(scope='function')
def etab_a(service):
    """Establishment A (first tenant)."""
    return create_establishment(service, {"nom": "Maquis A", "telephone": "+241 01 00 00 01"})


@pytest.fixture(scope='function')
def etab_b(service):
    """Establishment B (second tenant)."""
    return create_establishment(service, {"nom": "Restaurant B", "telephone": "+241 01 00 00 02"})


@pytest.fixture(scope='function')
def admin_a(service, etab_a):
    return create_employee(service, {
        "etablissement_id": etab_a["id"],
        "email": "admin@maquis-a.ga",
        "nom": "Admin",
        "prenom": "A",
        "role": "ADMIN",
        "password": PASSWORD,
    })


@pytest.fixture(scope='function')
def admin_b(service, etab_b):
    return create_employee(service, {
        "etablissement_id": etab_b["id"],
        "email": "admin@restaurant-b.ga",
        "nom": "Admin",
        "prenom": "B",
        "role": "ADMIN",
        "password": PASSWORD,
    })


def _client_for(employee):
    context = SecurityContext(
        user_id=employee["id"],
        etablissement_id=employee["etablissement_id"],
        role=employee["role"],
    )
    return create_authenticated_client(context)


@pytest.fixture(scope='function')
def client_a(admin_a):
    """Client acting as the admin of establishment A."""
    client = _client_for(admin_a)
    yield client
    client.close()


@pytest.fixture(scope='function')
def client_b(admin_b):
    """Client acting as the admin of establishment B."""
    client = _client_for(admin_b)
    yield client
    client.close()


@pytest.fixture(scope='function')
def make_client():
    """Build a client for any employee record; closed at teardown."""
    clients = []

    def _make(employee):
        client = _client_for(employee)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture(scope='function')
def categorie_a(client_a, etab_a):
    return create_category(client_a, {"etablissement_id": etab_a["id"], "nom": "Boissons"})


@pytest.fixture(scope='function')
def categorie_b(client_b, etab_b):
    return create_category(client_b, {"etablissement_id": etab_b["id"], "nom": "Plats"})


@pytest.fixture(scope='function')
def produit_a(client_a, etab_a, categorie_a):
    """Stock-managed product in establishment A."""
    return create_product(client_a, {
        "etablissement_id": etab_a["id"],
        "categorie_id": categorie_a["id"],
        "nom": "Regab 65cl",
        "code_barre": "6001000000011",
        "prix_vente": "1000",
        "prix_achat": "650",
        "taux_tva": "STANDARD",
        "gerer_stock": True,
        "stock_actuel": 5,
        "stock_min": 2,
    })


@pytest.fixture(scope='function')
def produit_b(client_b, etab_b, categorie_b):
    return create_product(client_b, {
        "etablissement_id": etab_b["id"],
        "categorie_id": categorie_b["id"],
        "nom": "Poulet braise",
        "prix_vente": "4500",
    })
