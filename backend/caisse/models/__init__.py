from .tenancy import Etablissement, new_id
from .auth import Utilisateur, Session
from .catalog import Categorie, Produit, SupplementProduit
from .customers import Client
from .floor import Zone, Table
from .sales import Vente, LigneVente, LigneVenteSupplement, Paiement
from .registers import SessionCaisse, Imprimante
from .inventory import MouvementStock, ImmutableLedgerError
from .audit import AuditLog

__all__ = [
    'Etablissement', 'new_id',
    'Utilisateur', 'Session',
    'Categorie', 'Produit', 'SupplementProduit',
    'Client',
    'Zone', 'Table',
    'Vente', 'LigneVente', 'LigneVenteSupplement', 'Paiement',
    'SessionCaisse', 'Imprimante',
    'MouvementStock', 'ImmutableLedgerError',
    'AuditLog',
]
