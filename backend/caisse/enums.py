# Overview: Enumerated string values stored in status/type/role columns.

ROLES = ("SUPER_ADMIN", "ADMIN", "MANAGER", "CAISSIER", "SERVEUR")
ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN")

TYPES_VENTE = ("DIRECT", "TABLE", "LIVRAISON", "EMPORTER")
STATUTS_VENTE = ("EN_COURS", "PAYEE", "ANNULEE")

STATUTS_TABLE = ("LIBRE", "OCCUPEE", "EN_PREPARATION", "ADDITION", "A_NETTOYER")
FORMES_TABLE = ("RONDE", "CARREE", "RECTANGULAIRE")

MODES_PAIEMENT = (
    "ESPECES", "CARTE_BANCAIRE", "AIRTEL_MONEY", "MOOV_MONEY",
    "CHEQUE", "VIREMENT", "COMPTE_CLIENT", "MIXTE",
)
MOBILE_MONEY_MODES = ("AIRTEL_MONEY", "MOOV_MONEY")

TYPES_MOUVEMENT = ("ENTREE", "SORTIE", "AJUSTEMENT", "PERTE", "INVENTAIRE")

TYPES_IMPRIMANTE = ("TICKET", "CUISINE", "BAR")
TYPES_CONNEXION = ("USB", "RESEAU", "SERIE", "BLUETOOTH")

STATUTS_PREPARATION = ("EN_ATTENTE", "EN_PREPARATION", "PRETE", "SERVIE")

TYPES_REMISE = ("POURCENTAGE", "MONTANT_FIXE")

TAUX_TVA = ("STANDARD", "REDUIT", "EXONERE")

ACTIONS_AUDIT = (
    "CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT",
    "CAISSE_OUVERTURE", "CAISSE_CLOTURE", "ANNULATION_VENTE", "REMISE_APPLIQUEE",
)

# Sale-channel availability flag on produits for each sale type
DISPONIBILITE_PAR_TYPE = {
    "DIRECT": "disponible_direct",
    "TABLE": "disponible_table",
    "LIVRAISON": "disponible_livraison",
    "EMPORTER": "disponible_emporter",
}
