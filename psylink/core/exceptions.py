"""
Taxonomie des erreurs du moteur d'association.

Toutes les opérations lèvent une sous-classe de EngineError.
Chaque classe porte un `code` stable, traduit en statut HTTP par la
couche API. Le moteur ne formate jamais de texte destiné à l'utilisateur :
les messages servent aux logs.
"""
from typing import Any


# =============================================================================
# EXCEPTIONS
# =============================================================================

class EngineError(Exception):
    """Erreur de base du moteur."""

    code = "ENGINE_ERROR"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.details = details


class NotFoundError(EngineError):
    """Identifiant inconnu."""
    code = "NOT_FOUND"


class ConflictError(EngineError):
    """Relation pending/active déjà existante pour le même triplet."""
    code = "CONFLICT"


class ForbiddenError(EngineError):
    """L'acteur n'est pas partie prenante de la relation."""
    code = "FORBIDDEN"


class InvalidTransitionError(EngineError):
    """Transition de statut non autorisée."""
    code = "INVALID_TRANSITION"


class CapacityExceededError(EngineError):
    """Plus aucune licence disponible pour l'entreprise."""
    code = "CAPACITY_EXCEEDED"


class LicenseInUseError(EngineError):
    """Annulation demandée alors que des places sont consommées."""
    code = "LICENSE_IN_USE"


class AmbiguousTargetError(EngineError):
    """L'email invité correspond à plusieurs comptes."""
    code = "AMBIGUOUS_TARGET"


class InvalidQuantityError(EngineError):
    """Quantité ou période de licence invalide."""
    code = "INVALID_QUANTITY"


class ExternalServiceFailureError(EngineError):
    """Le stockage sous-jacent est injoignable ou en erreur."""
    code = "EXTERNAL_SERVICE_FAILURE"
