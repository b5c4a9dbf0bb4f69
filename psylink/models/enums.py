"""
Enums du moteur d'association PsyLink.

Les valeurs sont en MAJUSCULES et identiques aux noms : SQLAlchemy
stocke le nom du membre, les index partiels s'appuient dessus.
"""

from enum import Enum


# =============================================================================
# ACTEURS
# =============================================================================

class ActorRole(str, Enum):
    """Rôle de l'appelant dans un RequestContext."""
    PSYCHOLOGIST = "PSYCHOLOGIST"
    COMPANY = "COMPANY"
    PATIENT = "PATIENT"
    SYSTEM = "SYSTEM"          # Travail dérivé (cascade, balayage)


# =============================================================================
# ASSOCIATIONS
# =============================================================================

class RelationKind(str, Enum):
    """Type de relation ; le sujet est toujours le psychologue."""
    PSYCHOLOGIST_PATIENT = "PSYCHOLOGIST_PATIENT"
    PSYCHOLOGIST_COMPANY = "PSYCHOLOGIST_COMPANY"


class AssociationStatus(str, Enum):
    """Statuts d'une association."""
    PENDING = "PENDING"        # En attente de réponse du destinataire
    ACTIVE = "ACTIVE"          # Acceptée
    REJECTED = "REJECTED"      # Refusée (terminal, réutilisable)
    INACTIVE = "INACTIVE"      # Déconnectée ou retirée (terminal, réutilisable)


class AssociationSide(str, Enum):
    """Côté d'une association (sujet = psychologue, objet = entreprise/patient)."""
    SUBJECT = "SUBJECT"
    OBJECT = "OBJECT"

    @property
    def opposite(self) -> "AssociationSide":
        return AssociationSide.OBJECT if self == AssociationSide.SUBJECT else AssociationSide.SUBJECT


# =============================================================================
# INVITATIONS
# =============================================================================

class InvitationStatus(str, Enum):
    """Statuts d'une invitation par email."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


# =============================================================================
# LICENCES
# =============================================================================

class LicenseStatus(str, Enum):
    """Statuts d'une licence entreprise."""
    PENDING = "PENDING"        # Achetée, en attente d'activation
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"


class PaymentStatus(str, Enum):
    """Statut de paiement rapporté par le système de facturation externe."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


# =============================================================================
# CORRESPONDANCES
# =============================================================================

# Rôle attendu côté objet pour chaque type de relation
OBJECT_ROLE_BY_KIND = {
    RelationKind.PSYCHOLOGIST_PATIENT: ActorRole.PATIENT,
    RelationKind.PSYCHOLOGIST_COMPANY: ActorRole.COMPANY,
}

OPEN_ASSOCIATION_STATUSES = (AssociationStatus.PENDING, AssociationStatus.ACTIVE)
TERMINAL_ASSOCIATION_STATUSES = (AssociationStatus.REJECTED, AssociationStatus.INACTIVE)
