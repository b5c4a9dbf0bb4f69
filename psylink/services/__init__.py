"""
Services métier du moteur, dans l'ordre de dépendance :
LicensePool, AssociationStore, ConnectionStateMachine, InvitationService,
CascadeCoordinator. AssociationEngine les assemble.
"""

from psylink.services.license_pool import LicensePool, LicenseAvailability
from psylink.services.association_store import AssociationStore
from psylink.services.connection_state_machine import ConnectionStateMachine
from psylink.services.invitation_service import InvitationService, InviteResult
from psylink.services.cascade_coordinator import CascadeCoordinator, CascadeSummary, CascadeFailure
from psylink.services.engine import AssociationEngine

__all__ = [
    "LicensePool",
    "LicenseAvailability",
    "AssociationStore",
    "ConnectionStateMachine",
    "InvitationService",
    "InviteResult",
    "CascadeCoordinator",
    "CascadeSummary",
    "CascadeFailure",
    "AssociationEngine",
]
