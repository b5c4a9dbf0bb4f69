"""Schémas Pydantic pour le module Licences."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from psylink.api.v1.associations.schemas import CascadeSummaryResponse
from psylink.models.enums import LicenseStatus, PaymentStatus


# =============================================================================
# CATALOGUE
# =============================================================================

class LicensePlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    max_users: int
    price_monthly: Decimal
    price_yearly: Decimal
    active: bool

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# LICENCES ENTREPRISE
# =============================================================================

class LicenseAcquire(BaseModel):
    """Achat de licences ; la quantité est validée par le moteur."""
    plan_id: int = Field(..., description="ID de l'offre")
    quantity: int = Field(..., description="Nombre de places")
    start_date: date = Field(default_factory=date.today)
    expiry_date: Optional[date] = None


class PaymentRecord(BaseModel):
    payment_status: PaymentStatus


class CompanyLicenseResponse(BaseModel):
    """Schéma de réponse pour une licence entreprise."""
    id: int
    company_id: int
    plan_id: int
    total_licenses: int
    used_licenses: int
    available_licenses: int
    start_date: date
    expiry_date: Optional[date] = None
    status: LicenseStatus
    payment_status: PaymentStatus
    canceled_at: Optional[datetime] = None
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompanyLicenseList(BaseModel):
    items: List[CompanyLicenseResponse]
    total: int


class LicenseAvailabilityResponse(BaseModel):
    """Compteurs agrégés du pool d'une entreprise."""
    total: int
    used: int
    available: int
    pending: int

    model_config = ConfigDict(from_attributes=True)


class LicenseCancelResponse(BaseModel):
    """Licence annulée, avec la cascade de déconnexion si forcée."""
    license: CompanyLicenseResponse
    cascade: Optional[CascadeSummaryResponse] = None
