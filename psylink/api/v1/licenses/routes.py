"""
Routes FastAPI pour le module Licences.

Endpoints pour :
- /license-plans : catalogue
- /companies/{company_id}/licenses : achat, liste, disponibilité
- /licenses/{license_id} : activation, paiement, annulation
- /companies/{company_id}/... : relance des cascades
"""
from fastapi import APIRouter, Query, status

from psylink.api.v1.associations.schemas import CascadeSummaryResponse
from psylink.api.v1.dependencies import CurrentContext, Engine
from psylink.api.v1.errors import to_http_exception
from psylink.api.v1.licenses.schemas import (
    CompanyLicenseList,
    CompanyLicenseResponse,
    LicenseAcquire,
    LicenseAvailabilityResponse,
    LicenseCancelResponse,
    LicensePlanResponse,
    PaymentRecord,
)
from psylink.core.exceptions import EngineError

# =============================================================================
# ROUTERS
# =============================================================================

router = APIRouter(tags=["Licences"])
plans_router = APIRouter(prefix="/license-plans", tags=["Licences"])
companies_router = APIRouter(prefix="/companies/{company_id}", tags=["Licences"])
licenses_router = APIRouter(prefix="/licenses", tags=["Licences"])


# =============================================================================
# CATALOGUE
# =============================================================================

@plans_router.get("", response_model=list[LicensePlanResponse])
def list_license_plans(ctx: CurrentContext, engine: Engine):
    """Offres actives, de la moins chère à la plus chère."""
    try:
        return engine.list_plans()
    except EngineError as e:
        raise to_http_exception(e)


# =============================================================================
# LICENCES D'UNE ENTREPRISE
# =============================================================================

@companies_router.get("/licenses", response_model=CompanyLicenseList)
def list_company_licenses(company_id: int, ctx: CurrentContext, engine: Engine):
    """Historique des licences de l'entreprise."""
    try:
        items = engine.list_company_licenses(ctx, company_id)
    except EngineError as e:
        raise to_http_exception(e)
    return CompanyLicenseList(
        items=[CompanyLicenseResponse.model_validate(license) for license in items],
        total=len(items),
    )


@companies_router.post(
    "/licenses", response_model=CompanyLicenseResponse, status_code=status.HTTP_201_CREATED
)
def acquire_license(company_id: int, data: LicenseAcquire, ctx: CurrentContext, engine: Engine):
    """Achète des licences (PENDING jusqu'à activation)."""
    try:
        return engine.acquire_license(
            ctx, company_id, data.plan_id, data.quantity, data.start_date, data.expiry_date
        )
    except EngineError as e:
        raise to_http_exception(e)


@companies_router.get("/licenses/availability", response_model=LicenseAvailabilityResponse)
def check_license_availability(company_id: int, ctx: CurrentContext, engine: Engine):
    """Places totales, utilisées, disponibles et en attente d'activation."""
    try:
        return engine.check_license_availability(company_id)
    except EngineError as e:
        raise to_http_exception(e)


@companies_router.post(
    "/psychologists/{psychologist_id}/cascade", response_model=CascadeSummaryResponse
)
def cascade_on_company_accept(
        company_id: int,
        psychologist_id: int,
        ctx: CurrentContext,
        engine: Engine,
):
    """Relance la cascade de connexion des employés vers un psychologue."""
    try:
        return engine.cascade_on_company_accept(company_id, psychologist_id, ctx)
    except EngineError as e:
        raise to_http_exception(e)


@companies_router.post("/employees/{employee_id}/joined", response_model=CascadeSummaryResponse)
def employee_joined(company_id: int, employee_id: int, ctx: CurrentContext, engine: Engine):
    """Relie un nouvel employé aux psychologues de l'entreprise."""
    try:
        return engine.employee_joined(company_id, employee_id, ctx)
    except EngineError as e:
        raise to_http_exception(e)


# =============================================================================
# CYCLE DE VIE D'UNE LICENCE
# =============================================================================

@licenses_router.post("/{license_id}/activate", response_model=CompanyLicenseResponse)
def activate_license(license_id: int, ctx: CurrentContext, engine: Engine):
    """PENDING → ACTIVE."""
    try:
        return engine.activate_license(ctx, license_id)
    except EngineError as e:
        raise to_http_exception(e)


@licenses_router.post("/{license_id}/payment", response_model=CompanyLicenseResponse)
def record_license_payment(license_id: int, data: PaymentRecord, ctx: CurrentContext, engine: Engine):
    """Enregistre le statut de paiement rapporté par la facturation."""
    try:
        return engine.record_license_payment(ctx, license_id, data.payment_status)
    except EngineError as e:
        raise to_http_exception(e)


@licenses_router.post("/{license_id}/cancel", response_model=LicenseCancelResponse)
def cancel_license(
        license_id: int,
        ctx: CurrentContext,
        engine: Engine,
        force: bool = Query(False, description="Déconnecter d'abord les liens portés par la licence"),
):
    """Annule une licence ; 409 LICENSE_IN_USE si des places sont utilisées sans force."""
    try:
        license, summary = engine.cancel_license(ctx, license_id, force=force)
    except EngineError as e:
        raise to_http_exception(e)
    return LicenseCancelResponse(
        license=CompanyLicenseResponse.model_validate(license),
        cascade=CascadeSummaryResponse.model_validate(summary) if summary else None,
    )


router.include_router(plans_router)
router.include_router(companies_router)
router.include_router(licenses_router)
