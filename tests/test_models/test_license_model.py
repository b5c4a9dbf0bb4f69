"""
Tests unitaires pour les modèles LicensePlan et CompanyLicense.
"""
from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from psylink.models import CompanyLicense
from psylink.models.enums import LicenseStatus, PaymentStatus


class TestLicensePlan:
    """Tests pour le modèle LicensePlan."""

    def test_plan_relation(self, db_session: Session, plan, active_license):
        db_session.refresh(plan)
        assert active_license in plan.licenses
        assert active_license.plan == plan


class TestCompanyLicense:
    """Tests pour le modèle CompanyLicense."""

    def test_defaults(self, db_session: Session, company, plan):
        license = CompanyLicense(
            company_id=company.id,
            plan_id=plan.id,
            total_licenses=5,
            start_date=date.today(),
        )
        db_session.add(license)
        db_session.flush()

        assert license.used_licenses == 0
        assert license.version == 1
        assert license.status == LicenseStatus.PENDING
        assert license.payment_status == PaymentStatus.PENDING
        assert license.available_licenses == 5

    def test_used_cannot_exceed_total(self, db_session: Session, make_license, company):
        """La contrainte CHECK refuse used > total."""
        with pytest.raises(IntegrityError):
            make_license(company, total=2, used=3)
        db_session.rollback()

    def test_used_cannot_be_negative(self, db_session: Session, make_license, company):
        with pytest.raises(IntegrityError):
            make_license(company, total=2, used=-1)
        db_session.rollback()

    def test_counts_toward_pool(self, make_license, company):
        today = date.today()
        assert make_license(company).counts_toward_pool(today) is True
        assert make_license(company, status=LicenseStatus.PENDING).counts_toward_pool(today) is False
        assert make_license(
            company, payment_status=PaymentStatus.FAILED
        ).counts_toward_pool(today) is False
        assert make_license(
            company, expiry_date=today - timedelta(days=1)
        ).counts_toward_pool(today) is False

    def test_expiry_day_still_counts(self, make_license, company):
        """La licence reste valable le jour de son expiration."""
        today = date.today()
        license = make_license(company, expiry_date=today)
        assert license.is_expired(today) is False
