# backend/coinop/services/company_service.py
from __future__ import annotations

from ..extensions import db
from ..models import CompanyProfile

COMPANY_MUTABLE_FIELDS = {"name", "address", "tax_id", "phone", "email", "logo", "vat_percentage"}

DEFAULT_COMPANY_NAME = "My Company"


def get_company() -> CompanyProfile:
    """Single company profile; created with defaults on first access."""
    company = db.session.query(CompanyProfile).order_by(CompanyProfile.id.asc()).first()
    if company is None:
        company = CompanyProfile(name=DEFAULT_COMPANY_NAME, vat_percentage=21.0)
        db.session.add(company)
        db.session.commit()
    return company


def update_company(*, patch: dict) -> CompanyProfile:
    company = get_company()
    for k, v in patch.items():
        if k not in COMPANY_MUTABLE_FIELDS:
            continue
        setattr(company, k, v)
    db.session.commit()
    return company
