# backend/coinop/routes/company.py
from flask import Blueprint, request

from ..models import CompanyProfile
from ..services import company_service
from ..services.company_service import COMPANY_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_company,
    ValidationError,
)

COMPANY_POLICY = ModelValidationPolicy(writable_fields=set(COMPANY_MUTABLE_FIELDS))

company_bp = Blueprint("company", __name__, url_prefix="/api/company")


@company_bp.get("")
def get_company_route():
    return company_service.get_company().to_dict()


@company_bp.put("")
def update_company_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=CompanyProfile, payload=payload, policy=COMPANY_POLICY, partial=True)
        enforce_rules_company(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return company_service.update_company(patch=patch).to_dict()
