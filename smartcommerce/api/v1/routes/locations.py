"""Bangladesh location lookup and address validation routes.

Read-only and unauthenticated; used by checkout forms to populate the
division → district → upazila selectors.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from smartcommerce.api.shared.helpers import APIError, ErrorCode
from smartcommerce.geo import (
    get_district,
    get_districts_by_division,
    get_division,
    get_divisions,
    get_upazilas_by_district,
)
from smartcommerce.services.addresses import validate_address

router = APIRouter(prefix="/locations", tags=["locations"])


# ============================================================================
# Request/Response Models
# ============================================================================


class LocationItem(BaseModel):
    id: str
    name: str
    name_bn: str


class DistrictItem(LocationItem):
    division_id: str


class UpazilaItem(LocationItem):
    district_id: str


class AddressValidationRequest(BaseModel):
    """Address fields to check; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    division: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = None
    postal_code: Optional[str] = None


class AddressValidationResponse(BaseModel):
    valid: bool
    errors: Dict[str, str]
    errors_bn: Dict[str, str]


# ============================================================================
# Routes
# ============================================================================


@router.get("/divisions", response_model=List[LocationItem])
async def list_divisions() -> List[Dict[str, Any]]:
    return [d.to_dict() for d in get_divisions()]


@router.get("/divisions/{division_id}/districts", response_model=List[DistrictItem])
async def list_districts(division_id: str) -> List[Dict[str, Any]]:
    if get_division(division_id) is None:
        raise APIError(ErrorCode.LOCATION_NOT_FOUND, detail=f"Division {division_id} not found")
    return [d.to_dict() for d in get_districts_by_division(division_id)]


@router.get("/districts/{district_id}/upazilas", response_model=List[UpazilaItem])
async def list_upazilas(district_id: str) -> List[Dict[str, Any]]:
    """Upazilas of a district; empty when the district has no upazila data."""
    if get_district(district_id) is None:
        raise APIError(ErrorCode.LOCATION_NOT_FOUND, detail=f"District {district_id} not found")
    return [u.to_dict() for u in get_upazilas_by_district(district_id)]


@router.post("/validate-address", response_model=AddressValidationResponse)
async def validate_address_route(body: AddressValidationRequest) -> Dict[str, Any]:
    return validate_address(body.model_dump(exclude_none=True)).to_dict()
