"""Address book API routes for the authenticated user."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from smartcommerce.api.shared.auth import get_current_user
from smartcommerce.api.shared.dependencies import get_address_service
from smartcommerce.api.shared.helpers import APIError, ErrorCode
from smartcommerce.db.models import Address, AddressType, Division, User
from smartcommerce.services.addresses import (
    AddressNotFoundError,
    AddressService,
    AddressValidationError,
)

router = APIRouter(prefix="/addresses", tags=["addresses"])


# ============================================================================
# Request/Response Models
# ============================================================================


class AddressCreateRequest(BaseModel):
    """New address.

    ``division`` and ``district`` accept either an id from the locations API
    or a name; ``upazila`` is checked only for districts with upazila data.
    """

    type: str = Field(default="SHIPPING", description="SHIPPING or BILLING")
    first_name: str
    last_name: str
    phone: str
    address_line1: str
    address_line2: Optional[str] = None
    division: str
    district: str
    upazila: Optional[str] = None
    postal_code: Optional[str] = None
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their current values."""

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
    is_default: Optional[bool] = None


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: AddressType
    first_name: str
    last_name: str
    phone: str
    address_line1: str
    address_line2: Optional[str] = None
    division: Division
    district: str
    upazila: Optional[str] = None
    postal_code: Optional[str] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime


class AddressListResponse(BaseModel):
    addresses: List[AddressResponse]
    total: int


class AddressDeleteResponse(BaseModel):
    message: str
    message_bn: str
    new_default: Optional[AddressResponse] = None


# ============================================================================
# Helper Functions
# ============================================================================


def address_invalid_error(errors: Dict[str, Dict[str, str]]) -> APIError:
    """422 body listing every failing field in English and Bengali."""
    return APIError(
        ErrorCode.ADDRESS_INVALID,
        extra={
            "errors": {k: v["en"] for k, v in errors.items()},
            "errors_bn": {k: v["bn"] for k, v in errors.items()},
        },
    )


def _to_response(address: Address) -> AddressResponse:
    return AddressResponse.model_validate(address)


# ============================================================================
# Routes
# ============================================================================


@router.get("", response_model=AddressListResponse)
async def list_addresses(
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressListResponse:
    """Addresses of the current user, default first."""
    addresses = await service.list_addresses(user.id)
    return AddressListResponse(addresses=[_to_response(a) for a in addresses], total=len(addresses))


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(
    body: AddressCreateRequest,
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressResponse:
    try:
        address = await service.create_address(user.id, body.model_dump())
    except AddressValidationError as e:
        raise address_invalid_error(e.errors)
    return _to_response(address)


@router.get("/default", response_model=Optional[AddressResponse])
async def get_default_address(
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> Optional[AddressResponse]:
    address = await service.get_default(user.id)
    return _to_response(address) if address else None


@router.get("/{address_id}", response_model=AddressResponse)
async def get_address(
    address_id: UUID,
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressResponse:
    try:
        return _to_response(await service.get_address(user.id, address_id))
    except AddressNotFoundError:
        raise APIError(ErrorCode.ADDRESS_NOT_FOUND)


@router.patch("/{address_id}", response_model=AddressResponse)
@router.put("/{address_id}", response_model=AddressResponse)
async def update_address(
    address_id: UUID,
    body: AddressUpdateRequest,
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressResponse:
    try:
        address = await service.update_address(user.id, address_id, body.model_dump(exclude_unset=True))
    except AddressNotFoundError:
        raise APIError(ErrorCode.ADDRESS_NOT_FOUND)
    except AddressValidationError as e:
        raise address_invalid_error(e.errors)
    return _to_response(address)


@router.delete("/{address_id}", response_model=AddressDeleteResponse)
async def delete_address(
    address_id: UUID,
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressDeleteResponse:
    """Delete an address; deleting the default promotes the newest remaining one."""
    try:
        promoted = await service.delete_address(user.id, address_id)
    except AddressNotFoundError:
        raise APIError(ErrorCode.ADDRESS_NOT_FOUND)
    return AddressDeleteResponse(
        message="Address deleted successfully",
        message_bn="ঠিকানা সফলভাবে মুছে ফেলা হয়েছে",
        new_default=_to_response(promoted) if promoted else None,
    )


@router.put("/{address_id}/default", response_model=AddressResponse)
@router.post("/{address_id}/default", response_model=AddressResponse)
async def set_default_address(
    address_id: UUID,
    user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
) -> AddressResponse:
    try:
        address = await service.set_default(user.id, address_id)
    except AddressNotFoundError:
        raise APIError(ErrorCode.ADDRESS_NOT_FOUND)
    return _to_response(address)
