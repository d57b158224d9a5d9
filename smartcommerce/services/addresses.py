"""Saved addresses and Bangladesh address validation.

Addresses are validated against the division → district → upazila
hierarchy before they are stored. Each user keeps at most one default
address; the first address a user saves becomes the default and deleting
the default promotes the most recently created remaining address.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.db.models import Address, AddressType
from smartcommerce.geo import (
    District,
    GeoDivision,
    division_enum_for,
    find_district_by_name,
    find_division_by_name,
    find_upazila_by_name,
    get_district,
    get_division,
    get_upazila,
    get_upazilas_by_district,
)
from smartcommerce.logging_config import get_logger
from smartcommerce.services.phone_validation import phone_validator

logger = get_logger(__name__)

ADDRESS_LINE1_MIN = 10
ADDRESS_LINE_MAX = 200
NAME_MAX = 100
POSTAL_CODE_PATTERN = re.compile(r"^\d{4}$")

EDITABLE_FIELDS = (
    "type",
    "first_name",
    "last_name",
    "phone",
    "address_line1",
    "address_line2",
    "division",
    "district",
    "upazila",
    "postal_code",
)


class AddressNotFoundError(Exception):
    """The address does not exist or belongs to another user."""


class AddressValidationError(Exception):
    """Address payload failed validation.

    Attributes:
        errors: Field name → ``{"en": ..., "bn": ...}``
    """

    def __init__(self, errors: Dict[str, Dict[str, str]]):
        self.errors = errors
        super().__init__(", ".join(f"{k}: {v['en']}" for k, v in errors.items()))


@dataclass
class AddressValidation:
    """Outcome of ``validate_address``.

    ``cleaned`` holds the values to persist: the ``Division`` enum, the
    canonical district/upazila names and the normalized phone.
    """

    valid: bool
    errors: Dict[str, Dict[str, str]] = field(default_factory=dict)
    cleaned: Dict[str, Any] = field(default_factory=dict)

    def add(self, name: str, en: str, bn: str) -> None:
        self.errors.setdefault(name, {"en": en, "bn": bn})
        self.valid = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": {k: v["en"] for k, v in self.errors.items()},
            "errors_bn": {k: v["bn"] for k, v in self.errors.items()},
        }


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, enum.Enum):
        return value.value
    return str(value).strip()


def resolve_division(value: Any) -> Optional[GeoDivision]:
    """Accept a division id, English/Bengali name or ``Division`` value."""
    text = _text(value)
    if not text:
        return None
    return get_division(text) or find_division_by_name(text)


def resolve_district(value: Any, division: GeoDivision) -> Optional[District]:
    """Resolve a district id or name, restricted to ``division``."""
    text = _text(value)
    if not text:
        return None
    district = get_district(text)
    if district is not None:
        return district if district.division_id == division.id else None
    return find_district_by_name(text, division.id)


def validate_address(payload: Mapping[str, Any]) -> AddressValidation:
    """Validate an address payload.

    Division must exist, the district must belong to it and the optional
    upazila must belong to the district when upazila data exists for that
    district. Every failing field is reported, each with an English and a
    Bengali message.
    """
    result = AddressValidation(valid=True)
    cleaned = result.cleaned

    for name, label, label_bn in (
        ("first_name", "First name", "প্রথম নাম"),
        ("last_name", "Last name", "শেষ নাম"),
    ):
        value = _text(payload.get(name))
        if not value:
            result.add(name, f"{label} is required", f"{label_bn} প্রয়োজনীয়")
        elif len(value) > NAME_MAX:
            result.add(
                name,
                f"{label} must be at most {NAME_MAX} characters",
                f"{label_bn} সর্বোচ্চ {NAME_MAX} অক্ষর হতে পারে",
            )
        else:
            cleaned[name] = value

    line1 = _text(payload.get("address_line1"))
    if not line1:
        result.add("address_line1", "Address is required", "ঠিকানা প্রয়োজনীয়")
    elif len(line1) < ADDRESS_LINE1_MIN or len(line1) > ADDRESS_LINE_MAX:
        result.add(
            "address_line1",
            f"Address must be between {ADDRESS_LINE1_MIN} and {ADDRESS_LINE_MAX} characters",
            f"ঠিকানা {ADDRESS_LINE1_MIN} থেকে {ADDRESS_LINE_MAX} অক্ষরের মধ্যে হতে হবে",
        )
    else:
        cleaned["address_line1"] = line1

    line2 = _text(payload.get("address_line2"))
    if len(line2) > ADDRESS_LINE_MAX:
        result.add(
            "address_line2",
            f"Address line 2 must be at most {ADDRESS_LINE_MAX} characters",
            f"ঠিকানার দ্বিতীয় লাইন সর্বোচ্চ {ADDRESS_LINE_MAX} অক্ষর হতে পারে",
        )
    else:
        cleaned["address_line2"] = line2 or None

    postal_code = _text(payload.get("postal_code"))
    if postal_code and not POSTAL_CODE_PATTERN.match(postal_code):
        result.add(
            "postal_code",
            "Postal code must be 4 digits",
            "পোস্টাল কোড ৪ সংখ্যার হতে হবে",
        )
    else:
        cleaned["postal_code"] = postal_code or None

    phone = _text(payload.get("phone"))
    if not phone:
        result.add("phone", "Phone number is required", "ফোন নম্বর প্রয়োজনীয়")
    else:
        phone_result = phone_validator.validate(phone, allow_landline=False)
        if phone_result.is_valid:
            cleaned["phone"] = phone_result.normalized_phone
        else:
            result.add(
                "phone",
                phone_result.error or "Invalid phone number",
                phone_result.error_bn or "অবৈধ ফোন নম্বর",
            )

    address_type = _text(payload.get("type")) or AddressType.SHIPPING.value
    try:
        cleaned["type"] = AddressType(address_type.upper())
    except ValueError:
        result.add("type", "Address type must be SHIPPING or BILLING", "ঠিকানার ধরন SHIPPING বা BILLING হতে হবে")

    division = resolve_division(payload.get("division"))
    if division is None:
        if _text(payload.get("division")):
            result.add("division", "Invalid division", "অবৈধ বিভাগ")
        else:
            result.add("division", "Division is required", "বিভাগ প্রয়োজনীয়")
        return result
    cleaned["division"] = division_enum_for(division)

    district_value = payload.get("district")
    district = resolve_district(district_value, division)
    if district is None:
        if _text(district_value):
            result.add(
                "district",
                f"District does not belong to {division.name} division",
                f"জেলাটি {division.name_bn} বিভাগের অন্তর্গত নয়",
            )
        else:
            result.add("district", "District is required", "জেলা প্রয়োজনীয়")
        return result
    cleaned["district"] = district.name

    upazila_value = _text(payload.get("upazila"))
    if not upazila_value:
        cleaned["upazila"] = None
    elif get_upazilas_by_district(district.id):
        upazila = get_upazila(upazila_value)
        if upazila is None or upazila.district_id != district.id:
            upazila = find_upazila_by_name(upazila_value, district.id)
        if upazila is None:
            result.add(
                "upazila",
                f"Upazila does not belong to {district.name} district",
                f"উপজেলাটি {district.name_bn} জেলার অন্তর্গত নয়",
            )
        else:
            cleaned["upazila"] = upazila.name
    else:
        cleaned["upazila"] = upazila_value

    return result


class AddressService:
    """Address book operations for one database session.

    Methods flush but do not commit; the request-scoped session from
    ``get_db`` commits on success.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_addresses(self, user_id: UUID) -> List[Address]:
        result = await self.db.execute(
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_address(self, user_id: UUID, address_id: UUID) -> Address:
        address = (
            await self.db.execute(
                select(Address).where(Address.id == address_id, Address.user_id == user_id)
            )
        ).scalar_one_or_none()
        if address is None:
            raise AddressNotFoundError(str(address_id))
        return address

    async def _count(self, user_id: UUID) -> int:
        return len(await self.list_addresses(user_id))

    async def _clear_default(self, user_id: UUID, keep_id: Optional[UUID] = None) -> None:
        stmt = update(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
        if keep_id is not None:
            stmt = stmt.where(Address.id != keep_id)
        await self.db.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))
        await self.db.flush()

    async def create_address(self, user_id: UUID, payload: Mapping[str, Any]) -> Address:
        """Validate and store a new address.

        Raises:
            AddressValidationError: Payload failed validation
        """
        validation = validate_address(payload)
        if not validation.valid:
            raise AddressValidationError(validation.errors)

        make_default = bool(payload.get("is_default")) or await self._count(user_id) == 0
        if make_default:
            await self._clear_default(user_id)

        address = Address(user_id=user_id, is_default=make_default, **validation.cleaned)
        self.db.add(address)
        await self.db.flush()
        await self.db.refresh(address)

        logger.info(
            "Address created",
            extra={"user_id": str(user_id), "address_id": str(address.id), "is_default": make_default},
        )
        return address

    async def update_address(self, user_id: UUID, address_id: UUID, changes: Mapping[str, Any]) -> Address:
        """Apply a partial update; the merged address is revalidated.

        ``is_default=True`` makes the address the default. Clearing the flag
        on the current default is ignored, so a user with addresses always
        has one.
        """
        address = await self.get_address(user_id, address_id)

        merged = {name: getattr(address, name) for name in EDITABLE_FIELDS}
        merged.update({k: v for k, v in changes.items() if k in EDITABLE_FIELDS})
        validation = validate_address(merged)
        if not validation.valid:
            raise AddressValidationError(validation.errors)

        if changes.get("is_default") and not address.is_default:
            await self._clear_default(user_id, keep_id=address.id)
            address.is_default = True

        for name, value in validation.cleaned.items():
            setattr(address, name, value)
        await self.db.flush()
        await self.db.refresh(address)

        logger.info("Address updated", extra={"user_id": str(user_id), "address_id": str(address_id)})
        return address

    async def delete_address(self, user_id: UUID, address_id: UUID) -> Optional[Address]:
        """Delete an address.

        Returns:
            The address promoted to default, if the deleted one was the default
        """
        address = await self.get_address(user_id, address_id)
        was_default = address.is_default
        await self.db.delete(address)
        await self.db.flush()

        promoted = None
        if was_default:
            promoted = (
                await self.db.execute(
                    select(Address)
                    .where(Address.user_id == user_id)
                    .order_by(Address.created_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if promoted is not None:
                promoted.is_default = True
                await self.db.flush()
                await self.db.refresh(promoted)

        logger.info(
            "Address deleted",
            extra={
                "user_id": str(user_id),
                "address_id": str(address_id),
                "promoted_id": str(promoted.id) if promoted else None,
            },
        )
        return promoted

    async def set_default(self, user_id: UUID, address_id: UUID) -> Address:
        """Make ``address_id`` the user's only default address."""
        address = await self.get_address(user_id, address_id)
        if address.is_default:
            return address

        # Other defaults must be cleared before the partial unique index sees a second one
        await self._clear_default(user_id, keep_id=address.id)
        address.is_default = True
        await self.db.flush()
        await self.db.refresh(address)

        logger.info("Default address changed", extra={"user_id": str(user_id), "address_id": str(address_id)})
        return address

    async def get_default(self, user_id: UUID) -> Optional[Address]:
        return (
            await self.db.execute(
                select(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
            )
        ).scalar_one_or_none()
