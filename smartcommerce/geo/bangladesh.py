"""Lookup functions over the bundled Bangladesh location data."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional

import yaml

from smartcommerce.db.models.address import Division
from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)

# Enum members whose spelling differs from the current official names
_DIVISION_ALIASES = {
    "chittagong": "chattogram",
    "barisal": "barishal",
}


@dataclass(frozen=True)
class GeoDivision:
    id: str
    name: str
    name_bn: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class District:
    id: str
    name: str
    name_bn: str
    division_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Upazila:
    id: str
    name: str
    name_bn: str
    district_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GeoData:
    divisions: tuple
    districts: tuple
    upazilas: tuple


@lru_cache(maxsize=1)
def load_geo_data() -> GeoData:
    """Parse ``bangladesh.yaml`` (cached for the life of the process)."""
    text = resources.files("smartcommerce.geo").joinpath("bangladesh.yaml").read_text(encoding="utf-8")
    raw = yaml.safe_load(text)

    data = GeoData(
        divisions=tuple(GeoDivision(**item) for item in raw["divisions"]),
        districts=tuple(District(**item) for item in raw["districts"]),
        upazilas=tuple(Upazila(**item) for item in raw["upazilas"]),
    )
    logger.debug(
        f"Loaded {len(data.divisions)} divisions, {len(data.districts)} districts, "
        f"{len(data.upazilas)} upazilas"
    )
    return data


def get_divisions() -> List[GeoDivision]:
    return list(load_geo_data().divisions)


def get_districts_by_division(division_id: str) -> List[District]:
    return [d for d in load_geo_data().districts if d.division_id == str(division_id)]


def get_upazilas_by_district(district_id: str) -> List[Upazila]:
    return [u for u in load_geo_data().upazilas if u.district_id == str(district_id)]


def get_division(division_id: str) -> Optional[GeoDivision]:
    return next((d for d in load_geo_data().divisions if d.id == str(division_id)), None)


def get_district(district_id: str) -> Optional[District]:
    return next((d for d in load_geo_data().districts if d.id == str(district_id)), None)


def get_upazila(upazila_id: str) -> Optional[Upazila]:
    return next((u for u in load_geo_data().upazilas if u.id == str(upazila_id)), None)


def _normalize(name: str) -> str:
    return " ".join(name.replace("_", " ").split()).lower()


def find_division_by_name(name: str) -> Optional[GeoDivision]:
    """Find a division by data name, Bengali name or ``Division`` enum value.

    Both the enum spellings (``CHITTAGONG``, ``BARISHAL``) and the data
    spellings (``Chattogram``, ``Barishal``) resolve to the same division.
    """
    if not name:
        return None
    if isinstance(name, Division):
        name = name.value
    key = _normalize(name)
    key = _DIVISION_ALIASES.get(key, key)
    for division in load_geo_data().divisions:
        if _normalize(division.name) == key or division.name_bn == name.strip():
            return division
    return None


def find_district_by_name(name: str, division_id: Optional[str] = None) -> Optional[District]:
    """Find a district by English or Bengali name, optionally within a division."""
    if not name:
        return None
    key = _normalize(name)
    for district in load_geo_data().districts:
        if division_id is not None and district.division_id != str(division_id):
            continue
        if _normalize(district.name) == key or district.name_bn == name.strip():
            return district
    return None


def find_upazila_by_name(name: str, district_id: str) -> Optional[Upazila]:
    """Find an upazila by English or Bengali name within a district."""
    if not name:
        return None
    key = _normalize(name)
    for upazila in get_upazilas_by_district(district_id):
        if _normalize(upazila.name) == key or upazila.name_bn == name.strip():
            return upazila
    return None


def division_enum_for(division: GeoDivision) -> Division:
    """Map a data division to the ``Division`` enum stored on addresses."""
    for member in Division:
        if find_division_by_name(member.value) == division:
            return member
    raise ValueError(f"No Division enum member for {division.name}")
