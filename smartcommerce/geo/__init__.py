"""Bangladesh administrative geography (division → district → upazila).

Data is loaded once from ``bangladesh.yaml`` shipped with the package.
"""

from smartcommerce.geo.bangladesh import (
    District,
    GeoDivision,
    Upazila,
    division_enum_for,
    find_district_by_name,
    find_division_by_name,
    find_upazila_by_name,
    get_districts_by_division,
    get_district,
    get_divisions,
    get_division,
    get_upazila,
    get_upazilas_by_district,
    load_geo_data,
)

__all__ = [
    "District",
    "GeoDivision",
    "Upazila",
    "division_enum_for",
    "find_district_by_name",
    "find_division_by_name",
    "find_upazila_by_name",
    "get_districts_by_division",
    "get_district",
    "get_divisions",
    "get_division",
    "get_upazila",
    "get_upazilas_by_district",
    "load_geo_data",
]
