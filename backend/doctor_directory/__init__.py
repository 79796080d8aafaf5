from .directory import (
    DOCTORS,
    Doctor,
    DoctorFilters,
    filter_doctors,
    infer_specializations,
    parse_min_rating,
    recommend_doctors,
    unique_cities,
    unique_specializations,
)

__all__ = [
    "DOCTORS",
    "Doctor",
    "DoctorFilters",
    "filter_doctors",
    "infer_specializations",
    "parse_min_rating",
    "recommend_doctors",
    "unique_cities",
    "unique_specializations",
]
