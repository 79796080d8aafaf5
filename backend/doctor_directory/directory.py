from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from .doctor_data import panel_rows

logger = logging.getLogger(__name__)

MAX_RATING = 5.0
RECOMMENDATION_LIMIT = 3
GENERAL_SPECIALIZATIONS = ("general practice", "general medicine")

_PRACTITIONER_ALIASES = {
    "cardiologist": "cardiology",
    "orthopedic": "orthopedics",
    "orthopaedic": "orthopedics",
    "pediatrician": "pediatrics",
    "paediatrician": "pediatrics",
    "dermatologist": "dermatology",
    "neurologist": "neurology",
    "ophthalmologist": "ophthalmology",
    "eye doctor": "ophthalmology",
    "psychiatrist": "psychiatry",
    "endocrinologist": "endocrinology",
    "oncologist": "oncology",
    "gynecologist": "gynecology",
    "gynaecologist": "gynecology",
    "urologist": "urology",
    "general practitioner": "general medicine",
    "medicine doctor": "general medicine",
    "family doctor": "general medicine",
}

_SYMPTOM_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Cardiology", ("chest pain", "palpitation", "heart", "blood pressure", "hypertension")),
    ("Neurology", ("migraine", "seizure", "numbness", "dizziness", "stroke", "tremor", "headache")),
    ("Orthopedics", ("fracture", "joint", "back pain", "knee", "sprain", "bone")),
    ("Dermatology", ("rash", "acne", "itch", "eczema", "skin")),
    ("Ophthalmology", ("vision", "blurry", "eye")),
    ("Psychiatry", ("anxiety", "depress", "panic", "insomnia", "stress")),
    ("Endocrinology", ("diabetes", "thyroid", "blood sugar", "hormone")),
    ("ENT", (" ear", "sinus", "throat", "hearing", "tonsil")),
    ("Gynecology", ("period", "menstrua", "pregnan", "pelvic")),
    ("Urology", ("urine", "urinary", "kidney stone", "bladder")),
    ("Oncology", ("tumor", "tumour", "lump", "cancer")),
    ("Pediatrics", ("my child", "my baby", "infant", "toddler")),
]


@dataclass(frozen=True)
class Doctor:
    doctor_id: str
    name: str
    specialization: str
    hospital: str
    city: str
    rating: float
    availability: str
    contact: str | None = None
    image_url: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DoctorFilters:
    specialization: str = ""
    city: str = ""
    min_rating: float = 0.0

    @classmethod
    def from_query(
        cls,
        specialization: str | None = None,
        city: str | None = None,
        min_rating: str | float | None = None,
    ) -> "DoctorFilters":
        return cls(
            specialization=(specialization or "").strip(),
            city=(city or "").strip(),
            min_rating=parse_min_rating(min_rating),
        )


DOCTORS: tuple[Doctor, ...] = tuple(Doctor(**row) for row in panel_rows())


def parse_min_rating(raw: str | float | None) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if value != value or value < 0 or value > MAX_RATING:
        return 0.0
    return value


def unique_specializations(doctors: Iterable[Doctor] = DOCTORS) -> list[str]:
    return sorted({doctor.specialization for doctor in doctors})


def unique_cities(doctors: Iterable[Doctor] = DOCTORS) -> list[str]:
    return sorted({doctor.city for doctor in doctors})


def filter_doctors(filters: DoctorFilters, doctors: Iterable[Doctor] = DOCTORS) -> list[Doctor]:
    specialization = filters.specialization.lower()
    city = filters.city.lower()
    matched: list[Doctor] = []
    for doctor in doctors:
        if specialization and doctor.specialization.lower() != specialization:
            continue
        if city and doctor.city.lower() != city:
            continue
        if filters.min_rating > 0 and doctor.rating < filters.min_rating:
            continue
        matched.append(doctor)
    return matched


def normalize_specialization(requested: str) -> str:
    lowered = requested.strip().lower()
    for alias, specialization in _PRACTITIONER_ALIASES.items():
        if alias in lowered:
            return specialization
    return lowered


def infer_specializations(symptoms: str) -> list[str]:
    lowered = f" {symptoms.lower()} "
    inferred: list[str] = []
    for specialization, keywords in _SYMPTOM_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            inferred.append(specialization)
    return inferred


def _matches_specialization(doctor: Doctor, wanted: str) -> bool:
    doctor_specialization = doctor.specialization.lower()
    return wanted in doctor_specialization or doctor_specialization in wanted


def _general_doctors(doctors: Iterable[Doctor]) -> list[Doctor]:
    return [
        doctor
        for doctor in doctors
        if any(marker in doctor.specialization.lower() for marker in GENERAL_SPECIALIZATIONS)
    ]


def recommend_doctors(
    *,
    symptoms: str | None = None,
    requested_specialization: str | None = None,
    list_all: bool = False,
    doctors: Iterable[Doctor] = DOCTORS,
) -> list[Doctor]:
    """Suggest panel doctors for a request.

    ``list_all`` wins over everything else. A requested specialization is
    matched by substring in either direction; otherwise specializations are
    inferred from symptom keywords, falling back to general medicine. Any
    request other than ``list_all`` returns at most three doctors.
    """
    panel = list(doctors)
    if list_all:
        return panel

    symptoms = (symptoms or "").strip()
    requested = (requested_specialization or "").strip()
    if not symptoms and not requested:
        raise ValueError("Provide symptoms or a requested specialization, or set list_all.")

    if requested:
        wanted = normalize_specialization(requested)
        matched = [doctor for doctor in panel if _matches_specialization(doctor, wanted)]
        logger.info("doctor recommendation by specialization %r matched %d", requested, len(matched))
    else:
        inferred = [name.lower() for name in infer_specializations(symptoms)]
        matched = [
            doctor for doctor in panel if any(_matches_specialization(doctor, wanted) for wanted in inferred)
        ]
        if not matched:
            matched = _general_doctors(panel)
        logger.info("doctor recommendation from symptoms inferred=%s matched %d", inferred, len(matched))
    return matched[:RECOMMENDATION_LIMIT]
