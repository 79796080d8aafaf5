from __future__ import annotations

import re

DOCTOR_IMAGE_PLACEHOLDER = "https://placehold.co/100x100.png"

_PANEL: list[tuple[str, str, str, str, float]] = [
    ("Dr. Aisha Patel", "Cardiology", "City Hospital", "Mumbai", 4.8),
    ("Dr. Michael Chang", "Cardiology", "Heart Institute", "Mumbai", 4.7),
    ("Dr. William Parker", "Cardiology", "Heart & Vascular Institute", "Delhi", 4.8),
    ("Dr. Rajesh Kumar", "Orthopedics", "Central Medical Center", "Delhi", 4.9),
    ("Dr. Neha Verma", "Orthopedics", "Ortho Life Hospital", "Ahmedabad", 4.8),
    ("Dr. Priya Singh", "Pediatrics", "Children's Hospital", "Bangalore", 4.7),
    ("Dr. Emma Thompson", "Pediatrics", "Kids Care Hospital", "Delhi", 4.8),
    ("Dr. Sarah Johnson", "Dermatology", "Skin Care Clinic", "Mumbai", 4.6),
    ("Dr. Kavita Mehra", "Dermatology", "Glow Derma Center", "Chandigarh", 4.7),
    ("Dr. Ahmed Khan", "Neurology", "Brain & Spine Center", "Delhi", 4.9),
    ("Dr. Anil Deshmukh", "Neurology", "Neuro Care Hospital", "Nagpur", 4.8),
    ("Dr. Lisa Chen", "Ophthalmology", "Vision Care Center", "Chennai", 4.8),
    ("Dr. Rakesh Nair", "Ophthalmology", "Eye World Hospital", "Kochi", 4.7),
    ("Dr. James Wilson", "Psychiatry", "Mental Health Institute", "Hyderabad", 4.7),
    ("Dr. Meera Iyer", "Psychiatry", "Mind Wellness Center", "Chennai", 4.8),
    ("Dr. Maria Rodriguez", "Endocrinology", "Diabetes Care Center", "Pune", 4.9),
    ("Dr. Sunita Malhotra", "Endocrinology", "Endocrine Health Clinic", "Lucknow", 4.8),
    ("Dr. Olivia Martinez", "Oncology", "Cancer Care Center", "Mumbai", 4.9),
    ("Dr. Nikhil Mehra", "Oncology", "OncoLife Hospital", "Delhi", 4.8),
    ("Dr. Ananya Sharma", "General Medicine", "City Health Clinic", "Jaipur", 4.8),
    ("Dr. Rohit Sinha", "General Medicine", "Metro General Hospital", "Patna", 4.7),
    ("Dr. Ritu Sharma", "Gynecology", "Women's Wellness Center", "Mumbai", 4.9),
    ("Dr. Alisha Kapoor", "Gynecology", "Motherhood Hospital", "Delhi", 4.8),
    ("Dr. Pooja Iyer", "ENT", "ENT & Voice Clinic", "Pune", 4.8),
    ("Dr. Karan Singh", "ENT", "Hearing & ENT Care", "Chandigarh", 4.7),
    ("Dr. Manish Arora", "Urology", "UroLife Hospital", "Bhopal", 4.9),
]


_WHITESPACE_RE = re.compile(r"\s+")


def doctor_id(index: int, name: str) -> str:
    slug = _WHITESPACE_RE.sub("-", name.lower())
    return f"doc-{index}-{slug}"


def panel_rows() -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for index, (name, specialization, hospital, city, rating) in enumerate(_PANEL, start=1):
        rows.append(
            {
                "doctor_id": doctor_id(index, name),
                "name": name,
                "specialization": specialization,
                "hospital": hospital,
                "city": city,
                "rating": rating,
                "availability": "Available for appointments",
                "contact": f"Contact {hospital} for {name}.",
                "image_url": DOCTOR_IMAGE_PLACEHOLDER,
            }
        )
    return rows
