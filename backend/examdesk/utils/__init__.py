"""Utility functions for the examdesk backend."""

import time
from typing import Dict, Tuple

REQUIRED_PROFILE_FIELDS = {
    "full_name": "Full name",
    "email": "Email",
    "current_company": "Current company",
    "current_salary": "Current salary",
    "notice_period": "Notice period",
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_profile(fields: Dict[str, str]) -> Tuple[bool, str]:
    """Validate that every candidate registration field is filled in."""
    for key, label in REQUIRED_PROFILE_FIELDS.items():
        if not (fields.get(key) or "").strip():
            return False, f"{label} is required"
    return True, "OK"


def format_percentage(obtained: float, total: float) -> float:
    """Format percentage with 2 decimals."""
    if total == 0:
        return 0.0
    return round((obtained / total) * 100, 2)
