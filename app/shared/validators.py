"""Shared validation utilities"""

import re
from typing import Optional

E164_PATTERN = re.compile(r"^\+[1-9]\d{9,14}$")


def validate_e164(phone: Optional[str]) -> Optional[str]:
    """
    Validate a phone number already in E.164 form.

    Spaces, dashes and parentheses are stripped before matching, nothing else
    is rewritten: the country code must be present.

    Returns:
        Normalized phone number (+CCNNNNNNNNN)

    Raises:
        ValueError: If phone number is not E.164
    """
    if not phone:
        return phone

    cleaned = re.sub(r"[\s\-().]", "", phone)
    if not E164_PATTERN.match(cleaned):
        raise ValueError("Phone number must be in E.164 format (e.g., +15551234567)")
    return cleaned


def validate_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    """Reject coordinates outside the WGS84 range"""
    if latitude is None or longitude is None:
        raise ValueError("Latitude and longitude are required")
    if not -90 <= latitude <= 90:
        raise ValueError(f"Latitude out of range: {latitude}")
    if not -180 <= longitude <= 180:
        raise ValueError(f"Longitude out of range: {longitude}")
    return float(latitude), float(longitude)
