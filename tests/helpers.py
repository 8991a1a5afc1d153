"""Shared helpers for building test positions."""

from datetime import timedelta

from app.core.types import Position

# ~1 degree of latitude in meters with a 6371km earth radius
METERS_PER_DEG_LAT = 111194.93


def offset_north(position, meters, seconds=0):
    """Position `meters` due north of `position`, `seconds` later."""
    return Position(
        latitude=position.latitude + meters / METERS_PER_DEG_LAT,
        longitude=position.longitude,
        timestamp=position.timestamp + timedelta(seconds=seconds),
    )
