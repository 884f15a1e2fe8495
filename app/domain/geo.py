from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.models import Business

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


class Weekday(StrEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, moment: datetime) -> Weekday:
        return list(cls)[moment.weekday()]


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine great-circle distance in kilometres between two points given in degrees."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_open_now(business: Business, now: datetime) -> bool:
    """Whether ``now`` (already in the business-hours timezone) falls in that day's hours.

    Both ends of the ``[open, close]`` window are inclusive and compared as HH:MM strings.
    """
    hours = business.hours_for(Weekday.of(now))
    if hours is None or not hours.is_open:
        return False
    current = now.strftime("%H:%M")
    return hours.open <= current <= hours.close


def can_handle_task(business: Business, category: str, lat: float, lng: float) -> bool:
    if not business.is_active:
        return False
    if category not in business.services:
        return False
    if business.current_load >= business.capacity:
        return False
    return distance_km(business.location(), GeoPoint(lat=lat, lng=lng)) <= business.coverage_radius_km
