from __future__ import annotations

import functools
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.domain.models import Business, Task, ensure_utc
from app.services.business_registry import BusinessRegistry

BUSINESS_CONTACT_COOLDOWN_HOURS = float(os.getenv("BUSINESS_CONTACT_COOLDOWN_HOURS", "2"))
BUSINESS_HOURS_TIMEZONE = os.getenv("BUSINESS_HOURS_TIMEZONE", "UTC")

CONTACT_COOLDOWN = timedelta(hours=BUSINESS_CONTACT_COOLDOWN_HOURS)
RELIABILITY_TIE_THRESHOLD = 0.5
DISTANCE_TIE_THRESHOLD_KM = 2.0


@dataclass(frozen=True)
class RankedCandidate:
    business: Business
    distance_km: float
    open_now: bool


def _last_contact_key(business: Business) -> float:
    if business.last_contacted_at is None:
        return 0.0
    return ensure_utc(business.last_contacted_at).timestamp()


def _compare(a: RankedCandidate, b: RankedCandidate) -> int:
    if a.open_now != b.open_now:
        return -1 if a.open_now else 1
    reliability_gap = a.business.reliability - b.business.reliability
    if abs(reliability_gap) > RELIABILITY_TIE_THRESHOLD:
        return -1 if reliability_gap > 0 else 1
    distance_gap = a.distance_km - b.distance_km
    if abs(distance_gap) > DISTANCE_TIE_THRESHOLD_KM:
        return -1 if distance_gap < 0 else 1
    a_contact = _last_contact_key(a.business)
    b_contact = _last_contact_key(b.business)
    if a_contact == b_contact:
        return 0
    return -1 if a_contact < b_contact else 1


class MatchingEngine:
    """Filters and ranks the businesses that may take over one stranded task."""

    def __init__(
        self,
        registry: BusinessRegistry | None = None,
        *,
        cooldown: timedelta | None = None,
        timezone: str | None = None,
    ) -> None:
        self.registry = registry or BusinessRegistry()
        self.cooldown = cooldown if cooldown is not None else CONTACT_COOLDOWN
        self.timezone = ZoneInfo(timezone or BUSINESS_HOURS_TIMEZONE)

    def is_cooled_down(self, business: Business, now: datetime) -> bool:
        if business.last_contacted_at is None:
            return True
        return ensure_utc(business.last_contacted_at) < now - self.cooldown

    def filter_candidates(self, task: Task, businesses: list[Business], now: datetime) -> list[Business]:
        return [
            business
            for business in businesses
            if business.can_handle_task(str(task.category), task.lat, task.lng)
            and self.is_cooled_down(business, now)
        ]

    def rank_candidates(self, task: Task, businesses: list[Business], now: datetime) -> list[RankedCandidate]:
        local_now = ensure_utc(now).astimezone(self.timezone)
        scored = [
            RankedCandidate(
                business=business,
                distance_km=business.distance_to(task.lat, task.lng),
                open_now=business.is_open_at(local_now),
            )
            for business in businesses
        ]
        # sorted() is stable, so full ties keep registry order.
        return sorted(scored, key=functools.cmp_to_key(_compare))

    def find_candidates(self, task: Task, now: datetime) -> list[RankedCandidate]:
        now = ensure_utc(now)
        pool = self.registry.find_contactable(str(task.category), now - self.cooldown)
        eligible = self.filter_candidates(task, pool, now)
        return self.rank_candidates(task, eligible, now)

    def find_businesses(self, task: Task, now: datetime) -> list[Business]:
        """Ranked businesses only, in contact order."""
        return [item.business for item in self.find_candidates(task, now)]
