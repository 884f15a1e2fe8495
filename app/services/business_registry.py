from __future__ import annotations

import logging
import math
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import func, or_, true
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.models import (
    Business,
    BusinessCreate,
    BusinessUpdate,
    default_operating_hours,
    now_utc,
)
from app.infra.db import get_engine
from app.infra.events import event_bus

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    pass


class NotFoundError(RegistryError):
    pass


class ConflictError(RegistryError):
    pass


class BusinessRegistry:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    @staticmethod
    def _hours_to_json(hours: dict | None, base: dict | None = None) -> dict:
        merged = dict(base) if base else default_operating_hours()
        for day, day_hours in (hours or {}).items():
            merged[str(day)] = day_hours.model_dump()
        return merged

    def register(self, payload: BusinessCreate) -> Business:
        business = Business(
            name=payload.name.strip(),
            email=payload.email.strip().lower(),
            phone=payload.phone.strip(),
            address=payload.address.model_dump(),
            lat=payload.lat,
            lng=payload.lng,
            services=[item.value for item in payload.services],
            coverage_radius_km=payload.coverage_radius_km,
            capacity=payload.capacity,
            reliability=payload.reliability,
            avg_response_time_hours=payload.avg_response_time_hours,
            operating_hours=self._hours_to_json(payload.operating_hours),
            contact_person=payload.contact_person.model_dump(),
            is_active=payload.is_active,
        )
        with self._session() as session:
            session.add(business)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("business with this email already exists") from exc
            session.refresh(business)

        logger.info("registered business %s services=%s", business.id, ",".join(business.services))
        event_bus.publish_dict(
            "business.registered",
            {
                "business_id": business.id,
                "name": business.name,
                "services": business.services,
                "coverage_radius_km": business.coverage_radius_km,
            },
        )
        return business

    def get(self, business_id: str) -> Business:
        with self._session() as session:
            business = session.get(Business, business_id)
            if business is None:
                raise NotFoundError("business not found")
            return business

    def list_businesses(
        self,
        *,
        service: str | None = None,
        city: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Business], int]:
        with self._session() as session:
            rows = list(
                session.exec(
                    select(Business)
                    .where(col(Business.is_active) == true())
                    .order_by(col(Business.created_at).desc())
                ).all()
            )
        # services and address are JSON columns; filter them here to stay dialect-neutral.
        if service is not None:
            rows = [item for item in rows if service in item.services]
        if city is not None:
            needle = city.strip().lower()
            rows = [item for item in rows if needle in str(item.address.get("city", "")).lower()]
        total = len(rows)
        start = (max(page, 1) - 1) * limit
        return rows[start : start + limit], total

    @staticmethod
    def total_pages(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit > 0 else 0

    def update(self, business_id: str, payload: BusinessUpdate) -> Business:
        with self._session() as session:
            business = session.get(Business, business_id)
            if business is None:
                raise NotFoundError("business not found")
            changes = payload.model_dump(exclude_unset=True)
            for field_name, value in changes.items():
                if field_name == "services" and value is not None:
                    business.services = [str(item) for item in value]
                elif field_name == "operating_hours" and value is not None:
                    business.operating_hours = self._hours_to_json(payload.operating_hours, business.operating_hours)
                elif field_name in {"address", "contact_person"} and value is not None:
                    setattr(business, field_name, dict(value))
                elif value is not None:
                    setattr(business, field_name, value)
            business.updated_at = now_utc()
            session.add(business)
            session.commit()
            session.refresh(business)
            return business

    def save(self, business: Business) -> Business:
        with self._session() as session:
            business.updated_at = now_utc()
            session.add(business)
            session.commit()
            session.refresh(business)
        return business

    def find_contactable(self, category: str, cooldown_threshold: datetime) -> list[Business]:
        """Active businesses with spare capacity, out of cooldown, offering ``category``."""
        with self._session() as session:
            rows = session.exec(
                select(Business)
                .where(col(Business.is_active) == true())
                .where(col(Business.current_load) < col(Business.capacity))
                .where(
                    or_(
                        col(Business.last_contacted_at).is_(None),
                        col(Business.last_contacted_at) < cooldown_threshold,
                    )
                )
                .order_by(col(Business.created_at), col(Business.id))
            ).all()
        return [item for item in rows if category in item.services]

    def find_offering(self, category: str) -> list[Business]:
        with self._session() as session:
            rows = session.exec(
                select(Business)
                .where(col(Business.is_active) == true())
                .where(col(Business.current_load) < col(Business.capacity))
                .order_by(col(Business.reliability).desc(), col(Business.avg_response_time_hours))
            ).all()
        return [item for item in rows if category in item.services]

    def try_reserve(self, session: Session, business_id: str, *, now: datetime) -> bool:
        """Take one unit of capacity only if ``current_load < capacity`` at write time."""
        result = session.execute(
            sa.update(Business)
            .where(col(Business.id) == business_id)
            .where(col(Business.is_active) == true())
            .where(col(Business.current_load) < col(Business.capacity))
            .values(
                current_load=col(Business.current_load) + 1,
                total_assigned=col(Business.total_assigned) + 1,
                last_contacted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return int(getattr(result, "rowcount", 0) or 0) == 1

    def release(self, session: Session, business_id: str, *, now: datetime) -> None:
        session.execute(
            sa.update(Business)
            .where(col(Business.id) == business_id)
            .values(
                current_load=sa.case(
                    (col(Business.current_load) > 0, col(Business.current_load) - 1),
                    else_=0,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    def record_success(self, session: Session, business_id: str, *, now: datetime) -> None:
        session.execute(
            sa.update(Business)
            .where(col(Business.id) == business_id)
            .values(
                successful_assignments=col(Business.successful_assignments) + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    def reset_daily_load(self, *, now: datetime | None = None) -> int:
        stamp = now or now_utc()
        with self._session() as session:
            result = session.execute(
                sa.update(Business)
                .where(col(Business.is_active) == true())
                .values(current_load=0, updated_at=stamp)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        return int(getattr(result, "rowcount", 0) or 0)

    def count_active(self) -> int:
        with self._session() as session:
            statement = select(func.count()).select_from(Business).where(col(Business.is_active) == true())
            return int(session.exec(statement).one())

    def list_with_assignments(self) -> list[Business]:
        with self._session() as session:
            return list(
                session.exec(
                    select(Business)
                    .where(col(Business.is_active) == true())
                    .where(col(Business.total_assigned) > 0)
                ).all()
            )
