from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from app.domain.geo import GeoPoint, Weekday, can_handle_task, distance_km, is_open_now


def now_utc() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    correlation_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class TaskCategory(StrEnum):
    GENERAL = "General"
    DONOR = "Donor"
    BLOOD_EMERGENCY = "Blood Emergency"
    OTHER = "Other"
    RENTAL = "Rental"
    DELIVERY = "Delivery"
    CLEANING = "Cleaning"
    MAINTENANCE = "Maintenance"


class Urgency(StrEnum):
    NORMAL = "Normal"
    URGENT = "Urgent"
    EMERGENCY = "Emergency"


ESCALATION_WINDOWS: dict[Urgency, timedelta] = {
    Urgency.EMERGENCY: timedelta(hours=1),
    Urgency.URGENT: timedelta(hours=4),
    Urgency.NORMAL: timedelta(hours=24),
}


def escalation_deadline_for(created_at: datetime, urgency: Urgency) -> datetime:
    return created_at + ESCALATION_WINDOWS[urgency]


HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
EMAIL_PATTERN = r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$"
PHONE_PATTERN = r"^\+?[\d\s()-]+$"


class DayHours(BaseModel):
    # Zero-padded 24h times; is_open_now compares them as strings.
    open: str = PydanticField(default="09:00", pattern=HHMM_PATTERN)
    close: str = PydanticField(default="18:00", pattern=HHMM_PATTERN)
    is_open: bool = True

    @model_validator(mode="after")
    def _check_order(self) -> DayHours:
        if self.open > self.close:
            raise ValueError("open must not be later than close")
        return self


def default_operating_hours() -> dict[str, dict[str, Any]]:
    weekday = DayHours().model_dump()
    weekend = DayHours(open="10:00", close="16:00").model_dump()
    hours = {day.value: dict(weekday) for day in Weekday}
    hours[Weekday.SATURDAY.value] = dict(weekend)
    hours[Weekday.SUNDAY.value] = {**weekend, "is_open": False}
    return hours


class Business(SQLModel, table=True):
    __tablename__ = "businesses"
    __table_args__ = (
        Index("ix_businesses_active_load", "is_active", "current_load"),
        Index("ix_businesses_lat_lng", "lat", "lng"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    email: str = Field(index=True, unique=True)
    phone: str
    address: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    lat: float
    lng: float
    services: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    coverage_radius_km: float = Field(default=10.0)
    capacity: int = Field(default=3)
    current_load: int = Field(default=0)
    reliability: float = Field(default=5.0)
    avg_response_time_hours: float = Field(default=4.0)
    operating_hours: dict[str, Any] = Field(
        default_factory=default_operating_hours,
        sa_column=Column(JSON, nullable=False),
    )
    contact_person: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    last_contacted_at: datetime | None = Field(default=None, index=True)
    is_active: bool = Field(default=True, index=True)
    total_assigned: int = Field(default=0)
    successful_assignments: int = Field(default=0)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)

    def location(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)

    def hours_for(self, day: Weekday) -> DayHours | None:
        raw = self.operating_hours.get(day.value)
        if not isinstance(raw, dict):
            return None
        return DayHours.model_validate(raw)

    def distance_to(self, lat: float, lng: float) -> float:
        return distance_km(self.location(), GeoPoint(lat=lat, lng=lng))

    def is_open_at(self, moment: datetime) -> bool:
        return is_open_now(self, moment)

    def can_handle_task(self, category: str, lat: float, lng: float) -> bool:
        return can_handle_task(self, category, lat, lng)

    def success_rate(self) -> int:
        if self.total_assigned == 0:
            return 100
        return round(self.successful_assignments / self.total_assigned * 100)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_escalation", "contacted", "escalation_deadline", "accepted_volunteer_count"),
        Index("ix_tasks_lat_lng", "lat", "lng"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str
    description: str = ""
    category: TaskCategory = Field(index=True)
    urgency: Urgency = Field(default=Urgency.NORMAL, index=True)
    address: str = ""
    lat: float
    lng: float
    amount: float = Field(default=0.0)
    people_needed: int = Field(default=1)
    accepted_volunteer_count: int = Field(default=0)
    requester_name: str | None = None
    requester_email: str | None = None
    requester_phone: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    escalation_deadline: datetime = Field(index=True)
    end_time: datetime | None = Field(default=None, index=True)
    contacted: bool = Field(default=False, index=True)
    contacted_at: datetime | None = Field(default=None)
    assigned_business_id: str | None = Field(default=None, foreign_key="businesses.id", index=True)
    business_volunteer_info: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    updated_at: datetime = Field(default_factory=now_utc, index=True)

    def location(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    ts: datetime = PydanticField(default_factory=now_utc)
    correlation_id: str | None = None
    payload: dict[str, Any] = PydanticField(default_factory=dict)


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ContactPerson(BaseModel):
    name: str
    title: str = ""
    email: str = PydanticField(pattern=EMAIL_PATTERN)
    phone: str = ""


class BusinessAddress(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class BusinessCreate(BaseModel):
    name: str = PydanticField(min_length=1, max_length=100)
    email: str = PydanticField(pattern=EMAIL_PATTERN)
    phone: str = PydanticField(pattern=PHONE_PATTERN)
    address: BusinessAddress = PydanticField(default_factory=BusinessAddress)
    lat: float = PydanticField(ge=-90, le=90)
    lng: float = PydanticField(ge=-180, le=180)
    services: list[TaskCategory] = PydanticField(min_length=1)
    coverage_radius_km: float = PydanticField(default=10.0, ge=1, le=50)
    capacity: int = PydanticField(default=3, ge=1)
    reliability: float = PydanticField(default=5.0, ge=1.0, le=5.0)
    avg_response_time_hours: float = PydanticField(default=4.0, ge=0.5, le=48)
    operating_hours: dict[Weekday, DayHours] | None = None
    contact_person: ContactPerson
    is_active: bool = True


class BusinessUpdate(BaseModel):
    name: str | None = PydanticField(default=None, min_length=1, max_length=100)
    phone: str | None = PydanticField(default=None, pattern=PHONE_PATTERN)
    address: BusinessAddress | None = None
    lat: float | None = PydanticField(default=None, ge=-90, le=90)
    lng: float | None = PydanticField(default=None, ge=-180, le=180)
    services: list[TaskCategory] | None = PydanticField(default=None, min_length=1)
    coverage_radius_km: float | None = PydanticField(default=None, ge=1, le=50)
    capacity: int | None = PydanticField(default=None, ge=1)
    reliability: float | None = PydanticField(default=None, ge=1.0, le=5.0)
    avg_response_time_hours: float | None = PydanticField(default=None, ge=0.5, le=48)
    operating_hours: dict[Weekday, DayHours] | None = None
    contact_person: ContactPerson | None = None
    is_active: bool | None = None


class BusinessRead(ORMReadModel):
    id: str
    name: str
    email: str
    phone: str
    address: dict[str, Any]
    lat: float
    lng: float
    services: list[str]
    coverage_radius_km: float
    capacity: int
    current_load: int
    reliability: float
    avg_response_time_hours: float
    operating_hours: dict[str, Any]
    contact_person: dict[str, Any]
    last_contacted_at: datetime | None
    is_active: bool
    total_assigned: int
    successful_assignments: int
    created_at: datetime
    updated_at: datetime


class BusinessPageRead(BaseModel):
    items: list[BusinessRead]
    page: int
    total_pages: int
    total: int


class SuitableBusinessRead(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    services: list[str]
    coverage_radius_km: float
    avg_response_time_hours: float
    reliability: float
    success_rate: int
    distance_km: float
    is_open_now: bool
    available_capacity: int


class TaskCreate(BaseModel):
    title: str = PydanticField(min_length=1)
    description: str = ""
    category: TaskCategory
    urgency: Urgency = Urgency.NORMAL
    address: str = ""
    lat: float = PydanticField(ge=-90, le=90)
    lng: float = PydanticField(ge=-180, le=180)
    amount: float = 0.0
    people_needed: int = PydanticField(default=1, ge=1)
    requester_name: str | None = None
    requester_email: str | None = None
    requester_phone: str | None = None
    end_time: datetime | None = None


class TaskRead(ORMReadModel):
    id: str
    title: str
    description: str
    category: TaskCategory
    urgency: Urgency
    address: str
    lat: float
    lng: float
    amount: float
    people_needed: int
    accepted_volunteer_count: int
    created_at: datetime
    escalation_deadline: datetime
    end_time: datetime | None
    contacted: bool
    contacted_at: datetime | None
    assigned_business_id: str | None
    business_volunteer_info: dict[str, Any] | None
    updated_at: datetime


class VolunteerAcceptRequest(BaseModel):
    volunteer_name: str = PydanticField(min_length=1)
    volunteer_phone: str = PydanticField(min_length=1)
    volunteer_email: str | None = None
    estimated_arrival: datetime | None = None


class DeclineRequest(BaseModel):
    reason: str | None = None


class ContactResultRead(BaseModel):
    task_id: str
    business_id: str | None
    success: bool
    message: str


class SweepRunRead(BaseModel):
    total_processed: int
    successful: int
    failed: int
    details: list[ContactResultRead]


class EscalationStatsRead(BaseModel):
    tasks_awaiting_business_contact: int
    businesses_active: int
    average_response_time: float
    success_rate: float


class LoadResetRead(BaseModel):
    businesses_reset: int
