import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordIdMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)


class ModificationMixin:
    last_modified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=_utcnow
    )
    modified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Application(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "applications"

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    submission_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_premium: Mapped[float | None] = mapped_column(Float, nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class AuditLog(Base, RecordIdMixin):
    __tablename__ = "audit_logs"

    table_name: Mapped[str] = mapped_column(String(63), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(63), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    old_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class ClassCode(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "class_codes"

    code: Mapped[str] = mapped_column(String(4), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    industry_group: Mapped[str] = mapped_column(String(200), nullable=False)
    hazard_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)


class HealthCheck(Base, RecordIdMixin):
    __tablename__ = "health_check"

    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_check: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)


class PremiumRule(Base, RecordIdMixin):
    __tablename__ = "premium_rules"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    condition: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Quote(Base, RecordIdMixin):
    __tablename__ = "quotes"

    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    premium_amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=_utcnow
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


class RatingFactor(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "rating_factors"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)


class RatingTable(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "rating_tables"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    data: Mapped[str | None] = mapped_column(Text, nullable=True)


class StateFactor(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "state_factors"
    __table_args__ = (UniqueConstraint("state_code", "effective_date"),)

    state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    state_name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_rate: Mapped[float] = mapped_column(Float, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)


class Territory(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "territories"
    __table_args__ = (UniqueConstraint("code", "state"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    risk_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)


class VerifiedBusinessName(Base, RecordIdMixin, ModificationMixin):
    __tablename__ = "verified_business_names"

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    tax_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    verification_date: Mapped[date] = mapped_column(Date, nullable=False)
    verification_source: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
