from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import TEXT, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class TZDatetime(TypeDecorator):
    """Custom DateTime type that ensures timezone-aware datetimes."""

    impl = DateTime(timezone=True)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError(
                "Naive datetime is not allowed. Please provide a timezone-aware datetime."
            )
        # SQLite keeps no offset, so everything is written in UTC
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            # SQLite drops the offset; values are always written in UTC
            return value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


class RecurringJobStatus(str, Enum):
    """Lifecycle status of a recurring job."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class ExecutionTrigger(str, Enum):
    """What caused an execution: a timer tick or an explicit run-now."""

    SCHEDULE = "schedule"
    MANUAL = "manual"


class RecurringJob(Base):
    """Recurring job definition, one row per named job."""

    __tablename__ = "recurring_jobs"
    # Never hand a deleted job's id to a new job; detached history keeps it
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    job_key: Mapped[str] = mapped_column(String(255), default="")
    function_name: Mapped[str] = mapped_column(String(255))
    cron_expression: Mapped[str] = mapped_column(String(100))
    args: Mapped[str] = mapped_column(TEXT, default="")
    times: Mapped[int] = mapped_column(Integer, default=0)
    times_run: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[RecurringJobStatus] = mapped_column(
        SQLAlchemyEnum(RecurringJobStatus), default=RecurringJobStatus.ACTIVE
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(TZDatetime())
    next_run_at: Mapped[Optional[datetime]] = mapped_column(TZDatetime())
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str] = mapped_column(TEXT, default="")
    created_at: Mapped[datetime] = mapped_column(TZDatetime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=utcnow, onupdate=utcnow
    )

    @property
    def args_bytes(self) -> bytes:
        return self.args.encode("utf-8") if self.args else b""

    def budget_exhausted(self) -> bool:
        return self.times > 0 and self.times_run >= self.times


class RecurringJobExecution(Base):
    """One invocation attempt of a recurring job."""

    __tablename__ = "recurring_job_executions"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    recurring_job_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_jobs.id", ondelete="SET NULL"), index=True
    )
    job_name: Mapped[str] = mapped_column(String(255))
    trigger: Mapped[ExecutionTrigger] = mapped_column(
        SQLAlchemyEnum(ExecutionTrigger), default=ExecutionTrigger.SCHEDULE
    )
    started_at: Mapped[datetime] = mapped_column(TZDatetime(), index=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(TZDatetime())
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[str] = mapped_column(TEXT, default="")
    output: Mapped[str] = mapped_column(TEXT, default="")
    duration: Mapped[Optional[int]] = mapped_column(Integer)


# Pydantic models for request/response serialization
class RecurringJobPublic(BaseModel):
    """Read model for a recurring job."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    job_key: str
    function_name: str
    cron_expression: str
    args: str
    times: int
    times_run: int
    status: RecurringJobStatus
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    error_count: int
    last_error: str
    created_at: datetime
    updated_at: datetime


class RecurringJobExecutionPublic(BaseModel):
    """Read model for an execution record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    recurring_job_id: Optional[int] = None
    job_name: str
    trigger: ExecutionTrigger
    started_at: datetime
    finished_at: Optional[datetime] = None
    success: bool
    error: str
    output: str
    duration: Optional[int] = None
