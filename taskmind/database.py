from __future__ import annotations

import datetime as dt
from datetime import date, datetime, timezone
from typing import Generator, Optional

from sqlalchemy import (
    create_engine, event, Date, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    declarative_base, sessionmaker, relationship, Session, Mapped, mapped_column
)

from taskmind.config import get_settings

Base = declarative_base()

TASK_STATUSES = ("pending", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_CATEGORIES = ("work", "personal", "health", "finance", "learning", "social", "other")
USER_ROLES = ("user", "admin")


def utcnow() -> datetime:
    # stored naive: SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utctoday() -> date:
    return utcnow().date()


# ---------- Models ----------

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    login_method: Mapped[str] = mapped_column(String(64), default="email", nullable=False)
    role: Mapped[str] = mapped_column(Enum(*USER_ROLES, name="user_role"), default="user", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_signed_in: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    tasks: Mapped[list["Task"]] = relationship(
        "Task", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    stats: Mapped[list["TaskStat"]] = relationship(
        "TaskStat", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        Enum(*TASK_STATUSES, name="task_status"), default="pending", nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    suggested_time: Mapped[Optional[datetime]] = mapped_column(DateTime)

    priority: Mapped[str] = mapped_column(
        Enum(*TASK_PRIORITIES, name="task_priority"), default="medium", nullable=False
    )
    category: Mapped[str] = mapped_column(
        Enum(*TASK_CATEGORIES, name="task_category"), default="other", nullable=False
    )
    ai_analysis: Mapped[Optional[str]] = mapped_column(Text)  # JSON: {"reasoning": ..., "tips": [...]}

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="tasks")


class TaskStat(Base):
    __tablename__ = "task_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    tasks_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tasks_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="stats")

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_user_date"),)


# ---------- Connection ----------

@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


DATABASE_URL: str = get_settings().database_url

engine = make_engine(DATABASE_URL)

SessionLocal: sessionmaker[Session] = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or engine)
