from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as dtparser
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from taskmind.ai_prompt import TaskAnalysis
from taskmind.database import Task, TaskStat, User, utcnow, utctoday
from taskmind.models import TaskFilters

logger = logging.getLogger(__name__)

# ---------- Users ----------

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def create_user(db: Session, email: str, name: Optional[str], password_hash: Optional[str],
                login_method: str = "email", role: str = "user") -> User:
    user = User(
        email=email.strip().lower(),
        name=name,
        password_hash=password_hash,
        login_method=login_method,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def touch_sign_in(db: Session, user: User) -> User:
    user.last_signed_in = utcnow()
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> bool:
    user = db.get(User, user_id)
    if not user:
        return False
    db.delete(user)
    db.commit()
    return True


# ---------- Tasks ----------

def task_to_context(task: Task) -> Dict[str, Any]:
    """Plain dict view of a task for prompt building."""
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority,
        "category": task.category,
        "status": task.status,
        "due_date": task.due_date,
    }


def create_task(db: Session, user_id: int, title: str, description: Optional[str] = None,
                due_date: Optional[datetime] = None, priority: str = "medium", category: str = "other",
                suggested_time: Optional[datetime] = None, ai_analysis: Optional[str] = None) -> Task:
    task = Task(
        user_id=user_id,
        title=title,
        description=description,
        due_date=due_date,
        priority=priority,
        category=category,
        suggested_time=suggested_time,
        ai_analysis=ai_analysis,
        status="pending",
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def get_task(db: Session, task_id: int, user_id: int) -> Optional[Task]:
    return db.query(Task).filter(Task.id == task_id, Task.user_id == user_id).first()


def list_user_tasks(db: Session, user_id: int, filters: Optional[TaskFilters] = None) -> List[Task]:
    q = db.query(Task).filter(Task.user_id == user_id)

    if filters is not None:
        if filters.status:
            q = q.filter(Task.status == filters.status)
        if filters.priority:
            q = q.filter(Task.priority == filters.priority)
        if filters.category:
            q = q.filter(Task.category == filters.category)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            q = q.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
        if filters.due_date_from:
            q = q.filter(Task.due_date >= filters.due_date_from)
        if filters.due_date_to:
            q = q.filter(Task.due_date <= filters.due_date_to)

    return q.order_by(Task.created_at.desc(), Task.id.desc()).all()


def _set_status(task: Task, status: str) -> None:
    # completed_at is present exactly when the task is completed
    if status == "completed":
        if task.status != "completed" or task.completed_at is None:
            task.completed_at = utcnow()
    else:
        task.completed_at = None
    task.status = status


def update_task(db: Session, task_id: int, user_id: int, changes: Dict[str, Any]) -> Optional[Task]:
    task = get_task(db, task_id, user_id)
    if not task:
        return None

    for key in ("title", "description", "due_date", "priority", "category", "suggested_time", "ai_analysis"):
        if key in changes:
            setattr(task, key, changes[key])
    if changes.get("status"):
        _set_status(task, changes["status"])

    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, task_id: int, user_id: int) -> bool:
    deleted = (
        db.query(Task)
        .filter(Task.id == task_id, Task.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0


def complete_task(db: Session, task_id: int, user_id: int) -> Optional[Task]:
    return update_task(db, task_id, user_id, {"status": "completed"})


def parse_suggested_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = dtparser.isoparse(value)
    except (ValueError, OverflowError):
        try:
            dt = dtparser.parse(value)
        except (ValueError, OverflowError):
            logger.info('Ignoring unparsable suggested time %r', value)
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def analysis_fields(analysis: TaskAnalysis) -> Dict[str, Any]:
    """Columns written back onto a task from an analyzer result."""
    return {
        "priority": analysis.priority,
        "category": analysis.category,
        "suggested_time": parse_suggested_time(analysis.suggested_time),
        "ai_analysis": json.dumps({"reasoning": analysis.reasoning, "tips": analysis.tips}),
    }


def apply_analysis(db: Session, task: Task, analysis: TaskAnalysis) -> Task:
    for key, value in analysis_fields(analysis).items():
        setattr(task, key, value)
    db.commit()
    db.refresh(task)
    return task


# ---------- Stats ----------

def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


def update_daily_stats(db: Session, user_id: int) -> TaskStat:
    today = utctoday()
    start, end = _day_bounds(today)

    tasks_created = (
        db.query(func.count(Task.id))
        .filter(Task.user_id == user_id, Task.created_at >= start, Task.created_at < end)
        .scalar()
    ) or 0
    tasks_completed = (
        db.query(func.count(Task.id))
        .filter(
            Task.user_id == user_id,
            Task.status == "completed",
            Task.completed_at >= start,
            Task.completed_at < end,
        )
        .scalar()
    ) or 0

    stat = db.query(TaskStat).filter(TaskStat.user_id == user_id, TaskStat.date == today).first()
    if stat:
        stat.tasks_created = tasks_created
        stat.tasks_completed = tasks_completed
    else:
        stat = TaskStat(
            user_id=user_id,
            date=today,
            tasks_created=tasks_created,
            tasks_completed=tasks_completed,
        )
        db.add(stat)

    db.commit()
    db.refresh(stat)
    return stat


def get_task_stats(db: Session, user_id: int, days: int = 30) -> List[TaskStat]:
    from_date = utctoday() - timedelta(days=days)
    return (
        db.query(TaskStat)
        .filter(TaskStat.user_id == user_id, TaskStat.date >= from_date)
        .order_by(TaskStat.date.desc())
        .all()
    )


def _count(db: Session, *conditions) -> int:
    return db.query(func.count(Task.id)).filter(*conditions).scalar() or 0


def _histogram(db: Session, user_id: int, column) -> Dict[str, int]:
    rows = (
        db.query(column, func.count(Task.id))
        .filter(Task.user_id == user_id)
        .group_by(column)
        .all()
    )
    return {key: int(count) for key, count in rows}


def get_productivity_metrics(db: Session, user_id: int) -> Dict[str, Any]:
    mine = Task.user_id == user_id

    total = _count(db, mine)
    completed = _count(db, mine, Task.status == "completed")
    pending = _count(db, mine, Task.status == "pending")
    in_progress = _count(db, mine, Task.status == "in_progress")
    overdue = _count(
        db, mine, Task.status == "pending", Task.due_date.isnot(None), Task.due_date <= utcnow()
    )

    return {
        "total": total,
        "completed": completed,
        "pending": pending,
        "in_progress": in_progress,
        "overdue": overdue,
        "completion_rate": round(completed / total, 4) if total else 0.0,
        "by_priority": _histogram(db, user_id, Task.priority),
        "by_category": _histogram(db, user_id, Task.category),
    }
