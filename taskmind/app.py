import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from taskmind import ai, crud
from taskmind.ai_client import AIServiceNotConfigured
from taskmind.auth import (
    clear_session, get_current_user, login_user, persist_session, register_user, require_user
)
from taskmind.config import get_settings
from taskmind.database import User, create_tables, get_db
from taskmind.logging_setup import setup_logging
from taskmind.models import (
    DailyStatResponse,
    LoginRequest,
    PriorityUpdate,
    ProductivityMetrics,
    ReanalyzeResponse,
    RegisterRequest,
    SuccessResponse,
    SuggestionsResponse,
    TaskCategory,
    TaskCreate,
    TaskFilters,
    TaskPriority,
    TaskResponse,
    TaskStatus,
    TaskUpdate,
    UserResponse,
)

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"


def _task_or_404(db: Session, task_id: int, user_id: int):
    task = crud.get_task(db, task_id, user_id)
    if not task:
        raise HTTPException(status_code=404, detail=TASK_NOT_FOUND)
    return task


# ---------- auth ----------

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", response_model=UserResponse, status_code=201)
def register(data: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    user = register_user(db, data.name, data.email, data.password)
    if user is None:
        raise HTTPException(status_code=409, detail="Email already registered")
    persist_session(response, user.id)
    logger.info('Registered user %s', user.id)
    return user


@auth_router.post("/login", response_model=UserResponse)
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = login_user(db, data.email, data.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    persist_session(response, user.id)
    return user


@auth_router.post("/logout", response_model=SuccessResponse)
def logout(response: Response):
    clear_session(response)
    return SuccessResponse()


@auth_router.get("/me", response_model=Optional[UserResponse])
def me(user: Optional[User] = Depends(get_current_user)):
    return user


@auth_router.delete("/me", response_model=SuccessResponse)
def delete_account(response: Response, user: User = Depends(require_user), db: Session = Depends(get_db)):
    crud.delete_user(db, user.id)
    clear_session(response)
    logger.info('Deleted user %s', user.id)
    return SuccessResponse()


# ---------- tasks ----------

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@tasks_router.get("", response_model=List[TaskResponse])
def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[TaskPriority] = Query(None),
    category: Optional[TaskCategory] = Query(None),
    search: Optional[str] = Query(None),
    due_date_from: Optional[datetime] = Query(None, alias="dueDateFrom"),
    due_date_to: Optional[datetime] = Query(None, alias="dueDateTo"),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    filters = TaskFilters(
        status=status,
        priority=priority,
        category=category,
        search=search or None,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
    )
    return crud.list_user_tasks(db, user.id, filters)


@tasks_router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _task_or_404(db, task_id, user.id)


@tasks_router.post("", response_model=TaskResponse, status_code=201)
def create_task(data: TaskCreate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    fields = {"priority": "medium", "category": "other", "suggested_time": None, "ai_analysis": None}

    if data.use_ai:
        existing = [crud.task_to_context(t) for t in crud.list_user_tasks(db, user.id)]
        analysis = ai.analyze_task(data.title, data.description, data.due_date, existing)
        fields.update(crud.analysis_fields(analysis))

    # explicit values win over the analyzer
    if data.priority:
        fields["priority"] = data.priority
    if data.category:
        fields["category"] = data.category

    task = crud.create_task(
        db,
        user_id=user.id,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        **fields,
    )
    crud.update_daily_stats(db, user.id)
    return task


@tasks_router.patch("/{task_id}", response_model=TaskResponse)
def update_task(task_id: int, data: TaskUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    changes = data.model_dump(exclude_unset=True)
    # title/status/priority/category are NOT NULL columns
    for key in ("title", "status", "priority", "category"):
        if key in changes and changes[key] is None:
            del changes[key]

    task = crud.update_task(db, task_id, user.id, changes)
    if not task:
        raise HTTPException(status_code=404, detail=TASK_NOT_FOUND)

    if changes.get("status"):
        crud.update_daily_stats(db, user.id)
    return task


@tasks_router.delete("/{task_id}", response_model=SuccessResponse)
def delete_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    if not crud.delete_task(db, task_id, user.id):
        raise HTTPException(status_code=404, detail=TASK_NOT_FOUND)
    return SuccessResponse()


@tasks_router.post("/{task_id}/complete", response_model=TaskResponse)
def complete_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    task = crud.complete_task(db, task_id, user.id)
    if not task:
        raise HTTPException(status_code=404, detail=TASK_NOT_FOUND)
    crud.update_daily_stats(db, user.id)
    return task


@tasks_router.post("/{task_id}/reanalyze", response_model=TaskResponse)
def reanalyze_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    task = _task_or_404(db, task_id, user.id)

    others = [crud.task_to_context(t) for t in crud.list_user_tasks(db, user.id) if t.id != task.id]
    analysis = ai.analyze_task(task.title, task.description, task.due_date, others)
    return crud.apply_analysis(db, task, analysis)


# ---------- ai ----------

ai_router = APIRouter(prefix="/api/ai", tags=["ai"])


@ai_router.get("/suggestions", response_model=SuggestionsResponse)
def get_suggestions(user: User = Depends(require_user), db: Session = Depends(get_db)):
    tasks = [crud.task_to_context(t) for t in crud.list_user_tasks(db, user.id)]
    result = ai.get_task_suggestions(tasks)
    return SuggestionsResponse(
        focus_task=result.focus_task,
        suggestions=result.suggestions,
        daily_plan=result.daily_plan,
    )


@ai_router.post("/reanalyze-priorities", response_model=ReanalyzeResponse)
def reanalyze_priorities(user: User = Depends(require_user), db: Session = Depends(get_db)):
    tasks = [crud.task_to_context(t) for t in crud.list_user_tasks(db, user.id)]
    try:
        changes = ai.reanalyze_priorities(tasks, raise_unconfigured=True)
    except AIServiceNotConfigured as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    results = []
    for task_id, change in changes.items():
        if crud.update_task(db, task_id, user.id, {"priority": change.priority}):
            results.append(PriorityUpdate(id=task_id, priority=change.priority, reasoning=change.reasoning))

    return ReanalyzeResponse(updated=len(results), results=results)


# ---------- stats ----------

stats_router = APIRouter(prefix="/api/stats", tags=["stats"])


@stats_router.get("/metrics", response_model=ProductivityMetrics)
def get_metrics(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return crud.get_productivity_metrics(db, user.id)


@stats_router.get("/daily", response_model=List[DailyStatResponse])
def get_daily_stats(
    days: int = Query(30, ge=7, le=90),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return crud.get_task_stats(db, user.id, days)


# ---------- app ----------

def create_app() -> FastAPI:
    settings = get_settings()

    application = FastAPI(title="TaskMind")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(auth_router)
    application.include_router(tasks_router)
    application.include_router(ai_router)
    application.include_router(stats_router)

    @application.get("/api/health")
    def health():
        return {"status": "ok"}

    @application.on_event("startup")
    def startup():
        setup_logging(settings.log_level)
        create_tables()
        logger.info('Database ready, AI assistant %s', "configured" if settings.ai_configured else "not configured")

    return application


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("taskmind.app:app", host="127.0.0.1", port=8000, reload=True)
