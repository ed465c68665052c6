# tests/test_api.py

from __future__ import annotations

import pytest
import requests

from taskmind.database import Task, TaskStat

from .fakes import FakeLLM

ANALYSIS = {
    "priority": "urgent",
    "category": "finance",
    "suggestedTime": "2026-10-18T09:00:00Z",
    "reasoning": "Late fees apply after Friday.",
    "tips": ["Set up autopay"],
}


def _create(client, **body):
    body.setdefault("useAI", False)
    r = client.post("/api/tasks", json=body)
    assert r.status_code == 201, r.text
    return r.json()


# ---------- auth ----------

def test_register_login_logout_flow(client):
    r = client.post(
        "/api/auth/register",
        json={"name": "Ann", "email": "Ann@Example.com", "password": "hunter22"},
    )
    assert r.status_code == 201
    assert r.json()["email"] == "ann@example.com"
    assert r.json()["loginMethod"] == "email"
    assert r.json()["role"] == "user"

    assert client.get("/api/auth/me").json()["name"] == "Ann"

    assert client.post("/api/auth/logout").json() == {"success": True}
    assert client.get("/api/auth/me").json() is None

    r = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "hunter22"})
    assert r.status_code == 200
    assert client.get("/api/auth/me").json()["email"] == "ann@example.com"


def test_login_rejects_bad_password(auth_client):
    r = auth_client.post("/api/auth/login", json={"email": "test@example.com", "password": "wrong-one"})
    assert r.status_code == 401


def test_register_duplicate_email(auth_client):
    r = auth_client.post(
        "/api/auth/register",
        json={"name": "Again", "email": "test@example.com", "password": "secret123"},
    )
    assert r.status_code == 409


def test_owner_email_registers_as_admin(client, configure):
    configure(owner_email="boss@example.com")
    r = client.post(
        "/api/auth/register",
        json={"name": "Boss", "email": "boss@example.com", "password": "secret123"},
    )
    assert r.json()["role"] == "admin"


def test_forged_cookie_is_unauthenticated(client):
    client.post(
        "/api/auth/register",
        json={"name": "Mallory", "email": "m@example.com", "password": "secret123"},
    )
    client.cookies.clear()
    client.cookies.set("taskmind_session", "1.1700000000.deadbeef")

    assert client.get("/api/auth/me").json() is None
    assert client.get("/api/tasks").status_code == 401


def test_non_ascii_cookie_is_unauthenticated(client):
    # raw header bytes: the server decodes them as latin-1
    headers = {"cookie": b"taskmind_session=1.1700000000.\xe9abc"}

    r = client.get("/api/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json() is None
    assert client.get("/api/tasks", headers=headers).status_code == 401


@pytest.mark.parametrize("method, path", [
    ("get", "/api/tasks"),
    ("post", "/api/tasks/1/complete"),
    ("get", "/api/ai/suggestions"),
    ("get", "/api/stats/metrics"),
    ("get", "/api/stats/daily"),
])
def test_protected_endpoints_require_session(client, method, path):
    r = getattr(client, method)(path)
    assert r.status_code == 401
    assert r.json()["detail"] == "Not authenticated"


def test_dev_login_creates_development_user(client, configure):
    configure(dev_login="true")

    me = client.get("/api/auth/me").json()

    assert me["email"] == "dev@local.test"
    assert me["loginMethod"] == "dev"
    assert client.get("/api/tasks").status_code == 200


# ---------- tasks ----------

def test_create_without_ai_uses_defaults(auth_client):
    task = _create(auth_client, title="Water plants", description="balcony")

    assert task["priority"] == "medium"
    assert task["category"] == "other"
    assert task["status"] == "pending"
    assert task["suggestedTime"] is None
    assert task["aiAnalysis"] is None
    assert task["completedAt"] is None


def test_create_with_ai_disabled_skips_model(auth_client, fake_llm: FakeLLM):
    fake_llm.replies = [ANALYSIS]

    task = _create(auth_client, title="Pay rent", useAI=False)

    assert fake_llm.calls == []
    assert (task["priority"], task["category"], task["aiAnalysis"]) == ("medium", "other", None)


def test_task_timestamps_carry_utc_offset(auth_client):
    task = _create(auth_client, title="Dentist", dueDate="2026-11-01T10:00:00+02:00")

    assert task["dueDate"] == "2026-11-01T08:00:00Z"
    assert task["createdAt"].endswith("Z")
    assert auth_client.get("/api/auth/me").json()["createdAt"].endswith("Z")


def test_create_without_ai_keeps_explicit_values(auth_client):
    task = _create(auth_client, title="Call mom", priority="high", category="social")
    assert (task["priority"], task["category"]) == ("high", "social")


def test_create_with_ai_merges_analysis(auth_client, fake_llm: FakeLLM):
    _create(auth_client, title="Earlier task", category="work")
    fake_llm.replies = [ANALYSIS]

    task = _create(auth_client, title="Pay electricity bill", dueDate="2026-10-20T12:00:00Z", useAI=True)

    assert task["priority"] == "urgent"
    assert task["category"] == "finance"
    assert task["suggestedTime"].startswith("2026-10-18T09:00:00")
    assert task["aiAnalysis"] == {"reasoning": "Late fees apply after Friday.", "tips": ["Set up autopay"]}
    assert '"Earlier task" (medium priority, work, pending)' in fake_llm.last_prompt()


def test_create_with_ai_explicit_values_win(auth_client, fake_llm: FakeLLM):
    fake_llm.replies = [ANALYSIS]

    task = _create(auth_client, title="Pay bill", useAI=True, priority="low")

    assert task["priority"] == "low"
    assert task["category"] == "finance"


def test_create_survives_llm_outage(auth_client, fake_llm: FakeLLM):
    fake_llm.error = requests.exceptions.ConnectionError("down")

    task = _create(auth_client, title="Renew passport", useAI=True)

    assert (task["priority"], task["category"], task["suggestedTime"]) == ("medium", "other", None)
    assert task["aiAnalysis"]["reasoning"].startswith("Unable to analyze task")


@pytest.mark.parametrize("title", ["", "x" * 256])
def test_create_validates_title(auth_client, title):
    r = auth_client.post("/api/tasks", json={"title": title, "useAI": False})
    assert r.status_code == 422


def test_create_rejects_unknown_priority(auth_client):
    r = auth_client.post("/api/tasks", json={"title": "x", "useAI": False, "priority": "asap"})
    assert r.status_code == 422


def test_get_update_delete_task(auth_client):
    task = _create(auth_client, title="Draft", dueDate="2026-11-01T10:00:00")

    assert auth_client.get(f"/api/tasks/{task['id']}").json()["title"] == "Draft"

    r = auth_client.patch(f"/api/tasks/{task['id']}", json={"title": "Final", "dueDate": None})
    assert r.status_code == 200
    assert r.json()["title"] == "Final"
    assert r.json()["dueDate"] is None

    assert auth_client.delete(f"/api/tasks/{task['id']}").json() == {"success": True}
    assert auth_client.get(f"/api/tasks/{task['id']}").status_code == 404
    assert auth_client.delete(f"/api/tasks/{task['id']}").status_code == 404


def test_missing_task_is_404(auth_client):
    for r in (
        auth_client.get("/api/tasks/999"),
        auth_client.patch("/api/tasks/999", json={"title": "x"}),
        auth_client.post("/api/tasks/999/complete"),
        auth_client.post("/api/tasks/999/reanalyze"),
    ):
        assert r.status_code == 404
        assert r.json()["detail"] == "Task not found"


def test_status_changes_keep_completed_at_consistent(auth_client, session_factory):
    task = _create(auth_client, title="Refactor")
    task_id = task["id"]

    r = auth_client.patch(f"/api/tasks/{task_id}", json={"status": "in_progress"})
    assert r.json()["completedAt"] is None

    r = auth_client.post(f"/api/tasks/{task_id}/complete")
    assert r.json()["status"] == "completed"
    assert r.json()["completedAt"] is not None

    r = auth_client.patch(f"/api/tasks/{task_id}", json={"status": "pending"})
    assert r.json()["completedAt"] is None

    with session_factory() as db:
        for row in db.query(Task).all():
            assert (row.status == "completed") == (row.completed_at is not None)


def test_list_tasks_with_filters(auth_client):
    _create(auth_client, title="Read book", category="learning")
    _create(auth_client, title="Run 5k", category="health", priority="high")

    assert [t["title"] for t in auth_client.get("/api/tasks").json()] == ["Run 5k", "Read book"]
    assert [t["title"] for t in auth_client.get("/api/tasks", params={"category": "learning"}).json()] == ["Read book"]
    assert [t["title"] for t in auth_client.get("/api/tasks", params={"search": "5K"}).json()] == ["Run 5k"]
    assert auth_client.get("/api/tasks", params={"status": "archived"}).status_code == 422


def test_reanalyze_task_updates_ai_fields(auth_client, fake_llm: FakeLLM):
    task = _create(auth_client, title="Pay bill")
    _create(auth_client, title="Other thing")
    fake_llm.replies = [ANALYSIS]

    r = auth_client.post(f"/api/tasks/{task['id']}/reanalyze")

    assert r.status_code == 200
    assert r.json()["priority"] == "urgent"
    assert r.json()["aiAnalysis"]["tips"] == ["Set up autopay"]
    prompt = fake_llm.last_prompt()
    assert '"Other thing"' in prompt
    assert '"Pay bill" (' not in prompt


# ---------- ai ----------

def test_suggestions_with_no_tasks(auth_client):
    body = auth_client.get("/api/ai/suggestions").json()

    assert body["focusTask"] is None
    assert body["suggestions"] == ["Start by adding your first task!"]
    assert body["dailyPlan"]


def test_suggestions_all_completed(auth_client):
    task = _create(auth_client, title="Only task")
    auth_client.post(f"/api/tasks/{task['id']}/complete")

    body = auth_client.get("/api/ai/suggestions").json()

    assert body["focusTask"] is None
    assert "Great job" in body["suggestions"][0]


def test_suggestions_fallback_when_unconfigured(auth_client):
    _create(auth_client, title="small", priority="low")
    urgent = _create(auth_client, title="fire", priority="urgent")

    body = auth_client.get("/api/ai/suggestions").json()

    assert body["focusTask"] == urgent["id"]
    assert len(body["suggestions"]) == 3


def test_reanalyze_priorities_applies_changes(auth_client, fake_llm: FakeLLM):
    task = _create(auth_client, title="Taxes")
    fake_llm.replies = [{"tasks": [{"id": task["id"], "priority": "high", "reasoning": "deadline soon"}]}]

    body = auth_client.post("/api/ai/reanalyze-priorities").json()

    assert body == {"updated": 1, "results": [{"id": task["id"], "priority": "high", "reasoning": "deadline soon"}]}
    assert auth_client.get(f"/api/tasks/{task['id']}").json()["priority"] == "high"


def test_reanalyze_priorities_requires_configuration(auth_client):
    _create(auth_client, title="Taxes")

    r = auth_client.post("/api/ai/reanalyze-priorities")

    assert r.status_code == 503
    assert "not configured" in r.json()["detail"]


# ---------- stats ----------

def test_metrics_endpoint(auth_client):
    _create(auth_client, title="a", priority="high", category="work")
    done = _create(auth_client, title="b", category="work")
    auth_client.post(f"/api/tasks/{done['id']}/complete")

    body = auth_client.get("/api/stats/metrics").json()

    assert body["total"] == 2
    assert body["completed"] == 1
    assert body["pending"] == 1
    assert body["completionRate"] == 0.5
    assert body["byPriority"] == {"high": 1, "medium": 1}
    assert body["byCategory"] == {"work": 2}


def test_daily_stats_follow_task_activity(auth_client):
    first = _create(auth_client, title="a")
    _create(auth_client, title="b")
    auth_client.post(f"/api/tasks/{first['id']}/complete")

    rows = auth_client.get("/api/stats/daily").json()

    assert len(rows) == 1
    assert rows[0]["tasksCreated"] == 2
    assert rows[0]["tasksCompleted"] == 1


@pytest.mark.parametrize("days", [6, 91, 0])
def test_daily_stats_rejects_days_out_of_range(auth_client, days):
    assert auth_client.get("/api/stats/daily", params={"days": days}).status_code == 422


@pytest.mark.parametrize("days", [7, 30, 90])
def test_daily_stats_accepts_days_in_range(auth_client, days):
    assert auth_client.get("/api/stats/daily", params={"days": days}).status_code == 200


# ---------- account ----------

def test_delete_account_cascades(auth_client, session_factory):
    task = _create(auth_client, title="a")
    auth_client.post(f"/api/tasks/{task['id']}/complete")
    user_id = auth_client.get("/api/auth/me").json()["id"]

    assert auth_client.delete("/api/auth/me").json() == {"success": True}

    with session_factory() as db:
        assert db.query(Task).filter(Task.user_id == user_id).count() == 0
        assert db.query(TaskStat).filter(TaskStat.user_id == user_id).count() == 0
    assert auth_client.get("/api/auth/me").json() is None
