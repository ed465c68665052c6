from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

PRIORITIES = ("low", "medium", "high", "urgent")
CATEGORIES = ("work", "personal", "health", "finance", "learning", "social", "other")

CONTEXT_TASK_LIMIT = 10
SUGGESTION_TASK_LIMIT = 15
DESCRIPTION_SNIPPET = 100

ANALYSIS_SYSTEM_PROMPT = (
    "You are a productivity expert AI that helps users manage their tasks efficiently. "
    "Always respond with valid JSON."
)
SUGGESTIONS_SYSTEM_PROMPT = (
    "You are a productivity expert. Provide practical, actionable advice. "
    "Always respond with valid JSON."
)
PRIORITIES_SYSTEM_PROMPT = (
    "You are a task prioritization expert. Analyze tasks objectively and provide clear reasoning. "
    "Always respond with valid JSON."
)


@dataclass(frozen=True)
class TaskAnalysis:
    priority: str
    category: str
    suggested_time: Optional[str]
    reasoning: str
    tips: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TaskSuggestions:
    focus_task: Optional[int]
    suggestions: List[str]
    daily_plan: str


@dataclass(frozen=True)
class PriorityChange:
    priority: str
    reasoning: str


# ---------- JSON schemas ----------

TASK_ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "priority": {
            "type": "string",
            "enum": list(PRIORITIES),
            "description": "Task priority level",
        },
        "category": {
            "type": "string",
            "enum": list(CATEGORIES),
            "description": "Task category",
        },
        "suggestedTime": {
            "type": ["string", "null"],
            "description": "ISO 8601 datetime for best time to work on task, or null",
        },
        "reasoning": {
            "type": "string",
            "description": "Brief explanation for the recommendations",
        },
        "tips": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Actionable tips for completing the task",
        },
    },
    "required": ["priority", "category", "suggestedTime", "reasoning", "tips"],
    "additionalProperties": False,
}

TASK_SUGGESTIONS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "focusTaskId": {
            "type": ["integer", "null"],
            "description": "ID of the task to focus on first",
        },
        "suggestions": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Productivity suggestions",
        },
        "dailyPlan": {
            "type": "string",
            "description": "Brief daily plan for approaching tasks",
        },
    },
    "required": ["focusTaskId", "suggestions", "dailyPlan"],
    "additionalProperties": False,
}

PRIORITY_ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "tasks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "priority": {"type": "string", "enum": list(PRIORITIES)},
                    "reasoning": {"type": "string"},
                },
                "required": ["id", "priority", "reasoning"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["tasks"],
    "additionalProperties": False,
}


# ---------- prompts ----------

def _now_iso(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat()


def _iso_or(value: Optional[datetime], default: str) -> str:
    return value.isoformat() if value else default


def build_analysis_prompt(title: str, description: Optional[str], due_date: Optional[datetime],
                          existing_tasks: Sequence[Dict[str, Any]],
                          now: Optional[datetime] = None) -> str:
    existing_context = ""
    if existing_tasks:
        lines = [
            f'- "{t.get("title")}" ({t.get("priority")} priority, {t.get("category")}, {t.get("status")})'
            for t in list(existing_tasks)[:CONTEXT_TASK_LIMIT]
        ]
        existing_context = "\nUser's existing tasks:\n" + "\n".join(lines)

    template = f"""
You are an intelligent task management assistant. Analyze the following task and provide recommendations.

Current date/time: {_now_iso(now)}

Task to analyze:
- Title: "{title}"
- Description: "{description or "No description provided"}"
- Due date: {_iso_or(due_date, "No due date specified")}
{existing_context}

Based on the task details, context, and any patterns from existing tasks, provide:
1. Priority level (low, medium, high, urgent) - consider urgency, impact, and deadlines
2. Category (work, personal, health, finance, learning, social, other) - based on task nature
3. Suggested best time to work on this task (ISO 8601 format or null if not applicable)
4. Brief reasoning for your recommendations (1-2 sentences)
5. 2-3 actionable tips for completing this task effectively

Respond in JSON format only."""
    return template.strip()


def _task_context(task: Dict[str, Any], priority_key: str = "priority") -> Dict[str, Any]:
    description = task.get("description")
    return {
        "id": task.get("id"),
        "title": task.get("title"),
        "description": description[:DESCRIPTION_SNIPPET] if description else None,
        priority_key: task.get("priority"),
        "category": task.get("category"),
        "dueDate": _iso_or(task.get("due_date"), "No deadline"),
    }


def build_suggestions_prompt(pending_tasks: Sequence[Dict[str, Any]],
                             now: Optional[datetime] = None) -> str:
    context = [_task_context(t) for t in list(pending_tasks)[:SUGGESTION_TASK_LIMIT]]
    template = f"""
You are a productivity coach. Based on the user's pending tasks, provide personalized recommendations.

Current date/time: {_now_iso(now)}

Pending tasks:
{json.dumps(context, indent=2, ensure_ascii=False)}

Provide:
1. The ID of the task the user should focus on first (consider urgency, priority, and deadlines)
2. 3-4 specific, actionable suggestions for improving productivity today
3. A brief daily plan (2-3 sentences) organizing how to approach these tasks

Respond in JSON format only."""
    return template.strip()


def build_priorities_prompt(pending_tasks: Sequence[Dict[str, Any]],
                            now: Optional[datetime] = None) -> str:
    context = [_task_context(t, priority_key="currentPriority") for t in pending_tasks]
    template = f"""
Analyze these tasks and suggest updated priorities based on current date, deadlines, and task nature.

Current date/time: {_now_iso(now)}

Tasks to analyze:
{json.dumps(context, indent=2, ensure_ascii=False)}

For each task, provide the recommended priority (low, medium, high, urgent) and brief reasoning.
Consider: deadline proximity, task importance, dependencies, and workload balance.

Respond in JSON format only."""
    return template.strip()


def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


# ---------- response validation ----------

def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _is_valid_analysis_dict(obj: Dict[str, Any]) -> Tuple[bool, str]:
    if obj.get("priority") not in PRIORITIES:
        return False, "bad priority"
    if obj.get("category") not in CATEGORIES:
        return False, "bad category"
    suggested = obj.get("suggestedTime")
    if suggested is not None and not isinstance(suggested, str):
        return False, "bad suggestedTime"
    if not isinstance(obj.get("reasoning"), str):
        return False, "bad reasoning"
    if not _is_str_list(obj.get("tips")):
        return False, "bad tips"
    return True, "ok"


def _is_valid_suggestions_dict(obj: Dict[str, Any]) -> Tuple[bool, str]:
    focus = obj.get("focusTaskId")
    # bool is an int subclass; the schema means a real task id
    if focus is not None and (isinstance(focus, bool) or not isinstance(focus, int)):
        return False, "bad focusTaskId"
    if not _is_str_list(obj.get("suggestions")):
        return False, "bad suggestions"
    if not isinstance(obj.get("dailyPlan"), str):
        return False, "bad dailyPlan"
    return True, "ok"


def parse_analysis(obj: Dict[str, Any]) -> TaskAnalysis:
    ok, reason = _is_valid_analysis_dict(obj)
    if not ok:
        raise ValueError(f"task_analysis response rejected: {reason}")
    suggested = obj.get("suggestedTime")
    return TaskAnalysis(
        priority=obj["priority"],
        category=obj["category"],
        suggested_time=(suggested.strip() or None) if suggested else None,
        reasoning=obj["reasoning"].strip(),
        tips=[t.strip() for t in obj["tips"] if t.strip()],
    )


def parse_suggestions(obj: Dict[str, Any]) -> TaskSuggestions:
    ok, reason = _is_valid_suggestions_dict(obj)
    if not ok:
        raise ValueError(f"task_suggestions response rejected: {reason}")
    return TaskSuggestions(
        focus_task=obj.get("focusTaskId"),
        suggestions=[s.strip() for s in obj["suggestions"] if s.strip()],
        daily_plan=obj["dailyPlan"].strip(),
    )


def parse_priority_changes(obj: Dict[str, Any]) -> Dict[int, PriorityChange]:
    items = obj.get("tasks")
    if not isinstance(items, list):
        raise ValueError("priority_analysis response rejected: bad tasks")

    out: Dict[int, PriorityChange] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        task_id = item.get("id")
        if isinstance(task_id, bool) or not isinstance(task_id, int):
            continue
        if item.get("priority") not in PRIORITIES:
            continue
        reasoning = item.get("reasoning")
        out[task_id] = PriorityChange(
            priority=item["priority"],
            reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
        )
    return out
