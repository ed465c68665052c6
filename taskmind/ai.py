"""LLM-backed task analysis.

Every entry point here degrades to a fixed default when the model is unreachable
or answers something that does not match the schema; callers never see the failure.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from taskmind import ai_client
from taskmind.ai_client import AIServiceError
from taskmind.ai_prompt import (
    ANALYSIS_SYSTEM_PROMPT,
    PRIORITIES_SYSTEM_PROMPT,
    PRIORITY_ANALYSIS_SCHEMA,
    SUGGESTIONS_SYSTEM_PROMPT,
    TASK_ANALYSIS_SCHEMA,
    TASK_SUGGESTIONS_SCHEMA,
    PriorityChange,
    TaskAnalysis,
    TaskSuggestions,
    build_analysis_prompt,
    build_messages,
    build_priorities_prompt,
    build_suggestions_prompt,
    parse_analysis,
    parse_priority_changes,
    parse_suggestions,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"urgent": 3, "high": 2, "medium": 1, "low": 0}

FALLBACK_REASONING = "Unable to analyze task automatically. Default values applied."
FALLBACK_TIPS = [
    "Break down the task into smaller steps",
    "Set a specific deadline if not already set",
]

EMPTY_SUGGESTIONS = ["Start by adding your first task!"]
EMPTY_PLAN = "No tasks to plan. Add some tasks to get started."

ALL_DONE_SUGGESTIONS = ["Great job! All tasks completed. Time to add new goals."]
ALL_DONE_PLAN = "All tasks completed! Consider planning ahead for tomorrow."

FALLBACK_SUGGESTIONS = [
    "Focus on high-priority tasks first",
    "Take regular breaks to maintain productivity",
    "Review and update task deadlines as needed",
]
FALLBACK_PLAN = "Start with your most urgent tasks, then work through medium priority items."


def fallback_analysis() -> TaskAnalysis:
    return TaskAnalysis(
        priority="medium",
        category="other",
        suggested_time=None,
        reasoning=FALLBACK_REASONING,
        tips=list(FALLBACK_TIPS),
    )


def _pending(tasks: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [t for t in tasks if t.get("status") != "completed"]


def pick_focus_task(pending_tasks: Sequence[Dict[str, Any]]) -> Optional[int]:
    """Highest priority first; ties keep list order."""
    if not pending_tasks:
        return None
    best = max(
        enumerate(pending_tasks),
        key=lambda pair: (PRIORITY_RANK.get(pair[1].get("priority"), 0), -pair[0]),
    )
    return best[1].get("id")


def analyze_task(title: str, description: Optional[str], due_date: Optional[datetime],
                 existing_tasks: Sequence[Dict[str, Any]]) -> TaskAnalysis:
    """Classify a task and suggest when to work on it.

    ``existing_tasks`` are plain dicts with ``title``, ``priority``, ``category`` and
    ``status``; only the first few go into the prompt.
    """
    prompt = build_analysis_prompt(title, description, due_date, existing_tasks)
    try:
        raw = ai_client.request_structured_completion(
            build_messages(ANALYSIS_SYSTEM_PROMPT, prompt),
            "task_analysis",
            TASK_ANALYSIS_SCHEMA,
        )
        return parse_analysis(raw)
    except (AIServiceError, ValueError) as exc:
        logger.warning('Failed to analyze task %r: %s', title, exc)
    except Exception:
        logger.exception('Unexpected error while analyzing task %r', title)
    return fallback_analysis()


def get_task_suggestions(tasks: Sequence[Dict[str, Any]]) -> TaskSuggestions:
    if not tasks:
        return TaskSuggestions(focus_task=None, suggestions=list(EMPTY_SUGGESTIONS), daily_plan=EMPTY_PLAN)

    pending = _pending(tasks)
    if not pending:
        return TaskSuggestions(focus_task=None, suggestions=list(ALL_DONE_SUGGESTIONS), daily_plan=ALL_DONE_PLAN)

    fallback = TaskSuggestions(
        focus_task=pick_focus_task(pending),
        suggestions=list(FALLBACK_SUGGESTIONS),
        daily_plan=FALLBACK_PLAN,
    )

    try:
        raw = ai_client.request_structured_completion(
            build_messages(SUGGESTIONS_SYSTEM_PROMPT, build_suggestions_prompt(pending)),
            "task_suggestions",
            TASK_SUGGESTIONS_SCHEMA,
        )
        result = parse_suggestions(raw)
    except (AIServiceError, ValueError) as exc:
        logger.warning('Failed to get suggestions: %s', exc)
        return fallback
    except Exception:
        logger.exception('Unexpected error while getting suggestions')
        return fallback

    pending_ids = {t.get("id") for t in pending}
    if result.focus_task not in pending_ids:
        if result.focus_task is not None:
            logger.info('Model picked unknown focus task %s, using heuristic', result.focus_task)
        result = TaskSuggestions(
            focus_task=fallback.focus_task,
            suggestions=result.suggestions,
            daily_plan=result.daily_plan,
        )
    if not result.suggestions:
        result = TaskSuggestions(
            focus_task=result.focus_task,
            suggestions=list(FALLBACK_SUGGESTIONS),
            daily_plan=result.daily_plan or FALLBACK_PLAN,
        )
    return result


def reanalyze_priorities(tasks: Sequence[Dict[str, Any]],
                         raise_unconfigured: bool = False) -> Dict[int, PriorityChange]:
    """Ask the model to re-rank every pending task.

    Returns only entries for known pending ids. With ``raise_unconfigured`` a missing
    API key surfaces as AIServiceNotConfigured instead of an empty result.
    """
    pending = _pending(tasks)
    if not pending:
        return {}

    try:
        raw = ai_client.request_structured_completion(
            build_messages(PRIORITIES_SYSTEM_PROMPT, build_priorities_prompt(pending)),
            "priority_analysis",
            PRIORITY_ANALYSIS_SCHEMA,
        )
        changes = parse_priority_changes(raw)
    except ai_client.AIServiceNotConfigured:
        if raise_unconfigured:
            raise
        logger.warning('Priority re-analysis skipped: AI assistant is not configured')
        return {}
    except (AIServiceError, ValueError) as exc:
        logger.warning('Failed to reanalyze priorities: %s', exc)
        return {}
    except Exception:
        logger.exception('Unexpected error while reanalyzing priorities')
        return {}

    pending_ids = {t.get("id") for t in pending}
    return {task_id: change for task_id, change in changes.items() if task_id in pending_ids}
