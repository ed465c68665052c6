import json
import logging
import time
from typing import Any, Dict, List, Optional

import certifi
import requests

from taskmind.config import get_settings

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 5.0
CONNECT_TIMEOUT = 3.0


class AIServiceError(Exception):
    """The structured-completion service failed or answered something unusable."""


class AIServiceNotConfigured(AIServiceError):
    pass


def _safe_post(url, **kwargs):
    kwargs2 = kwargs.copy()
    if 'verify' not in kwargs2:
        kwargs2['verify'] = certifi.where()
    return requests.post(url, **kwargs2)


def _extract_content_from_response(r) -> Optional[str]:
    try:
        data = r.json()
    except ValueError:
        return None
    try:
        content = data['choices'][0]['message'].get('content')
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if isinstance(content, (dict, list)):
        return json.dumps(content)
    return content


def build_payload(messages: List[Dict[str, str]], schema_name: str, schema: Dict[str, Any],
                  model: Optional[str] = None) -> Dict[str, Any]:
    return {
        "model": model or get_settings().llm_model,
        "messages": messages,
        "response_format": {
            "type": "json_schema",
            "json_schema": {
                "name": schema_name,
                "strict": True,
                "schema": schema,
            },
        },
    }


def request_structured_completion(messages: List[Dict[str, str]], schema_name: str,
                                  schema: Dict[str, Any]) -> Dict[str, Any]:
    """Send one chat completion constrained to ``schema`` and return the decoded JSON object.

    Raises AIServiceError on any failure; there is no retry.
    """
    settings = get_settings()
    if not settings.ai_configured:
        raise AIServiceNotConfigured("AI assistant is not configured")

    payload = build_payload(messages, schema_name, schema, model=settings.llm_model)

    start = time.time()
    try:
        r = _safe_post(
            settings.llm_api_url,
            headers={
                "Authorization": f"Bearer {settings.llm_api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=(CONNECT_TIMEOUT, settings.llm_timeout),
        )
    except requests.exceptions.RequestException as exc:
        raise AIServiceError(f"connection to LLM service failed: {exc}") from exc

    elapsed = time.time() - start
    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning('Slow LLM request (%s): %.2fs', schema_name, elapsed)

    if r.status_code != 200:
        raise AIServiceError(f"LLM service returned HTTP {r.status_code}")

    content = _extract_content_from_response(r)
    if not content:
        raise AIServiceError("No response from AI")

    try:
        result = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AIServiceError(f"LLM returned invalid JSON: {exc}") from exc

    if not isinstance(result, dict):
        raise AIServiceError("LLM returned a non-object JSON value")
    return result
