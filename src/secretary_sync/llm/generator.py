# src/secretary_sync/llm/generator.py

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.errors import ScheduleGenerationError
from ..tasks.task_models import Priority, Task

logger = logging.getLogger(__name__)

_BAD_MODEL_COOLDOWN_SECONDS = 3600.0

PROMPT_TEMPLATE = """You are an intelligent personal assistant helping create a chronological daily schedule.

Target date: {date_str}

Available tasks:
{task_list}

Recent days, workload and completion patterns (JSON):
{context_json}

Instructions:
1. Create a chronological schedule for the target date, ending around 22:00.
2. Assign realistic time slots based on each task's nature and priority.
3. Include breaks and transition time between tasks.
4. Schedule high-priority tasks earlier when possible.
5. Place daily recurring tasks at sensible times.
6. Keep the total under {workday_hours} hours when other days in the window are already overloaded.
7. When completion patterns are given, put important tasks in the most productive period and size durations to past accuracy.

Output format (JSON):
{{
  "schedule": [
    {{
      "time": "14:30",
      "task": "Task description",
      "duration": "30 minutes",
      "priority": "high|medium|low",
      "category": "work|personal|routine|urgent"
    }}
  ],
  "summary": "Brief overview of the schedule and reasoning"
}}"""


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def format_task_list(tasks: list[Task]) -> str:
    lines: list[str] = []
    for t in tasks:
        if t.completed:
            continue
        line = f"- {t.text}"
        if t.priority != Priority.MEDIUM:
            line += f" [Priority: {t.priority.value}]"
        line += f" [Type: {t.section.value}]"
        if any(d.get("type") == "rollover" for d in t.details):
            line += " [Rolled over]"
        lines.append(line)
    return "\n".join(lines) or "- (no open tasks)"


def parse_schedule_response(content: str | None) -> dict[str, Any]:
    """Decode the model's JSON reply; raises ValueError if it is not a schedule object."""
    if not content or not content.strip():
        raise ValueError("empty response")
    text = content.strip()
    # Some models wrap JSON in a markdown fence even with json_object mode.
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    data = json.loads(text)
    if not isinstance(data, dict) or not isinstance(data.get("schedule"), list):
        raise ValueError("response has no 'schedule' list")
    return data


class OpenRouterScheduleGenerator:
    """
    ScheduleGenerator backed by an OpenAI-compatible endpoint (OpenRouter by default).

    Models are tried in order:
    - 404 (model not available) -> cooldown for an hour, try next,
    - rate limit / network / bad JSON -> try next,
    - auth failures -> fail fast.
    The client is created lazily so no API key is needed until the first call.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        models: list[str],
        extra_headers: dict[str, str] | None = None,
        workday_hours: float = 8.0,
        connect_timeout: float = 5.0,
        read_timeout: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._models = [m.strip() for m in models if m and m.strip()]
        self._headers = dict(extra_headers or {})
        self._workday_hours = workday_hours
        self._timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=connect_timeout)
        self._client = client
        self._bad_models: dict[str, float] = {}

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._api_key and str(self._api_key).strip())

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self.configured:
            raise ScheduleGenerationError("LLM API key is not set. Set SECRETARY_OPENROUTER_API_KEY in your .env.")
        if not self._base_url.strip():
            raise ScheduleGenerationError("LLM base URL is not set. Set SECRETARY_OPENROUTER_BASE_URL in your .env.")
        # Retries are disabled so a failing model falls through to the next one quickly.
        self._client = OpenAI(
            base_url=self._base_url,
            api_key=str(self._api_key),
            timeout=self._timeout,
            max_retries=0,
        )
        return self._client

    def build_prompt(self, tasks: list[Task], target_date: str, context: Any) -> str:
        ctx = context.to_dict() if hasattr(context, "to_dict") else (context or {})
        return PROMPT_TEMPLATE.format(
            date_str=target_date,
            task_list=format_task_list(tasks),
            context_json=json.dumps(ctx, ensure_ascii=False, indent=1, default=str),
            workday_hours=self._workday_hours,
        )

    def generate(self, tasks: list[Task], target_date: str, context: Any = None) -> dict[str, Any]:
        if not self._models:
            raise ScheduleGenerationError("LLM model list is empty. Set SECRETARY_LLM_MODELS in your .env.")

        client = self._get_client()
        prompt = self.build_prompt(tasks, target_date, context)
        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s for %s", model, target_date)
            t0 = time.monotonic()
            try:
                resp = client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.3,
                    max_tokens=2000,
                    response_format={"type": "json_object"},
                    extra_headers=self._headers or None,
                )
                content = resp.choices[0].message.content if resp.choices else None
                data = parse_schedule_response(content)
            except ValueError as e:
                last_error = e
                logger.info("LLM: unusable response from model=%s (%s), trying next", model, e)
                continue
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise ScheduleGenerationError(
                        "LLM authentication failed. Check SECRETARY_OPENROUTER_API_KEY."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + _BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            logger.info("LLM: schedule from model=%s (%.2fs, %d items)", model, time.monotonic() - t0, len(data["schedule"]))
            data.setdefault("model", model)
            return data

        raise ScheduleGenerationError("All LLM models failed.") from last_error
