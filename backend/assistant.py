"""
Bridge between the planner and the external LLM.

The assistant only ever sees a bounded snapshot of the user's data. When its
reply embeds a create_task directive, the task is created through the normal
lifecycle service and the directive is stripped from the text shown to the user.
"""
import json
import logging
import re
from datetime import datetime
from typing import Optional

import anthropic
import pydantic

import database
import lifecycle
from audit import AuditSink
from config import get_settings
from errors import NotFoundError
from models import ChatResult, InsightsResult, Message, Source, TaskCreate
from prompts import SYSTEM_PROMPT, INSIGHTS_PROMPT, FALLBACK_REPLY

logger = logging.getLogger(__name__)

CONTEXT_TASK_LIMIT = 100
DIRECTIVE_ACTION = "create_task"

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)

_client: Optional[anthropic.AsyncAnthropic] = None


def get_client() -> Optional[anthropic.AsyncAnthropic]:
    """Lazily build the Anthropic client. None when no API key is configured."""
    global _client
    if _client is None:
        api_key = get_settings().anthropic_api_key
        if not api_key or api_key == "your-api-key-here":
            return None
        _client = anthropic.AsyncAnthropic(api_key=api_key)
    return _client


def build_chat_context(user_id: str, limit: int = CONTEXT_TASK_LIMIT) -> dict:
    """Snapshot of tasks, categories and summary stats for the assistant prompt."""
    tasks = database.get_context_tasks(user_id, limit)
    categories = database.get_categories_with_counts(user_id)

    active = [t for t in tasks if not t["completed"]]
    stats = {
        "totalTasks": len(tasks),
        "activeTasks": len(active),
        "completedTasks": sum(1 for t in tasks if t["completed"]),
        "inProgressTasks": sum(1 for t in active if t["inToday"]),
        "todayTasks": sum(1 for t in tasks if t["inToday"]),
        # Energy level breakdown
        "lowEnergyTasks": sum(1 for t in active if t["energyLevel"] == "low"),
        "medEnergyTasks": sum(1 for t in active if t["energyLevel"] == "med"),
        "highEnergyTasks": sum(1 for t in active if t["energyLevel"] == "high"),
        # Duration breakdown
        "shortTasks": sum(1 for t in active if t["durationMinutes"] == 15),
        "mediumTasks": sum(1 for t in active if t["durationMinutes"] == 30),
        "longTasks": sum(1 for t in active if t["durationMinutes"] >= 60),
        # Source breakdown
        "manualTasks": sum(1 for t in active if t["source"] == "manual"),
        "importedTasks": sum(1 for t in active if t["source"] != "manual"),
    }

    return {
        "tasks": tasks,
        "categories": [
            {
                "id": c.id,
                "name": c.name,
                "description": c.description,
                "color": c.color,
                "isDefault": c.is_default,
                "activeTasks": c.counts.total - c.counts.completed,
            }
            for c in categories
        ],
        "stats": stats,
    }


def _format_categories(context: dict) -> str:
    lines = [f"- {c['name']} (id: {c['id']}): {c['activeTasks']} tasks" for c in context["categories"]]
    return "\n".join(lines) or "- No categories"


def build_system_prompt(context: dict, today: str) -> str:
    stats = context["stats"]
    task_lines = []
    for task in context["tasks"]:
        if task["completed"]:
            continue
        progress = " (In Today)" if task["inToday"] else ""
        task_lines.append(
            f'- "{task["title"]}" - {task["durationMinutes"]} min, {task["energyLevel"]} energy, '
            f'Category: {task["category"]["name"]}{progress}'
        )
    return SYSTEM_PROMPT.format(
        total_tasks=stats["totalTasks"],
        in_progress_tasks=stats["inProgressTasks"],
        completed_tasks=stats["completedTasks"],
        today_tasks=stats["todayTasks"],
        categories=_format_categories(context),
        tasks="\n".join(task_lines) or "- No active tasks",
        today=today,
    )


def _is_directive(obj) -> bool:
    return isinstance(obj, dict) and obj.get("action") == DIRECTIVE_ACTION


def _tidy(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def extract_directive(text: str) -> tuple[Optional[dict], str]:
    """
    Find an embedded create_task directive in an assistant reply.
    Returns (directive or None, reply text with the directive removed).
    """
    # Fenced ```json blocks first, so the fence goes away with the JSON
    for match in _FENCED_JSON.finditer(text):
        try:
            obj = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if _is_directive(obj):
            return obj, _tidy(text[:match.start()] + text[match.end():])

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        start = match.start()
        try:
            obj, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            continue
        if _is_directive(obj):
            return obj, _tidy(text[:start] + text[end:])

    return None, text.strip()


def _reply_text(response) -> str:
    for block in response.content or []:
        if getattr(block, "type", "text") == "text" and block.text:
            return block.text
    return "Sorry, I couldn't generate a response."


async def chat(
    user_id: str,
    message: str,
    audit: AuditSink,
    history: Optional[list[Message]] = None,
) -> ChatResult:
    """Send the user's message with their task context to the LLM and act on any directive."""
    client = get_client()
    if client is None:
        return ChatResult(response=FALLBACK_REPLY, error="Assistant API key not configured")

    settings = get_settings()
    today = datetime.now().strftime("%Y-%m-%d")
    system_prompt = build_system_prompt(build_chat_context(user_id), today)

    api_messages = [{"role": m.role, "content": m.content} for m in history or []]
    api_messages.append({"role": "user", "content": message})

    try:
        response = await client.messages.create(
            model=settings.assistant_model,
            max_tokens=settings.assistant_max_tokens,
            system=system_prompt,
            messages=api_messages
        )
    except anthropic.APIError as e:
        logger.warning("Assistant request failed: %s", e)
        return ChatResult(response=FALLBACK_REPLY, error=f"Assistant request failed: {e}")

    ai_text = _reply_text(response)
    logger.debug("Assistant response: %s", ai_text)

    directive, reply = extract_directive(ai_text)
    if directive is None:
        return ChatResult(response=reply)

    fields = {k: v for k, v in directive.items() if k != "action"}
    fields["source"] = Source.assistant
    try:
        task_data = TaskCreate.model_validate(fields)
    except pydantic.ValidationError as e:
        logger.warning("Ignoring malformed create_task directive: %s", e)
        return ChatResult(response=reply, error="The assistant suggested a task that could not be created")

    try:
        task = lifecycle.create_task(user_id, task_data, audit)
    except NotFoundError as e:
        return ChatResult(response=reply, error=f"Could not create task: {e.message}")

    return ChatResult(response=reply or f'Added "{task.title}".', created_task=task)


def parse_insights(text: str, limit: int = 3) -> list[str]:
    """Bullet lines ("- ...") from an insights reply, at most `limit`."""
    insights = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith(("- ", "* ", "• ")):
            insights.append(line[2:].strip())
    return insights[:limit]


async def generate_insights(user_id: str) -> InsightsResult:
    client = get_client()
    if client is None:
        return InsightsResult(error="Assistant API key not configured")

    context = build_chat_context(user_id)
    stats = context["stats"]
    prompt = INSIGHTS_PROMPT.format(
        active_tasks=stats["activeTasks"],
        today_tasks=stats["todayTasks"],
        low_energy=stats["lowEnergyTasks"],
        med_energy=stats["medEnergyTasks"],
        high_energy=stats["highEnergyTasks"],
        short_tasks=stats["shortTasks"],
        medium_tasks=stats["mediumTasks"],
        long_tasks=stats["longTasks"],
        categories=_format_categories(context),
        today=datetime.now().strftime("%Y-%m-%d"),
    )

    try:
        response = await client.messages.create(
            model=get_settings().assistant_model,
            max_tokens=256,
            messages=[{"role": "user", "content": prompt}]
        )
    except anthropic.APIError as e:
        logger.warning("Insights request failed: %s", e)
        return InsightsResult(error=f"Assistant request failed: {e}")

    return InsightsResult(insights=parse_insights(_reply_text(response)))
