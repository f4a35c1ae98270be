# src/askloop/core/formatting.py

"""User-facing text rendering (plain text, transport-agnostic)."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from ..stats.stats_models import CommandSummary, UsageSummary
from ..tasks.task_models import Task


def _ts_utc(ts: float | None) -> str:
    if ts is None:
        return "never"
    return datetime.fromtimestamp(ts, tz=UTC).strftime("%Y-%m-%d %H:%M UTC")


def format_answer_content(content: str) -> str:
    """Normalize list markers ("- x" / "* x") to bullets; keep paragraphs."""
    paragraphs = []
    for paragraph in (content or "").strip().split("\n\n"):
        lines = []
        for line in paragraph.splitlines():
            s = line.strip()
            if s.startswith(("- ", "* ")):
                lines.append("• " + s[2:].strip())
            else:
                lines.append(line.rstrip())
        paragraphs.append("\n".join(lines))
    return "\n\n".join(paragraphs)


def format_answer(task_name: str | None, question: str, answer: str) -> str:
    body = format_answer_content(answer) or "No response received."
    if task_name:
        return f"Task response\n\nTask: {task_name}\nQuestion: {question}\n\nAnswer:\n\n{body}"
    return f"Answer\n\nQuestion: {question}\n\nAnswer:\n\n{body}"


def format_task_created(task: Task, *, initial_run: bool) -> str:
    text = (
        "Task created\n\n"
        f"Name: {task.name}\n"
        f"Question: {task.question}\n"
        f"Interval: {task.interval_minutes} minutes"
    )
    if initial_run:
        text += "\n\nFirst response coming shortly..."
    return text


def format_task_list(tasks: Sequence[Task]) -> str:
    if not tasks:
        return "No tasks found."

    lines = ["Active tasks:", ""]
    for t in tasks:
        status = "" if t.active else " [paused after repeated failures, use /resume]"
        lines.append(f"Task: {t.name}{status}")
        lines.append(f"  Question: {t.question}")
        lines.append(f"  Interval: {t.interval_minutes} minutes")
        lines.append(f"  Last run: {_ts_utc(t.last_run_at)}")
        lines.append(f"  Next run: {_ts_utc(t.next_run_at)}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_task_disabled(task: Task) -> str:
    return (
        f"Task '{task.name}' failed {task.consecutive_failures} times in a row "
        f"(last error: {task.last_error or 'unknown'}) and has been paused. "
        f"Use /resume {task.name} to enable it again."
    )


def format_user_stats(summary: UsageSummary) -> str:
    return (
        "Your usage statistics\n\n"
        f"Total commands: {summary.total_commands}\n"
        f"Active days: {summary.active_days}\n"
        f"Average response time: {summary.avg_duration_ms:.2f}ms\n"
        f"Error rate: {summary.error_rate * 100:.2f}%"
    )


def format_bot_stats(rollups: Sequence[CommandSummary]) -> str:
    if not rollups:
        return "Bot usage statistics\n\nNo commands recorded yet."
    lines = ["Bot usage statistics", ""]
    for r in rollups:
        lines.append(f"{r.command}")
        lines.append(f"  Usage count: {r.usage_count}")
        lines.append(f"  Active days: {r.active_days}")
        lines.append(f"  Avg response: {r.avg_duration_ms:.2f}ms")
        lines.append(f"  Error rate: {r.error_rate * 100:.2f}%")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_whoami(user_id: str, *, is_owner: bool) -> str:
    return f"User ID: {user_id}\nBot owner: {'yes' if is_owner else 'no'}"


def format_help() -> str:
    return (
        "Available commands:\n"
        "  /help - Show this help message\n"
        "  /whoami - Show your user id\n"
        "  /create <name> <interval_minutes> <question> - Create a recurring question\n"
        "      example: /create weather 60 What's the weather in New York?\n"
        "  /list - Show your tasks\n"
        "  /delete <name> - Remove a task\n"
        "  /resume <name> - Re-enable a paused task\n"
        "  /ask <question> - Ask a one-time question\n"
        "  /stats - Your usage statistics\n"
        "  /botstats - Overall usage statistics (bot owner only)"
    )
