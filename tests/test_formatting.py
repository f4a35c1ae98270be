# tests/test_formatting.py

from __future__ import annotations

from askloop.core.formatting import (
    format_answer,
    format_answer_content,
    format_bot_stats,
    format_task_list,
    format_user_stats,
)
from askloop.stats.stats_models import CommandSummary, UsageSummary
from askloop.tasks.task_models import Task


def _task(**kw) -> Task:
    base = dict(
        id=1,
        owner_id="u1",
        name="crypto",
        interval_seconds=1800.0,
        question="BTC price?",
        created_at=0.0,
        next_run_at=1800.0,
    )
    base.update(kw)
    return Task(**base)


def test_list_markers_become_bullets() -> None:
    text = "Prices:\n- *BTC*: 1\n* *ETH*: 2\n\nDone."
    assert format_answer_content(text) == "Prices:\n• *BTC*: 1\n• *ETH*: 2\n\nDone."


def test_answer_with_and_without_task_name() -> None:
    scheduled = format_answer("crypto", "BTC price?", "About 50k")
    assert scheduled.startswith("Task response")
    assert "Task: crypto" in scheduled
    assert scheduled.endswith("About 50k")

    one_shot = format_answer(None, "BTC price?", "")
    assert "Task:" not in one_shot
    assert one_shot.endswith("No response received.")


def test_task_list_marks_paused_tasks() -> None:
    text = format_task_list([_task(), _task(id=2, name="news", active=False)])
    assert "Task: crypto\n" in text
    assert "Interval: 30 minutes" in text
    assert "Last run: never" in text
    assert "Task: news [paused" in text


def test_user_stats_percentages() -> None:
    text = format_user_stats(UsageSummary(total_commands=2, active_days=1, avg_duration_ms=150.0, error_rate=0.5))
    assert "Total commands: 2" in text
    assert "Average response time: 150.00ms" in text
    assert "Error rate: 50.00%" in text


def test_bot_stats() -> None:
    assert format_bot_stats([]).endswith("No commands recorded yet.")
    text = format_bot_stats([CommandSummary(command="ask", usage_count=4, active_days=2, avg_duration_ms=12.5, error_rate=0.25)])
    assert "ask\n  Usage count: 4\n  Active days: 2" in text
    assert "Error rate: 25.00%" in text
