# src/askloop/cli/commands.py

"""
Chat commands.

Text like "/create weather 60 What's the weather?" is parsed into one of a closed
set of command dataclasses, and dispatch() handles every variant with an
exhaustive match. Every invocation is recorded as a StatEvent; /ask is recorded by
the execution worker, which knows the real outcome of the remote call.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import ClassVar, assert_never

from ..core.errors import AskLoopError, InvalidCommand, StorageError
from ..core.formatting import (
    format_answer,
    format_bot_stats,
    format_help,
    format_task_created,
    format_task_list,
    format_user_stats,
    format_whoami,
)
from ..core.state import AppState
from ..stats.stats_models import CommandKind, StatEvent
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Help:
    kind: ClassVar[CommandKind] = CommandKind.HELP


@dataclass(frozen=True, slots=True)
class WhoAmI:
    kind: ClassVar[CommandKind] = CommandKind.WHOAMI


@dataclass(frozen=True, slots=True)
class Create:
    name: str
    interval_minutes: int
    question: str
    kind: ClassVar[CommandKind] = CommandKind.CREATE


@dataclass(frozen=True, slots=True)
class Delete:
    name: str
    kind: ClassVar[CommandKind] = CommandKind.DELETE


@dataclass(frozen=True, slots=True)
class ListTasks:
    kind: ClassVar[CommandKind] = CommandKind.LIST


@dataclass(frozen=True, slots=True)
class Resume:
    name: str
    kind: ClassVar[CommandKind] = CommandKind.RESUME


@dataclass(frozen=True, slots=True)
class Ask:
    question: str
    kind: ClassVar[CommandKind] = CommandKind.ASK


@dataclass(frozen=True, slots=True)
class Stats:
    kind: ClassVar[CommandKind] = CommandKind.STATS


@dataclass(frozen=True, slots=True)
class BotStats:
    kind: ClassVar[CommandKind] = CommandKind.BOTSTATS


Command = Help | WhoAmI | Create | Delete | ListTasks | Resume | Ask | Stats | BotStats

USAGE = {
    CommandKind.CREATE: "Usage: /create <name> <interval_minutes> <question>",
    CommandKind.DELETE: "Usage: /delete <name>",
    CommandKind.RESUME: "Usage: /resume <name>",
    CommandKind.ASK: "Usage: /ask <question>",
}

_ALIASES = {
    "help": CommandKind.HELP,
    "h": CommandKind.HELP,
    "?": CommandKind.HELP,
    "start": CommandKind.HELP,
    "whoami": CommandKind.WHOAMI,
    "myid": CommandKind.WHOAMI,
    "create": CommandKind.CREATE,
    "delete": CommandKind.DELETE,
    "list": CommandKind.LIST,
    "resume": CommandKind.RESUME,
    "ask": CommandKind.ASK,
    "stats": CommandKind.STATS,
    "botstats": CommandKind.BOTSTATS,
}


class CommandParseError(InvalidCommand):
    """Usage error; `command` is set when the command name itself was recognised."""

    def __init__(self, usage: str, command: CommandKind | None = None) -> None:
        super().__init__(usage)
        self.command = command


def parse_command(line: str) -> Command | None:
    """
    Parse "/name args". Returns None for plain text (not a command).

    Raises CommandParseError for unknown commands and malformed arguments.
    """
    line = (line or "").strip()
    if not line.startswith("/"):
        return None

    head, _, rest = line[1:].partition(" ")
    # Telegram-style "/cmd@botname"
    name = head.split("@", 1)[0].lower()
    rest = rest.strip()

    if not name:
        raise CommandParseError("Empty command. Use /help to list available commands.")

    kind = _ALIASES.get(name)
    if kind is None:
        raise CommandParseError(f"Unknown command: /{name}. Use /help to list available commands.")

    match kind:
        case CommandKind.HELP:
            return Help()
        case CommandKind.WHOAMI:
            return WhoAmI()
        case CommandKind.LIST:
            return ListTasks()
        case CommandKind.STATS:
            return Stats()
        case CommandKind.BOTSTATS:
            return BotStats()
        case CommandKind.CREATE:
            parts = rest.split(None, 2)
            if len(parts) != 3:
                raise CommandParseError(USAGE[kind], kind)
            try:
                minutes = int(parts[1])
            except ValueError:
                raise CommandParseError(USAGE[kind], kind) from None
            return Create(name=parts[0], interval_minutes=minutes, question=parts[2].strip())
        case CommandKind.DELETE | CommandKind.RESUME:
            if not rest or len(rest.split()) != 1:
                raise CommandParseError(USAGE[kind], kind)
            return Delete(name=rest) if kind == CommandKind.DELETE else Resume(name=rest)
        case CommandKind.ASK:
            if not rest:
                raise CommandParseError(USAGE[kind], kind)
            return Ask(question=rest)

    raise CommandParseError(f"Unknown command: /{name}.")


# Keep references to fire-and-forget jobs so they are not garbage collected mid-run.
_background: set[asyncio.Task[object]] = set()


def _start_initial_run(state: AppState, task: Task) -> None:
    # Preview run on an unsaved copy: the stored task keeps its own schedule.
    # Not recorded: dispatch() already records the /create itself.
    preview = dataclasses.replace(task, id=None)
    job = asyncio.create_task(
        state.worker.execute(preview, record=False),
        name=f"askloop-initial-{task.id}",
    )
    _background.add(job)
    job.add_done_callback(_background.discard)


async def _execute(state: AppState, cmd: Command, user_id: str, room_id: str | None) -> str:
    match cmd:
        case Help():
            return format_help()

        case WhoAmI():
            return format_whoami(user_id, is_owner=state.is_owner(user_id))

        case Create(name=name, interval_minutes=minutes, question=question):
            task = state.task_store.create(user_id, name, minutes * 60, question, room_id=room_id)
            initial = bool(getattr(state.settings, "initial_run_on_create", False))
            if initial:
                _start_initial_run(state, task)
            return format_task_created(task, initial_run=initial)

        case Delete(name=name):
            state.task_store.delete(user_id, name)
            return f"Task '{name}' deleted."

        case ListTasks():
            return format_task_list(state.task_store.list_tasks(user_id))

        case Resume(name=name):
            task = state.task_store.resume(user_id, name)
            return f"Task '{task.name}' resumed."

        case Ask(question=question):
            result = await state.worker.execute(
                Task.ephemeral(owner_id=user_id, question=question, room_id=room_id),
                kind=CommandKind.ASK,
                deliver=False,
            )
            if result.error is not None:
                raise result.error
            return format_answer(None, question, result.answer or "")

        case Stats():
            return format_user_stats(state.stats.personal_summary(user_id))

        case BotStats():
            return format_bot_stats(state.stats.global_summary(is_owner=state.is_owner(user_id)))

        case _:
            assert_never(cmd)


def _record(
    state: AppState,
    kind: CommandKind,
    user_id: str,
    *,
    duration_ms: int,
    success: bool,
    error_kind: str | None,
) -> None:
    try:
        state.stats_store.record(
            StatEvent(
                command=kind,
                user_id=user_id,
                timestamp=time.time(),
                duration_ms=duration_ms,
                success=success,
                error_kind=error_kind,
            )
        )
    except StorageError:
        logger.exception("Failed to record stat event command=%s user=%s", kind.value, user_id)


async def dispatch(state: AppState, cmd: Command, *, user_id: str, room_id: str | None = None) -> str:
    """Run one parsed command and return the reply text. Never raises."""
    t0 = time.monotonic()
    success = True
    error_kind: str | None = None

    try:
        reply = await _execute(state, cmd, user_id, room_id)
    except AskLoopError as e:
        success = False
        error_kind = e.kind
        reply = e.user_message()
        logger.info("Command %s by %s failed: %s (%s)", cmd.kind.value, user_id, e.kind, e)
    except Exception:
        success = False
        error_kind = "internal"
        reply = "Internal error while handling a command."
        logger.exception("Command handler crashed command=%s user=%s", cmd.kind.value, user_id)

    if cmd.kind != CommandKind.ASK:
        _record(
            state,
            cmd.kind,
            user_id,
            duration_ms=int((time.monotonic() - t0) * 1000),
            success=success,
            error_kind=error_kind,
        )
    return reply


async def handle_line(
    state: AppState,
    line: str,
    *,
    user_id: str,
    room_id: str | None = None,
) -> str | None:
    """
    Handle a chat line. Returns a reply string, or None if it is not a command.
    """
    try:
        cmd = parse_command(line)
    except CommandParseError as e:
        if e.command is not None:
            _record(state, e.command, user_id, duration_ms=0, success=False, error_kind=e.kind)
        return e.user_message()

    if cmd is None:
        return None
    return await dispatch(state, cmd, user_id=user_id, room_id=room_id)
