# src/askloop/core/errors.py

"""
Error taxonomy.

- ValidationError: bad user input; reported immediately, never retried, nothing persisted.
- AnswerError: remote answer service failure; `retryable` decides whether the retry
  policy tries again.
- StorageError: SQLite failure; fatal to the single operation in progress.
- TaskNotFound / AlreadyRunning: expected concurrency conflicts between the scheduler,
  workers and lifecycle commands.

`kind` is what ends up in StatEvent.error_kind.
"""

from __future__ import annotations

from enum import StrEnum


class AskLoopError(Exception):
    kind = "error"
    user_text = "An unexpected error occurred. Please try again later."

    def user_message(self) -> str:
        return self.user_text


# ---- validation ----


class ValidationError(AskLoopError):
    kind = "validation"
    user_text = "Invalid parameters provided. Please check the command format and try again."


class DuplicateName(ValidationError):
    user_text = "A task with this name already exists. Please choose a different name."


class InvalidInterval(ValidationError):
    user_text = "The interval must be a whole number of minutes, between 1 and 527040 (one year)."


class InvalidQuestion(ValidationError):
    user_text = "The question must not be empty."


class InvalidName(ValidationError):
    user_text = "The task name must not be empty."


class InvalidCommand(ValidationError):
    def __init__(self, usage: str) -> None:
        super().__init__(usage)
        self.usage = usage

    def user_message(self) -> str:
        return self.usage


class PermissionDenied(AskLoopError):
    kind = "permission_denied"
    user_text = "This command is restricted to the bot owner."


# ---- task store conflicts ----


class TaskNotFound(AskLoopError):
    kind = "not_found"
    user_text = "Task not found. Use /list to see all available tasks."


class AlreadyRunning(AskLoopError):
    kind = "already_running"
    user_text = "This task is already running."


class StorageError(AskLoopError):
    kind = "storage"
    user_text = "Unable to process your request. Please try again later."


# ---- answer service ----


class AnswerErrorKind(StrEnum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    INVALID = "invalid"
    FATAL = "fatal"


RETRYABLE_KINDS = frozenset({AnswerErrorKind.TRANSIENT, AnswerErrorKind.RATE_LIMITED})


class AnswerError(AskLoopError):
    """Failure reported by the answer service (or its timeout)."""

    def __init__(self, kind: AnswerErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.answer_kind = kind
        self.kind = kind.value

    @property
    def retryable(self) -> bool:
        return self.answer_kind in RETRYABLE_KINDS

    def user_message(self) -> str:
        if self.answer_kind == AnswerErrorKind.RATE_LIMITED:
            return "The answer service is rate-limited. Please try again later."
        if self.answer_kind == AnswerErrorKind.TRANSIENT:
            return "Unable to reach the answer service. Please try again later."
        if self.answer_kind == AnswerErrorKind.INVALID:
            return "The answer service rejected the request."
        return "The answer service is not available (configuration or authentication problem)."
