# tests/test_llm_client.py

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from askloop.core.errors import AnswerError, AnswerErrorKind
from askloop.llm.client import XaiAnswerService, classify_error
from askloop.llm.offline import OfflineAnswerService

_REQ = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")


def _status(cls, code: int) -> openai.APIStatusError:
    return cls(f"HTTP {code}", response=httpx.Response(code, request=_REQ), body=None)


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (_status(openai.RateLimitError, 429), AnswerErrorKind.RATE_LIMITED),
        (_status(openai.InternalServerError, 503), AnswerErrorKind.TRANSIENT),
        (openai.APIConnectionError(request=_REQ), AnswerErrorKind.TRANSIENT),
        (openai.APITimeoutError(request=_REQ), AnswerErrorKind.TRANSIENT),
        (httpx.ConnectError("refused"), AnswerErrorKind.TRANSIENT),
        (_status(openai.AuthenticationError, 401), AnswerErrorKind.FATAL),
        (_status(openai.PermissionDeniedError, 403), AnswerErrorKind.FATAL),
        (_status(openai.BadRequestError, 400), AnswerErrorKind.INVALID),
        (_status(openai.NotFoundError, 404), AnswerErrorKind.INVALID),
        (ValueError("weird"), AnswerErrorKind.FATAL),
    ],
)
def test_classify_error(exc: Exception, kind: AnswerErrorKind) -> None:
    err = classify_error(exc)
    assert err.answer_kind == kind
    assert err.retryable == (kind in (AnswerErrorKind.TRANSIENT, AnswerErrorKind.RATE_LIMITED))


def test_classify_passes_answer_errors_through() -> None:
    original = AnswerError(AnswerErrorKind.INVALID, "x")
    assert classify_error(original) is original


def test_service_requires_api_key() -> None:
    with pytest.raises(RuntimeError):
        XaiAnswerService(SimpleNamespace(xai_api_key="", xai_base_url="https://api.x.ai/v1"))
    with pytest.raises(RuntimeError):
        XaiAnswerService(SimpleNamespace(xai_api_key="k", xai_base_url=""))


@pytest.mark.asyncio
async def test_offline_service_echoes() -> None:
    reply = await OfflineAnswerService().query("ping?", 1.0)
    assert "ping?" in reply
