# src/askloop/llm/client.py

from __future__ import annotations

import logging

import httpx
import openai
from openai import AsyncOpenAI

from ..core.errors import AnswerError, AnswerErrorKind

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant. When formatting responses:
- Use *word* for bold text (surround text with single asterisks)
- Start list items with - or *
- Keep responses clear and structured
- Separate paragraphs with blank lines
Example format:
Here are the prices:
- *Bitcoin (BTC)*: The price is $50,000
- *Ethereum (ETH)*: The price is $3,000"""


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    # APITimeoutError is a subclass of APIConnectionError.
    return isinstance(exc, (openai.APIConnectionError, httpx.TransportError))


def _is_server_error(exc: Exception) -> bool:
    return isinstance(exc, openai.APIStatusError) and exc.status_code >= 500


def _is_request_error(exc: Exception) -> bool:
    return isinstance(
        exc,
        (
            openai.BadRequestError,
            openai.NotFoundError,
            openai.UnprocessableEntityError,
            openai.ConflictError,
        ),
    )


def classify_error(exc: Exception) -> AnswerError:
    """Map an SDK / transport exception onto the answer error taxonomy."""
    if isinstance(exc, AnswerError):
        return exc
    if _is_auth_error(exc):
        return AnswerError(AnswerErrorKind.FATAL, f"authentication failed: {exc}")
    if _is_rate_limit_error(exc):
        return AnswerError(AnswerErrorKind.RATE_LIMITED, str(exc))
    if _is_connection_error(exc) or _is_server_error(exc):
        return AnswerError(AnswerErrorKind.TRANSIENT, f"{exc.__class__.__name__}: {exc}")
    if _is_request_error(exc):
        return AnswerError(AnswerErrorKind.INVALID, str(exc))
    return AnswerError(AnswerErrorKind.FATAL, f"{exc.__class__.__name__}: {exc}")


class XaiAnswerService:
    """
    x.ai chat completion client (OpenAI-compatible API).

    SDK-level retries are disabled: the retry policy in tasks/retry.py owns retrying,
    so a transient failure is counted exactly once per attempt.
    """

    def __init__(self, settings) -> None:
        api_key = getattr(settings, "xai_api_key", None)
        base_url = getattr(settings, "xai_base_url", "") or ""

        if not api_key or not str(api_key).strip():
            raise RuntimeError("Answer service API key is not set. Set ASKLOOP_XAI_API_KEY in your .env.")
        if not base_url.strip():
            raise RuntimeError("Answer service base URL is not set. Set ASKLOOP_XAI_BASE_URL in your .env.")

        self.model = str(getattr(settings, "xai_model", "grok-beta") or "grok-beta")
        self.temperature = float(getattr(settings, "answer_temperature", 0.0))
        timeout_s = float(getattr(settings, "answer_timeout_seconds", 60.0))

        self._client = AsyncOpenAI(
            base_url=base_url,
            api_key=str(api_key),
            timeout=httpx.Timeout(timeout_s, connect=min(10.0, timeout_s)),
            max_retries=0,
        )

    async def query(self, text: str, timeout: float) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
                temperature=self.temperature,
                stream=False,
                timeout=timeout,
            )
        except Exception as e:
            err = classify_error(e)
            logger.debug("Answer service error model=%s kind=%s: %s", self.model, err.kind, e)
            raise err from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError):
            content = None

        if not content or not content.strip():
            return "No response received"
        return content

    async def close(self) -> None:
        await self._client.close()
