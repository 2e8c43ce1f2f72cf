"""
LLM Client: Async transport to model providers.

This module provides a dependency-injectable LLM client that doesn't rely on globals.
All configuration is passed explicitly.

Design principles:
- No global state
- Configuration passed via constructor
- One logical operation: chat(request) -> raw text
- Bounded retry with exponential backoff for transient failures
- Classified errors: unreachable vs. provider-returned payloads
- Optional logging to file
"""

import asyncio
import functools
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Literal, TypeVar

import httpx
import openai
import tiktoken
from openai import AsyncOpenAI

from config import ConfigurationError, LLMConfig
from logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Mode = Literal["query", "chat", "think", "code", "debug"]

UNREACHABLE_MESSAGE = (
    "Unable to connect to the API. Please check your internet connection and try again."
)


class TransportError(Exception):
    """Base class for failures surfaced by the transport."""


class ProviderUnreachableError(TransportError):
    """The connection to the provider could not be established."""

    def __init__(self, message: str = UNREACHABLE_MESSAGE):
        super().__init__(message)


class ProviderResponseError(TransportError):
    """The provider answered with an error payload."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API request failed with status {status}: {body}")

    @property
    def retryable(self) -> bool:
        return self.status == 429 or self.status >= 500


class _RetryableFailure(Exception):
    """Internal wrapper marking a failure as worth another attempt."""

    def __init__(self, error: Exception):
        self.error = error
        super().__init__(str(error))


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: tuple = (Exception,),
):
    """
    Decorator for retrying coroutines with exponential backoff.

    Args:
        max_retries: Maximum number of attempts.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay between retries.
        exponential_base: Base for exponential backoff calculation.
        retryable_exceptions: Tuple of exception types to retry on.

    Usage:
        @retry_with_backoff(max_retries=3)
        async def my_api_call():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries - 1:
                        delay = min(
                            base_delay * (exponential_base ** attempt),
                            max_delay
                        )
                        logger.warning(
                            f"retry {attempt + 1}/{max_retries - 1} in {delay:.1f}s: "
                            f"{e.__class__.__name__}: {e}"
                        )
                        await asyncio.sleep(delay)

            raise last_exception

        return wrapper
    return decorator


@dataclass(frozen=True)
class ChatRequest:
    """One logical call to the model."""
    message: str
    mode: Mode = "chat"
    session_id: str = "code-editor-session"
    validation_score: int | None = None
    model: str | None = None

    def to_payload(self) -> dict:
        """Wire body for the workspace endpoint."""
        payload = {
            "message": self.message,
            "mode": self.mode,
            "sessionId": self.session_id,
            "validationScore": self.validation_score,
        }
        if self.model:
            payload["model"] = self.model
        return payload


@dataclass
class LLMStats:
    """Usage tracking, per role."""
    calls: dict[str, int] = field(default_factory=dict)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    failures: int = 0

    def record(self, mode: str, prompt_tokens: int, completion_tokens: int) -> None:
        self.calls[mode] = self.calls.get(mode, 0) + 1
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens

    def record_failure(self) -> None:
        self.failures += 1

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


@functools.lru_cache(maxsize=1)
def _get_encoding():
    return tiktoken.get_encoding("cl100k_base")


def estimate_tokens(text: str) -> int:
    """Estimate token count using tiktoken cl100k_base encoding."""
    return len(_get_encoding().encode(text))


class LLMClient:
    """
    Async LLM client with explicit configuration.

    Two wire formats are supported:
    - ``workspace``: POST ``{message, mode, sessionId, validationScore, model}``
      to a single chat endpoint and return the body text as-is
    - ``openai`` / ``lmstudio`` / ``ollama``: OpenAI-compatible chat
      completions through the openai SDK

    Usage:
        config = LLMConfig.from_env()
        client = LLMClient(config)

        text = await client.chat(ChatRequest(message="What is a closure?"))
    """

    def __init__(
        self,
        config: LLMConfig,
        log_path: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize LLM client.

        Args:
            config: Transport configuration (provider, endpoint, retries).
            log_path: Optional path to write JSONL call logs. If None, no logging.
            http_client: Optional shared httpx client for the workspace provider.
                The caller keeps ownership; aclose() leaves it open.
        """
        self.config = config
        self.log_path = log_path
        self.stats = LLMStats()
        self._http = http_client
        self._openai: AsyncOpenAI | None = None

    async def chat(self, request: ChatRequest) -> str:
        """
        Send one request and return the raw reply text.

        Raises:
            ConfigurationError: No provider configured; nothing is sent.
            ProviderUnreachableError: Connection failed on every attempt.
            ProviderResponseError: Provider returned an error payload.
        """
        if not self.config.is_configured:
            raise ConfigurationError(
                "API configuration not found. Please configure the API first."
            )

        if self.config.provider == "workspace":
            send = self._post_workspace
        else:
            send = self._call_openai

        call = retry_with_backoff(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay_s,
            retryable_exceptions=(_RetryableFailure,),
        )(send)

        try:
            text = await call(request)
        except _RetryableFailure as e:
            self.stats.record_failure()
            logger.error(f"{request.mode} call failed after {self.config.max_retries} attempts: {e}")
            raise e.error from e
        except TransportError as e:
            self.stats.record_failure()
            logger.error(f"{request.mode} call rejected: {e}")
            raise

        self.stats.record(
            request.mode,
            estimate_tokens(request.message),
            estimate_tokens(text),
        )
        self._log(request, text)

        return text

    async def _post_workspace(self, request: ChatRequest) -> str:
        """One HTTP attempt against the workspace endpoint."""
        headers = {
            "accept": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        client = self._http or httpx.AsyncClient(timeout=self.config.timeout_s)
        try:
            response = await client.post(
                self.config.endpoint,
                headers=headers,
                json=request.to_payload(),
            )
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise _RetryableFailure(ProviderUnreachableError()) from e
        except httpx.TransportError as e:
            raise _RetryableFailure(TransportError(f"Transport failure: {e}")) from e
        finally:
            if self._http is None:
                await client.aclose()

        if response.is_error:
            error = ProviderResponseError(response.status_code, response.text)
            if error.retryable:
                raise _RetryableFailure(error)
            raise error

        logger.debug(f"Raw API response: {response.text[:500]}")
        return response.text

    async def _call_openai(self, request: ChatRequest) -> str:
        """One chat-completions attempt against an OpenAI-compatible server."""
        if self._openai is None:
            self._openai = AsyncOpenAI(
                base_url=self.config.endpoint,
                api_key=self.config.api_key or "not-needed",
                timeout=self.config.timeout_s,
                max_retries=0,
            )

        try:
            completion = await self._openai.chat.completions.create(
                messages=[{"role": "user", "content": request.message}],
                model=request.model or self.config.model,
                temperature=self.config.temperature,
                stream=False,
            )
        except openai.APIConnectionError as e:
            raise _RetryableFailure(ProviderUnreachableError()) from e
        except openai.APIStatusError as e:
            error = ProviderResponseError(e.status_code, _status_body(e))
            if error.retryable:
                raise _RetryableFailure(error) from e
            raise error from e

        return completion.choices[0].message.content or ""

    async def aclose(self) -> None:
        """Release provider connections."""
        if self._openai is not None:
            await self._openai.close()
            self._openai = None

    def _log(self, request: ChatRequest, response: str) -> None:
        """Write log entry to file if log_path is set."""
        if not self.log_path:
            return

        log_entry = {
            "provider": self.config.provider,
            "mode": request.mode,
            "message": request.message,
            "response": response,
            "validation_score": request.validation_score,
            "model": request.model or self.config.model,
            "timestamp": datetime.now().isoformat(),
        }

        log_dir = os.path.dirname(self.log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")


def _status_body(error: "openai.APIStatusError") -> str:
    body = error.body
    if body is None:
        return error.message
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False)
