"""Chat-completions client used to write overview summaries."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import LLMConfig
from ..logging import get_logger

# Statuses worth another attempt: rate limiting and transient upstream failures.
_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

logger = get_logger("llm")


@dataclass(frozen=True)
class ChatRequest:
    """Everything needed for one ``/chat/completions`` call."""

    prompt: str
    system: Optional[str]
    model: str
    base_url: str
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def payload(self) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.prompt})
        body: Dict[str, Any] = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens
        return body

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers


Transport = Callable[[ChatRequest], str]


class LLMRunner:
    """Sends prompts to an OpenAI-compatible endpoint and returns the reply text.

    Settings resolve as explicit argument, then environment variable, then
    default. ``transport`` replaces the HTTP call entirely, which is how tests
    and offline runs avoid the network. Every failure surfaces as
    ``RuntimeError`` so generators can map it onto their own error type.
    """

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_BASE_URL = "http://localhost:11434/v1"
    DEFAULT_TIMEOUT = 60.0
    ENV_MODEL_KEYS = ("DOCSYNC_LLM_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = ("DOCSYNC_LLM_BASE_URL", "OPENAI_BASE_URL")
    ENV_API_KEY_KEYS = ("DOCSYNC_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        request_timeout: Optional[float] = None,
        max_retries: int = 0,
        retry_delay: float = 1.0,
        transport: Transport | None = None,
    ) -> None:
        self.model = _resolve(model, self.ENV_MODEL_KEYS) or self.DEFAULT_MODEL
        self.base_url = (_resolve(base_url, self.ENV_BASE_URL_KEYS) or self.DEFAULT_BASE_URL).rstrip("/")
        self.api_key = _resolve(api_key, self.ENV_API_KEY_KEYS)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self._transport = transport or post_chat_completion

    @classmethod
    def from_config(cls, config: LLMConfig, *, transport: Transport | None = None) -> "LLMRunner":
        return cls(
            config.model,
            base_url=config.base_url,
            api_key=config.api_key,
            temperature=0.2 if config.temperature is None else config.temperature,
            max_tokens=config.max_tokens,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            transport=transport,
        )

    def run(self, prompt: str, *, system: str | None = None) -> str:
        """Send ``prompt`` (with an optional system message) and return the reply."""
        request = ChatRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            base_url=self.base_url,
            api_key=self.api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            request_timeout=self.request_timeout,
        )
        attempt = 0
        while True:
            try:
                return self._transport(request)
            except TransientLLMError as exc:
                if attempt >= self.max_retries:
                    raise RuntimeError(str(exc)) from exc
                attempt += 1
                logger.warning("%s; retrying (%d/%d)", exc, attempt, self.max_retries)
                time.sleep(self.retry_delay * attempt)


class TransientLLMError(RuntimeError):
    """A failure that may succeed when the same request is sent again."""


def post_chat_completion(request: ChatRequest) -> str:
    """POST ``request`` with urllib and return the first choice's text."""
    http_request = Request(
        request.endpoint,
        data=json.dumps(request.payload()).encode("utf-8"),
        headers=request.headers(),
        method="POST",
    )
    timeout = request.request_timeout or LLMRunner.DEFAULT_TIMEOUT
    try:
        with urlopen(http_request, timeout=timeout) as response:
            raw = response.read()
    except HTTPError as exc:  # pragma: no cover - depends on runtime
        detail = exc.read().decode("utf-8", errors="ignore").strip()
        message = f"LLM request failed with status {exc.code}: {detail or exc.reason}"
        if exc.code in _RETRYABLE_STATUS:
            raise TransientLLMError(message) from exc
        raise RuntimeError(message) from exc
    except URLError as exc:  # pragma: no cover - depends on runtime
        raise TransientLLMError(f"LLM request failed: {exc.reason}") from exc

    try:
        reply = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RuntimeError("LLM endpoint returned invalid JSON") from exc

    text = _reply_text(reply).strip()
    if not text:
        raise RuntimeError("LLM endpoint returned an empty response")
    return text


def _reply_text(reply: Any) -> str:
    try:
        choice = reply["choices"][0]
    except (KeyError, IndexError, TypeError):
        return ""
    if not isinstance(choice, dict):
        return ""
    message = choice.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    # Legacy completions endpoints answer with a bare ``text`` field.
    return choice["text"] if isinstance(choice.get("text"), str) else ""


def _resolve(explicit: Optional[str], env_keys: Sequence[str]) -> Optional[str]:
    if explicit:
        return explicit
    return next((os.environ[key] for key in env_keys if os.environ.get(key)), None)


__all__ = ["ChatRequest", "LLMRunner", "TransientLLMError", "post_chat_completion"]
