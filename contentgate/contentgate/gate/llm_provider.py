"""
Completion provider interface, implementations and model selection.

Provides abstraction over the text-completion API with same-model retry,
ordered model fallback, a primary-model degrade window and an overall
wall-clock budget. Includes a scripted dummy provider for tests and
offline runs.
"""

import asyncio
import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from contentgate.core.logging import get_logger
from contentgate.core.settings import Settings, get_settings
from .errors import (
    ContentGateError,
    EmptyCompletionError,
    GenerationTimeout,
    ProviderRejection,
    TransportError,
)
from .models import ContentDraft

logger = get_logger(__name__)

MODEL_AVAILABILITY_REGEX = re.compile(
    r"not available in your region|model.*not available|no endpoints found|model not found|unknown model|"
    r"provider.*unavailable|provider.*not available"
)
MODEL_SCOPE_REGEX = re.compile(r"model|provider|region|endpoint")


class CompletionProvider(ABC):
    """Abstract base class for text-completion providers."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        """
        Run one completion.

        Args:
            system_prompt: System message
            user_prompt: User message
            model: Provider model id

        Returns:
            Completion text

        Raises:
            TransportError: timeout or network failure
            ProviderRejection: HTTP error status or empty content
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check provider health and availability."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""
        pass


def classify_http_error(status: int, message: str, model: Optional[str] = None) -> ContentGateError:
    """
    Map an HTTP error response to the gate's error taxonomy.

    401 is never fixed by fallback, 403 only for model availability errors,
    404/429/5xx and model-scoped 400s fall back. 429 and 5xx may also be
    retried on the same model. 408 is a transport timeout.
    """
    lowered = (message or "").lower()
    if status == 408:
        return TransportError(message, kind="timeout", model=model)

    availability = bool(MODEL_AVAILABILITY_REGEX.search(lowered))
    if status == 401:
        fallback = False
    elif status == 403:
        fallback = availability
    elif availability or status in (404, 429) or status >= 500:
        fallback = True
    elif status == 400 and MODEL_SCOPE_REGEX.search(lowered):
        fallback = True
    else:
        fallback = False

    return ProviderRejection(
        message,
        status=status,
        model=model,
        retry_same_model=status == 429 or status >= 500,
        fallback_allowed=fallback,
    )


class OpenRouterProvider(CompletionProvider):
    """OpenRouter-compatible chat completions over httpx."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: float = 90.0,
        max_tokens: int = 8192,
        site_url: str = "",
        app_title: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "Content-Type": "application/json",
                "HTTP-Referer": site_url,
                "X-Title": app_title,
            },
        )
        self.call_count = 0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "OpenRouterProvider":
        settings = settings or get_settings()
        return cls(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.request_timeout_seconds,
            max_tokens=settings.max_tokens,
            site_url=settings.site_url,
            app_title=settings.app_title,
            **kwargs,
        )

    @property
    def provider_name(self) -> str:
        return "OpenRouter"

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self.api_key else "unconfigured",
            "provider": self.provider_name,
            "calls_made": self.call_count,
            "timestamp": datetime.utcnow().isoformat(),
        }

    async def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        self.call_count += 1
        payload = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        try:
            response = await self.client.post(
                self.base_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Completion timeout after {self.timeout}s: {e}", kind="timeout", model=model)
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {e}", kind="network", model=model)

        if response.status_code >= 400:
            raise classify_http_error(response.status_code, self._error_message(response), model)

        try:
            data = response.json()
        except ValueError:
            raise EmptyCompletionError(model=model)
        choices = data.get("choices") or []
        text = ((choices[0] or {}).get("message") or {}).get("content") if choices else None
        if not text:
            raise EmptyCompletionError(model=model)
        return text

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"Completion API error: {response.status_code}"
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return f"Completion API error: {response.status_code}"


ScriptItem = Union[str, Exception, Callable[[str, str, str], str]]


class DummyCompletionProvider(CompletionProvider):
    """
    Scripted provider for tests and offline runs.

    Each call consumes the next script item: a string is returned, an
    exception is raised and a callable is invoked with the prompts. Once the
    script runs out, the ``default`` responder answers.
    """

    def __init__(self, script: Optional[Sequence[ScriptItem]] = None,
                 default: Optional[Callable[[str, str, str], str]] = None):
        self.script: List[ScriptItem] = list(script or [])
        self.default = default or build_offline_completion
        self.calls: List[Dict[str, str]] = []

    @property
    def provider_name(self) -> str:
        return "DummyCompletion"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "provider": self.provider_name,
            "calls_made": self.call_count,
            "scripted_remaining": len(self.script),
        }

    async def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "model": model})
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(system_prompt, user_prompt, model)
        return item


def build_offline_completion(system_prompt: str, user_prompt: str, model: str) -> str:
    """Plain draft JSON used when no provider is configured."""
    match = re.search(r"primary keyword:\s*(.+)", user_prompt or "")
    keyword = match.group(1).strip() if match else "宅建の基礎"
    body = (
        f"{keyword}は、判断の順番を押さえると理解しやすくなります。まず要点から確認しましょう。\n\n"
        f"## {keyword}とは\n"
        f"{keyword}とは、試験と実務で判断基準として使う基本知識です。条件と例外を分けて整理すると迷いにくくなります。\n\n"
        f"## {keyword}の確認手順\n"
        "- 適用条件を先に固定してから比較する\n"
        "- 例外条件を通常ルールと分けて最終確認する\n\n"
        "## FAQ\n"
        f"Q: {keyword}は何から覚えるべきですか？\n"
        "A: まず定義と基本手順を押さえ、次に例題で確認すると定着しやすいです。\n"
        "Q: 実務で迷ったときの確認順は？\n"
        "A: 結論→根拠→例外の順で整理すると、判断がブレにくくなります。"
    )
    return json.dumps({"title": f"{keyword}の要点解説", "body": body, "hashtags": ["宅建", "不動産"]},
                      ensure_ascii=False)


@dataclass
class ModelSelectionContext:
    """
    Per-process model selection state.

    ``degraded_until`` holds the wall-clock time until which the primary
    model is skipped in favour of the fallbacks after a transport failure.
    """
    primary_model: str
    fallback_models: List[str] = field(default_factory=list)
    degrade_window_seconds: float = 600.0
    degraded_until: float = 0.0
    clock: Callable[[], float] = time.time

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ModelSelectionContext":
        settings = settings or get_settings()
        return cls(
            primary_model=settings.content_model,
            fallback_models=settings.fallback_model_list,
            degrade_window_seconds=settings.degrade_window_seconds,
        )

    @property
    def is_degraded(self) -> bool:
        return self.degraded_until > self.clock()

    def mark_degraded(self) -> None:
        self.degraded_until = self.clock() + self.degrade_window_seconds
        logger.warning(
            f"Primary model {self.primary_model} degraded for {self.degrade_window_seconds:.0f}s"
        )

    def candidates(self, model: Optional[str] = None) -> List[str]:
        """Ordered, de-duplicated model list for one call."""
        if model and model != self.primary_model:
            return [model]
        fallbacks = _unique(self.fallback_models)
        if self.is_degraded and fallbacks:
            return _unique(fallbacks + [self.primary_model])
        return _unique([self.primary_model] + fallbacks)


def _unique(models: Sequence[str]) -> List[str]:
    seen: List[str] = []
    for item in models:
        model = (item or "").strip()
        if model and model not in seen:
            seen.append(model)
    return seen


def _retry_backoff(retry_state) -> float:
    return min(1.5, 0.25 * retry_state.attempt_number)


def _is_same_model_retryable(error: BaseException) -> bool:
    if isinstance(error, GenerationTimeout):
        return False
    if isinstance(error, TransportError):
        return True
    return isinstance(error, ProviderRejection) and error.retry_same_model


def _can_fall_back(error: BaseException) -> bool:
    if isinstance(error, GenerationTimeout):
        return False
    if isinstance(error, TransportError):
        return True
    return isinstance(error, ProviderRejection) and error.fallback_allowed


class CompletionClient:
    """
    Completion calls with retry, fallback and a wall-clock budget.

    Per model: up to ``attempts_per_model`` attempts for retryable errors
    with ``min(1.5, 0.25 * attempt)`` seconds of backoff. Across models: at
    most ``max_model_attempts`` candidates, skipping to the next only for
    error classes a different model can fix. The budget is checked before
    each attempt.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        selection: ModelSelectionContext,
        attempts_per_model: int = 1,
        max_model_attempts: int = 2,
        total_budget_seconds: float = 180.0,
        sleep: Callable[[float], Any] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.selection = selection
        self.attempts_per_model = max(1, attempts_per_model)
        self.max_model_attempts = max(1, max_model_attempts)
        self.total_budget_seconds = total_budget_seconds
        self.sleep = sleep
        self.monotonic = monotonic

    @classmethod
    def from_settings(cls, provider: CompletionProvider, settings: Optional[Settings] = None,
                      selection: Optional[ModelSelectionContext] = None) -> "CompletionClient":
        settings = settings or get_settings()
        return cls(
            provider=provider,
            selection=selection or ModelSelectionContext.from_settings(settings),
            attempts_per_model=settings.retry_per_model,
            max_model_attempts=settings.max_model_attempts,
            total_budget_seconds=settings.total_budget_seconds,
        )

    async def complete(self, system_prompt: str, user_prompt: str, model: Optional[str] = None) -> str:
        candidates = self.selection.candidates(model)[:self.max_model_attempts]
        started = self.monotonic()
        last_error: Optional[BaseException] = None

        for index, candidate in enumerate(candidates):
            try:
                return await self._complete_with_retry(system_prompt, user_prompt, candidate, started)
            except (TransportError, ProviderRejection) as e:
                last_error = e
                has_next = index < len(candidates) - 1
                if not has_next or not _can_fall_back(e):
                    logger.error(f"Completion failed on {candidate}: {e}")
                    raise
                logger.warning(f"Model fallback: {candidate} failed ({e}) -> {candidates[index + 1]}")

        raise last_error or ProviderRejection("No completion model available")

    async def _complete_with_retry(self, system_prompt: str, user_prompt: str, model: str, started: float) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts_per_model),
            wait=_retry_backoff,
            retry=retry_if_exception(_is_same_model_retryable),
            sleep=self.sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.warning(f"Retrying same model {model} ({number}/{self.attempts_per_model})")
                return await self._attempt(system_prompt, user_prompt, model, started)
        raise ProviderRejection("Completion retries exhausted", model=model)

    async def _attempt(self, system_prompt: str, user_prompt: str, model: str, started: float) -> str:
        elapsed = self.monotonic() - started
        if elapsed > self.total_budget_seconds:
            raise GenerationTimeout(
                f"Completion budget of {self.total_budget_seconds:.0f}s exceeded", model=model
            )
        try:
            return await self.provider.complete(system_prompt, user_prompt, model)
        except TransportError:
            if model == self.selection.primary_model:
                self.selection.mark_degraded()
            raise


class CompletionProviderFactory:
    """Factory for creating completion provider instances."""

    _providers = {
        "openrouter": OpenRouterProvider,
        "dummy": DummyCompletionProvider,
    }

    @classmethod
    def create_provider(cls, provider_type: str = "dummy", **config) -> CompletionProvider:
        """
        Create a provider instance.

        Args:
            provider_type: "openrouter" or "dummy"
            **config: Provider-specific configuration

        Returns:
            CompletionProvider instance
        """
        if provider_type not in cls._providers:
            logger.warning(f"Unknown provider type: {provider_type}, falling back to dummy")
            provider_type = "dummy"
        provider_class = cls._providers[provider_type]
        if provider_type == "openrouter" and not config:
            return OpenRouterProvider.from_settings()
        return provider_class(**config)

    @classmethod
    def register_provider(cls, name: str, provider_class):
        """Register a new provider type."""
        cls._providers[name] = provider_class

    @classmethod
    def list_providers(cls) -> List[str]:
        """List available provider types."""
        return list(cls._providers.keys())


# ---------------------------------------------------------------------------
# Visual readability QA (interface only)
# ---------------------------------------------------------------------------

class VisualQAResult(BaseModel):
    """Outcome of a cover-image readability check."""
    passed: bool
    issues: List[str] = Field(default_factory=list)
    observed_texts: List[str] = Field(default_factory=list)


class VisualQAProvider(ABC):
    """Readability check used by the cover-image pipeline."""

    @abstractmethod
    async def check(self, image_bytes: bytes, expected_text_hints: Sequence[str]) -> VisualQAResult:
        pass


# ---------------------------------------------------------------------------
# Completion parsing
# ---------------------------------------------------------------------------

FENCED_BLOCK_REGEX = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
FENCED_TEXT_BLOCK_REGEX = re.compile(r"```(?:markdown|md|text)?\s*([\s\S]*?)```", re.IGNORECASE)

WIRE_FIELDS = {
    "title": "title",
    "body": "body",
    "titleChinese": "title_secondary",
    "bodyChinese": "body_secondary",
    "imagePrompt": "image_prompt",
    "seoTitle": "seo_title",
    "ctaLink": "primary_url",
}


def _decode_json_string(raw: str) -> str:
    normalized = raw.replace("\r", "\\r").replace("\n", "\\n")
    try:
        return json.loads(f'"{normalized}"')
    except ValueError:
        return raw.replace("\\r", "\r").replace("\\n", "\n").replace('\\"', '"').replace("\\\\", "\\")


def extract_json_string_field(raw: str, field_name: str) -> str:
    """
    Tolerant extraction of one string field from JSON-like text.

    A quote closes the value only when it is unescaped and followed by
    ``,`` or ``}`` (or the end), so unescaped inner quotes survive.
    """
    text = raw or ""
    key = f'"{field_name}"'
    key_index = text.find(key)
    if key_index < 0:
        return ""
    colon = text.find(":", key_index + len(key))
    if colon < 0:
        return ""
    cursor = colon + 1
    while cursor < len(text) and text[cursor].isspace():
        cursor += 1
    if cursor >= len(text) or text[cursor] != '"':
        return ""
    cursor += 1

    value = []
    while cursor < len(text):
        ch = text[cursor]
        if ch == '"':
            backslashes = 0
            back = cursor - 1
            while back >= 0 and text[back] == "\\":
                backslashes += 1
                back -= 1
            if backslashes % 2 == 0:
                ahead = cursor + 1
                while ahead < len(text) and text[ahead].isspace():
                    ahead += 1
                if ahead >= len(text) or text[ahead] in ",}":
                    return _decode_json_string("".join(value))
        value.append(ch)
        cursor += 1
    return ""


def extract_json_string_array_field(raw: str, field_name: str) -> List[str]:
    match = re.search(rf'"{re.escape(field_name)}"\s*:\s*\[([\s\S]*?)\]', raw or "")
    if not match:
        return []
    values = [_decode_json_string(item) for item in re.findall(r'"((?:\\.|[^"\\])*)"', match.group(1))]
    if values:
        return values
    return [item.strip().strip('"') for item in match.group(1).split(",") if item.strip().strip('"')]


def load_json_object(raw: str) -> Optional[Dict[str, Any]]:
    text = (raw or "").strip()
    block = FENCED_BLOCK_REGEX.search(text)
    if block:
        text = block.group(1).strip()
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def parse_generated_content(raw: str) -> ContentDraft:
    """
    Build a draft from a raw completion.

    Tries a fenced JSON block, then the outermost ``{...}`` object, then a
    field-by-field tolerant extraction. Raw model text is never used as the
    body.
    """
    parsed = load_json_object(raw)
    values: Dict[str, Any] = {}
    if parsed is not None:
        for wire, attr in WIRE_FIELDS.items():
            value = parsed.get(wire)
            if isinstance(value, str):
                values[attr] = value.strip()
        hashtags = parsed.get("hashtags")
        values["hashtags"] = hashtags if isinstance(hashtags, list) else []
    else:
        for wire, attr in WIRE_FIELDS.items():
            values[attr] = extract_json_string_field(raw, wire).strip()
        values["hashtags"] = extract_json_string_array_field(raw, "hashtags")
    return ContentDraft(**values)


class ReviewResult(BaseModel):
    """LLM review verdict."""
    passed: bool = False
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


def parse_review_result(raw: str) -> ReviewResult:
    parsed = load_json_object(raw)
    if parsed is None:
        return ReviewResult(passed=False, issues=["Review response could not be parsed"],
                            suggestions=[(raw or "").strip()] if (raw or "").strip() else [])
    issues = parsed.get("issues") if isinstance(parsed.get("issues"), list) else []
    suggestions = parsed.get("suggestions") if isinstance(parsed.get("suggestions"), list) else []
    return ReviewResult(
        passed=bool(parsed.get("passed")),
        issues=[str(item) for item in issues if str(item).strip()],
        suggestions=[str(item) for item in suggestions if str(item).strip()],
    )


def parse_plain_text_completion(raw: str) -> str:
    """Markdown body from a plain-text completion, unwrapping fences and stray JSON."""
    text = (raw or "").strip()
    block = FENCED_TEXT_BLOCK_REGEX.search(text)
    if block:
        text = block.group(1).strip()
    from_json = extract_json_string_field(text, "bodyChinese").strip()
    return from_json or text
