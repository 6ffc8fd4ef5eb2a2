"""
LLM query client.

Sends one prompt to one named model through OpenRouter's OpenAI-compatible
chat completions endpoint and returns raw text plus usage. Used both by the
fingerprint fan-out and by the notability judge.

Retries transient failures (timeouts, connection errors, 429, 5xx) with
exponential backoff; other 4xx responses fail immediately.
"""

import os
import time
import logging
import threading
from typing import Dict, Optional, Tuple

import openai
from openai import OpenAI

from .errors import LLMError, RETRY_CONFIGS, sanitize_for_logging, with_retry
from .models import LLMResponse

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000
REQUEST_TIMEOUT = 30     # seconds per request
CACHE_TTL_SECONDS = 3600


class LLMClient:
    """
    Thin wrapper around the OpenAI SDK pointed at OpenRouter.

    Attributes:
        request_count: Total API requests made (including retries)
        total_tokens: Tokens reported by successful responses
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = OPENROUTER_BASE_URL,
        client=None,
        enable_cache: bool = False,
        cache_ttl: int = CACHE_TTL_SECONDS,
        sleep=time.sleep,
    ):
        """
        Args:
            api_key: OpenRouter key. If None, reads OPENROUTER_API_KEY.
            base_url: OpenAI-compatible endpoint.
            client: Pre-built OpenAI-style client (tests inject a fake).
            enable_cache: Cache identical (model, prompt, temperature) answers.
            cache_ttl: Cache lifetime in seconds.
            sleep: Injected for tests.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        self.base_url = base_url
        self._client = client
        self._sleep = sleep
        self.enable_cache = enable_cache
        self.cache_ttl = cache_ttl
        self._cache: Dict[Tuple[str, str, float], Tuple[float, LLMResponse]] = {}
        self._lock = threading.Lock()
        self.request_count = 0
        self.total_tokens = 0

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise LLMError(
                "OPENROUTER_API_KEY not set",
                code="LLM_NOT_CONFIGURED",
                status=500,
            )
        self._client = OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            max_retries=0,
        )
        return self._client

    def query(
        self,
        model: str,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """
        Send a single prompt to `model`.

        Args:
            model: OpenRouter model id (e.g. 'openai/gpt-4-turbo').
            prompt: User message.
            temperature: Sampling temperature.
            max_tokens: Completion budget.
            system_prompt: Optional system message.

        Returns:
            LLMResponse with content, tokens_used and the model that answered.

        Raises:
            LLMError: after retries are exhausted, on a non-retryable 4xx,
                      or when no API key is configured.
        """
        cache_key = (model, prompt, float(temperature))
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.debug("LLM cache hit for %s", model)
            return cached

        client = self._get_client()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        def _attempt() -> LLMResponse:
            with self._lock:
                self.request_count += 1
            try:
                response = client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=REQUEST_TIMEOUT,
                )
            except openai.RateLimitError:
                raise LLMError(
                    f"Rate limited by {model}",
                    code="LLM_RATE_LIMITED",
                    status=429,
                    details={"model": model},
                    retryable=True,
                )
            except openai.APIStatusError as e:
                status = getattr(e, "status_code", 502) or 502
                raise LLMError(
                    f"{model} returned HTTP {status}: {sanitize_for_logging(e)}",
                    details={"model": model, "http_status": status},
                    retryable=status >= 500,
                )
            except (openai.APITimeoutError, openai.APIConnectionError) as e:
                raise LLMError(
                    f"{model} request failed: {sanitize_for_logging(e)}",
                    status=504,
                    details={"model": model},
                    retryable=True,
                )
            return self._to_response(response, model)

        try:
            result = with_retry(_attempt, RETRY_CONFIGS["llm"], operation=f"LLM query to {model}", sleep=self._sleep)
        except LLMError as e:
            if e.retryable:
                logger.error("Max retries exceeded for %s", model)
            raise
        with self._lock:
            self.total_tokens += result.tokens_used
        self._cache_put(cache_key, result)
        return result

    @staticmethod
    def _to_response(response, model: str) -> LLMResponse:
        choice = response.choices[0] if getattr(response, "choices", None) else None
        if not choice or not getattr(choice, "message", None):
            raise LLMError(f"Empty response from {model}", details={"model": model})
        content = (choice.message.content or "").strip()
        usage = getattr(response, "usage", None)
        tokens = int(getattr(usage, "total_tokens", 0) or 0) if usage else 0
        return LLMResponse(
            content=content,
            tokens_used=tokens,
            model=model,
        )

    def _cache_get(self, key) -> Optional[LLMResponse]:
        if not self.enable_cache:
            return None
        with self._lock:
            entry = self._cache.get(key)
            if not entry:
                return None
            stored_at, value = entry
            if time.time() - stored_at > self.cache_ttl:
                del self._cache[key]
                return None
            return value

    def _cache_put(self, key, value: LLMResponse) -> None:
        if not self.enable_cache:
            return
        with self._lock:
            self._cache[key] = (time.time(), value)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()


def strip_json_fence(text: str) -> str:
    """Strip a ```json ... ``` wrapper if the model added one."""
    text = (text or "").strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()
