"""OpenRouter generation client built on the async OpenAI SDK."""

import json
import logging
from typing import Any, Dict, List, Optional, cast

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    InternalServerError,
    OpenAIError,
    RateLimitError,
)

from ..domain import ModelConfig, StructuredGeneration, TextGeneration, Usage
from ..exceptions import ErrorKind, GenerationError
from ..schema import validate_decision_payload
from ..services import IGenerationClient
from .utility_services import ResponseParser

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def classify_error(exc: OpenAIError) -> ErrorKind:
    """Map an SDK exception onto the closed failure classification."""
    # APITimeoutError subclasses APIConnectionError.
    if isinstance(exc, (APIConnectionError, RateLimitError, InternalServerError)):
        return ErrorKind.NETWORK
    if isinstance(exc, APIStatusError) and exc.status_code >= 500:
        return ErrorKind.NETWORK
    return ErrorKind.OTHER


class OpenRouterClient(IGenerationClient):
    """OpenRouter client with a persistent HTTP/2 connection pool.

    The underlying clients are created lazily inside the running event loop and
    dropped again by :meth:`aclose`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 120,
        referer: str = "https://github.com/gabagool-bench",
        title: str = "Gabagool Bench",
        temperature: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._referer = referer
        self._title = title
        self._temperature = temperature
        self._logger = logger or logging.getLogger(__name__)
        self._client: Optional[AsyncOpenAI] = None
        self._http_client: Optional[httpx.AsyncClient] = None
        self._response_parser = ResponseParser()

    def _ensure_client(self) -> AsyncOpenAI:
        """Lazily create and cache the OpenAI client."""
        if self._client is None:
            self._http_client = httpx.AsyncClient(http2=True, timeout=httpx.Timeout(self._timeout, connect=10))
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                http_client=self._http_client,
            )
            self._logger.debug("Initialized OpenRouter client with persistent HTTP/2 connection pool.")
        return self._client

    async def generate_structured(
        self,
        model: ModelConfig,
        system_prompt: str,
        user_prompt: str,
        schema: Dict[str, Any],
        max_tokens: int,
        max_retries: int,
    ) -> StructuredGeneration:
        """Request a decision constrained by ``schema`` and validate it strictly."""
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": "decision", "strict": True, "schema": schema},
        }
        payload = await self._complete(model, system_prompt, user_prompt, max_tokens, max_retries, response_format)
        text = self._response_parser.extract_text(payload)
        usage = self._response_parser.extract_usage(payload)
        finish_reason = self._response_parser.extract_finish_reason(payload)

        try:
            decoded: Any = json.loads(text)
        except ValueError:
            decoded = None
        decision = validate_decision_payload(decoded)
        if decision is None:
            raise GenerationError(
                "No object generated: response did not match schema.",
                kind=ErrorKind.PARSING,
                raw_text=text,
                context={"model": model.name, "finish_reason": finish_reason},
                usage=usage,
            )
        return StructuredGeneration(decision=decision, usage=usage, finish_reason=finish_reason)

    async def generate_text(
        self,
        model: ModelConfig,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        max_retries: int,
    ) -> TextGeneration:
        """Request unconstrained text."""
        payload = await self._complete(model, system_prompt, user_prompt, max_tokens, max_retries, None)
        return TextGeneration(
            text=self._response_parser.extract_text(payload),
            usage=self._response_parser.extract_usage(payload),
            finish_reason=self._response_parser.extract_finish_reason(payload),
        )

    async def _complete(
        self,
        model: ModelConfig,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        max_retries: int,
        response_format: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        client = self._ensure_client().with_options(max_retries=max_retries)
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        headers = {"HTTP-Referer": self._referer, "X-Title": self._title}
        extra_body: Dict[str, Any] = {"usage": {"include": True}}
        if model.reasoning_effort:
            extra_body["reasoning"] = {"effort": model.reasoning_effort}

        request: Dict[str, Any] = {
            "model": model.slug,
            "messages": messages,
            "max_tokens": max_tokens,
            "extra_headers": headers,
            "extra_body": extra_body,
        }
        if response_format is not None:
            request["response_format"] = response_format
        if self._temperature is not None:
            request["temperature"] = self._temperature

        self._logger.debug(
            "POST %s/chat/completions model=%s max_tokens=%d structured=%s",
            self._base_url,
            model.slug,
            max_tokens,
            response_format is not None,
        )

        try:
            client_any = cast(Any, client)
            raw_response = await client_any.chat.completions.with_raw_response.create(**request)
        except OpenAIError as exc:
            status_code = exc.status_code if isinstance(exc, APIStatusError) else None
            self._logger.debug("Request to OpenRouter failed: %s", exc, exc_info=True)
            raise GenerationError(
                str(exc),
                kind=classify_error(exc),
                status_code=status_code,
                context={"model": model.name, "status": status_code} if status_code else {"model": model.name},
            ) from exc

        http_response = raw_response.http_response
        elapsed = http_response.elapsed.total_seconds() if http_response.elapsed else None
        self._logger.debug(
            "Received response status=%s latency=%s model=%s",
            http_response.status_code,
            f"{elapsed:.3f}s" if elapsed is not None else "unknown",
            model.slug,
        )

        completion = raw_response.parse()
        return cast(Dict[str, Any], completion.model_dump())

    async def aclose(self) -> None:
        """Close connections and cleanup resources."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        self._client = None
        self._logger.debug("Closed OpenRouter client connections")


__all__ = ["OPENROUTER_BASE_URL", "OpenRouterClient", "classify_error"]
