"""
Ollama Request Manager.

Thin wrapper around the Ollama API shared by the extraction and embedding
services. Every call is bounded by a timeout and retried with exponential
backoff; failures surface as pipeline errors:

- a final timeout raises UpstreamTimeoutError
- any other final failure raises ExtractionError

Usage:
    result = await ollama_manager.query(
        prompt="Summarize this meeting...",
        system_prompt="You are ...",
        temperature=0.3,
        format="json",
        step="extract",
    )

    vector = await ollama_manager.embed("text to embed", step="embed")
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import ollama
from dotenv import load_dotenv

if TYPE_CHECKING:
    from meeting_brain.context import Context
    from meeting_brain.services.manager import ServicesManager

from meeting_brain.errors import ExtractionError, UpstreamTimeoutError
from meeting_brain.services.manager import Manager

load_dotenv(dotenv_path=".env.local")


# -------------------------------------------------------------- #
# Data Models
# -------------------------------------------------------------- #


@dataclass
class GenerationConfig:
    """Configuration for text generation parameters."""

    temperature: float = 0.7
    top_p: float = 0.9
    num_predict: int | None = None  # max tokens to generate
    seed: int | None = None


@dataclass
class OllamaQueryInput:
    """Input parameters for Ollama query."""

    model: str
    messages: list[dict[str, str]]
    generation_config: GenerationConfig = field(default_factory=GenerationConfig)
    format: Literal["json"] | None = None
    keep_alive: str | int = "5m"
    step: str | None = None


@dataclass
class OllamaQueryResult:
    """Result from Ollama query."""

    content: str
    model: str
    done: bool
    total_duration: int | None = None  # nanoseconds
    prompt_eval_count: int | None = None
    eval_count: int | None = None


# -------------------------------------------------------------- #
# Ollama Request Manager
# -------------------------------------------------------------- #


class OllamaRequestManager(Manager):
    """Manager for Ollama chat and embedding requests with timeout and retry support."""

    def __init__(
        self,
        context: Context,
        host: str | None = None,
        default_model: str | None = None,
        embedding_model: str | None = None,
        timeout_ms: int | None = None,
        max_retries: int | None = None,
        retry_backoff: float = 1.0,
    ):
        """
        Initialize the Ollama request manager.

        Args:
            context: Application context
            host: Ollama server host URL (defaults to env: OLLAMA_HOST + OLLAMA_PORT)
            default_model: Chat model (defaults to env: OLLAMA_MODEL)
            embedding_model: Embedding model (defaults to env: OLLAMA_EMBEDDING_MODEL)
            timeout_ms: Per-call timeout (defaults to env: LLM_TIMEOUT_MS)
            max_retries: Attempts per call (defaults to env: LLM_MAX_RETRIES)
            retry_backoff: Exponential backoff multiplier in seconds
        """
        super().__init__(context)

        if host is None:
            ollama_host = os.environ.get("OLLAMA_HOST", "localhost")
            ollama_port = os.environ.get("OLLAMA_PORT", "11434")
            host = f"http://{ollama_host}:{ollama_port}"

        self._client = ollama.AsyncClient(host=host)
        self._host = host

        self._default_model = default_model or os.environ.get("OLLAMA_MODEL", "llama3.1")
        self._embedding_model = embedding_model or os.environ.get(
            "OLLAMA_EMBEDDING_MODEL", "nomic-embed-text"
        )
        self._timeout_ms = timeout_ms or int(os.environ.get("LLM_TIMEOUT_MS", "120000"))
        self._max_retries = max_retries or int(os.environ.get("LLM_MAX_RETRIES", "3"))
        self._retry_backoff = retry_backoff

        # Statistics
        self._total_requests = 0
        self._total_tokens_generated = 0
        self._total_errors = 0
        self._model_usage: dict[str, int] = {}

    # -------------------------------------------------------------- #
    # Manager Lifecycle
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"Ollama Request Manager started (host: {self._host}, model: {self._default_model}, "
            f"embedding model: {self._embedding_model})"
        )

    async def on_close(self) -> None:
        if self.services:
            await self.services.logging_service.info(
                f"Ollama Request Manager stopped. Total requests: {self._total_requests}, "
                f"Total tokens: {self._total_tokens_generated}, "
                f"Total errors: {self._total_errors}"
            )

    # -------------------------------------------------------------- #
    # Main Query Interface
    # -------------------------------------------------------------- #

    async def query(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        num_predict: int | None = None,
        format: Literal["json"] | None = None,
        step: str | None = None,
    ) -> OllamaQueryResult:
        """
        Execute a single-turn chat query.

        Args:
            prompt: User message
            system_prompt: Optional system message placed before the prompt
            model: Model name (uses default if not provided)
            temperature: Sampling temperature
            num_predict: Maximum tokens to generate
            format: "json" to force structured output
            step: Pipeline step name attached to any raised error

        Returns:
            OllamaQueryResult

        Raises:
            UpstreamTimeoutError: Every attempt timed out
            ExtractionError: Every attempt failed
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        query_input = OllamaQueryInput(
            model=model or self._default_model,
            messages=messages,
            generation_config=GenerationConfig(
                temperature=temperature if temperature is not None else 0.7,
                num_predict=num_predict,
            ),
            format=format,
            step=step,
        )
        return await self._query_once(query_input)

    async def embed(
        self, text: str, model: str | None = None, step: str | None = None
    ) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed
            model: Embedding model (uses the configured embedding model if not provided)
            step: Pipeline step name attached to any raised error

        Returns:
            Embedding vector

        Raises:
            UpstreamTimeoutError: Every attempt timed out
            ExtractionError: Every attempt failed or the response held no vector
        """
        model = model or self._embedding_model
        response = await self._with_retries(
            lambda: self._client.embed(model=model, input=text),
            model=model,
            step=step,
        )

        embeddings = response.get("embeddings") or []
        if not embeddings or not embeddings[0]:
            self._total_errors += 1
            raise ExtractionError(f"Ollama returned no embedding for model '{model}'", step=step)
        return [float(value) for value in embeddings[0]]

    # -------------------------------------------------------------- #
    # Internal Query Methods
    # -------------------------------------------------------------- #

    async def _query_once(self, query_input: OllamaQueryInput) -> OllamaQueryResult:
        """Execute a single non-streaming query with retry logic."""
        start_time = time.time()
        request_params = self._build_request_params(query_input)

        response = await self._with_retries(
            lambda: self._client.chat(**request_params),
            model=query_input.model,
            step=query_input.step,
        )

        content = response.get("message", {}).get("content", "")
        eval_count = response.get("eval_count") or 0
        self._total_tokens_generated += eval_count

        duration_ms = (time.time() - start_time) * 1000
        await self.services.logging_service.debug(
            f"Ollama query completed: model={query_input.model}, step={query_input.step}, "
            f"tokens={eval_count}, duration={duration_ms:.0f}ms"
        )

        return OllamaQueryResult(
            content=content,
            model=response.get("model", query_input.model),
            done=response.get("done", True),
            total_duration=response.get("total_duration"),
            prompt_eval_count=response.get("prompt_eval_count"),
            eval_count=response.get("eval_count"),
        )

    async def _with_retries(self, call, model: str, step: str | None):
        """
        Run an Ollama call with timeout, retries and exponential backoff.

        Args:
            call: Zero-argument callable returning a fresh awaitable per attempt
            model: Model name for statistics
            step: Pipeline step name attached to any raised error

        Returns:
            The raw Ollama response
        """
        self._total_requests += 1
        self._model_usage[model] = self._model_usage.get(model, 0) + 1
        last_error: BaseException | None = None

        for attempt in range(self._max_retries):
            try:
                return await asyncio.wait_for(call(), timeout=self._timeout_ms / 1000)

            except asyncio.TimeoutError as e:
                last_error = e
                await self.services.logging_service.warning(
                    f"Ollama {step or 'request'} timeout "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )

            except Exception as e:
                last_error = e
                await self.services.logging_service.warning(
                    f"Ollama {step or 'request'} error "
                    f"(attempt {attempt + 1}/{self._max_retries}): {e}"
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_backoff * (2**attempt))

        self._total_errors += 1
        await self.services.logging_service.error(
            f"Ollama {step or 'request'} failed after {self._max_retries} attempts: {last_error}"
        )
        if isinstance(last_error, asyncio.TimeoutError):
            raise UpstreamTimeoutError(
                f"Ollama {step or 'request'} timed out after {self._max_retries} attempts",
                step=step,
            ) from last_error
        raise ExtractionError(
            f"Ollama {step or 'request'} failed after {self._max_retries} attempts: {last_error}",
            step=step,
        ) from last_error

    def _build_request_params(self, query_input: OllamaQueryInput) -> dict[str, Any]:
        """Build Ollama API request parameters."""
        options: dict[str, Any] = {
            "temperature": query_input.generation_config.temperature,
            "top_p": query_input.generation_config.top_p,
        }

        if query_input.generation_config.num_predict:
            options["num_predict"] = query_input.generation_config.num_predict

        if query_input.generation_config.seed is not None:
            options["seed"] = query_input.generation_config.seed

        params: dict[str, Any] = {
            "model": query_input.model,
            "messages": query_input.messages,
            "options": options,
            "stream": False,
            "keep_alive": query_input.keep_alive,
        }

        if query_input.format:
            params["format"] = query_input.format

        return params

    # -------------------------------------------------------------- #
    # Utility Methods
    # -------------------------------------------------------------- #

    def get_statistics(self) -> dict[str, Any]:
        """Get usage statistics."""
        return {
            "total_requests": self._total_requests,
            "total_tokens_generated": self._total_tokens_generated,
            "total_errors": self._total_errors,
            "model_usage": self._model_usage.copy(),
        }

    async def health_check(self) -> bool:
        """Check that the Ollama server answers a model listing."""
        try:
            await asyncio.wait_for(self._client.list(), timeout=self._timeout_ms / 1000)
            return True
        except Exception as e:
            await self.services.logging_service.error(f"Ollama health check failed: {e}")
            return False
