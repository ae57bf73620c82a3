"""
Completion Service client - JSON-constrained generation over the OpenAI API.

Wraps the three endpoints the extraction strategies need: chat completions,
file upload, and the file-aware responses endpoint. Transient transport
failures are retried here; anything that still fails surfaces as
ExtractionFailed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from .api_resilience import ServiceUnavailableError, completion_breaker, with_circuit_breaker
from ..config import Settings
from ..utils.errors import ExtractionFailed

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)

JSON_OBJECT_FORMAT = {"type": "json_object"}


@dataclass
class CompletionResult:
    """Result from a completion request."""
    text: Optional[str]
    model_name: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    generation_time_ms: float


class CompletionClient:
    """
    Client for the completion service.

    The OpenAI SDK's own retries are disabled so tenacity owns the retry policy.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_output_tokens: int = 1200,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Initialize the completion client.

        Args:
            api_key: Completion service API key; analysis fails without one
            model: Model used for both strategies
            temperature: Sampling temperature (kept low for determinism)
            max_output_tokens: Output token ceiling for chat completions
            base_url: Optional override for OpenAI-compatible endpoints
            client: Optional preconfigured AsyncOpenAI client (used in tests)
        """
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._api_key = api_key

        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        else:
            self._client = None
            logger.warning("OPENAI_API_KEY not set. Analysis will fail.")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.completion_model,
            temperature=settings.completion_temperature,
            max_output_tokens=settings.completion_max_output_tokens,
            base_url=settings.openai_base_url,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise ExtractionFailed("OPENAI_API_KEY missing")
        return self._client

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str
    ) -> CompletionResult:
        """
        Run a JSON-mode chat completion.

        Args:
            system_prompt: System instruction
            user_prompt: User instruction including the document text

        Returns:
            CompletionResult with the raw JSON text

        Raises:
            ExtractionFailed: On missing credentials or a failed request
        """
        client = self._require_client()
        start_time = time.time()

        try:
            response = await self._create_chat_completion(
                client,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except (openai.OpenAIError, ServiceUnavailableError) as e:
            logger.error(f"Chat completion failed: {e}")
            raise ExtractionFailed(f"Completion service error: {e}")

        text = response.choices[0].message.content if response.choices else None
        usage = response.usage
        result = CompletionResult(
            text=text,
            model_name=response.model or self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            generation_time_ms=(time.time() - start_time) * 1000,
        )
        self._log_result("chat", result)
        return result

    async def upload_file(self, data: bytes, filename: str) -> str:
        """
        Upload a document to the completion service's file store.

        Returns:
            The file id to reference in a responses request

        Raises:
            ExtractionFailed: On missing credentials or a failed upload
        """
        client = self._require_client()

        try:
            uploaded = await self._create_file(client, data, filename)
        except (openai.OpenAIError, ServiceUnavailableError) as e:
            logger.error(f"File upload failed for {filename}: {e}")
            raise ExtractionFailed(f"Completion service file upload failed: {e}")

        logger.info(f"Uploaded {filename} ({len(data)} bytes) as {uploaded.id}")
        return uploaded.id

    async def delete_file(self, file_id: str) -> None:
        """
        Remove an uploaded document from the completion service's file store.

        Best-effort: failures are logged, never raised.
        """
        if self._client is None:
            return

        try:
            await self._client.files.delete(file_id)
        except openai.OpenAIError as e:
            logger.warning(f"Failed to delete uploaded file {file_id}: {e}")
            return

        logger.info(f"Deleted uploaded file {file_id}")

    async def complete_json_with_file(
        self,
        system_prompt: str,
        user_prompt: str,
        file_id: str
    ) -> CompletionResult:
        """
        Run a JSON-mode responses request that references an uploaded file.

        Raises:
            ExtractionFailed: On missing credentials or a failed request
        """
        client = self._require_client()
        start_time = time.time()

        try:
            response = await self._create_response(
                client,
                input=[
                    {
                        "role": "system",
                        "content": [{"type": "input_text", "text": system_prompt}],
                    },
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_text", "text": user_prompt},
                            {"type": "input_file", "file_id": file_id},
                        ],
                    },
                ],
            )
        except (openai.OpenAIError, ServiceUnavailableError) as e:
            logger.error(f"Responses request failed for file {file_id}: {e}")
            raise ExtractionFailed(f"Completion service error: {e}")

        usage = response.usage
        result = CompletionResult(
            text=response.output_text,
            model_name=response.model or self.model,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            generation_time_ms=(time.time() - start_time) * 1000,
        )
        self._log_result("responses", result)
        return result

    @with_circuit_breaker(completion_breaker)
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _create_chat_completion(self, client: AsyncOpenAI, messages: list) -> Any:
        return await client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
            response_format=JSON_OBJECT_FORMAT,
        )

    @with_circuit_breaker(completion_breaker)
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _create_file(self, client: AsyncOpenAI, data: bytes, filename: str) -> Any:
        return await client.files.create(file=(filename, data), purpose="assistants")

    @with_circuit_breaker(completion_breaker)
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _create_response(self, client: AsyncOpenAI, input: list) -> Any:
        return await client.responses.create(
            model=self.model,
            input=input,
            temperature=self.temperature,
            text={"format": JSON_OBJECT_FORMAT},
        )

    def _log_result(self, endpoint: str, result: CompletionResult) -> None:
        logger.info(
            f"Completion via {endpoint} using {result.model_name}: "
            f"{result.input_tokens} input + {result.output_tokens} output tokens "
            f"in {result.generation_time_ms:.0f}ms"
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    def get_model_info(self) -> Dict[str, Any]:
        """Describe the configured model and sampling parameters."""
        return {
            "model_name": self.model,
            "temperature": self.temperature,
            "max_output_tokens": self.max_output_tokens,
            "configured": self.configured,
        }
