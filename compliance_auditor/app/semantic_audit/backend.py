"""
Model backend contract.

The executor treats the backend as an opaque, injected collaborator:

    (system_prompt, user_prompt, options) -> BackendResponse

IMPORTANT:
- `structured` is set only when constrained decoding was honored
- `usage`, when present, drives exact token accounting
- Timeouts and retries are the backend's responsibility; the executor
  imposes no deadline of its own and never retries
- Backends MAY raise; the executor contains failures per task
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from azure.identity import (
    DefaultAzureCredential,
    get_bearer_token_provider,
)
from openai import (
    APIConnectionError,
    AsyncAzureOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


logger = logging.getLogger(__name__)

AZURE_COGNITIVE_SCOPE = "https://cognitiveservices.azure.com/.default"


# ----------------------------------------------------------------------
# Request / Response
# ----------------------------------------------------------------------


class BackendOptions(BaseModel):
    model: str
    max_tokens: int = Field(4096, ge=1)
    json_schema: Optional[Dict[str, Any]] = Field(
        None,
        description="Output schema for constrained decoding, when supported",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class BackendUsage(BaseModel):
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class BackendResponse(BaseModel):
    text: str = ""
    structured: Optional[Dict[str, Any]] = None
    usage: Optional[BackendUsage] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Backend Interface
# ----------------------------------------------------------------------


class ModelBackend(Protocol):
    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        options: BackendOptions,
    ) -> BackendResponse:
        ...


# ----------------------------------------------------------------------
# Azure OpenAI Backend (Entra ID)
# ----------------------------------------------------------------------


class AzureOpenAIBackend:
    """
    Azure OpenAI implementation of ModelBackend.

    Authenticates with Entra ID through DefaultAzureCredential; no API
    keys are read. The options' `model` is recorded on results while
    requests are routed to the configured deployment.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        deployment: str,
        api_version: str,
        timeout_seconds: float = 120.0,
    ) -> None:
        self._deployment = deployment

        credential = DefaultAzureCredential()
        token_provider = get_bearer_token_provider(
            credential,
            AZURE_COGNITIVE_SCOPE,
        )

        self._client = AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            azure_ad_token_provider=token_provider,
            api_version=api_version,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        options: BackendOptions,
    ) -> BackendResponse:
        request: Dict[str, Any] = {
            "model": self._deployment,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": options.max_tokens,
        }

        if options.json_schema is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "audit_findings",
                    "schema": options.json_schema,
                    "strict": False,
                },
            }

        response = await self._create(request)

        text = response.choices[0].message.content or ""

        structured: Optional[Dict[str, Any]] = None
        if options.json_schema is not None:
            try:
                decoded = json.loads(text)
            except ValueError:
                logger.warning(
                    "Deployment %s returned non-JSON content under a json_schema "
                    "response format",
                    self._deployment,
                )
            else:
                if isinstance(decoded, dict):
                    structured = decoded

        usage: Optional[BackendUsage] = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = BackendUsage(
                input_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
            )

        return BackendResponse(text=text, structured=structured, usage=usage)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(
            (APIConnectionError, RateLimitError, InternalServerError)
        ),
        reraise=True,
    )
    async def _create(self, request: Dict[str, Any]) -> Any:
        return await self._client.chat.completions.create(**request)
