"""
Runtime configuration for the compliance audit service.

This module centralizes environment-driven configuration: which model
backend is used, how it is reached (Azure OpenAI via Entra ID), and the
executor's resource limits (response size, pool width, token budget).

Configuration is read once at startup and is read-only for the lifetime
of the process.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class AuditorConfig(BaseModel):
    """
    Runtime configuration for the compliance audit service.
    """

    # ------------------------------------------------------------------
    # Model backend
    # ------------------------------------------------------------------

    MODEL_PROVIDER: str = Field(
        "disabled",
        description="Model backend identifier ('disabled' or 'azure_openai')",
    )

    MODEL_NAME: str = Field(
        "gpt-4.1",
        description="Model name recorded on every task result",
    )

    BACKEND_TIMEOUT_SECONDS: float = Field(
        120.0,
        gt=0,
        description="Per-request timeout enforced by the backend client",
    )

    # ------------------------------------------------------------------
    # Executor limits
    # ------------------------------------------------------------------

    MAX_TOKENS: int = Field(
        4096,
        ge=1,
        description="Maximum tokens per backend response",
    )

    CONCURRENCY: int = Field(
        5,
        ge=1,
        description="Maximum in-flight backend calls per wave",
    )

    TOKEN_BUDGET: Optional[int] = Field(
        None,
        description="Optional run-wide token budget (waves 1 and 2)",
    )

    # ------------------------------------------------------------------
    # External services
    # ------------------------------------------------------------------

    AZURE_OPENAI_ENDPOINT: str = Field(
        "",
        description="Azure OpenAI endpoint URL",
    )

    AZURE_OPENAI_DEPLOYMENT: str = Field(
        "",
        description="Azure OpenAI deployment name",
    )

    AZURE_OPENAI_API_VERSION: str = Field(
        "",
        validate_default=True,
        description="Azure OpenAI API version",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("MODEL_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        allowed = {"disabled", "azure_openai"}
        if v not in allowed:
            raise ValueError(
                f"Unsupported MODEL_PROVIDER '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return v

    @field_validator("TOKEN_BUDGET")
    @classmethod
    def validate_budget(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("TOKEN_BUDGET must be positive when set.")
        return v

    @field_validator("AZURE_OPENAI_API_VERSION")
    @classmethod
    def azure_settings_required(
        cls, v: str, info: ValidationInfo
    ) -> str:
        if info.data.get("MODEL_PROVIDER") == "azure_openai":
            missing = [
                name
                for name, value in (
                    ("AZURE_OPENAI_ENDPOINT", info.data.get("AZURE_OPENAI_ENDPOINT")),
                    ("AZURE_OPENAI_DEPLOYMENT", info.data.get("AZURE_OPENAI_DEPLOYMENT")),
                    ("AZURE_OPENAI_API_VERSION", v),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    "MODEL_PROVIDER=azure_openai requires "
                    f"{', '.join(missing)} to be configured."
                )
        return v

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "AuditorConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        budget_env = os.getenv("AUDITOR_TOKEN_BUDGET")

        return cls(
            MODEL_PROVIDER=os.getenv(
                "AUDITOR_MODEL_PROVIDER", "disabled"
            ),
            MODEL_NAME=os.getenv(
                "AUDITOR_MODEL_NAME", "gpt-4.1"
            ),
            BACKEND_TIMEOUT_SECONDS=float(
                os.getenv("AUDITOR_BACKEND_TIMEOUT_SECONDS", "120")
            ),
            MAX_TOKENS=int(
                os.getenv("AUDITOR_MAX_TOKENS", "4096")
            ),
            CONCURRENCY=int(
                os.getenv("AUDITOR_CONCURRENCY", "5")
            ),
            TOKEN_BUDGET=(
                int(budget_env)
                if budget_env
                else None
            ),
            AZURE_OPENAI_ENDPOINT=os.getenv(
                "AZURE_OPENAI_ENDPOINT", ""
            ),
            AZURE_OPENAI_DEPLOYMENT=os.getenv(
                "AZURE_OPENAI_DEPLOYMENT", ""
            ),
            AZURE_OPENAI_API_VERSION=os.getenv(
                "AZURE_OPENAI_API_VERSION", ""
            ),
        )

    model_config = {
        "frozen": True,
    }
