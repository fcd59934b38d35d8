from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SourceFile(BaseModel):
    """
    A discovered source file supplied by the caller.

    Discovery (walking the target tree, language detection) happens
    outside this service; files arrive fully read.
    """

    path: str = Field(..., description="Absolute or caller-relative path")
    relative_path: str = Field(
        ...,
        description="Path relative to the audit target root, '/'-separated",
    )
    language: str = Field("unknown", description="Detected source language")
    content: str = Field("", description="Full UTF-8 file content")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
