"""Request/response models for the code-execution proxy."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ExecuteRequest(BaseModel):
    language: str = Field(min_length=1)
    code: str = Field(min_length=1)
    input: str = ""
    args: list[str] = []


class RuntimeEntry(BaseModel):
    language: str
    version: str
    aliases: list[str] = []


class RuntimesResponse(BaseModel):
    runtimes: list[RuntimeEntry]


class ExecuteResponse(BaseModel):
    language: str
    version: str
    run: dict[str, Any]
    compile: dict[str, Any] | None = None
