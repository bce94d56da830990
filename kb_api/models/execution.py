from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Language(str, Enum):
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    BASH = "bash"
    SQL = "sql"


class ExecutionRequest(BaseModel):
    """Body of ``POST /code-executor``.

    The length bound is configuration driven, so it is checked by the
    controller rather than declared here.
    """

    model_config = ConfigDict(extra="ignore")

    code: str
    language: Language

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Code and language are required")
        return v


class ExecutionResult(BaseModel):
    """Wire envelope returned for every code-executor request."""

    model_config = ConfigDict(populate_by_name=True)

    output: str = ""
    error: str | None = None
    execution_time: float = Field(default=0.0, ge=0, alias="executionTime")
    exit_code: int = Field(default=0, alias="exitCode")

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class LanguageInfo(BaseModel):
    language: Language
    simulated: bool


class LanguagesResponse(BaseModel):
    languages: list[LanguageInfo]
    max_code_length: int
    timeout_sec: float


class ExecutionLogEntry(BaseModel):
    timestamp: str
    language: Language
    code_hash: str
    code_preview: str
    exit_code: int
    rejected: bool
    duration_ms: int
    output_length: int


class ExecutionLogResponse(BaseModel):
    entries: list[ExecutionLogEntry]
    total: int
    limit: int
