"""
Result types exchanged between the pipeline, the generation client and the API.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class GenerationSuccess:
    text: str
    tokens_used: int | None = None
    finish_reason: str | None = None
    ok: bool = True


@dataclass(frozen=True)
class GenerationFailure:
    error: str
    ok: bool = False


GenerationResult = Union[GenerationSuccess, GenerationFailure]


class ConversionMetadata(BaseModel):
    tokens_used: int | None = Field(None, description="Tokens reported by the generation provider")
    response_time_ms: int = Field(0, description="End-to-end pipeline latency")
    confidence: float | None = Field(None, description="0.9 when valid, 0.7 otherwise; not calibrated")
    relevance: float | None = Field(None, description="Schema relevance of the reduced schema")


class ConversionResult(BaseModel):
    """Outcome of one question -> KQL conversion."""

    success: bool
    query: str | None = Field(None, description="Final (possibly repaired) KQL text")
    error: str | None = Field(None, description="Failure message when the pipeline aborted")
    refined_tables: list[str] = Field(default_factory=list)
    refined_columns: list[str] = Field(default_factory=list)
    examples_used: int = 0
    refinements: int = Field(0, description="Repair attempts applied to the candidate")
    errors: list[str] = Field(default_factory=list, description="Structural errors left unrepaired")
    fixes: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list, description="Non-blocking schema notes")
    metadata: ConversionMetadata = Field(default_factory=ConversionMetadata)
