"""
NL2KQL engine -- orchestrates refine schema -> select examples -> generate -> repair.

The engine owns the two pieces of process-wide state:
  - the active Schema (replaced by reference swap in ``update_schema``)
  - the example repository (append-only)

Every ``convert`` call captures the schema reference once at the start, so a
concurrent ``update_schema`` never changes the schema under a running request.
Failures in schema reduction, example selection or generation are converted
into a failed ConversionResult; nothing escapes ``convert`` except input errors.
"""
from __future__ import annotations

import threading
from typing import Callable, Sequence

from src.catalog.provider import FileSchemaProvider, resolve_schema
from src.catalog.schema import Example, Schema, load_default_schema
from src.engine.few_shot import ExampleRepository
from src.engine.llm_client import generate_kql
from src.engine.query_refiner import refine_query
from src.engine.result import (
    ConversionMetadata,
    ConversionResult,
    GenerationResult,
)
from src.engine.schema_refiner import refine_schema
from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)

VALID_CONFIDENCE = 0.9
INVALID_CONFIDENCE = 0.7

KqlGenerator = Callable[[str, Sequence[str], Sequence[str], Sequence[Example]], GenerationResult]


class Nl2KqlEngine:
    """Question -> KQL conversion around a single generation call.

    Parameters
    ----------
    generator : callable, optional
        ``(question, tables, columns, examples) -> GenerationResult``.
        Defaults to ``generate_kql`` with the configured provider.
    schema : Schema, optional
        Initial schema; the bundled default when omitted.
    repository : ExampleRepository, optional
        Example corpus; seeded from the bundled examples when omitted.
    settings : Settings, optional
        Caps and attempt limits; ``get_settings()`` when omitted.
    """

    def __init__(
        self,
        generator: KqlGenerator | None = None,
        schema: Schema | None = None,
        repository: ExampleRepository | None = None,
        settings: Settings | None = None,
    ):
        self._generator = generator or generate_kql
        self._schema = schema if schema is not None else load_default_schema()
        self._repository = repository if repository is not None else ExampleRepository.from_defaults()
        self._settings = settings or get_settings()

    # ── Shared state ────────────────────────────────────

    @property
    def schema(self) -> Schema:
        return self._schema

    def update_schema(self, schema: Schema) -> None:
        """Swap in a new active schema; in-flight conversions keep their own."""
        self._schema = schema
        logger.info("Schema updated | database=%s | tables=%d", schema.database, len(schema.tables))

    def list_examples(self) -> list[Example]:
        return self._repository.all()

    def add_example(self, example: Example) -> None:
        self._repository.add(example)

    # ── Pipeline ────────────────────────────────────────

    def convert(self, question: str, database: str | None = None) -> ConversionResult:
        """Convert *question* into KQL.

        Raises
        ------
        ValueError
            If *question* is empty; malformed input never enters the pipeline.
        """
        if not question or not question.strip():
            raise ValueError("Question text is required.")

        schema = self._schema
        settings = self._settings
        logger.info("Engine.convert | question=%s | database=%s", question, database)

        with timer() as t:
            try:
                refined = refine_schema(
                    question, schema,
                    max_tables=settings.max_tables,
                    max_columns=settings.max_columns,
                )
                examples = self._repository.select(question, database, k=settings.max_examples)
                tables = refined.table_names
                columns = refined.column_names

                generation = self._generator(question, tables, columns, examples)
            except Exception as exc:
                logger.exception("Engine.convert failed")
                return _failure(str(exc), t["elapsed"]())

            if not generation.ok:
                logger.warning("Generation failed: %s", generation.error)
                return _failure(generation.error, t["elapsed"]())

            refinement = refine_query(
                generation.text, tables, columns,
                max_attempts=settings.max_refine_attempts,
            )

        result = ConversionResult(
            success=refinement.is_valid,
            query=refinement.query,
            refined_tables=tables,
            refined_columns=columns,
            examples_used=len(examples),
            refinements=refinement.attempts,
            errors=refinement.errors,
            fixes=refinement.fixes,
            warnings=refinement.warnings,
            metadata=ConversionMetadata(
                tokens_used=generation.tokens_used,
                response_time_ms=t["elapsed_ms"],
                confidence=VALID_CONFIDENCE if refinement.is_valid else INVALID_CONFIDENCE,
                relevance=refined.relevance,
            ),
        )
        logger.info(
            "Engine.convert done | success=%s | refinements=%d | %dms",
            result.success, result.refinements, result.metadata.response_time_ms,
        )
        return result


def _failure(message: str, elapsed_ms: int) -> ConversionResult:
    return ConversionResult(
        success=False,
        error=message,
        metadata=ConversionMetadata(response_time_ms=elapsed_ms),
    )


# ── Module-level singleton ──────────────────────────────

_engine: Nl2KqlEngine | None = None
_engine_lock = threading.Lock()


def get_engine() -> Nl2KqlEngine:
    """Return the process-wide engine, built once under a lock on first use.

    The initial schema comes from ``live_schema_path`` when configured,
    falling back to the bundled default if that export cannot be read.
    """
    global _engine
    with _engine_lock:
        if _engine is None:
            settings = get_settings()
            provider = FileSchemaProvider(settings.live_schema_path) if settings.live_schema_path else None
            _engine = Nl2KqlEngine(schema=resolve_schema(provider), settings=settings)
        return _engine
