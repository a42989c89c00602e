"""
Schema Refiner -- narrows a full catalog to the tables and columns relevant
to a question.

Every table and column is scored against the entities extracted from the
question; zero-score items are dropped and the top-ranked survivors are kept.
The caps bound the size of the generation prompt, they say nothing about
correctness.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, TypeVar

from src.catalog.schema import Column, Schema, Table
from src.engine.entities import extract_entities
from src.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_TABLES = 5
DEFAULT_MAX_COLUMNS = 20

# ── Scoring weights ──────────────────────────────────────

TABLE_NAME_WEIGHT = 10
TABLE_DESCRIPTION_WEIGHT = 5
TABLE_DOMAIN_WEIGHT = 3
TABLE_COLUMN_WEIGHT = 2

COLUMN_NAME_WEIGHT = 5
COLUMN_DESCRIPTION_WEIGHT = 3


@dataclass(frozen=True)
class RefinedSchema:
    """Ranked view over a Schema: never holds tables or columns of its own."""

    tables: tuple[Table, ...] = ()
    columns: tuple[Column, ...] = ()
    relevance: float = 0.0
    table_scores: tuple[int, ...] = field(default=(), compare=False)
    column_scores: tuple[int, ...] = field(default=(), compare=False)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    @property
    def column_names(self) -> list[str]:
        """Column names in rank order; shared names (e.g. TimeGenerated) listed once."""
        seen: dict[str, None] = {}
        for c in self.columns:
            seen.setdefault(c.name, None)
        return list(seen)

    @property
    def is_empty(self) -> bool:
        return not self.tables and not self.columns


# ── Scoring ──────────────────────────────────────────────

def _contains_either(name: str, entity: str) -> bool:
    return entity in name or name in entity


def score_table(table: Table, entities: Iterable[str]) -> int:
    entities = list(entities)
    score = 0
    name = table.name.lower()
    for entity in entities:
        if _contains_either(name, entity):
            score += TABLE_NAME_WEIGHT

    if table.description:
        desc = table.description.lower()
        score += TABLE_DESCRIPTION_WEIGHT * sum(1 for e in entities if e in desc)

    for tag in table.domain:
        if tag.lower() in entities:
            score += TABLE_DOMAIN_WEIGHT

    for column in table.columns:
        col_name = column.name.lower()
        score += TABLE_COLUMN_WEIGHT * sum(1 for e in entities if e in col_name)

    return score


def score_column(column: Column, entities: Iterable[str]) -> int:
    entities = list(entities)
    score = 0
    name = column.name.lower()
    for entity in entities:
        if _contains_either(name, entity):
            score += COLUMN_NAME_WEIGHT

    if column.description:
        desc = column.description.lower()
        score += COLUMN_DESCRIPTION_WEIGHT * sum(1 for e in entities if e in desc)

    return score


def _rank(scored: list[tuple[T, int]]) -> list[tuple[T, int]]:
    """Drop zero scores, sort descending; sort is stable so ties keep catalog order."""
    ranked = [pair for pair in scored if pair[1] > 0]
    ranked.sort(key=lambda pair: pair[1], reverse=True)
    return ranked


# ── Public API ───────────────────────────────────────────

def reduce_schema(
    entities: Iterable[str],
    schema: Schema,
    max_tables: int = DEFAULT_MAX_TABLES,
    max_columns: int = DEFAULT_MAX_COLUMNS,
) -> RefinedSchema:
    """Score *schema* against *entities* and keep the top-ranked subset.

    Parameters
    ----------
    entities : iterable of str
        Lowercase entities, usually from ``extract_entities``.
    schema : Schema
        The full catalog. It is read, never modified.
    max_tables, max_columns : int
        Caps on the number of tables / column entries returned.
    """
    entities = sorted(set(entities))
    if not entities:
        return RefinedSchema()

    ranked_tables = _rank([(t, score_table(t, entities)) for t in schema.tables])
    ranked_columns = _rank([
        (c, score_column(c, entities))
        for t in schema.tables
        for c in t.columns
    ])

    top_tables = ranked_tables[:max_tables]
    top_columns = ranked_columns[:max_columns]

    relevance = 0.0
    if ranked_tables and ranked_columns:
        relevance = (ranked_tables[0][1] + ranked_columns[0][1]) / 2

    return RefinedSchema(
        tables=tuple(t for t, _ in top_tables),
        columns=tuple(c for c, _ in top_columns),
        relevance=relevance,
        table_scores=tuple(s for _, s in top_tables),
        column_scores=tuple(s for _, s in top_columns),
    )


def refine_schema(
    question: str,
    schema: Schema,
    max_tables: int = DEFAULT_MAX_TABLES,
    max_columns: int = DEFAULT_MAX_COLUMNS,
) -> RefinedSchema:
    """Extract entities from *question* and reduce *schema* to the relevant subset."""
    entities = extract_entities(question)
    refined = reduce_schema(entities, schema, max_tables=max_tables, max_columns=max_columns)
    logger.info(
        "SchemaRefiner | entities=%s | tables=%s | columns=%d | relevance=%.1f",
        sorted(entities), refined.table_names, len(refined.columns), refined.relevance,
    )
    return refined
