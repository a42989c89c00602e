"""
Loads and parses the table catalog and the example corpus into
strongly-typed, immutable objects.

The catalog YAML describes one database:
  - tables   (name, description, domain tags)
  - columns  (name, semantic type, description)

The example YAML holds prior (question -> query) translations used as
few-shot guidance for the generation step.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

from src.core.config import get_settings


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class Column:
    name: str
    type: str = "string"
    description: str | None = None


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = ()
    description: str | None = None
    domain: tuple[str, ...] = ()

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class Schema:
    """A database identifier plus its tables."""

    database: str
    tables: tuple[Table, ...] = ()

    def table(self, name: str) -> Table | None:
        for t in self.tables:
            if t.name.lower() == name.lower():
                return t
        return None

    def get_table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def get_column_names(self) -> list[str]:
        """All column names across tables, first occurrence wins."""
        seen: dict[str, None] = {}
        for t in self.tables:
            for c in t.columns:
                seen.setdefault(c.name, None)
        return list(seen)

    def to_dict(self) -> dict[str, Any]:
        """Return the schema as a plain dict (for API responses)."""
        return {
            "database": self.database,
            "tables": [
                {
                    "name": t.name,
                    "description": t.description,
                    "domain": list(t.domain),
                    "columns": [
                        {"name": c.name, "type": c.type, "description": c.description}
                        for c in t.columns
                    ],
                }
                for t in self.tables
            ],
        }


@dataclass(frozen=True)
class Example:
    """A prior question -> query translation."""

    question: str
    query: str
    database: str
    tags: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "query": self.query,
            "database": self.database,
            "tags": list(self.tags),
        }


# ── Parsing ──────────────────────────────────────────────

def _parse_column(raw: dict[str, Any]) -> Column:
    return Column(
        name=raw["name"],
        type=raw.get("type") or "string",
        description=raw.get("description") or None,
    )


def _parse_table(raw: dict[str, Any]) -> Table:
    return Table(
        name=raw["name"],
        columns=tuple(_parse_column(c) for c in raw.get("columns") or []),
        description=raw.get("description") or None,
        domain=tuple(raw.get("domain") or []),
    )


def _parse_example(raw: dict[str, Any], default_database: str = "") -> Example:
    return Example(
        question=raw["question"],
        query=raw["query"],
        database=raw.get("database") or default_database,
        tags=tuple(raw.get("tags") or []),
    )


def schema_from_dict(raw: dict[str, Any]) -> Schema:
    """Build a Schema from a plain mapping (YAML document or JSON payload)."""
    return Schema(
        database=raw["database"],
        tables=tuple(_parse_table(t) for t in raw.get("tables") or []),
    )


def examples_from_dict(raw: dict[str, Any]) -> list[Example]:
    default_db = raw.get("database", "")
    return [_parse_example(e, default_db) for e in raw.get("examples") or []]


def _read_document(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    with open(path) as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f) or {}


# ── Public API ───────────────────────────────────────────

def load_schema(path: str | Path) -> Schema:
    """Load a schema from a YAML (or JSON) file."""
    return schema_from_dict(_read_document(path))


def load_examples(path: str | Path) -> list[Example]:
    """Load the example corpus from a YAML (or JSON) file."""
    return examples_from_dict(_read_document(path))


@lru_cache
def load_default_schema() -> Schema:
    """Load and cache the bundled default schema."""
    return load_schema(get_settings().schema_path)


def load_default_examples() -> list[Example]:
    """Load the seed example corpus (fresh list on every call)."""
    return list(_cached_default_examples())


@lru_cache
def _cached_default_examples() -> tuple[Example, ...]:
    return tuple(load_examples(get_settings().examples_path))
