"""
Schema providers -- where the active schema comes from.

  StaticSchemaProvider -- the bundled default catalog
  FileSchemaProvider   -- a YAML/JSON export of a live database schema

A provider failure never fails a request: ``resolve_schema`` falls back to
the default catalog and logs a warning.
"""
from __future__ import annotations

from pathlib import Path
from typing import Protocol

from src.catalog.schema import Schema, load_default_schema, load_schema
from src.core.logging import get_logger

logger = get_logger(__name__)


class SchemaProvider(Protocol):
    def get_schema(self) -> Schema: ...


class StaticSchemaProvider:
    """Serves a fixed schema (the bundled default unless one is given)."""

    def __init__(self, schema: Schema | None = None):
        self._schema = schema

    def get_schema(self) -> Schema:
        if self._schema is None:
            self._schema = load_default_schema()
        return self._schema


class FileSchemaProvider:
    """Reads a schema export from disk on every call."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def get_schema(self) -> Schema:
        if not self.path.exists():
            raise FileNotFoundError(f"Schema export not found: {self.path}")
        schema = load_schema(self.path)
        logger.info("Loaded schema %s from %s (%d tables)",
                    schema.database, self.path, len(schema.tables))
        return schema


def resolve_schema(
    provider: SchemaProvider | None,
    fallback: Schema | None = None,
) -> Schema:
    """Return the provider's schema, or the fallback on any failure."""
    if fallback is None:
        fallback = load_default_schema()
    if provider is None:
        return fallback
    try:
        return provider.get_schema()
    except Exception as exc:
        logger.warning("Schema provider failed, using default schema: %s", exc)
        return fallback
