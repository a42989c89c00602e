"""
GET /schema, PUT /schema, GET /tables -- schema endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.catalog.schema import schema_from_dict
from src.engine.pipeline import get_engine
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class ColumnItem(BaseModel):
    name: str
    type: str = "string"
    description: str | None = None


class TableItem(BaseModel):
    name: str
    description: str | None = None
    domain: list[str] = Field(default_factory=list)
    columns: list[ColumnItem] = Field(default_factory=list)


class SchemaPayload(BaseModel):
    database: str = Field(..., min_length=1)
    tables: list[TableItem]



@router.get("/schema", response_model=SchemaPayload)
def get_schema() -> SchemaPayload:
    """Return the schema currently used by the engine."""
    return SchemaPayload(**get_engine().schema.to_dict())


@router.put("/schema", response_model=SchemaPayload)
def replace_schema(payload: SchemaPayload) -> SchemaPayload:
    """Replace the active schema (e.g. with a live export)."""
    try:
        schema = schema_from_dict(payload.model_dump())
    except (KeyError, TypeError) as exc:
        logger.warning("Rejected schema payload: %s", exc)
        raise HTTPException(status_code=400, detail=f"Invalid schema: {exc}")
    get_engine().update_schema(schema)
    return SchemaPayload(**schema.to_dict())


@router.get("/tables")
def list_tables() -> dict:
    """Return table names of the active schema (lightweight)."""
    schema = get_engine().schema
    return {"database": schema.database, "tables": schema.get_table_names()}
