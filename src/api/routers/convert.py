"""POST /convert -- main NL -> KQL endpoint, plus the example corpus."""
from __future__ import annotations

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from src.catalog.schema import Example
from src.engine.pipeline import get_engine
from src.engine.result import ConversionResult
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class ConvertRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000, description="Natural-language request")
    database: str | None = Field(None, description="Restrict few-shot examples to this database")


class ExampleItem(BaseModel):
    question: str
    query: str = Field(..., description="Stored as given; never validated")
    database: str
    tags: list[str] = Field(default_factory=list)


class NewExampleRequest(ExampleItem):
    question: str = Field(..., min_length=1)


class ExamplesResponse(BaseModel):
    examples: list[ExampleItem]



@router.post("/convert", response_model=ConversionResult)
def convert_endpoint(req: ConvertRequest):
    """Full pipeline: question -> reduced schema + examples -> KQL -> repair."""
    try:
        return get_engine().convert(req.question, database=req.database)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/examples", response_model=ExamplesResponse)
def list_examples_endpoint():
    """Return the current example corpus."""
    return ExamplesResponse(
        examples=[ExampleItem(**ex.to_dict()) for ex in get_engine().list_examples()]
    )


@router.post("/examples", response_model=ExampleItem, status_code=201)
def add_example_endpoint(item: NewExampleRequest):
    """Append a (question -> query) pair to the corpus."""
    get_engine().add_example(
        Example(
            question=item.question,
            query=item.query,
            database=item.database,
            tags=tuple(item.tags),
        )
    )
    return item
