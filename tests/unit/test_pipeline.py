"""
Unit tests -- NL2KQL engine: end-to-end pipeline with stub generators.
"""
import threading
from functools import partial

import pytest

from src.catalog.schema import Column, Example, Schema, Table, load_default_examples, load_default_schema
from src.engine.few_shot import ExampleRepository
from src.engine.llm_client import generate_kql
from src.engine import pipeline
from src.engine.pipeline import Nl2KqlEngine, get_engine
from src.engine.result import ConversionResult, GenerationFailure, GenerationSuccess

_QUESTION = "Show me all security events from the last hour"


class _Recorder:
    """Stub generator returning a fixed text and recording its inputs."""

    def __init__(self, text: str = "SecurityEvent | take 10", tokens: int = 42):
        self.text = text
        self.tokens = tokens
        self.calls: list[tuple] = []

    def __call__(self, question, tables, columns, examples):
        self.calls.append((question, list(tables), list(columns), list(examples)))
        return GenerationSuccess(text=self.text, tokens_used=self.tokens)


def _engine(generator) -> Nl2KqlEngine:
    return Nl2KqlEngine(
        generator=generator,
        schema=load_default_schema(),
        repository=ExampleRepository(load_default_examples()),
    )


def test_convert_returns_conversion_result():
    result = _engine(_Recorder()).convert(_QUESTION)
    assert isinstance(result, ConversionResult)
    assert result.success is True
    assert result.query == "SecurityEvent | take 10"
    assert result.error is None


def test_convert_reports_refined_schema_and_examples():
    result = _engine(_Recorder()).convert(_QUESTION)
    assert result.refined_tables[0] == "SecurityEvent"
    assert "EventID" in result.refined_columns
    assert result.examples_used == 3
    assert result.metadata.tokens_used == 42
    assert result.metadata.relevance == pytest.approx(21.0)
    assert result.metadata.response_time_ms >= 0


def test_generator_receives_reduced_context():
    recorder = _Recorder()
    _engine(recorder).convert(_QUESTION)
    question, tables, columns, examples = recorder.calls[0]
    assert question == _QUESTION
    assert tables[0] == "SecurityEvent"
    assert len(examples) == 3
    assert examples[0].query == "SecurityEvent | where TimeGenerated > ago(1h)"


def test_generated_query_is_repaired():
    result = _engine(_Recorder("SecurityEvent | where TimeGenerated > ago(1h")).convert(_QUESTION)
    assert result.success is True
    assert result.query == "SecurityEvent | where TimeGenerated > ago(1h)"
    assert result.refinements == 1
    assert len(result.fixes) == 1
    assert result.metadata.confidence == 0.9


def test_unrepairable_query_still_returned():
    result = _engine(_Recorder("SecurityEvent | where x)")).convert(_QUESTION)
    assert result.success is False
    assert result.query == "SecurityEvent | where x)"
    assert result.refinements == 3
    assert "Unbalanced parentheses" in result.errors
    assert result.metadata.confidence == 0.7


def test_unknown_table_is_only_a_warning():
    result = _engine(_Recorder("Heartbeat | where Computer == 'a'")).convert(_QUESTION)
    assert result.success is True
    assert any("Heartbeat" in w for w in result.warnings)


def test_generator_exception_becomes_failure():
    def boom(*args):
        raise RuntimeError("auth failed")

    result = _engine(boom).convert(_QUESTION)
    assert result.success is False
    assert result.error == "auth failed"
    assert result.query is None
    assert result.refined_tables == []
    assert result.metadata.response_time_ms >= 0


def test_generation_failure_variant_becomes_failure():
    result = _engine(lambda *a: GenerationFailure(error="Failed to generate KQL: timeout")).convert(_QUESTION)
    assert result.success is False
    assert result.error == "Failed to generate KQL: timeout"


def test_generator_called_once():
    recorder = _Recorder("SecurityEvent | where x)")
    _engine(recorder).convert(_QUESTION)
    assert len(recorder.calls) == 1


@pytest.mark.parametrize("question", ["", "   ", None])
def test_blank_question_rejected(question):
    with pytest.raises(ValueError):
        _engine(_Recorder()).convert(question)


def test_question_without_entities_still_generates():
    recorder = _Recorder()
    result = _engine(recorder).convert("xyz qq")
    assert result.success is True
    assert result.refined_tables == []
    assert recorder.calls[0][1] == []


def test_database_filter_applied():
    result = _engine(_Recorder()).convert(_QUESTION, database="NoSuchDatabase")
    assert result.examples_used == 0
    assert result.success is True


def test_mock_provider_end_to_end():
    engine = _engine(partial(generate_kql, provider="mock"))
    result = engine.convert(_QUESTION)
    assert result.success is True
    assert result.query == "SecurityEvent | where TimeGenerated > ago(1h)"
    assert result.refinements == 0


# ── Shared state ─────────────────────────────────────────

_LAB_SCHEMA = Schema(
    database="LabDatabase",
    tables=(
        Table(name="Heartbeat", description="security agent heartbeats", domain=("security",),
              columns=(Column(name="Computer"), Column(name="TimeGenerated", type="datetime"))),
    ),
)


def test_update_schema_used_by_next_convert():
    recorder = _Recorder()
    engine = _engine(recorder)
    engine.update_schema(_LAB_SCHEMA)
    result = engine.convert(_QUESTION)
    assert engine.schema is _LAB_SCHEMA
    assert result.refined_tables == ["Heartbeat"]


def test_in_flight_convert_keeps_captured_schema():
    engine_ref: dict = {}

    def swapping_generator(question, tables, columns, examples):
        engine_ref["engine"].update_schema(_LAB_SCHEMA)
        return GenerationSuccess(text="SecurityEvent | take 1")

    engine = _engine(swapping_generator)
    engine_ref["engine"] = engine
    result = engine.convert(_QUESTION)
    assert result.refined_tables[0] == "SecurityEvent"
    assert "Heartbeat" not in result.refined_tables
    assert engine.schema is _LAB_SCHEMA


def test_add_and_list_examples():
    engine = _engine(_Recorder())
    before = len(engine.list_examples())
    engine.add_example(Example(question="heartbeat gaps", query="Heartbeat | take 1", database="LabDatabase"))
    assert len(engine.list_examples()) == before + 1
    result = engine.convert("heartbeat gaps", database="LabDatabase")
    assert result.examples_used == 1


@pytest.fixture
def uncached_engine(monkeypatch):
    monkeypatch.setattr(pipeline, "_engine", None)


def test_get_engine_is_process_wide(uncached_engine):
    results: list[Nl2KqlEngine] = []

    def build() -> None:
        results.append(get_engine())

    threads = [threading.Thread(target=build) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(results) == 8
    assert all(engine is get_engine() for engine in results)


def test_get_engine_keeps_added_examples(uncached_engine):
    get_engine().add_example(Example(question="heartbeat gaps", query="Heartbeat | take 1", database="LabDatabase"))
    assert get_engine().list_examples()[-1].question == "heartbeat gaps"
