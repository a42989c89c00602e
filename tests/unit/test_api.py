"""
API tests -- FastAPI endpoints via TestClient (no live server needed).
"""
from functools import partial

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers import catalog, convert
from src.catalog.schema import Example, load_default_examples, load_default_schema
from src.engine import pipeline
from src.engine.few_shot import ExampleRepository
from src.engine.llm_client import generate_kql

client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_engine(monkeypatch):
    engine = pipeline.Nl2KqlEngine(
        generator=partial(generate_kql, provider="mock"),
        schema=load_default_schema(),
        repository=ExampleRepository(load_default_examples()),
    )
    monkeypatch.setattr(convert, "get_engine", lambda: engine)
    monkeypatch.setattr(catalog, "get_engine", lambda: engine)
    return engine



def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"



def test_convert_basic():
    resp = client.post("/convert", json={"question": "Show me all security events from the last hour"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["query"] == "SecurityEvent | where TimeGenerated > ago(1h)"
    assert data["refined_tables"][0] == "SecurityEvent"
    assert data["examples_used"] == 3
    assert data["refinements"] == 0
    assert data["metadata"]["confidence"] == 0.9
    assert isinstance(data["metadata"]["response_time_ms"], int)


def test_convert_with_database():
    resp = client.post("/convert", json={"question": "security events", "database": "NoSuchDatabase"})
    assert resp.status_code == 200
    assert resp.json()["examples_used"] == 0


def test_convert_missing_question():
    resp = client.post("/convert", json={})
    assert resp.status_code == 422


def test_convert_blank_question():
    resp = client.post("/convert", json={"question": "   "})
    assert resp.status_code == 400



def test_list_examples():
    resp = client.get("/examples")
    assert resp.status_code == 200
    examples = resp.json()["examples"]
    assert len(examples) == 8
    assert examples[0]["database"] == "SecurityDatabase"


def test_add_example():
    payload = {"question": "heartbeat gaps", "query": "Heartbeat | take 1", "database": "LabDatabase"}
    resp = client.post("/examples", json=payload)
    assert resp.status_code == 201
    assert resp.json()["tags"] == []
    examples = client.get("/examples").json()["examples"]
    assert len(examples) == 9
    assert examples[-1]["question"] == "heartbeat gaps"


def test_add_example_accepts_empty_query():
    payload = {"question": "placeholder", "query": "", "database": "SecurityDatabase"}
    resp = client.post("/examples", json=payload)
    assert resp.status_code == 201
    assert client.get("/examples").json()["examples"][-1]["query"] == ""


def test_list_examples_with_engine_added_blank_entry(fresh_engine):
    fresh_engine.add_example(Example(question="", query="", database="SecurityDatabase"))
    resp = client.get("/examples")
    assert resp.status_code == 200
    assert resp.json()["examples"][-1] == {
        "question": "", "query": "", "database": "SecurityDatabase", "tags": [],
    }



def test_get_schema():
    resp = client.get("/schema")
    assert resp.status_code == 200
    data = resp.json()
    assert data["database"] == "SecurityDatabase"
    assert len(data["tables"]) == 5


def test_replace_schema():
    payload = {
        "database": "LabDatabase",
        "tables": [{"name": "Heartbeat", "columns": [{"name": "Computer"}]}],
    }
    resp = client.put("/schema", json=payload)
    assert resp.status_code == 200
    tables = client.get("/tables").json()
    assert tables == {"database": "LabDatabase", "tables": ["Heartbeat"]}


def test_replace_schema_requires_database():
    resp = client.put("/schema", json={"tables": []})
    assert resp.status_code == 422
