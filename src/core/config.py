"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ROOT = Path(__file__).resolve().parents[2]
_ENV_PATH = _ROOT / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | azure | anthropic
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    azure_openai_endpoint: str = ""
    azure_openai_api_key: str = ""
    azure_openai_deployment: str = "gpt-4"
    azure_openai_api_version: str = "2024-02-15-preview"
    anthropic_api_key: str = ""

    # ── Catalog ──────────────────────────────────────────
    schema_path: str = str(_ROOT / "schema_catalog" / "default_schema.yml")
    examples_path: str = str(_ROOT / "schema_catalog" / "examples.yml")
    live_schema_path: str = ""  # YAML/JSON export of a live database schema

    # ── Refinement ───────────────────────────────────────
    max_tables: int = 5
    max_columns: int = 20
    max_examples: int = 3
    max_refine_attempts: int = 3

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
