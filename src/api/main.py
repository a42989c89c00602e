"""
FastAPI application entry-point.
"""
from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import catalog, convert
from src.core.config import get_settings

app = FastAPI(
    title="KQL Copilot",
    version="0.1.0",
    description="Natural language to KQL with schema reduction, few-shot selection and query repair",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(convert.router, tags=["Copilot"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    """Serve the API with uvicorn on the configured port."""
    uvicorn.run(app, host="0.0.0.0", port=get_settings().api_port)
