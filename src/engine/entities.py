"""
Entity extraction -- pulls candidate keywords and identifiers out of a question.
"""
from __future__ import annotations

import re

# Security / IT vocabulary matched by substring against the lowercased question
DOMAIN_TERMS: tuple[str, ...] = (
    "security", "event", "log", "authentication", "authorization",
    "user", "account", "login", "failed", "success", "error",
    "process", "file", "network", "connection", "threat", "malware",
    "device", "computer", "server", "client", "ip", "port",
    "time", "date", "hour", "day", "week", "month", "last", "ago",
)

_QUOTED_RE = re.compile(r'"([^"]+)"')
_CAPITALIZED_RE = re.compile(r"\b[A-Z][a-z]+\b")
_MIN_CAPITALIZED_LEN = 4


def extract_entities(question: str) -> set[str]:
    """Return the lowercase entities found in *question*.

    Combines domain-vocabulary hits, double-quoted literals and
    capitalized words longer than three characters.
    """
    lowered = question.lower()
    entities: set[str] = {term for term in DOMAIN_TERMS if term in lowered}

    for literal in _QUOTED_RE.findall(question):
        # whitespace-only literals would match every name by containment
        if literal.strip():
            entities.add(literal.strip().lower())

    for word in _CAPITALIZED_RE.findall(question):
        if len(word) >= _MIN_CAPITALIZED_LEN:
            entities.add(word.lower())

    return entities
