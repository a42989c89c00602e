"""
Few-shot selection -- picks the prior translations most similar to a question.

Similarity is lexical: Jaccard overlap of word tokens plus a bonus when one
question contains the other, clamped to 1.0.  No embeddings.
"""
from __future__ import annotations

import re
import threading
from typing import Iterable

from src.catalog.schema import Example, load_default_examples
from src.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_K = 3
CONTAINMENT_BONUS = 0.3
_MIN_TOKEN_LEN = 3

_NON_WORD_RE = re.compile(r"[^\w\s]")


# ── Similarity helpers ──────────────────────────────────


def tokenize(text: str) -> set[str]:
    """Lowercase word tokens longer than two characters."""
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return {t for t in cleaned.split() if len(t) >= _MIN_TOKEN_LEN}


def similarity(a: str, b: str) -> float:
    """Score two questions in [0, 1]."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0

    jaccard = len(tokens_a & tokens_b) / len(union)

    a_lower = a.lower()
    b_lower = b.lower()
    bonus = CONTAINMENT_BONUS if (b_lower in a_lower or a_lower in b_lower) else 0.0

    return min(1.0, jaccard + bonus)


# ── Repository ──────────────────────────────────────────


class ExampleRepository:
    """Process-wide, append-only corpus of (question -> query) examples.

    Appends take a lock; readers iterate over a snapshot so a concurrent
    append never disturbs an in-progress selection.
    """

    def __init__(self, examples: Iterable[Example] | None = None):
        self._examples: list[Example] = list(examples) if examples is not None else []
        self._lock = threading.Lock()

    @classmethod
    def from_defaults(cls) -> ExampleRepository:
        """Seed a repository from the bundled example corpus."""
        return cls(load_default_examples())

    def __len__(self) -> int:
        return len(self._examples)

    def all(self) -> list[Example]:
        with self._lock:
            return list(self._examples)

    def add(self, example: Example) -> None:
        """Append *example*; no de-duplication, no query validation."""
        with self._lock:
            self._examples.append(example)
        logger.info("Example added | database=%s | corpus_size=%d",
                    example.database, len(self._examples))

    def score(self, question: str, database: str | None = None) -> list[tuple[Example, float]]:
        """Return (example, score) pairs, best first, restricted to *database* if given."""
        candidates = self.all()
        if database:
            candidates = [ex for ex in candidates if ex.database == database]

        scored = [(ex, similarity(question, ex.question)) for ex in candidates]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def select(self, question: str, database: str | None = None, k: int = DEFAULT_K) -> list[Example]:
        """Return up to *k* examples ordered by descending similarity."""
        if k <= 0:
            return []
        selected = [ex for ex, _ in self.score(question, database)[:k]]
        logger.info("FewShot | database=%s | selected=%d", database, len(selected))
        return selected
