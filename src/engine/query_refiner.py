"""
Query Refiner -- deterministic validation and repair of generated KQL.

Structural checks (each independent, all reported together):
  1. Balanced parentheses
  2. Balanced brackets
  3. Even number of single quotes
  4. Even number of double quotes
  5. No JavaScript-style === / !== operators
  6. Every continuation line starts with a pipe, a comment or a directive

Schema-plausibility checks (table before ``| where``, column operands) only
produce notes.  The reduced schema is known to be incomplete, so a query is
never rejected because it names a table or column the schema does not list.

The repair loop is bounded: at most ``max_attempts`` repair passes, after
which the best-effort text is returned with the errors collected so far.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from src.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

PIPE_MARKER = "|"
COMMENT_MARKER = "//"
DIRECTIVE_MARKER = "."

# Words that look like column operands but are operators / functions
_NON_COLUMN_WORDS = frozenset({
    "where", "summarize", "project", "extend", "join", "union", "count",
    "ago", "now", "timegenerated", "startofday", "endofday",
})

# ── Compiled patterns ────────────────────────────────────

_TABLE_BEFORE_WHERE = re.compile(r"(\b\w+)\s*\|\s*where", re.IGNORECASE)

_COLUMN_OPERAND = re.compile(
    r"(\b\w+)\s*(==|!=|>=|<=|>|<|contains|startswith|endswith)",
    re.IGNORECASE,
)

_REPORTED_REFERENCE = re.compile(
    r'^(Table|Column)\s+"([^"]+)"\s+not found',
    re.IGNORECASE,
)


# ── Working state & result ──────────────────────────────


@dataclass
class CandidateQuery:
    """Mutable working copy of a generated query while it is being repaired."""
    query: str
    attempts: int = 0
    errors: list[str] = field(default_factory=list)
    fixes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class RefinementResult:
    query: str
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    fixes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    attempts: int = 0


# ── Checks ──────────────────────────────────────────────


def _continuation_lines(query: str) -> list[tuple[int, str]]:
    """(line number, stripped text) for every non-empty line after the first.

    Blank lines are not counted, so numbers are positions among non-empty lines.
    """
    lines = [line.strip() for line in query.split("\n") if line.strip()]
    return [(number, line) for number, line in enumerate(lines, start=1) if number > 1]


def _needs_pipe(stripped_line: str) -> bool:
    return not stripped_line.startswith((PIPE_MARKER, COMMENT_MARKER, DIRECTIVE_MARKER))


def check_syntax(query: str) -> list[str]:
    """Return structural errors in *query* (empty list = well-formed)."""
    errors: list[str] = []

    if query.count("(") != query.count(")"):
        errors.append("Unbalanced parentheses")

    if query.count("[") != query.count("]"):
        errors.append("Unbalanced brackets")

    if query.count("'") % 2 != 0:
        errors.append("Unbalanced single quotes")
    if query.count('"') % 2 != 0:
        errors.append("Unbalanced double quotes")

    if "===" in query or "!==" in query:
        errors.append("Use == or != instead of === or !==")

    for number, line in _continuation_lines(query):
        if _needs_pipe(line):
            errors.append(f"Missing pipe operator at line {number}")

    return errors


def check_schema(
    query: str,
    tables: Iterable[str] | None = None,
    columns: Iterable[str] | None = None,
) -> list[str]:
    """Return schema-plausibility notes for *query*.

    Notes are informational only.  Nothing is reported when no table list
    is available; the column scan additionally needs a column list.
    """
    tables = list(tables or [])
    columns = list(columns or [])
    notes: list[str] = []

    if not tables:
        return notes

    known_tables = {t.lower() for t in tables}
    m = _TABLE_BEFORE_WHERE.search(query)
    if m and m.group(1).lower() not in known_tables:
        notes.append(f'Table "{m.group(1)}" not in provided schema (may still be valid)')

    if columns:
        known_columns = {c.lower() for c in columns}
        checked: set[str] = set()
        for m in _COLUMN_OPERAND.finditer(query):
            name = m.group(1)
            key = name.lower()
            if key in checked:
                continue
            checked.add(key)
            if key in _NON_COLUMN_WORDS or key in known_columns:
                continue
            notes.append(f'Column "{name}" not in provided schema (may still be valid)')

    return notes


# ── Repairs ─────────────────────────────────────────────


def fix_syntax(query: str) -> str:
    """Apply every deterministic structural repair to *query*."""
    fixed = query.replace("!==", "!=").replace("===", "==")

    missing_parens = fixed.count("(") - fixed.count(")")
    if missing_parens > 0:
        fixed += ")" * missing_parens

    missing_brackets = fixed.count("[") - fixed.count("]")
    if missing_brackets > 0:
        fixed += "]" * missing_brackets

    if fixed.count("'") % 2 != 0:
        fixed += "'"
    if fixed.count('"') % 2 != 0:
        fixed += '"'

    lines = fixed.split("\n")
    seen_first = False
    for index, line in enumerate(lines):
        stripped = line.strip()
        if not stripped:
            continue
        if not seen_first:
            seen_first = True
            continue
        if _needs_pipe(stripped):
            lines[index] = f"{PIPE_MARKER} {stripped}"
    return "\n".join(lines)


def find_closest_match(target: str, candidates: Iterable[str]) -> str | None:
    """Closest schema name to *target*.

    An exact case-insensitive match wins outright; otherwise the candidate
    with the highest length ratio among those that contain, or are contained
    in, the target.  ``None`` when nothing overlaps.
    """
    target_lower = target.lower()
    best: str | None = None
    best_score = 0.0

    for candidate in candidates:
        candidate_lower = candidate.lower()
        if candidate_lower == target_lower:
            return candidate
        if not candidate_lower or not target_lower:
            continue
        if candidate_lower in target_lower or target_lower in candidate_lower:
            score = min(len(candidate_lower), len(target_lower)) / max(len(candidate_lower), len(target_lower))
            if score > best_score:
                best_score = score
                best = candidate

    return best


def fix_references(
    query: str,
    errors: Iterable[str],
    tables: Iterable[str] | None = None,
    columns: Iterable[str] | None = None,
) -> str:
    """Replace unknown table/column names reported in *errors* with their closest match.

    Only errors of the form ``Table "X" not found`` / ``Column "X" not found``
    are acted on; replacement is whole-word and case-insensitive.
    """
    tables = list(tables or [])
    columns = list(columns or [])
    fixed = query

    for error in errors:
        m = _REPORTED_REFERENCE.match(error.strip())
        if not m:
            continue
        kind, name = m.group(1).lower(), m.group(2)
        candidates = tables if kind == "table" else columns
        closest = find_closest_match(name, candidates)
        if closest is None or closest == name:
            continue
        fixed = re.sub(rf"\b{re.escape(name)}\b", closest, fixed, flags=re.IGNORECASE)
        logger.info("Replaced %s %r with %r", kind, name, closest)

    return fixed


# ── Refinement loop ─────────────────────────────────────


def _finalize(candidate: CandidateQuery, is_valid: bool) -> RefinementResult:
    return RefinementResult(
        query=candidate.query,
        is_valid=is_valid,
        errors=[] if is_valid else list(candidate.errors),
        fixes=list(candidate.fixes),
        warnings=list(candidate.warnings),
        attempts=candidate.attempts,
    )


def refine_query(
    query: str,
    tables: Iterable[str] | None = None,
    columns: Iterable[str] | None = None,
    reported_errors: Iterable[str] | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> RefinementResult:
    """Validate *query* and repair it until well-formed or out of attempts.

    Parameters
    ----------
    query : str
        Raw generation output.
    tables, columns : iterable of str, optional
        Names from the reduced schema, used for plausibility notes and for
        closest-match repair.
    reported_errors : iterable of str, optional
        Errors supplied by the caller (e.g. from an engine that rejected the
        query) naming unknown tables or columns.  Repaired by closest match.
    max_attempts : int
        Upper bound on repair passes.
    """
    tables = list(tables or [])
    columns = list(columns or [])
    candidate = CandidateQuery(query=query.strip())

    reported = [e for e in (reported_errors or []) if _REPORTED_REFERENCE.match(e.strip())]
    if reported and max_attempts > 0:
        candidate.errors.extend(reported)
        candidate.query = fix_references(candidate.query, reported, tables, columns)
        candidate.fixes.append(f"Fixed schema references: {', '.join(reported)}")
        candidate.attempts += 1

    while True:
        errors = check_syntax(candidate.query)
        if not errors:
            candidate.warnings.extend(check_schema(candidate.query, tables, columns))
            for note in candidate.warnings:
                logger.warning("QueryRefiner note: %s", note)
            return _finalize(candidate, is_valid=True)

        candidate.errors.extend(errors)
        if candidate.attempts >= max_attempts:
            logger.warning("QueryRefiner exhausted after %d attempts: %s",
                           candidate.attempts, errors)
            return _finalize(candidate, is_valid=not candidate.errors)

        candidate.query = fix_syntax(candidate.query)
        candidate.fixes.append(f"Fixed syntax errors: {', '.join(errors)}")
        candidate.attempts += 1
