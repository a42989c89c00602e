"""
LLM client abstraction -- provider-agnostic KQL generation.

Supported providers:
  mock      -- deterministic offline answer built from the prompt (tests / dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  azure     -- Azure OpenAI deployment (gpt-4 default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

Configuration is read from Settings (env / .env).  Each call is a single
attempt; any provider error is returned as a ``GenerationFailure``.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Sequence

from src.catalog.schema import Example
from src.engine.result import GenerationFailure, GenerationResult, GenerationSuccess
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)


_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"

_SYSTEM_PROMPT = (
    "You are an expert in Kusto Query Language (KQL). Generate valid KQL queries "
    "based on natural language requests. Always return only the KQL query without "
    "any explanation or markdown formatting."
)

_MAX_PROMPT_COLUMNS = 30
_MAX_TOKENS = 1000
_TEMPERATURE = 0.1


# ── Prompt ───────────────────────────────────────────────

def build_prompt(
    question: str,
    tables: Sequence[str],
    columns: Sequence[str],
    examples: Sequence[Example],
) -> str:
    """Assemble the few-shot generation prompt."""
    parts = [f'Generate a KQL query for the following natural language request:\n\n"{question}"\n']

    if tables:
        parts.append(f"Available tables: {', '.join(tables)}")
    if columns:
        shown = ", ".join(columns[:_MAX_PROMPT_COLUMNS])
        more = "..." if len(columns) > _MAX_PROMPT_COLUMNS else ""
        parts.append(f"Available columns: {shown}{more}")

    if examples:
        parts.append("\nExamples:")
        for i, ex in enumerate(examples, start=1):
            parts.append(f"\nExample {i}:")
            parts.append(f'Natural Language: "{ex.question}"')
            parts.append(f"KQL: {ex.query}")

    parts.append(f'\nGenerate the KQL query for: "{question}"')
    parts.append("Return only the KQL query, no explanations or markdown.")
    return "\n".join(parts)


_FENCE_RE = re.compile(r"^```(?:kql|kusto)?\s*|\s*```$", re.IGNORECASE)


def clean_query(text: str) -> str:
    """Strip markdown fences and surrounding whitespace from model output."""
    return _FENCE_RE.sub("", text.strip()).strip()


# ── Providers ────────────────────────────────────────────

_PROMPT_KQL_RE = re.compile(r"^KQL: (.+)$", re.MULTILINE)
_PROMPT_TABLES_RE = re.compile(r"^Available tables: ([^,\n]+)", re.MULTILINE)


def _call_mock(prompt: str) -> GenerationSuccess:
    """Echo the best few-shot query, else a sample of the top table."""
    logger.info("LLM mock mode -- answering from prompt context")
    m = _PROMPT_KQL_RE.search(prompt)
    if m:
        return GenerationSuccess(text=m.group(1).strip(), tokens_used=0, finish_reason="mock")
    m = _PROMPT_TABLES_RE.search(prompt)
    if m:
        return GenerationSuccess(text=f"{m.group(1).strip()} | take 10", tokens_used=0, finish_reason="mock")
    return GenerationSuccess(text='print "no schema"', tokens_used=0, finish_reason="mock")


def _chat_messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": _SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def _from_chat_completion(response: Any) -> GenerationSuccess:
    choice = response.choices[0] if response.choices else None
    text = (choice.message.content if choice else "") or ""
    tokens = response.usage.total_tokens if response.usage else 0
    return GenerationSuccess(
        text=text.strip(),
        tokens_used=tokens,
        finish_reason=choice.finish_reason if choice else None,
    )


def _import_openai() -> Any:
    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc
    return openai


def _call_openai(prompt: str) -> GenerationSuccess:
    """Call OpenAI ChatCompletion API."""
    settings = get_settings()
    if not settings.openai_api_key:
        raise RuntimeError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    openai = _import_openai()
    client = openai.OpenAI(api_key=settings.openai_api_key)
    response = client.chat.completions.create(
        model=settings.openai_model,
        messages=_chat_messages(prompt),
        temperature=_TEMPERATURE,
        max_tokens=_MAX_TOKENS,
        top_p=0.95,
    )
    result = _from_chat_completion(response)
    logger.info("OpenAI response (%d chars, %s tokens)", len(result.text), result.tokens_used)
    return result


def _call_azure(prompt: str) -> GenerationSuccess:
    """Call an Azure OpenAI deployment."""
    settings = get_settings()
    if not settings.azure_openai_endpoint:
        raise RuntimeError(
            "azure_openai_endpoint is not set.  "
            "Set AZURE_OPENAI_ENDPOINT in your .env file or environment."
        )
    if not settings.azure_openai_api_key:
        raise RuntimeError(
            "azure_openai_api_key is not set.  "
            "Set AZURE_OPENAI_API_KEY in your .env file or environment."
        )

    openai = _import_openai()
    client = openai.AzureOpenAI(
        api_key=settings.azure_openai_api_key,
        azure_endpoint=settings.azure_openai_endpoint,
        api_version=settings.azure_openai_api_version,
    )
    # Azure routes by deployment name, passed as the model
    response = client.chat.completions.create(
        model=settings.azure_openai_deployment,
        messages=_chat_messages(prompt),
        temperature=_TEMPERATURE,
        max_tokens=_MAX_TOKENS,
        top_p=0.95,
    )
    result = _from_chat_completion(response)
    logger.info("Azure OpenAI response (%d chars, %s tokens)", len(result.text), result.tokens_used)
    return result


def _call_anthropic(prompt: str) -> GenerationSuccess:
    """Call Anthropic Messages API."""
    settings = get_settings()
    if not settings.anthropic_api_key:
        raise RuntimeError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
    response = client.messages.create(
        model=_ANTHROPIC_DEFAULT_MODEL,
        max_tokens=_MAX_TOKENS,
        system=_SYSTEM_PROMPT,
        temperature=_TEMPERATURE,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    usage = response.usage
    tokens = (usage.input_tokens + usage.output_tokens) if usage else 0
    logger.info("Anthropic response (%d chars, %d tokens)", len(text), tokens)
    return GenerationSuccess(text=text.strip(), tokens_used=tokens, finish_reason=response.stop_reason)


_PROVIDERS: dict[str, Callable[[str], GenerationSuccess]] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "azure": _call_azure,
    "anthropic": _call_anthropic,
}


# ── Public API ───────────────────────────────────────────

def generate_kql(
    question: str,
    tables: Sequence[str],
    columns: Sequence[str],
    examples: Sequence[Example],
    provider: str | None = None,
) -> GenerationResult:
    """Generate a KQL candidate for *question* with the configured provider.

    Parameters
    ----------
    question : str
        The natural-language request.
    tables, columns : sequence of str
        Names from the reduced schema.
    examples : sequence of Example
        Few-shot examples, best first.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, azure, anthropic.

    Raises
    ------
    NotImplementedError
        For an unknown provider name (a configuration error, not a call failure).
    """
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    prompt = build_prompt(question, tables, columns, examples)
    logger.info("Calling LLM provider=%s  prompt_len=%d", provider, len(prompt))
    try:
        result = fn(prompt)
    except Exception as exc:
        logger.exception("KQL generation failed (provider=%s)", provider)
        return GenerationFailure(error=f"Failed to generate KQL: {exc}")

    return GenerationSuccess(
        text=clean_query(result.text),
        tokens_used=result.tokens_used,
        finish_reason=result.finish_reason,
    )
