"""
EmbedSearch Model Providers

Factory for OpenAI-compatible async clients, shared by the embedding client
and the answer generator, plus the translation of ``openai`` exceptions
into the EmbedSearch error taxonomy.
"""

from typing import Optional

import openai
from openai import AsyncOpenAI

from embedsearch.errors import (
    EmbedSearchError,
    InputTooLong,
    ModelTimeout,
    ModelUnavailable,
)

# ── Provider configuration ──────────────────────────────────────────────────
_PROVIDER_CONFIG = {
    "openai": {
        "key_attr": "OPENAI_API_KEY",
        "base_url_attr": "OPENAI_BASE_URL",
    },
    "deepseek": {
        "key_attr": "DEEPSEEK_API_KEY",
        "base_url_attr": "DEEPSEEK_BASE_URL",
    },
    "qwen": {
        "key_attr": "QWEN_API_KEY",
        "base_url_attr": "QWEN_BASE_URL",
    },
    "gemma": {
        "key_attr": "GEMMA_API_KEY",
        "base_url_attr": "GEMMA_BASE_URL",
    },
    "ollama": {
        "key_attr": "OLLAMA_API_KEY",
        "base_url_attr": "OLLAMA_BASE_URL",
    },
}

_TOO_LONG_MARKERS = (
    "maximum context length",
    "maximum input length",
    "too many tokens",
    "too long",
)


def get_llm_client(provider: str, settings, timeout: Optional[float] = None) -> AsyncOpenAI:
    """
    Factory function — returns an OpenAI-compatible async client for the provider.

    Parameters
    ----------
    provider : str
        One of: openai, deepseek, qwen, gemma, ollama.
    settings : Settings
        Application settings instance.
    timeout : Optional[float]
        Per-request timeout in seconds.

    Returns
    -------
    AsyncOpenAI
        Configured client. Retries are left to the caller.

    Raises
    ------
    ValueError
        If the provider is unknown or the API key is not set.
    """
    provider = provider.lower().strip()
    if provider not in _PROVIDER_CONFIG:
        raise ValueError(
            f"Unknown LLM provider: '{provider}'. "
            f"Supported: {', '.join(_PROVIDER_CONFIG.keys())}"
        )

    config = _PROVIDER_CONFIG[provider]
    api_key = getattr(settings, config["key_attr"], None)

    if not api_key:
        raise ValueError(
            f"API key not configured for provider '{provider}'. "
            f"Set the {config['key_attr']} environment variable."
        )

    kwargs = {"api_key": api_key, "max_retries": 0}
    base_url = getattr(settings, config["base_url_attr"], None)
    if base_url:
        kwargs["base_url"] = base_url
    if timeout is not None:
        kwargs["timeout"] = timeout

    return AsyncOpenAI(**kwargs)


def translate_openai_error(exc: Exception, what: str) -> EmbedSearchError:
    """
    Map an exception raised by the ``openai`` client to the error taxonomy.

    ``what`` names the failing call for the error message
    (e.g. "embedding", "answer generation").
    """
    # APITimeoutError subclasses APIConnectionError — check it first
    if isinstance(exc, openai.APITimeoutError):
        return ModelTimeout(f"{what} model timed out")
    if isinstance(exc, openai.APIConnectionError):
        return ModelUnavailable(f"{what} model unreachable: {exc}")
    if isinstance(exc, openai.BadRequestError):
        message = str(exc).lower()
        if any(marker in message for marker in _TOO_LONG_MARKERS):
            return InputTooLong(f"input exceeds the {what} model's token budget")
        return ModelUnavailable(f"{what} model rejected the request: {exc}")
    if isinstance(exc, openai.RateLimitError):
        return ModelUnavailable(f"{what} model rate limited: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return ModelUnavailable(f"{what} model returned HTTP {exc.status_code}")
    return ModelUnavailable(f"{what} model call failed: {exc}")
