"""LiteLLM client wrapper with timeouts, error classification and API key validation.

All embedding and completion calls route through this module. LiteLLM's
built-in retry is disabled (``num_retries=0``); callers retry transient
failures with tenacity so attempts and backoff stay configurable.
"""

from __future__ import annotations

import os

import litellm

from kbsync.errors import ProviderError, ProviderMalformedInput, ProviderTransientError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

# Checked before the transient group: ContextWindowExceededError is a BadRequestError.
_MALFORMED_ERRORS: tuple[type[Exception], ...] = (
    litellm.ContextWindowExceededError,
    litellm.BadRequestError,
    litellm.AuthenticationError,
    litellm.NotFoundError,
)

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    litellm.Timeout,
    litellm.RateLimitError,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIError,
    TimeoutError,
    ConnectionError,
)

# Request timeout, conflict and rate limit: worth another attempt.
_RETRYABLE_4XX = frozenset({408, 409, 429})


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def classify_error(exc: Exception) -> ProviderError | None:
    """Map a LiteLLM/transport exception onto the kbsync provider taxonomy.

    Returns None for exceptions that are not provider failures (programming
    errors), which callers should let propagate unchanged.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, _MALFORMED_ERRORS):
        return ProviderMalformedInput(f"{type(exc).__name__}: {exc}")
    if isinstance(exc, _TRANSIENT_ERRORS):
        return ProviderTransientError(f"{type(exc).__name__}: {exc}")

    # Other provider status errors (PermissionDeniedError, UnprocessableEntityError, ...)
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        if 400 <= status < 500 and status not in _RETRYABLE_4XX:
            return ProviderMalformedInput(f"{type(exc).__name__} ({status}): {exc}")
        return ProviderTransientError(f"{type(exc).__name__} ({status}): {exc}")
    return None


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 700,
    temperature: float = 0.0,
    timeout: float = 60.0,
) -> str:
    """Call litellm.completion() once. Returns the content string.

    Raises:
        ProviderTransientError: Timeout, rate limit, connection or server error.
        ProviderMalformedInput: The provider rejected the request.
    """
    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            num_retries=0,
        )
    except Exception as exc:
        mapped = classify_error(exc)
        if mapped is None:
            raise
        raise mapped from exc
    return response.choices[0].message.content or ""


def embed_batch(
    model: str,
    texts: list[str],
    timeout: float = 30.0,
) -> list[list[float]]:
    """Call litellm.embedding() once for *texts*. Returns vectors in input order.

    Raises:
        ProviderTransientError: Transport failure, or the provider returned a
            different number of vectors than inputs.
        ProviderMalformedInput: The provider rejected the batch.
    """
    try:
        response = litellm.embedding(
            model=model,
            input=texts,
            timeout=timeout,
            num_retries=0,
        )
    except Exception as exc:
        mapped = classify_error(exc)
        if mapped is None:
            raise
        raise mapped from exc

    data = list(response.data)
    if len(data) != len(texts):
        raise ProviderTransientError(
            f"Embedding provider returned {len(data)} vectors for {len(texts)} inputs"
        )
    if all(_field(item, "index") is not None for item in data):
        data.sort(key=lambda item: _field(item, "index"))
    return [list(_field(item, "embedding")) for item in data]


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
