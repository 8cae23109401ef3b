"""Agno model factory shared by the safety classifier and the companion agent."""

from agno.models.openai import OpenAIChat


def resolve_model(
    provider: str,
    model_id: str,
    api_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
):
    """Resolve a provider name to an Agno model instance.

    Args:
        provider: "openai", "anthropic" or "google".
        model_id: Provider model identifier.
        api_key: Explicit API key; None lets the SDK read its own env var.
        temperature: Sampling temperature, if set.
        max_tokens: Output token budget, if set.

    Returns:
        Agno model instance (OpenAIChat, Claude or Gemini).

    Raises:
        ValueError: If the provider is unknown.
    """
    provider = provider.lower()
    kwargs: dict = {"id": model_id}
    if api_key:
        kwargs["api_key"] = api_key
    if temperature is not None:
        kwargs["temperature"] = temperature

    if provider == "openai":
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return OpenAIChat(**kwargs)
    elif provider == "anthropic":
        from agno.models.anthropic import Claude

        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return Claude(**kwargs)
    elif provider in ("google", "gemini"):
        from agno.models.google import Gemini

        if max_tokens is not None:
            kwargs["max_output_tokens"] = max_tokens
        return Gemini(**kwargs)
    else:
        raise ValueError(f"Unknown model provider: {provider}")


def api_key_for(provider: str, settings) -> str | None:
    """API key configured for a provider, or None to defer to the SDK."""
    key = {
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
        "google": settings.google_api_key,
        "gemini": settings.google_api_key,
    }.get(provider.lower())
    return key or None
