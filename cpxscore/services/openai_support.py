"""Shared construction of the async OpenAI client."""

from __future__ import annotations

from typing import Any, Dict, Tuple, Type

from ..config import get_settings


def create_async_client(purpose: str) -> Tuple[Any, Type[Exception]]:
    """Return an ``AsyncOpenAI`` client and the SDK's base error class."""

    settings = get_settings()
    try:
        from openai import AsyncOpenAI, OpenAIError  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime dependency guard
        raise RuntimeError(f"openai package is required for the OpenAI {purpose} service") from exc

    # Retries are owned by retry_with_backoff.
    client_kwargs: Dict[str, Any] = {"max_retries": 0}
    if settings.openai_api_key:
        client_kwargs["api_key"] = settings.openai_api_key

    try:
        return AsyncOpenAI(**client_kwargs), OpenAIError
    except OpenAIError as exc:
        message = str(exc)
        if "api_key" in message.lower():
            raise RuntimeError(
                "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                "or CPXSCORE_OPENAI_API_KEY (see `cpxscore env-set`)."
            ) from exc
        raise RuntimeError(f"Failed to initialise OpenAI {purpose} client: {message}") from exc


__all__ = ["create_async_client"]
