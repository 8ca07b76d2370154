from typing import Optional

from openai import OpenAI

from app.config import settings

AI_TIMEOUT_SECONDS = 30.0


def get_openrouter_client() -> Optional[OpenAI]:
    """OpenAI-compatible client for OpenRouter, None when no key is configured."""
    if not settings.openrouter_api_key:
        return None
    return OpenAI(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        timeout=AI_TIMEOUT_SECONDS,
        max_retries=1,
        default_headers={
            "HTTP-Referer": settings.app_url,
            "X-Title": "TutorCat Language Learning",
        },
    )


def get_openai_client() -> Optional[OpenAI]:
    if not settings.openai_api_key or not settings.openai_api_key.strip():
        return None
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=AI_TIMEOUT_SECONDS,
        max_retries=2,
    )
