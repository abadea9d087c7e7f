"""Thin wrapper around the Ollama local LLM chat-completion API."""

from __future__ import annotations

import logging

import openai
from openai import OpenAI as _HTTPClient

from pdfchat.config import settings
from pdfchat.errors import ModelServiceError, ServiceUnavailable

logger = logging.getLogger(__name__)

_client: _HTTPClient | None = None

SYSTEM_PROMPT = """\
You answer questions about a PDF document using only the context excerpts
provided. If the answer is not in the context, say that you don't know.
Keep the answer concise.
"""


def _get_client() -> _HTTPClient:
    global _client
    if _client is None:
        _client = _HTTPClient(
            base_url=settings.ollama_base_url,
            api_key="unused",  # Ollama does not require an API key
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )
    return _client


def generate(
    prompt: str,
    *,
    system_prompt: str = SYSTEM_PROMPT,
    model: str | None = None,
    temperature: float | None = None,
    timeout: float | None = None,
) -> str:
    """Send *prompt* to the generation model and return its reply verbatim.

    *timeout* (seconds) overrides ``Settings.request_timeout`` for this call.
    """
    client = _get_client()
    if timeout is not None:
        client = client.with_options(timeout=timeout)
    try:
        response = client.chat.completions.create(
            model=model or settings.llm_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=settings.temperature if temperature is None else temperature,
        )
    except openai.APIConnectionError as exc:  # includes APITimeoutError
        raise ServiceUnavailable(settings.ollama_base_url, exc) from exc
    except openai.APIStatusError as exc:
        raise ModelServiceError(settings.ollama_base_url, exc.status_code, exc) from exc
    content = response.choices[0].message.content or ""
    logger.debug("LLM response (%d chars): %s…", len(content), content[:120])
    return content
