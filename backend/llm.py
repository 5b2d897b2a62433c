"""
llm.py
------
Thin Gemini wrapper shared by the remote sequencing oracle and the day
generator.  The client is created lazily so that importing this module never
requires an API key; only an actual call does.
"""

from __future__ import annotations

from typing import Any, Optional

from google import genai
from google.genai import types

import config

_client: genai.Client | None = None


def get_client() -> genai.Client:
    """Return the singleton Gemini client, creating it on first call."""
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY missing")
        _client = genai.Client(
            api_key=config.GEMINI_API_KEY,
            http_options=types.HttpOptions(timeout=config.LLM_TIMEOUT_SECONDS * 1000),
        )
    return _client


def _json_config(system_instruction: str, schema: Optional[dict[str, Any]], temperature: float):
    return types.GenerateContentConfig(
        system_instruction=system_instruction,
        response_mime_type="application/json",
        response_schema=schema,
        temperature=temperature,
    )


async def call_llm_json(
    prompt: str,
    *,
    system_instruction: str,
    schema: Optional[dict[str, Any]] = None,
    model: str | None = None,
    temperature: float = 0.2,
) -> str:
    """Async JSON-mode call; returns the raw response text for the caller to validate."""
    response = await get_client().aio.models.generate_content(
        model=model or config.LLM_MODEL_NAME,
        contents=prompt,
        config=_json_config(system_instruction, schema, temperature),
    )

    if not response or not response.text:
        raise RuntimeError("Empty Gemini response")

    return response.text.strip()
