"""Chat calls against a locally hosted Ollama model.

Only the non-streaming ``/api/chat`` endpoint is used. Sampling settings map
onto Ollama's ``options`` block: ``temperature`` as-is, ``max_tokens`` as
``num_predict``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib import error, request

from apexmind.config import Config

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


def build_chat_payload(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict[str, Any]:
    """Assemble the JSON body for one chat turn.

    Raises:
        LocalLLMError: The user prompt is empty after stripping.
    """

    system_prompt = system_prompt.strip()
    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.")

    messages = [{"role": "user", "content": user_prompt}]
    if system_prompt:
        messages.insert(0, {"role": "system", "content": system_prompt})

    options: dict[str, Any] = {}
    if temperature is not None:
        options["temperature"] = temperature
    if max_tokens is not None:
        options["num_predict"] = max_tokens

    payload: dict[str, Any] = {"model": llm_model, "messages": messages, "stream": False}
    if options:
        payload["options"] = options
    return payload


def parse_chat_reply(raw: str) -> str:
    """Pull the assistant text out of an ``/api/chat`` response body."""

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    if not isinstance(parsed, dict):
        raise LocalLLMError("Ollama returned an unexpected response shape.")
    if parsed.get("error"):
        raise LocalLLMError(f"Ollama reported an error: {parsed['error']}")

    content = (parsed.get("message") or {}).get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


def _post_chat(payload: dict[str, Any], url: str, timeout: float) -> str:
    # Blocking; always run through asyncio.to_thread.
    req = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.code}: {body or exc.reason}"
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Could not reach Ollama at {url}: {exc.reason}") from exc


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """Invoke a local Ollama model and return the assistant text."""

    payload = build_chat_payload(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        llm_model=llm_model,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    base = (base_url or Config.LOCAL_LLM_BASE_URL or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
    timeout = Config.INFERENCE_TIMEOUT_SECONDS if timeout is None else timeout

    raw = await asyncio.to_thread(_post_chat, payload, f"{base}{_CHAT_ENDPOINT}", timeout)
    return parse_chat_reply(raw)


__all__ = [
    "DEFAULT_OLLAMA_BASE_URL",
    "LocalLLMError",
    "build_chat_payload",
    "call_ollama_chat",
    "parse_chat_reply",
]
