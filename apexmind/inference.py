"""
Live-inference boundary.

The engine talks to any text/structured-output service through the
``InferenceClient`` protocol: one async ``infer(purpose, prompt)`` call per
request. ``LLMInferenceClient`` is the production implementation (mirascope for
hosted providers, Ollama for local models). Whatever a client returns is
normalised with ``parse_decision`` / ``parse_text`` before the engine trusts it.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Literal, Mapping, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from .config import Config
from .llm_utils import call_llm_text, call_llm_with_retries, strip_code_fences
from .logging_utils import log_llm
from .prompts import RenderedPrompt
from .schemas import Decision


InferencePurpose = Literal["decide", "generate-taunt", "generate-dialogue", "generate-commentary"]

# Sampling per purpose. Taunts and dialogue run hotter for variety; commentary
# runs cooler so the narration stays on the event.
DEFAULT_TEMPERATURES: Dict[str, float] = {
    "decide": 0.7,
    "generate-taunt": 0.9,
    "generate-dialogue": 0.8,
    "generate-commentary": 0.6,
}

DEFAULT_MAX_TOKENS: Dict[str, int] = {
    "decide": 500,
    "generate-taunt": 200,
    "generate-dialogue": 200,
    "generate-commentary": 300,
}


class InferenceError(RuntimeError):
    """Raised when the inference boundary returns nothing usable."""


@runtime_checkable
class InferenceClient(Protocol):
    """Anything that can answer a rendered prompt for a given purpose.

    ``decide`` answers may be a ``Decision``, a dict or a JSON string; the other
    purposes answer with plain text.
    """

    async def infer(self, purpose: InferencePurpose, prompt: RenderedPrompt) -> Any:
        ...


class LLMInferenceClient:
    """Inference client backed by a hosted LLM provider or a local Ollama model."""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        max_attempts: int = 3,
        timeout: Optional[float] = None,
        temperatures: Optional[Mapping[str, float]] = None,
        max_tokens: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.provider = provider or Config.LLM_PROVIDER
        self.model = model or Config.LLM_MODEL
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.temperatures = {**DEFAULT_TEMPERATURES, **(temperatures or {})}
        self.max_tokens = {**DEFAULT_MAX_TOKENS, **(max_tokens or {})}

    async def infer(self, purpose: InferencePurpose, prompt: RenderedPrompt) -> Any:
        log_llm(f"[Inference] {purpose} via {self.provider}/{self.model}")
        if purpose == "decide":
            return await call_llm_with_retries(
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                llm_provider=self.provider,
                llm_model=self.model,
                response_model=Decision,
                max_attempts=self.max_attempts,
                timeout=self.timeout,
                temperature=self.temperatures.get(purpose),
                max_tokens=self.max_tokens.get(purpose),
            )

        return await call_llm_text(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            llm_provider=self.provider,
            llm_model=self.model,
            timeout=self.timeout,
            temperature=self.temperatures.get(purpose),
            max_tokens=self.max_tokens.get(purpose),
        )


def parse_decision(raw: Any) -> Decision:
    """Turn a ``decide`` answer into a validated ``Decision``.

    Raises:
        ValidationError: The answer is missing fields or has out-of-range values.
        InferenceError: The answer is not JSON, or not an object at all.
    """

    if isinstance(raw, Decision):
        return raw
    if isinstance(raw, str):
        text = strip_code_fences(raw)
        if not text:
            raise InferenceError("empty decision response")
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InferenceError(f"decision response is not JSON: {exc.msg}") from exc
    if isinstance(raw, dict):
        return Decision.model_validate(raw)
    raise InferenceError(f"unsupported decision response type: {type(raw).__name__}")


def parse_text(raw: Any) -> str:
    """Normalise a taunt/dialogue answer to a single non-empty line."""

    if not isinstance(raw, str):
        raise InferenceError(f"expected text, got {type(raw).__name__}")
    text = raw.strip().strip('"').strip()
    if not text:
        raise InferenceError("empty text response")
    return text


# Failures the engine resolves by falling back to local synthesis.
MALFORMED_RESPONSE_ERRORS = (InferenceError, ValidationError)
