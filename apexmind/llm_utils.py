"""Helper utilities for LLM-related error handling and retries."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from apexmind.config import Config
from apexmind.local_llm import LocalLLMError, call_ollama_chat
from apexmind.logging_utils import log_error, log_warning


ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed LLM schema outputs."""

    llm_text: str
    issues: Sequence[str]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if present."""

    match = _FENCE_PATTERN.match(text)
    return match.group(1).strip() if match else text.strip()


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Produce guidance for the model plus structured issues for logging.

    Converts a pydantic ValidationError into readable feedback that is appended
    to the retry prompt so the model can correct its own schema violations.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        # Field path in dot notation (destination.x)
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        msg = err.get("msg", "validation error")
        err_type = err.get("type")
        preview = None
        if "input" in err:
            preview = _truncate_preview(err.get("input"))

        details = f"{loc}: {msg}"
        if err_type:
            details += f" [type={err_type}]"
        if preview not in (None, ""):
            details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences. Return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def _log_validation_failure(
    *,
    model_name: str,
    attempt: int,
    max_attempts: int,
    feedback: ValidationFeedback,
) -> None:
    lines = [f"LLM schema validation failed for {model_name} (attempt {attempt}/{max_attempts})."]
    lines.extend(f"    - {issue}" for issue in feedback.issues)
    log_warning("\n".join(lines))


def _combine(*sections: str) -> str:
    return "\n\n".join(section for section in sections if section)


def _call_params(temperature: float | None, max_tokens: int | None) -> dict[str, Any]:
    # Unset values fall back to the provider defaults.
    params: dict[str, Any] = {}
    if temperature is not None:
        params["temperature"] = temperature
    if max_tokens is not None:
        params["max_tokens"] = max_tokens
    return {"call_params": params} if params else {}


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout: float | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured LLM call with validation-aware retries.

    Only ``ValidationError`` triggers another attempt; the feedback from the
    failed attempt is appended to the original prompt so the model keeps the
    full context. Transport errors and timeouts propagate immediately. After
    ``max_attempts`` the final validation error is re-raised.
    """

    timeout = Config.INFERENCE_TIMEOUT_SECONDS if timeout is None else timeout
    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()
    feedback_payload: ValidationFeedback | None = None

    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(
            provider=llm_provider,
            model=llm_model,
            response_model=response_model,
            **_call_params(temperature, max_tokens),
        )
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_warning(
                    f"LLM retry {attempt_number}/{max_attempts} for {response_model.__name__};"
                    " attempting schema correction."
                )
            user_section = _combine(
                base_user_prompt, feedback_payload.llm_text if feedback_payload else ""
            )
            try:
                if use_local_llm:
                    raw_response = await asyncio.wait_for(
                        call_ollama_chat(
                            system_prompt=system_prompt,
                            user_prompt=user_section,
                            llm_model=llm_model,
                            timeout=timeout,
                            temperature=temperature,
                            max_tokens=max_tokens,
                        ),
                        timeout=timeout,
                    )
                    return response_model.model_validate_json(strip_code_fences(raw_response))

                if remote_invoke is None:
                    raise RuntimeError("Remote LLM invoke is not initialized.")

                return await asyncio.wait_for(
                    remote_invoke(_combine(system_prompt, user_section)),
                    timeout=timeout,
                )
            except ValidationError as exc:
                feedback_payload = feedback_builder(exc)
                _log_validation_failure(
                    model_name=response_model.__name__,
                    attempt=attempt_number,
                    max_attempts=max_attempts,
                    feedback=feedback_payload,
                )
                raise
            except asyncio.TimeoutError:
                log_error(f"LLM call timed out after {timeout:g}s for {response_model.__name__}.")
                raise
            except LocalLLMError as exc:
                raise RuntimeError(f"Local LLM provider error ({llm_provider}): {exc}") from exc

    raise RuntimeError("LLM retry mechanism exited unexpectedly")


async def call_llm_text(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    timeout: float | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """Invoke an unstructured LLM call and return the stripped reply text."""

    timeout = Config.INFERENCE_TIMEOUT_SECONDS if timeout is None else timeout
    system_prompt = system_prompt.strip()
    user_prompt = user_prompt.strip()

    if llm_provider.lower() == "ollama":
        text = await asyncio.wait_for(
            call_ollama_chat(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                llm_model=llm_model,
                timeout=timeout,
                temperature=temperature,
                max_tokens=max_tokens,
            ),
            timeout=timeout,
        )
        return text.strip()

    @llm.call(provider=llm_provider, model=llm_model, **_call_params(temperature, max_tokens))
    async def _invoke(prompt: str) -> str:
        return prompt

    response = await asyncio.wait_for(_invoke(_combine(system_prompt, user_prompt)), timeout=timeout)
    return str(response.content).strip()
