"""Model calls for almanac: completion, embedding and transcription via LiteLLM.

Every provider call goes through this module so tests can patch one place.
LiteLLM retries transient failures itself (``num_retries``).
"""

from __future__ import annotations

import os
from pathlib import Path

import litellm

from almanac.errors import EmbeddingFailure

litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

# Hosted providers and the variable their key is read from. Local providers
# (ollama) and anything not listed need no key.
_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def provider_of(model: str) -> str:
    """``"openai/whisper-1"`` -> ``"openai"``; bare model names are OpenAI's."""
    return model.split("/", 1)[0].lower() if "/" in model else "openai"


def api_key_env(provider: str) -> str | None:
    return _KEY_ENV.get(provider.lower())


def validate_api_key(model: str) -> None:
    """Fail fast when *model* needs a provider key that is not exported.

    Raises:
        EnvironmentError: naming the missing variable.
    """
    env_var = api_key_env(provider_of(model))
    if env_var and not os.getenv(env_var):
        raise EnvironmentError(f"{env_var} is not set; '{model}' cannot be called without it.")


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 512,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Return the text of one chat completion (empty string if the model sent none)."""
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Embed *text* with *model*.

    Raises:
        EmbeddingFailure: If the provider call fails or returns no vector.
    """
    try:
        response = litellm.embedding(
            model=model,
            input=[text],
            num_retries=num_retries,
        )
        vector = response.data[0]["embedding"]
    except Exception as exc:
        raise EmbeddingFailure(model, str(exc)) from exc
    if not vector:
        raise EmbeddingFailure(model, "provider returned an empty vector")
    return [float(x) for x in vector]


def transcribe(model: str, path: Path | str) -> tuple[str, list[tuple[str, float, float]]]:
    """Transcribe an audio file. Returns ``(text, [(segment_text, start, end), ...])``.

    Segments are empty when the provider does not return timing information.
    """
    with open(path, "rb") as audio_file:
        response = litellm.transcription(
            model=model,
            file=audio_file,
            response_format="verbose_json",
        )
    segments = [
        (str(_field(seg, "text") or ""), float(_field(seg, "start")), float(_field(seg, "end")))
        for seg in (_field(response, "segments") or [])
    ]
    return str(_field(response, "text") or ""), segments


def _field(obj: object, name: str) -> object:
    """Read *name* from a provider object that may be a dict or an attribute bag."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)
