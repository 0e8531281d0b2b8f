"""
Text Generation Service - Report Insight Platform
app/services/text_generation.py

Thin wrapper over LiteLLM so any backing model can be swapped through
settings. Used for chunk summaries, reduce-merge, classification,
industry evaluation, confidence scoring and keyword extraction.
"""
from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol

import litellm

from app.config import settings
from app.core.exceptions import (
    ConfigurationException,
    ResponseParseException,
    TextGenerationException,
)

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


@dataclass(frozen=True)
class Attachment:
    """Binary document sent alongside a prompt."""
    data: bytes
    mime_type: str = "application/pdf"

    def as_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class TextGenerator(Protocol):
    def generate(self, prompt: str, attachment: Optional[Attachment] = None) -> str:
        ...


def _provider_key_name(model: str) -> str:
    """Settings field holding the API key for a LiteLLM model string."""
    lowered = model.lower()
    if lowered.startswith(("gemini/", "gemini-", "vertex_ai/")):
        return "GOOGLE_API_KEY"
    if lowered.startswith(("anthropic/", "claude")):
        return "ANTHROPIC_API_KEY"
    return "OPENAI_API_KEY"


def resolve_api_key(model: str) -> str:
    key_name = _provider_key_name(model)
    secret = getattr(settings, key_name, None)
    if secret is None or not secret.get_secret_value():
        raise ConfigurationException(f"{key_name} is required for model '{model}'")
    return secret.get_secret_value()


def strip_code_fences(text: str) -> str:
    """Return the body of a ```json fenced block, or the text itself."""
    match = _JSON_FENCE.search(text)
    return (match.group(1) if match else text).strip()


def parse_json_response(text: str) -> Any:
    """
    Decode a JSON payload from a model response.

    Raises:
        ResponseParseException: If no valid JSON can be decoded
    """
    payload = strip_code_fences(text or "")
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ResponseParseException(f"Response is not valid JSON: {e}", raw_text=text) from e


class TextGenerationService:
    """
    LiteLLM-backed text generation with an explicit per-call timeout and an
    optional fallback model.

    Credentials are resolved at construction, so a missing key fails fast
    at startup instead of on the first request.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
    ):
        self.model = model or settings.DEFAULT_LLM_MODEL
        self.fallback_model = fallback_model if fallback_model is not None else settings.FALLBACK_LLM_MODEL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE

        self._api_keys: Dict[str, str] = {self.model: resolve_api_key(self.model)}
        if self.fallback_model:
            try:
                self._api_keys[self.fallback_model] = resolve_api_key(self.fallback_model)
            except ConfigurationException as e:
                logger.warning(f"⚠️  Fallback model disabled: {e}")
                self.fallback_model = None

        logger.info(f"🤖 Text generation ready: model={self.model}, fallback={self.fallback_model}, timeout={self.timeout}s")

    def generate(self, prompt: str, attachment: Optional[Attachment] = None) -> str:
        """
        Send a prompt, optionally with a binary attachment, and return the text.

        Raises:
            TextGenerationException: On timeout, provider error or empty output
        """
        messages = self._build_messages(prompt, attachment)
        try:
            return self._complete(self.model, messages)
        except TextGenerationException as primary_error:
            if not self.fallback_model:
                raise
            logger.warning(f"⚠️  {self.model} failed ({primary_error}), retrying with {self.fallback_model}")
            return self._complete(self.fallback_model, messages)

    def _build_messages(self, prompt: str, attachment: Optional[Attachment]) -> List[Dict[str, Any]]:
        if attachment is None:
            return [{"role": "user", "content": prompt}]
        return [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "file", "file": {"file_data": attachment.as_data_url()}},
            ],
        }]

    def _complete(self, model: str, messages: List[Dict[str, Any]]) -> str:
        try:
            response = litellm.completion(
                model=model,
                messages=messages,
                temperature=self.temperature,
                timeout=self.timeout,
                api_key=self._api_keys[model],
            )
        except litellm.exceptions.Timeout as e:
            raise TextGenerationException(f"Timed out after {self.timeout}s", model=model) from e
        except Exception as e:
            raise TextGenerationException(f"Generation failed: {e}", model=model) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise TextGenerationException("Empty response", model=model)
        return content.strip()


@lru_cache
def get_text_generation_service() -> TextGenerationService:
    return TextGenerationService()
