"""Summary: AI provider abstraction and implementations.

Importance: Centralizes LLM access for portability across Gemini, OpenAI, and local models.
Alternatives: Call provider SDKs directly from the classification oracle.
"""

from __future__ import annotations

import base64
import json
import time
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ticketdesk.config import AppConfig


class AiProvider(ABC):
    """Summary: Abstract interface for AI text generation.

    Importance: Allows switching between local and cloud LLMs without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def generate_text(
        self,
        prompt: str,
        purpose: str,
        system: str = "",
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Generate a response for a prompt.

        Importance: Standardizes AI outputs for downstream services.
        Alternatives: Return provider-specific response objects directly.
        """

    def describe_image(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Generate a response about an image.

        Importance: Only multimodal providers implement this.
        Alternatives: OCR the image locally and send text.
        """

        raise NotImplementedError(f"{type(self).__name__} does not support image input")


class GeminiProvider(AiProvider):
    """Summary: AI provider using the Gemini generateContent REST API.

    Importance: Supports JSON-schema constrained output for classification.
    Alternatives: Use the google-genai SDK.
    """

    def __init__(self, api_key: str, base_url: str, default_model: str) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model

    def generate_text(
        self,
        prompt: str,
        purpose: str,
        system: str = "",
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Generate text using Gemini.

        Importance: Enables structured classification with a response schema.
        Alternatives: Ask for JSON in the prompt and parse loosely.
        """

        payload: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return self._generate(payload, purpose, model, response_schema)

    def describe_image(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Send an inline image plus instructions to Gemini.

        Importance: Lets the oracle read payment receipts and error screenshots.
        Alternatives: Upload the file through the Files API first.
        """

        inline = {"mimeType": mime_type, "data": base64.b64encode(image).decode("ascii")}
        payload: dict[str, Any] = {
            "contents": [{"parts": [{"inlineData": inline}, {"text": prompt}]}]
        }
        return self._generate(payload, "image_analysis", model, response_schema)

    def _generate(
        self,
        payload: dict[str, Any],
        purpose: str,
        model: str | None,
        response_schema: dict[str, Any] | None,
    ) -> tuple[str, int]:
        if response_schema is not None:
            payload["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            }
        model_name = model or self._default_model
        query = urllib.parse.urlencode({"key": self._api_key})
        request = urllib.request.Request(
            url=f"{self._base_url}/models/{model_name}:generateContent?{query}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Gemini request failed ({purpose}): {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        try:
            text = raw["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise RuntimeError(f"Gemini returned no candidates ({purpose})") from exc
        return text, latency_ms


class OllamaProvider(AiProvider):
    """Summary: AI provider that targets a local Ollama server.

    Importance: Supports privacy-sensitive workflows on local hardware.
    Alternatives: Use llama.cpp directly with a Python binding.
    """

    def __init__(self, base_url: str, model: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model

    def generate_text(
        self,
        prompt: str,
        purpose: str,
        system: str = "",
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Generate text using the Ollama HTTP API.

        Importance: Enables local inference for classification and drafts.
        Alternatives: Use Ollama's CLI and parse its output.
        """

        body: dict[str, Any] = {"model": self._model, "prompt": prompt, "stream": False}
        if system:
            body["system"] = system
        if response_schema is not None:
            body["format"] = "json"
        request = urllib.request.Request(
            url=f"{self._base_url}/api/generate",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Ollama request failed: {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        return raw.get("response", ""), latency_ms


class OpenAiProvider(AiProvider):
    """Summary: AI provider using OpenAI's chat completion API.

    Importance: Offers a cloud alternative when Gemini is not configured.
    Alternatives: Use other cloud providers or a local model.
    """

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._model = model

    def generate_text(
        self,
        prompt: str,
        purpose: str,
        system: str = "",
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        """Summary: Generate text using OpenAI chat completions.

        Importance: JSON mode keeps classification output parseable.
        Alternatives: Use the responses API or a different provider.
        """

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system or f"You are TicketDesk. Task: {purpose}."},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
        }
        if response_schema is not None:
            payload["response_format"] = {"type": "json_object"}
        request = urllib.request.Request(
            url="https://api.openai.com/v1/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise RuntimeError(f"OpenAI request failed: {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        content = raw["choices"][0]["message"]["content"]
        return content, latency_ms


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting AI providers from configuration.

    Importance: Keeps provider selection logic centralized.
    Alternatives: Wire providers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        """Summary: Construct the configured AI provider.

        Importance: Ensures consistent provider selection across services.
        Alternatives: Use dependency injection frameworks.
        """

        if self.config.oracle_provider == "gemini":
            if not self.config.gemini_api_key:
                raise ValueError("GEMINI_API_KEY is required for gemini provider")
            return GeminiProvider(
                self.config.gemini_api_key, self.config.gemini_base_url, self.config.active_model
            )
        if self.config.oracle_provider == "ollama":
            return OllamaProvider(self.config.ollama_url, self.config.ollama_model)
        if self.config.oracle_provider == "openai":
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY is required for openai provider")
            return OpenAiProvider(self.config.openai_api_key, self.config.openai_model)
        raise ValueError(f"Unknown AI provider: {self.config.oracle_provider}")


def estimate_tokens(text: str) -> int:
    """Summary: Estimate tokens from text length.

    Importance: Provides a rough metric for AI usage logging.
    Alternatives: Use provider token counters or tiktoken.
    """

    return max(1, len(text) // 4)
