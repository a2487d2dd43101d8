"""Translation provider abstractions."""

from __future__ import annotations

import json
import os
import sys
from abc import ABC, abstractmethod
from typing import Any

from .errors import (
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .languages import language_name, resolve_language, same_language
from .structures import LanguagePairStatus


class TranslationProvider(ABC):
    """Adapter for a translation engine handling one text at a time."""

    name = "provider"

    @abstractmethod
    def translate(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
    ) -> str:
        """Translate ``text``; raise ``TranslationProviderError`` on failure."""

    def availability(
        self,
        source_language: str,
        target_language: str,
    ) -> LanguagePairStatus:
        """Report whether this provider can translate between the two languages."""

        source = resolve_language(source_language)
        target = resolve_language(target_language)
        if source is None or target is None:
            return LanguagePairStatus.UNKNOWN
        if same_language(source, target):
            return LanguagePairStatus.UNSUPPORTED
        return LanguagePairStatus.SUPPORTED


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def translate(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
    ) -> str:
        return text


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses OpenAI models through the Responses API."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"

    SYSTEM_PROMPT = (
        "You are a professional literary translator working on a book. "
        "Preserve line breaks, blank lines between paragraphs, numbers, and any "
        "character entities exactly as provided. Do not add commentary and do "
        "not wrap the answer in markdown code fences."
    )
    USER_PROMPT = (
        "Translate the following text from {source} to {target}. "
        "Only output the input's translation, no other content. Input: {text}"
    )

    def __init__(
        self,
        *,
        settings: Any = None,
        model: str | None = None,
        debug: bool = False,
    ) -> None:
        self.settings = settings
        self.debug = debug
        provider_value = self._setting("LLM_PROVIDER") or "openai"
        normalized = provider_value.strip().lower()
        if normalized in {"azure_open_ai", "azure-openai"}:
            normalized = "azure_openai"
        if normalized not in {"openai", "azure_openai"}:
            normalized = "openai"

        self.provider_kind = normalized
        self._client, default_model = self._build_client()
        self.model = model or self._setting("OPENAI_MODEL") or default_model

    def _setting(self, key: str) -> Any:
        if self.settings is not None:
            return getattr(self.settings, key, None)
        return os.getenv(key)

    def _build_client(self) -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client()

        return self._build_openai_client()

    def _build_openai_client(self) -> tuple[Any, str]:
        api_key = self._setting("OPENAI_API_KEY")
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        return OpenAI(api_key=api_key), self.DEFAULT_MODEL

    def _build_azure_client(self) -> tuple[Any, str]:
        api_key = self._setting("AZURE_OPENAI_API_KEY")
        endpoint = self._setting("AZURE_OPENAI_ENDPOINT")
        api_version = self._setting("AZURE_OPENAI_API_VERSION")
        deployment_name = self._setting("AZURE_OPENAI_DEPLOYMENT_NAME")

        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": api_key,
                "AZURE_OPENAI_ENDPOINT": endpoint,
                "AZURE_OPENAI_API_VERSION": api_version,
                "AZURE_OPENAI_DEPLOYMENT_NAME": deployment_name,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        try:
            from openai import AzureOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        client = AzureOpenAI(
            api_key=api_key,
            api_version=api_version,
            azure_endpoint=endpoint,
        )
        return client, deployment_name  # type: ignore[return-value]

    def build_prompt(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
    ) -> str:
        return self.USER_PROMPT.format(
            source=language_name(resolve_language(source_language) or source_language),
            target=language_name(resolve_language(target_language) or target_language),
            text=text,
        )

    def translate(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
    ) -> str:
        if not text.strip():
            return text

        prompt = self.build_prompt(
            text,
            source_language=source_language,
            target_language=target_language,
        )
        self._log_debug("provider.request.prompt", prompt)
        translated = self._invoke_model(prompt=prompt)
        self._log_debug("provider.response.text", translated)
        return translated

    def _invoke_model(self, *, prompt: str) -> str:
        """Call the OpenAI Responses API and return the output text."""

        try:
            response = self._client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": self.SYSTEM_PROMPT},
                        ],
                    },
                    {
                        "role": "user",
                        "content": [{"type": "input_text", "text": prompt}],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable — {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))
        return self._extract_text(response)

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not getattr(self, "debug", False):
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[palimpsest][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK response objects into JSON-friendly data."""

        for attr in ("model_dump_json", "model_dump"):
            candidate = getattr(response, attr, None)
            if candidate:
                try:
                    data = candidate()
                    if isinstance(data, str):
                        return json.loads(data)
                    return data
                except (TypeError, ValueError):
                    continue
        return str(response)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()

    def _extract_text(self, response: Any) -> str:
        """Pull the translated text out of a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if hasattr(output_text, "value"):
            output_text = output_text.value
        if output_text:
            return self._strip_code_fence(str(output_text))

        parts: list[str] = []
        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = getattr(part, "text", None)
                if hasattr(text_value, "value"):
                    text_value = text_value.value
                if text_value:
                    parts.append(str(text_value))
        if parts:
            return self._strip_code_fence("".join(parts))

        raise TranslationProviderError(
            "Translation provider response empty or unrecognised."
        )


class LegacyOpenAITranslationProvider(OpenAITranslationProvider):
    """Translation provider that uses the Chat Completions API for compatibility."""

    name = "legacy-openai"

    def _invoke_model(self, *, prompt: str) -> str:
        """Call the Chat Completions API and return the reply text."""

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable — {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        for choice in getattr(response, "choices", None) or []:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None) if message else None
            if content:
                return self._strip_code_fence(str(content))

        raise TranslationProviderError(
            "Translation provider response empty or unrecognised."
        )


def build_provider(
    name: str | None,
    *,
    settings: Any = None,
    model: str | None = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    normalized = (name or "openai").strip().lower()
    if normalized in {"openai", "gpt", "default"}:
        return OpenAITranslationProvider(settings=settings, model=model, debug=debug)
    if normalized in {"legacy-openai", "legacy_openai", "legacy", "openai-legacy"}:
        return LegacyOpenAITranslationProvider(
            settings=settings, model=model, debug=debug
        )
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider()
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )


def requires_settings(name: str | None) -> bool:
    """Return whether the named provider needs configuration to be loaded."""

    return (name or "openai").strip().lower() not in {"echo", "noop", "mock"}
