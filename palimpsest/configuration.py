"""Prepper-backed configuration loader for Palimpsest."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError
from .languages import resolve_language

APP_NAME = "Palimpsest"

PROVIDER_SYNONYMS = {
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "azure": "azure_openai",
}


class PalimpsestConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai"] = Field(
        default="openai",
        description="Which OpenAI endpoint family serves translation requests.",
    )
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    OPENAI_MODEL: str | None = Field(
        default=None,
        description="Model used instead of the provider default.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    PALIMPSEST_PROVIDER_DEBUG: bool = Field(default=False)
    PALIMPSEST_SOURCE_LANGUAGE: str = Field(
        default="en",
        description="Language of the books when none is given on the command line.",
    )

    @model_validator(mode="before")
    def _normalise_values(data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        provider = data.get("LLM_PROVIDER")
        if isinstance(provider, str):
            normalized = provider.strip().lower().replace("-", "_")
            normalized = PROVIDER_SYNONYMS.get(normalized, normalized)
            data["LLM_PROVIDER"] = (
                normalized if normalized in {"openai", "azure_openai"} else "openai"
            )
        language = data.get("PALIMPSEST_SOURCE_LANGUAGE")
        if isinstance(language, str):
            data["PALIMPSEST_SOURCE_LANGUAGE"] = resolve_language(language) or language
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load every configuration layer once and cache the result."""

    base_dir = app_dir or Path.cwd()
    provenance = ProvenanceRecorder()
    try:
        combined = _read_yaml_layers(base_dir, provenance)
        _read_env_layers(combined, base_dir, provenance)
        if not combined:
            raise ConfigNotFound("No configuration sources were found.")
        model = PalimpsestConfig.validate(combined, provenance=provenance)
    except ConfigNotFound as exc:
        raise TranslationProviderConfigurationError(
            "No configuration found. Put OPENAI_API_KEY (or the Azure settings) in "
            "a palimpsest YAML file, a .env file, or the environment, or use the "
            "echo provider."
        ) from exc
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.to_dict())
        ) from exc

    _check_credentials(model)
    return ConfigInstance(
        model=model,
        provenance=provenance,
        env_prefix=None,
        schema_cls=PalimpsestConfig,
    )


def _read_yaml_layers(app_dir: Path, provenance: ProvenanceRecorder) -> dict[str, Any]:
    """Merge the YAML files Prepper discovers for this application."""

    result: dict[str, Any] = {}
    for path, label in discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    ):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(f"{path} must contain a mapping at the top level.")
        merge_layer(
            result,
            parsed,
            provenance=provenance,
            source=_path_to_source(label, "yaml", path),
            layer="file",
        )
    return result


def _read_env_layers(
    target: dict[str, Any],
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> None:
    """Overlay known keys from ``.env`` and then from the process environment."""

    known = set(PalimpsestConfig.__field_infos__.keys())
    layers: list[tuple[str, Mapping[str, Any]]] = []
    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        layers.append((".env", dotenv_values(dotenv_path)))
    layers.append(("process", os.environ))

    for origin, values in layers:
        for key in sorted(known.intersection(values)):
            value = values[key]
            if not isinstance(value, str):
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{origin}:{key}",
                layer="env",
            )


def _check_credentials(settings: PalimpsestConfig) -> None:
    if settings.LLM_PROVIDER == "openai":
        missing = [] if settings.OPENAI_API_KEY else ["OPENAI_API_KEY"]
    else:
        missing = [
            name
            for name in (
                "AZURE_OPENAI_API_KEY",
                "AZURE_OPENAI_ENDPOINT",
                "AZURE_OPENAI_API_VERSION",
                "AZURE_OPENAI_DEPLOYMENT_NAME",
            )
            if not getattr(settings, name)
        ]
    if missing:
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n"
            f"- LLM_PROVIDER is '{settings.LLM_PROVIDER}' but these settings are "
            f"missing: {', '.join(missing)}."
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    lines: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        prefix = f"{location}: " if location else ""
        suffix = f" (source: {source})" if source else ""
        lines.append(f"- {prefix}{message}{suffix}")
    return "Configuration validation errors detected:\n" + "\n".join(lines)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> PalimpsestConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
