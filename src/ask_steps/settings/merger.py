"""Layered resolution of step settings.

Layers, lowest to highest precedence:

1. compiled-in defaults (the ``StepSettings`` given to the merger)
2. a YAML settings file
3. provider environment variables
4. parameters parsed from the command line or a command description

A layer only overrides the fields it sets; everything else keeps the value
of the layers below it.
"""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, Mapping

from ..errors import ConfigurationError
from .base import ApiType
from .step import StepSettings, load_settings_yaml

logger = logging.getLogger(__name__)

# Environment variable -> parameter name
ENVIRONMENT_PARAMETERS = {
    "OPENAI_API_KEY": "openai-api-key",
    "OPENAI_BASE_URL": "openai-base-url",
    "ANTHROPIC_API_KEY": "claude-api-key",
    "ANTHROPIC_BASE_URL": "claude-base-url",
    "OLLAMA_HOST": "ollama-base-url",
}


class Layer(IntEnum):
    FILE = 1
    ENVIRONMENT = 2
    PARAMETERS = 3


class SettingsMerger:
    def __init__(self, defaults: StepSettings | None = None):
        self._defaults = defaults if defaults is not None else StepSettings.new()
        self._layers: list[tuple[Layer, str, Callable[[StepSettings], None]]] = []

    def with_file(self, path: str | Path, required: bool = False) -> "SettingsMerger":
        path = Path(path).expanduser()
        if not path.is_file():
            if required:
                raise ConfigurationError(f"Settings file not found: {path}")
            logger.debug(f"No settings file at {path}, skipping")
            return self
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = load_settings_yaml(f)
        except OSError as e:
            raise ConfigurationError(f"Error reading settings file {path}: {e}") from e
        return self.with_mapping(data, name=str(path))

    def with_mapping(self, data: Mapping[str, Any], name: str = "mapping") -> "SettingsMerger":
        """Add a ``factories``-shaped block at file precedence."""
        self._layers.append((Layer.FILE, name, lambda s: s.update_from_mapping(data)))
        return self

    def with_environment(self, env: Mapping[str, str]) -> "SettingsMerger":
        params = {param: env[var] for var, param in ENVIRONMENT_PARAMETERS.items() if env.get(var)}
        self._layers.append((Layer.ENVIRONMENT, "environment", lambda s: s.api.update_from_parameters(params)))
        return self

    def with_parameters(self, params: Mapping[str, Any]) -> "SettingsMerger":
        self._layers.append((Layer.PARAMETERS, "parameters", lambda s: s.update_from_parameters(params)))
        return self

    def merge(self) -> StepSettings:
        """Apply all layers to a clone of the defaults."""
        settings = self._defaults.clone()
        # Stable sort keeps insertion order within a layer
        for layer, name, apply in sorted(self._layers, key=lambda entry: entry[0]):
            logger.debug(f"Applying {layer.name.lower()} settings layer: {name}")
            apply(settings)
        return settings


def default_api_type(settings: StepSettings) -> ApiType:
    """API type to use when none was configured: the first provider with a key, else Ollama."""
    if settings.chat.api_type is not None:
        return settings.chat.api_type
    for api_type in (ApiType.OPENAI, ApiType.CLAUDE):
        if settings.api.api_keys.get(api_type):
            return api_type
    return ApiType.OLLAMA
