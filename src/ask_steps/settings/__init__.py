from .base import ApiType, ParameterSettings
from .chat import APISettings, ChatSettings, ClientSettings
from .merger import SettingsMerger, default_api_type
from .providers import ClaudeSettings, OllamaSettings, OpenAISettings
from .step import StepSettings, load_settings_yaml

__all__ = [
    "APISettings",
    "ApiType",
    "ChatSettings",
    "ClaudeSettings",
    "ClientSettings",
    "OllamaSettings",
    "OpenAISettings",
    "ParameterSettings",
    "SettingsMerger",
    "StepSettings",
    "default_api_type",
    "load_settings_yaml",
]
