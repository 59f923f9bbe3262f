import pytest

from ask_steps.errors import ConfigurationError
from ask_steps.settings import (
    APISettings,
    ApiType,
    ChatSettings,
    ClaudeSettings,
    ClientSettings,
    OllamaSettings,
    OpenAISettings,
    StepSettings,
    load_settings_yaml,
)


@pytest.fixture
def configured(settings_yaml):
    return StepSettings.from_yaml(settings_yaml)


def test_defaults():
    settings = StepSettings.new()
    assert settings.chat.engine is None
    assert settings.chat.temperature is None
    assert settings.chat.stream is True
    assert settings.api.api_keys == {}
    assert settings.ollama.top_k is None


def test_from_yaml(configured):
    assert configured.chat.engine == "gpt-4o-mini"
    assert configured.chat.api_type is ApiType.OPENAI
    assert configured.chat.max_response_tokens == 512
    assert configured.api.api_keys == {ApiType.OPENAI: "sk-file-openai-key"}
    assert configured.api.base_urls[ApiType.OLLAMA] == "http://ollama.local:11434"
    assert configured.client.timeout_seconds == 30
    assert configured.openai.presence_penalty == 0.5
    assert configured.claude.top_k == 5
    assert configured.ollama.seed == 42


def test_from_yaml_accepts_parameter_names():
    settings = StepSettings.from_yaml("factories:\n  chat:\n    ai-engine: claude-3-haiku\n    ai-stop: 'END,STOP'\n")
    assert settings.chat.engine == "claude-3-haiku"
    assert settings.chat.stop == ["END", "STOP"]


def test_invalid_yaml_raises_configuration_error():
    with pytest.raises(ConfigurationError, match="parsing"):
        load_settings_yaml("factories: [unclosed")


def test_non_mapping_block_raises():
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        StepSettings.from_yaml("factories:\n  chat: 3\n")


def test_empty_document_gives_defaults():
    assert load_settings_yaml("") == {}
    assert StepSettings.from_yaml("other: 1\n").chat.engine is None


def test_update_from_parameters_only_touches_given_fields(configured):
    configured.update_from_parameters({"ai-temperature": 0.2})
    assert configured.chat.temperature == 0.2
    assert configured.chat.engine == "gpt-4o-mini"
    assert configured.chat.max_response_tokens == 512
    assert configured.openai.presence_penalty == 0.5


def test_update_from_parameters_ignores_unknown_and_none(configured):
    configured.update_from_parameters({"no-such-parameter": 1, "ai-engine": None, "claude-top-k": 7})
    assert configured.chat.engine == "gpt-4o-mini"
    assert configured.claude.top_k == 7


def test_update_from_parameters_sets_api_keys_per_provider(configured):
    configured.update_from_parameters({"claude-api-key": "sk-ant", "ollama-base-url": "http://other:11434"})
    assert configured.api.api_keys == {ApiType.OPENAI: "sk-file-openai-key", ApiType.CLAUDE: "sk-ant"}
    assert configured.api.base_urls[ApiType.OLLAMA] == "http://other:11434"


def test_invalid_parameter_type_raises(configured):
    with pytest.raises(ConfigurationError):
        configured.update_from_parameters({"ai-max-response-tokens": "lots"})
    with pytest.raises(ConfigurationError):
        configured.update_from_parameters({"ai-top-p": 1.5})
    with pytest.raises(ConfigurationError):
        configured.update_from_parameters({"ai-api-type": "bard"})
    # failed updates leave the settings untouched
    assert configured.chat.max_response_tokens == 512


def test_invalid_value_in_later_block_changes_nothing(configured):
    with pytest.raises(ConfigurationError):
        configured.update_from_parameters({"ai-temperature": 0.2, "claude-api-key": "sk-ant", "openai-n": "abc"})
    assert configured.chat.temperature == 0.7
    assert ApiType.CLAUDE not in configured.api.api_keys


def test_invalid_file_block_changes_nothing(configured):
    with pytest.raises(ConfigurationError):
        configured.update_from_mapping({"chat": {"engine": "other"}, "ollama": {"seed": "many"}})
    assert configured.chat.engine == "gpt-4o-mini"
    assert configured.ollama.seed == 42


def test_api_block_accepts_parameter_names():
    settings = StepSettings.from_yaml(
        "factories:\n"
        "  api:\n"
        "    api_keys:\n"
        "      openai: sk-nested\n"
        "    claude-api-key: sk-ant\n"
        "    ollama-base-url: http://gpu-box:11434\n"
    )
    assert settings.api.api_keys == {ApiType.OPENAI: "sk-nested", ApiType.CLAUDE: "sk-ant"}
    assert settings.api.base_urls == {ApiType.OLLAMA: "http://gpu-box:11434"}


def test_clone_is_independent(configured):
    configured.update_from_parameters({"ai-stop": ["END"], "openai-logit-bias": {"50256": -100}})
    clone = configured.clone()

    clone.chat.engine = "other"
    clone.chat.temperature = 0.0
    clone.chat.stop.append("MORE")
    clone.api.api_keys[ApiType.CLAUDE] = "sk-clone"
    clone.api.base_urls[ApiType.OPENAI] = "http://clone"
    clone.client.timeout_seconds = 1
    clone.openai.logit_bias["1"] = 5
    clone.openai.n = 3
    clone.claude.top_k = 9
    clone.ollama.seed = 1

    assert configured.chat.engine == "gpt-4o-mini"
    assert configured.chat.temperature == 0.7
    assert configured.chat.stop == ["END"]
    assert ApiType.CLAUDE not in configured.api.api_keys
    assert ApiType.OPENAI not in configured.api.base_urls
    assert configured.client.timeout_seconds == 30
    assert configured.openai.logit_bias == {"50256": -100}
    assert configured.openai.n == 1
    assert configured.claude.top_k == 5
    assert configured.ollama.seed == 42


@pytest.mark.parametrize("block", [
    APISettings(api_keys={ApiType.OPENAI: "k"}),
    ChatSettings(engine="e", stop=["x"]),
    ClientSettings(timeout_seconds=3, user_agent="ua"),
    OpenAISettings(n=2, logit_bias={"1": 1}),
    ClaudeSettings(top_k=3, user_id="u"),
    OllamaSettings(seed=3, stop="x"),
])
def test_block_clone_equals_source(block):
    clone = block.clone()
    assert clone.model_dump() == block.model_dump()
    assert clone is not block


def test_metadata_top_p_suppression():
    settings = StepSettings.new()
    settings.update_from_parameters({"ai-top-p": 1})
    assert "ai-top-p" not in settings.get_metadata()
    settings.update_from_parameters({"ai-top-p": 0.5})
    assert settings.get_metadata()["ai-top-p"] == 0.5


def test_metadata_claude_top_k_suppression():
    settings = StepSettings.new()
    settings.update_from_parameters({"claude-top-k": 1})
    assert "claude-top-k" not in settings.get_metadata()
    settings.update_from_parameters({"claude-top-k": 5})
    assert settings.get_metadata()["claude-top-k"] == 5


def test_metadata_provider_default_thresholds():
    settings = StepSettings.new()
    settings.update_from_parameters({
        "openai-n": 1,
        "openai-presence-penalty": 0,
        "openai-frequency-penalty": 0,
        "ollama-temperature": 0,
        "ollama-seed": 0,
        "ollama-top-k": 40,
        "ollama-top-p": 0.9,
    })
    metadata = settings.get_metadata()
    for name in ("openai-n", "openai-presence-penalty", "openai-frequency-penalty",
                 "ollama-temperature", "ollama-seed", "ollama-top-k", "ollama-top-p"):
        assert name not in metadata

    settings.update_from_parameters({"openai-n": 2, "openai-frequency-penalty": 0.3, "ollama-top-k": 20, "ollama-top-p": 0.5})
    metadata = settings.get_metadata()
    assert metadata["openai-n"] == 2
    assert metadata["openai-frequency-penalty"] == 0.3
    assert metadata["ollama-top-k"] == 20
    assert metadata["ollama-top-p"] == 0.5


def test_metadata_common_fields(configured):
    configured.update_from_parameters({"ai-api-type": "ollama"})
    metadata = configured.get_metadata()
    assert metadata["ai-engine"] == "gpt-4o-mini"
    assert metadata["ai-api-type"] == "ollama"
    assert metadata["ai-base-url"] == "http://ollama.local:11434"
    assert metadata["ai-max-response-tokens"] == 512
    assert metadata["ai-temperature"] == 0.7
    assert metadata["ai-stream"] is True
    assert metadata["ai-timeout"] == 30
    assert "timeout_second" not in metadata
    assert metadata["claude-top-k"] == 5
    assert metadata["ollama-seed"] == 42
    assert "ai-stop" not in metadata


def test_to_dict_masks_api_keys(configured):
    data = configured.to_dict()["factories"]
    assert data["api"]["api_keys"]["openai"] == "sk-f...-key"
    assert data["chat"]["engine"] == "gpt-4o-mini"
