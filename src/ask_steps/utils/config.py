import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_default_config_dir() -> Path:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(xdg_config_home) / "ask-steps"


DEFAULT_CONFIG_DIR = get_default_config_dir()
DOTENV_PATH = DEFAULT_CONFIG_DIR / ".env"


class AppConfig(BaseSettings):
    """Application level options, read from ``ASK_STEPS_*`` variables or the ``.env`` file."""

    SETTINGS_PATH: str = Field(default=str(DEFAULT_CONFIG_DIR / "settings.yaml"), description="YAML file with the 'factories' step settings")
    COMMANDS_DIR: str = Field(default=str(DEFAULT_CONFIG_DIR / "commands"), description="Directory searched for command descriptions given by name")
    VERBOSE: bool = Field(default=False, description="Verbose mode for debugging")
    PLAIN_OUTPUT: bool = Field(default=False, description="Use plain text output without Rich formatting")
    NO_STREAM: bool = Field(default=False, description="Disable streaming output")
    TIMEOUT: Optional[float] = Field(default=None, gt=0, description="Seconds before a run is cancelled")

    model_config = SettingsConfigDict(
        env_prefix="ASK_STEPS_",
        env_file=DOTENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def settings_path(self) -> Path:
        return Path(self.SETTINGS_PATH).expanduser()

    @property
    def commands_dir(self) -> Path:
        return Path(self.COMMANDS_DIR).expanduser()

    def resolve_command_path(self, name: str) -> Path:
        """Resolve a command given as a path or as a name inside ``COMMANDS_DIR``."""
        path = Path(name).expanduser()
        if path.is_file():
            return path
        for candidate in (self.commands_dir / name, self.commands_dir / f"{name}.yaml", self.commands_dir / f"{name}.yml"):
            if candidate.is_file():
                return candidate
        return path
