"""Prompt commands described in YAML.

A command description looks like::

    name: summarize
    short: Summarize a text
    flags:
      - name: style
        type: choice
        choices: [bullets, prose]
        default: bullets
    arguments:
      - name: text
        type: string
        required: true
    system-prompt: You are a concise assistant.
    messages:
      - role: user
        text: "Earlier question about {{.style}}"
    prompt: |
      Summarize as {{.style}}: {{.text}}
    factories:
      chat:
        engine: gpt-4o-mini

Flags and arguments become ``argparse`` options; their values are the
template bindings and are also passed on as step parameters.
"""

import argparse
import logging
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Any, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .conversation import ConversationManager
from .errors import ConfigurationError
from .models.message import Message, Role
from .providers import create_step_factory
from .runner import StepFactoryRunnable, StepRunner, create_manager
from .settings import StepSettings
from .steps import StepContext

logger = logging.getLogger(__name__)


class ParameterType(str, Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING_LIST = "stringList"
    CHOICE = "choice"


_CONVERTERS = {
    ParameterType.STRING: str,
    ParameterType.INT: int,
    ParameterType.FLOAT: float,
    ParameterType.STRING_LIST: str,
    ParameterType.CHOICE: str,
}


class ParameterDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    type: ParameterType = ParameterType.STRING
    help: str = ""
    default: Any = None
    required: bool = False
    choices: Optional[List[str]] = None
    short_flag: Optional[str] = Field(default=None, alias="shortFlag")

    @property
    def dest(self) -> str:
        # Prefixed so command parameters never collide with the common flags
        return "cmd_" + self.name.replace("-", "_")

    def add_flag(self, parser: argparse.ArgumentParser) -> None:
        names = [f"--{self.name}"]
        if self.short_flag:
            names.insert(0, f"-{self.short_flag}")
        kwargs: dict[str, Any] = {"dest": self.dest, "help": self.help or None, "default": self.default}
        if self.type == ParameterType.BOOL:
            kwargs["action"] = argparse.BooleanOptionalAction
            kwargs["default"] = bool(self.default)
        else:
            kwargs["type"] = _CONVERTERS[self.type]
            kwargs["required"] = self.required
            if self.type == ParameterType.STRING_LIST:
                kwargs["nargs"] = "+"
            if self.type == ParameterType.CHOICE:
                kwargs["choices"] = self.choices
        parser.add_argument(*names, **kwargs)

    def add_argument(self, parser: argparse.ArgumentParser) -> None:
        kwargs: dict[str, Any] = {"metavar": self.name, "help": self.help or None}
        if self.type == ParameterType.BOOL:
            raise ConfigurationError(f"Argument '{self.name}' cannot be a bool, use a flag")
        kwargs["type"] = _CONVERTERS[self.type]
        if self.type == ParameterType.CHOICE:
            kwargs["choices"] = self.choices
        if self.type == ParameterType.STRING_LIST:
            kwargs["nargs"] = "+" if self.required else "*"
        elif not self.required:
            kwargs["nargs"] = "?"
        if not self.required:
            kwargs["default"] = self.default
        parser.add_argument(self.dest, **kwargs)


class MessageDescription(BaseModel):
    role: Role
    text: str
    time: Optional[float] = None

    @field_validator("time", mode="before")
    @classmethod
    def _to_timestamp(cls, value: Any) -> Any:
        # YAML loads unquoted ISO timestamps as datetime objects
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.timestamp()
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp()
        return value

    def to_message(self) -> Message:
        return Message(self.role, self.text, self.time)


class CommandDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    short: str = ""
    long: str = ""
    flags: List[ParameterDefinition] = Field(default_factory=list)
    arguments: List[ParameterDefinition] = Field(default_factory=list)
    system_prompt: str = Field(default="", alias="system-prompt")
    messages: List[MessageDescription] = Field(default_factory=list)
    prompt: str = ""
    factories: Optional[dict[str, Any]] = None

    @classmethod
    def from_yaml(cls, source: str | IO[str]) -> "CommandDescription":
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing command YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError("Command description must be a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid command description: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> "CommandDescription":
        path = Path(path).expanduser()
        try:
            with open(path, "r", encoding="utf-8") as f:
                return cls.from_yaml(f)
        except OSError as e:
            raise ConfigurationError(f"Error reading command file {path}: {e}") from e

    def parameters(self) -> List[ParameterDefinition]:
        return [*self.flags, *self.arguments]

    def add_to_parser(self, parser: argparse.ArgumentParser) -> None:
        for flag in self.flags:
            flag.add_flag(parser)
        for argument in self.arguments:
            argument.add_argument(parser)

    def collect_parameters(self, args: argparse.Namespace | Mapping[str, Any]) -> dict[str, Any]:
        """Values of the command's own flags and arguments, keyed by parameter name."""
        values = vars(args) if isinstance(args, argparse.Namespace) else args
        return {p.name: values.get(p.dest, p.default) for p in self.parameters()}

    def to_messages(self) -> List[Message]:
        return [m.to_message() for m in self.messages]


class PromptCommand:
    """Runs a ``CommandDescription`` against already merged step settings."""

    def __init__(self, description: CommandDescription, settings: StepSettings):
        self.description = description
        self.settings = settings

    def render(self, bindings: Mapping[str, Any]) -> ConversationManager:
        """Render the conversation without running it, for --print-prompt."""
        return create_manager(
            self.description.system_prompt,
            self.description.prompt,
            self.description.to_messages(),
            bindings,
        )

    def create_runner(self, writer: IO | None = None) -> StepRunner:
        factory = create_step_factory(self.settings)
        return StepRunner(StepFactoryRunnable(factory), writer=writer)

    async def run(
        self,
        ctx: StepContext,
        parameters: Mapping[str, Any],
        writer: IO | None = None,
        save_conversation: str | Path | None = None,
    ) -> ConversationManager:
        """Render the conversation, stream the response into ``writer`` and return the conversation.

        The assistant response is appended to the returned manager. With
        ``save_conversation`` the conversation is written as JSON afterwards.
        """
        runner = self.create_runner(writer)
        manager = runner.render(
            self.description.system_prompt,
            self.description.prompt,
            self.description.to_messages(),
            parameters,
        )
        await runner.run(ctx, manager, append_to_manager=True)
        logger.info(f"Command '{self.description.name}' finished in {runner.elapsed:.2f}s")
        if save_conversation:
            manager.save(save_conversation)
        return manager
