import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Mapping, Sequence

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.rule import Rule

from .commands import CommandDescription, ParameterDefinition, PromptCommand
from .conversation import ConversationManager
from .errors import AskStepsError, CancellationError, ConfigurationError, DeadlineExceededError
from .settings import SettingsMerger, StepSettings
from .steps import StepContext
from .utils.config import AppConfig
from .utils.console import create_writer
from .utils.logging import get_console, setup_logging

logger = logging.getLogger(__name__)

# Prompt for ad-hoc questions; the question is a binding so it is never parsed as a template
ASK_DESCRIPTION = CommandDescription(
    name="ask",
    short="Ask a question",
    arguments=[ParameterDefinition(name="question", required=True)],
    prompt="{{.question}}",
)


def add_common_args(parser: argparse.ArgumentParser, config: AppConfig) -> None:
    """Add the flags shared by every mode."""
    parser.add_argument("--settings", default=None, help=f"YAML step settings file (Default: {config.SETTINGS_PATH})")
    parser.add_argument("--api-type", choices=["openai", "claude", "ollama"], default=None, help="Provider to use")
    parser.add_argument("-e", "--engine", default=None, help="Model name, e.g. gpt-4o-mini")
    parser.add_argument("-t", "--temperature", type=float, default=None, help="Sampling temperature")
    parser.add_argument("--top-p", type=float, default=None, help="Nucleus sampling top-p")
    parser.add_argument("--max-response-tokens", type=int, default=None, help="Maximum tokens to generate")
    parser.add_argument("--stop", action="append", default=None, help="Stop sequence (repeatable)")
    parser.add_argument("--no-stream", action="store_true", default=False, help="Disable streaming output")
    parser.add_argument("--timeout", type=float, default=None, help="Cancel the run after this many seconds")
    parser.add_argument("--plain", action="store_true", help="Use plain text output")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging output.")
    parser.add_argument("--print-prompt", action="store_true", help="Print the rendered conversation and exit")
    parser.add_argument("--print-metadata", action="store_true", help="Print the effective step settings after the response")
    parser.add_argument("--save-conversation", metavar="PATH", default=None, help="Save the conversation as JSON")
    parser.add_argument("--set", dest="set_values", action="append", default=[], metavar="NAME=VALUE", help="Set any step parameter, e.g. --set claude-top-k=5")


def build_parser(config: AppConfig, description: CommandDescription | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ask-steps", description="Run LLM prompt commands from the command line")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a command description (YAML file or name in the commands directory)",
        description=description.long or description.short if description else None,
    )
    run_parser.add_argument("command", help=f"Command YAML file, or a command name in {config.COMMANDS_DIR}")
    add_common_args(run_parser, config)
    if description is not None:
        description.add_to_parser(run_parser)

    ask_parser = subparsers.add_parser("ask", help="Ask an ad-hoc question")
    ask_parser.add_argument("question", nargs="+", help="Your question for the LLM model")
    ask_parser.add_argument("-s", "--system", default="", help="System prompt")
    add_common_args(ask_parser, config)
    return parser


def parse_arguments(argv: Sequence[str], config: AppConfig) -> tuple[argparse.Namespace, CommandDescription]:
    """Parse ``argv``; in run mode the command's own flags are added before the final parse."""
    description = None
    if "run" in argv:
        # Preliminary parse only locates the command file
        prelim_argv = [a for a in argv if a not in ("-h", "--help")]
        prelim_args, _ = build_parser(config).parse_known_args(prelim_argv)
        if prelim_args.mode == "run":
            description = CommandDescription.from_file(config.resolve_command_path(prelim_args.command))

    args = build_parser(config, description).parse_args(argv)
    if args.mode == "ask":
        description = ASK_DESCRIPTION.model_copy(update={"system_prompt": args.system})
        args.cmd_question = " ".join(args.question)
    return args, description


def parse_set_values(values: Sequence[str]) -> dict[str, Any]:
    """Parse ``NAME=VALUE`` pairs; values are read as YAML scalars."""
    params = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise ConfigurationError(f"Invalid --set value '{item}', expected NAME=VALUE")
        try:
            params[name.strip()] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid value for {name}: {e}") from e
    return params


def common_parameters(args: argparse.Namespace, config: AppConfig) -> dict[str, Any]:
    """Flat step parameters from the common flags; ``None`` means not given."""
    params = {
        "ai-api-type": args.api_type,
        "ai-engine": args.engine,
        "ai-temperature": args.temperature,
        "ai-top-p": args.top_p,
        "ai-max-response-tokens": args.max_response_tokens,
        "ai-stop": args.stop,
        "ai-stream": False if (args.no_stream or config.NO_STREAM) else None,
    }
    params.update(parse_set_values(args.set_values))
    return params


def build_settings(
    args: argparse.Namespace,
    config: AppConfig,
    description: CommandDescription,
    parameters: Mapping[str, Any],
    env: Mapping[str, str],
) -> StepSettings:
    """Merge defaults, the settings file, the command's factories block, the environment and the parameters."""
    merger = SettingsMerger()
    if args.settings:
        merger.with_file(args.settings, required=True)
    else:
        merger.with_file(config.settings_path)
    if description.factories:
        merger.with_mapping(description.factories, name=f"command {description.name}")
    merger.with_environment(env).with_parameters(parameters)
    return merger.merge()


def print_prompt(manager: ConversationManager, console: Console, plain: bool) -> None:
    for message in manager:
        if plain:
            print(f"{message.role.value}: {message.content}")
        else:
            console.print(Rule(message.role.value, style="dim"))
            console.print(Markdown(message.content))


async def run_command(
    command: PromptCommand,
    bindings: Mapping[str, Any],
    plain: bool,
    timeout: float | None = None,
    save_conversation: str | None = None,
    console: Console | None = None,
) -> ConversationManager:
    ctx = StepContext.background()
    if timeout:
        ctx = ctx.with_timeout(timeout)
    with create_writer(plain, console) as writer:
        return await command.run(ctx, bindings, writer=writer, save_conversation=save_conversation)


def run_app(argv: Sequence[str] | None = None, config: AppConfig | None = None, env: Mapping[str, str] | None = None) -> int:
    """Run the command line and return the exit status."""
    argv = list(sys.argv[1:] if argv is None else argv)
    env = os.environ if env is None else env
    err_console = get_console()
    console = Console()

    try:
        config = config if config is not None else AppConfig()
    except ValidationError as e:
        err_console.print(f"[bold red]Error initializing configuration:[/bold red] {e}")
        return 1

    try:
        args, description = parse_arguments(argv, config)
    except ConfigurationError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    setup_logging(verbose=args.verbose or config.VERBOSE, debug=args.debug)
    plain = args.plain or config.PLAIN_OUTPUT
    timeout = args.timeout if args.timeout is not None else config.TIMEOUT

    try:
        bindings = description.collect_parameters(args)
        parameters = {**bindings, **common_parameters(args, config)}
        settings = build_settings(args, config, description, parameters, env)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Effective settings: {json.dumps(settings.to_dict())}")
        command = PromptCommand(description, settings)

        if args.print_prompt:
            print_prompt(command.render(bindings), console, plain)
            return 0

        asyncio.run(run_command(command, bindings, plain, timeout, args.save_conversation, console))

        if args.print_metadata:
            console.print_json(json.dumps(settings.get_metadata()))
        return 0
    except DeadlineExceededError:
        err_console.print(f"[bold red]Timed out[/bold red] after {timeout}s")
        return 1
    except CancellationError as e:
        err_console.print(f"[bold yellow]Cancelled:[/bold yellow] {e}")
        return 1
    except AskStepsError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    except KeyboardInterrupt:
        err_console.print("\n[bold yellow]Interrupted![/bold yellow]")
        return 130
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


def main() -> None:
    sys.exit(run_app())
