"""Run LLM chat steps with streaming results, layered settings and a conversation log."""

from .conversation import ConversationManager
from .errors import AskStepsError, CancellationError, ConfigurationError, DeadlineExceededError, RenderError, StepError
from .models import Message, Role
from .providers import create_step_factory
from .runner import StepFactoryRunnable, StepRunner, create_manager, run_into_writer, run_to_context_manager, run_to_string
from .settings import ApiType, SettingsMerger, StepSettings
from .steps import Step, StepContext, StepFactory, StepResult

__version__ = "0.1.0"

__all__ = [
    "ApiType",
    "AskStepsError",
    "CancellationError",
    "ConfigurationError",
    "ConversationManager",
    "DeadlineExceededError",
    "Message",
    "RenderError",
    "Role",
    "SettingsMerger",
    "Step",
    "StepContext",
    "StepError",
    "StepFactory",
    "StepFactoryRunnable",
    "StepResult",
    "StepRunner",
    "StepSettings",
    "create_manager",
    "create_step_factory",
    "run_into_writer",
    "run_to_context_manager",
    "run_to_string",
]
