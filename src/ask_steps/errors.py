"""Exception hierarchy shared by settings, rendering, steps and the runner."""


class AskStepsError(RuntimeError):
    """Base error for ask-steps."""


class ConfigurationError(AskStepsError):
    """Missing or invalid settings, detected before any provider call."""


class RenderError(AskStepsError):
    """A template could not be parsed or executed."""

    def __init__(self, message: str, template_name: str | None = None) -> None:
        super().__init__(message)
        self.template_name = template_name


class StepError(AskStepsError):
    """A step failed or was used outside of its lifecycle."""


class CancellationError(AskStepsError):
    """The run was stopped by its context, not by the provider."""


class DeadlineExceededError(CancellationError):
    """The context deadline passed before the step finished."""
