from .base import Step, StepOutput, StepState
from .context import StepContext
from .factory import StepFactory
from .group import StepGroup
from .result import ResultKind, StepResult

__all__ = [
    "ResultKind",
    "Step",
    "StepContext",
    "StepFactory",
    "StepGroup",
    "StepOutput",
    "StepResult",
    "StepState",
]
