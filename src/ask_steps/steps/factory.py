from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, TypeVar

from ..settings import StepSettings
from .base import Step

I = TypeVar("I")
O = TypeVar("O")


class StepFactory(ABC, Generic[I, O]):
    """Builds configured steps from a private copy of the step settings.

    Callers must not mutate the factory's settings while it is building
    steps. Every step receives its own clone, so later updates never reach
    steps that already exist.
    """

    def __init__(self, settings: StepSettings):
        self.settings = settings.clone()

    def update_from_parameters(self, params: Mapping[str, Any]) -> None:
        """Overlay flat ``name -> value`` overrides onto the held settings.

        Unknown names are ignored, badly typed values raise
        ``ConfigurationError``.
        """
        self.settings.update_from_parameters(params)

    @abstractmethod
    def new_step(self) -> Step[I, O]:
        """Return a new, unstarted step bound to a snapshot of the settings."""
