import logging
from enum import Enum
from typing import Any, ClassVar, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class ApiType(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"
    OLLAMA = "ollama"


class ParameterSettings(BaseModel):
    """Settings block whose fields can be set by name or by parameter name.

    Field aliases are the flat parameter names used on the command line and
    in command descriptions (``ai-temperature``, ``claude-top-k``...).
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True, extra="ignore")

    slug: ClassVar[str] = ""

    @classmethod
    def parameter_names(cls) -> dict[str, str]:
        """Map parameter name -> field name."""
        return {field.alias: name for name, field in cls.model_fields.items() if field.alias}

    def update_from_parameters(self, params: Mapping[str, Any]) -> None:
        names = self.parameter_names()
        overrides = {alias: params[alias] for alias in names if params.get(alias) is not None}
        self._overlay(overrides)

    def update_from_mapping(self, data: Mapping[str, Any]) -> None:
        """Overlay a block read from a settings file (field or parameter names)."""
        self._overlay({k: v for k, v in data.items() if v is not None})

    def _overlay(self, values: Mapping[str, Any]) -> None:
        if not values:
            return
        try:
            validated = type(self).model_validate(dict(values))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {self.slug or type(self).__name__} settings: {e}") from e
        for name in validated.model_fields_set:
            value = getattr(validated, name)
            if value is not None:
                setattr(self, name, value)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Updated {self.slug} settings: {sorted(validated.model_fields_set)}")
