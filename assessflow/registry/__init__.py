"""Step type registry: config shapes and response normalization."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ValidationError

from ..constants import RESPONSE_VALUE_KEY, StepType
from ..utils.numbers import coerce_numeric_string
from .models import (
    CheckoutConfig,
    ConsentConfig,
    InformationConfig,
    ProviderReviewConfig,
    QuestionConfig,
    QuestionOption,
    QuestionValidation,
    StepTypeDefinition,
)

logger = logging.getLogger(__name__)


def _wrap(value: Any) -> Dict[str, Any]:
    return {RESPONSE_VALUE_KEY: value}


def normalize_question(raw: Any, config: Optional[BaseModel]) -> Dict[str, Any]:
    """Coerce numeric answers for number questions and wrap under ``value``."""
    kind = config.question_type if isinstance(config, QuestionConfig) else None
    if kind == "number":
        return _wrap(coerce_numeric_string(raw))
    if kind == "multi_select":
        if raw is None:
            return _wrap([])
        if not isinstance(raw, list):
            return _wrap([raw])
    return _wrap(raw)


def normalize_acknowledgement(raw: Any, config: Optional[BaseModel]) -> Dict[str, Any]:
    return {"acknowledged": True}


def normalize_value(raw: Any, config: Optional[BaseModel]) -> Dict[str, Any]:
    return _wrap(raw)


class StepTypeRegistry:
    """Maps step type names to their :class:`StepTypeDefinition`."""

    def __init__(self) -> None:
        self._definitions: Dict[str, StepTypeDefinition] = {}

    def register(self, definition: StepTypeDefinition) -> None:
        """Add or replace the definition for ``definition.name``."""
        if definition.name in self._definitions:
            logger.info(f"Replacing step type definition {definition.name}")
        self._definitions[definition.name] = definition

    def get(self, step_type: str) -> Optional[StepTypeDefinition]:
        return self._definitions.get(_type_name(step_type))

    def is_known(self, step_type: str) -> bool:
        return _type_name(step_type) in self._definitions

    def is_terminal(self, step_type: str) -> bool:
        definition = self.get(step_type)
        return bool(definition and definition.terminal)

    def names(self) -> List[str]:
        return list(self._definitions)

    def parse_config(self, step_type: str, config: Mapping[str, Any]) -> Optional[BaseModel]:
        """Validate ``config`` against the type's model.

        Returns ``None`` for unknown types or types without a config model.
        Raises :class:`pydantic.ValidationError` on a shape mismatch.
        """
        definition = self.get(step_type)
        if definition is None or definition.config_model is None:
            return None
        return definition.config_model.model_validate(dict(config or {}))

    def normalize(
        self, step_type: str, raw: Any, config: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Return the storable form of ``raw`` for a step of ``step_type``.

        Unknown types pass ``raw`` through unchanged. A config that fails its
        shape model is ignored, and a failing normalizer stores ``raw``.
        """
        definition = self.get(step_type)
        if definition is None or definition.normalizer is None:
            return raw
        parsed: Optional[BaseModel] = None
        if config is not None:
            try:
                parsed = self.parse_config(step_type, config)
            except ValidationError:
                logger.warning(
                    f"Ignoring invalid {definition.name} config while normalizing a response"
                )
        try:
            return definition.normalizer(raw, parsed)
        except Exception:
            logger.exception(f"{definition.name} normalizer failed; storing raw response")
            return raw


def _type_name(step_type: Any) -> str:
    return step_type.value if isinstance(step_type, StepType) else str(step_type)


def default_registry() -> StepTypeRegistry:
    """Build a registry holding the built-in step types."""
    registry = StepTypeRegistry()
    registry.register(
        StepTypeDefinition(
            name=StepType.INFORMATION.value,
            config_model=InformationConfig,
            normalizer=normalize_acknowledgement,
            description="Static content the subject acknowledges",
        )
    )
    registry.register(
        StepTypeDefinition(
            name=StepType.QUESTION.value,
            config_model=QuestionConfig,
            normalizer=normalize_question,
        )
    )
    registry.register(
        StepTypeDefinition(
            name=StepType.CONSENT.value,
            config_model=ConsentConfig,
            normalizer=normalize_acknowledgement,
        )
    )
    registry.register(
        StepTypeDefinition(
            name=StepType.CHECKOUT.value,
            config_model=CheckoutConfig,
            normalizer=normalize_value,
        )
    )
    registry.register(
        StepTypeDefinition(
            name=StepType.PROVIDER_REVIEW.value,
            config_model=ProviderReviewConfig,
            normalizer=normalize_value,
            terminal=True,
        )
    )
    return registry


REGISTRY = default_registry()


def register_step_type(definition: StepTypeDefinition) -> None:
    """Add ``definition`` to the process-wide :data:`REGISTRY`."""
    REGISTRY.register(definition)


__all__ = [
    "CheckoutConfig",
    "ConsentConfig",
    "InformationConfig",
    "ProviderReviewConfig",
    "QuestionConfig",
    "QuestionOption",
    "QuestionValidation",
    "StepTypeDefinition",
    "StepTypeRegistry",
    "REGISTRY",
    "default_registry",
    "register_step_type",
]
