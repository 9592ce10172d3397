"""Pydantic models describing the configuration shape of each step type."""

from __future__ import annotations

from typing import Any, Callable, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class StepConfig(BaseModel):
    """Base for config shapes; keys are accepted in snake_case or camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionOption(StepConfig):
    """One selectable answer. Extra keys (``weight``, ``score``) are kept."""

    model_config = ConfigDict(extra="allow")

    value: Any
    label: Optional[str] = None


class QuestionValidation(StepConfig):
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    min_selections: Optional[int] = Field(default=None, ge=0)
    max_selections: Optional[int] = Field(default=None, ge=0)
    custom_message: Optional[str] = None


QuestionKind = Literal["number", "text", "single_select", "multi_select"]


class QuestionConfig(StepConfig):
    question_type: QuestionKind
    text: str
    options: List[QuestionOption] = Field(default_factory=list)
    validation: Optional[QuestionValidation] = None

    @model_validator(mode="after")
    def _options_for_selects(self) -> "QuestionConfig":
        if self.question_type in ("single_select", "multi_select") and not self.options:
            raise ValueError(f"{self.question_type} questions require options")
        return self


class InformationConfig(StepConfig):
    content: str = ""
    format: Literal["markdown", "text"] = "markdown"
    continue_button: Optional[str] = None


class ConsentConfig(StepConfig):
    text: str
    required: bool = True


class CheckoutProduct(StepConfig):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: int = Field(ge=0, description="Price in minor currency units")
    recurring: bool = False
    interval: Optional[str] = None


class CheckoutConfig(StepConfig):
    title: Optional[str] = None
    products: List[CheckoutProduct] = Field(default_factory=list)
    payment_required: bool = False
    allow_multiple: bool = False


class ProviderReviewConfig(StepConfig):
    priority: Literal["low", "medium", "high"] = "medium"
    message: Optional[str] = None
    auto_assign: bool = False
    estimated_review_time: Optional[str] = None
    required_actions: List[str] = Field(default_factory=list)


Normalizer = Callable[[Any, Optional[BaseModel]], Any]


class StepTypeDefinition(BaseModel):
    """Registry entry: config model, response normalizer and terminal flag."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    config_model: Optional[Type[BaseModel]] = None
    normalizer: Optional[Normalizer] = None
    terminal: bool = False
    description: Optional[str] = None
