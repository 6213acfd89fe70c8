"""Agent configuration models: field schemas and intent definitions.

These arrive from the agent configuration store as camelCase JSON
(``fieldName``, ``dataType``, ``matchingType`` ...). Models accept either
that wire form or the snake_case attribute names.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting camelCase keys as well as attribute names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldDataType(str, Enum):
    TEXT = "text"
    PHONE = "phone"
    EMAIL = "email"
    NUMBER = "number"
    CHOICE = "choice"
    DATE = "date"
    BOOLEAN = "boolean"


class MatchingType(str, Enum):
    SEMANTIC = "semantic"
    REGEX = "regex"
    KEYWORD = "keyword"


class FieldSchema(CamelModel):
    """A named, typed piece of information the agent collects from the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    field_name: str
    data_type: FieldDataType = FieldDataType.TEXT
    required: bool = False
    display_order: int = 0
    label: Optional[str] = None
    prompt_text: Optional[str] = None
    default_value: Any = None
    nlp_extraction_hints: list[str] = Field(default_factory=list)
    choice_options: list[str] = Field(default_factory=list)

    @field_validator("field_name")
    @classmethod
    def _field_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("fieldName must not be blank")
        return value


class IntentDefinition(CamelModel):
    """A configured caller intent and the routing action it triggers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: Optional[str] = None
    name: str
    matching_type: MatchingType = MatchingType.SEMANTIC
    sample_utterances: list[str] = Field(default_factory=list)
    regex_pattern: Optional[str] = None
    routing_action: str = "continue-flow"
    enabled: bool = True
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    description: Optional[str] = None


class AgentConfig(CamelModel):
    """Everything the conversation core needs to know about one voice agent."""

    agent_id: str
    name: str = ""
    locale: Optional[str] = None
    field_schemas: list[FieldSchema] = Field(default_factory=list)
    intent_definitions: list[IntentDefinition] = Field(default_factory=list)
    custom_routing_actions: list[str] = Field(default_factory=list)

    @field_validator("field_schemas")
    @classmethod
    def _unique_field_names(cls, schemas: list[FieldSchema]) -> list[FieldSchema]:
        seen: set[str] = set()
        for schema in schemas:
            if schema.field_name in seen:
                raise ValueError(f"Duplicate fieldName: {schema.field_name}")
            seen.add(schema.field_name)
        return schemas
