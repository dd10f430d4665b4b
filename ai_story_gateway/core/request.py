"""
Generation request model.

Mirrors the JSON body accepted by the gateway. Field names are snake_case
in Python and camelCase on the wire.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StoryLevel(str, Enum):
    """Granularity of the work item being generated."""
    EPIC = "epic"
    FEATURE = "feature"
    STORY = "story"
    TASK = "task"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra='ignore'
    )


class ParentContext(_WireModel):
    """Fields of the parent work item injected into a child's prompt."""
    level: StoryLevel
    title: str
    description: Optional[str] = None
    business_objective: Optional[str] = None
    user_value: Optional[str] = None


class AdditionalFields(_WireModel):
    """Optional hints supplied alongside the free-text input."""
    user_role: Optional[str] = None
    goal: Optional[str] = None
    context: Optional[str] = None


class GenerationRequest(_WireModel):
    """A caller's request to generate one work item."""
    story_level: StoryLevel
    user_input: str = ""
    parent_context: Optional[ParentContext] = None
    additional_fields: Optional[AdditionalFields] = None
    parent_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        """Return the camelCase JSON form, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
