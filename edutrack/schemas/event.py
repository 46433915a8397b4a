# Pydantic schemas

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from enum import Enum
from typing import Any


class EventCategory(str, Enum):
    """Available event categories"""

    NAVIGATION = "NAVIGATION"
    INTERACTION = "INTERACTION"
    ASSESSMENT = "ASSESSMENT"
    LLM_INTERACTION = "LLM_INTERACTION"
    PROFICIENCY = "PROFICIENCY"
    SYSTEM = "SYSTEM"


class EventType(str, Enum):
    """Available event types, grouped by the category they usually belong to"""

    # Navigation
    PAGE_VIEW = "PAGE_VIEW"
    MODULE_START = "MODULE_START"
    MODULE_COMPLETE = "MODULE_COMPLETE"
    LESSON_START = "LESSON_START"
    LESSON_COMPLETE = "LESSON_COMPLETE"

    # Interaction
    RESOURCE_CLICK = "RESOURCE_CLICK"
    EXTERNAL_LINK_CLICK = "EXTERNAL_LINK_CLICK"
    VIDEO_PLAY = "VIDEO_PLAY"
    VIDEO_PAUSE = "VIDEO_PAUSE"
    VIDEO_COMPLETE = "VIDEO_COMPLETE"

    # Assessment
    PROMPT_SUBMISSION = "PROMPT_SUBMISSION"
    QUESTION_ANSWER = "QUESTION_ANSWER"
    QUIZ_START = "QUIZ_START"
    QUIZ_COMPLETE = "QUIZ_COMPLETE"

    # Proficiency
    SKILL_ASSESSMENT = "SKILL_ASSESSMENT"
    COURSE_COMPLETE = "COURSE_COMPLETE"

    # LLM interaction
    LLM_PROMPT = "LLM_PROMPT"
    LLM_RESPONSE = "LLM_RESPONSE"
    LLM_EVALUATION = "LLM_EVALUATION"


class CamelModel(BaseModel):
    """Snake_case attributes in Python, camelCase keys on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Viewport(CamelModel):
    width: int
    height: int


class ClientInfo(CamelModel):
    """Client context captured when an event is enriched"""

    user_agent: str | None = None
    language: str | None = None
    viewport: Viewport | None = None
    referrer: str | None = None


class TrackingEvent(CamelModel):
    """A single recorded action, as queued by the pipeline and sent to the collector.

    Subtype fields (courseId, prompt, skillId, ...) are not declared here and
    travel through as extra keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    event_category: EventCategory
    event_type: EventType
    timestamp: datetime
    user_id: str | None = None
    session_id: str | None = None
    client_info: ClientInfo | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready camelCase representation; unknown client fields are left out"""
        data = self.model_dump(mode="json", by_alias=True)
        if self.client_info is not None:
            data["clientInfo"] = self.client_info.model_dump(mode="json", by_alias=True, exclude_none=True)
        return data

    def extra_field(self, name: str) -> Any:
        return (self.model_extra or {}).get(name)


# Payloads handed to the pipeline: everything except id, timestamp and eventType

class EventPayload(CamelModel):
    """Base payload; extra keys are passed through untouched"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    event_category: EventCategory | None = None
    user_id: str | None = None
    session_id: str | None = None
    client_info: ClientInfo | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return {} if v is None else v


class CourseEventPayload(EventPayload):
    course_id: str
    module_id: str | None = None
    lesson_id: str | None = None
    course_version: str | None = None
    content_type: str | None = None


class EvaluationMetrics(CamelModel):
    relevance: float | None = None
    accuracy: float | None = None
    completeness: float | None = None


class LLMEventPayload(EventPayload):
    prompt: str
    response: str | None = None
    model: str | None = None
    course_id: str | None = None
    evaluation_metrics: EvaluationMetrics | None = None


class ProficiencyEventPayload(CourseEventPayload):
    skill_id: str
    proficiency_level: float
    assessment_results: dict[str, Any] | None = None


# Collector request / response schemas

class EventBatch(BaseModel):
    """Batch sent by the pipeline in a single POST"""

    events: list[TrackingEvent] = Field(..., min_length=1)


class BatchStoredResponse(BaseModel):
    """Response for a stored batch"""

    message: str
    success: bool
    stored: int


class RegisterAnonymousRequest(CamelModel):
    anonymous_id: str = Field(..., min_length=1)


class RegisterAnonymousResponse(BaseModel):
    message: str
    success: bool
    linked_events: int
