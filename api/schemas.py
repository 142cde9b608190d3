"""Pydantic schemas for visibility records, journey content and API payloads."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import EntityType

VISIBILITY_CHANGE_ACTION = "visibility_change"


# =============================================================================
# Visibility records
# =============================================================================


class VisibilitySettingData(BaseModel):
    """A stored visibility record, parsed strictly at the repository boundary."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(min_length=1)
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    is_public: bool
    parent_journey_slug: str | None = None
    parent_milestone_id: str | None = None
    content_public: bool | None = None
    updated_by: str = Field(min_length=1)
    created_at: datetime
    updated_at: datetime

    @property
    def has_required_parents(self) -> bool:
        """False for orphaned milestone/objective records."""
        if self.entity_type == EntityType.MILESTONE:
            return bool(self.parent_journey_slug)
        if self.entity_type == EntityType.OBJECTIVE:
            return bool(self.parent_journey_slug and self.parent_milestone_id)
        return True


class VisibilitySettingCreate(BaseModel):
    """Write payload for the visibility store (no id or timestamps)."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    entity_id: str = Field(min_length=1, max_length=255)
    is_public: bool = False
    parent_journey_slug: str | None = Field(default=None, max_length=255)
    parent_milestone_id: str | None = Field(default=None, max_length=255)
    content_public: bool | None = None
    updated_by: str = Field(min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_parent_references(self) -> "VisibilitySettingCreate":
        if self.entity_type == EntityType.JOURNEY:
            if self.parent_journey_slug or self.parent_milestone_id:
                raise ValueError("Journey visibility cannot reference a parent")
        elif self.entity_type == EntityType.MILESTONE:
            if not self.parent_journey_slug:
                raise ValueError("Milestone visibility requires parent_journey_slug")
        elif not (self.parent_journey_slug and self.parent_milestone_id):
            raise ValueError(
                "Objective visibility requires parent_journey_slug "
                "and parent_milestone_id"
            )
        return self


class VisibilityUpdate(BaseModel):
    """One entry of a batch visibility change."""

    entity_id: str = Field(min_length=1, max_length=255)
    is_public: bool
    parent_journey_slug: str | None = Field(default=None, max_length=255)
    parent_milestone_id: str | None = Field(default=None, max_length=255)
    # Objectives only; None keeps the stored value
    content_public: bool | None = None


class VisibilityUpdateRequest(VisibilityUpdate):
    """Request to change the visibility of a single entity."""

    entity_type: EntityType


class VisibilityBatchRequest(BaseModel):
    """Request to change the visibility of many entities of one type."""

    entity_type: EntityType
    updates: list[VisibilityUpdate] = Field(max_length=500)


class VisibilityBatchResponse(BaseModel):
    settings: list[VisibilitySettingData]
    updated_count: int


# =============================================================================
# Audit log
# =============================================================================


class AuditLogEntry(BaseModel):
    """Generic admin audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    admin_user_id: str
    target_user_id: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class VisibilityChangeDetails(BaseModel):
    entity_type: EntityType
    entity_id: str
    old_value: bool | None
    new_value: bool
    parent_journey_slug: str | None = None
    parent_milestone_id: str | None = None


class VisibilityChangeLogEntry(BaseModel):
    """Audit entry for one visibility change."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: Literal["visibility_change"]
    admin_user_id: str
    created_at: datetime
    details: VisibilityChangeDetails


class AuditLogQuery(BaseModel):
    """Filters for reading audit entries, newest first."""

    admin_user_id: str | None = None
    action: str | None = None
    target_user_id: str | None = None
    entity_type: EntityType | None = None
    entity_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(default=50, ge=1, le=200)
    skip: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_date_range(self) -> "AuditLogQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


# =============================================================================
# Journey content (read model)
# =============================================================================


class NodePosition(BaseModel):
    x: float = 0
    y: float = 0


class LearningObjective(BaseModel):
    """A learning objective; content files store either a string or an object."""

    title: str
    lesson_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def from_plain_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"title": data}
        return data


class JourneyNode(BaseModel):
    """A milestone node in a journey graph."""

    id: str = Field(min_length=1)
    title: str
    description: str | None = None
    type: str = "milestone"
    position: NodePosition = Field(default_factory=NodePosition)
    learning_objectives: list[LearningObjective] = Field(default_factory=list)
    estimated_minutes: int = 0
    difficulty: str | None = None


class JourneyEdge(BaseModel):
    id: str
    source: str
    target: str


class Journey(BaseModel):
    """A learning journey as loaded from the content directory."""

    slug: str = Field(min_length=1)
    title: str
    description: str = ""
    category: str = ""
    difficulty: str = ""
    estimated_hours: float = 0
    is_active: bool = True
    nodes: list[JourneyNode] = Field(default_factory=list)
    edges: list[JourneyEdge] = Field(default_factory=list)

    @property
    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes}


# =============================================================================
# Public projections
# =============================================================================


class PublicLearningObjective(BaseModel):
    title: str
    lesson_id: str | None = None
    content_public: bool = False


class PublicJourneyNode(BaseModel):
    id: str
    title: str
    description: str | None = None
    type: str
    position: NodePosition
    learning_objectives: list[PublicLearningObjective]
    estimated_minutes: int
    difficulty: str | None = None


class PublicJourney(BaseModel):
    """Journey projected down to its public subtree."""

    slug: str
    title: str
    description: str
    category: str
    difficulty: str
    estimated_hours: float
    nodes: list[PublicJourneyNode]
    edges: list[JourneyEdge]


# =============================================================================
# Admin read models
# =============================================================================


class JourneyVisibilityInfo(BaseModel):
    slug: str
    title: str
    is_public: bool
    milestone_count: int
    public_milestone_count: int


class VisibilityStats(BaseModel):
    total_journeys: int
    public_journeys: int
    total_milestones: int
    public_milestones: int
    total_objectives: int
    public_objectives: int


class VisibilityOverview(BaseModel):
    journeys: list[JourneyVisibilityInfo]
    stats: VisibilityStats


class ObjectiveVisibilityInfo(BaseModel):
    index: int
    objective_id: str
    title: str
    is_public: bool
    effectively_public: bool
    content_public: bool
    effectively_content_public: bool


class MilestoneVisibilityInfo(BaseModel):
    node_id: str
    title: str
    is_public: bool
    effectively_public: bool
    objectives: list[ObjectiveVisibilityInfo]


class JourneyVisibilityDetails(BaseModel):
    journey: JourneyVisibilityInfo
    milestones: list[MilestoneVisibilityInfo]


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class ReadyResponse(HealthResponse):
    """Readiness response with the number of active journeys loaded."""

    journeys: int
