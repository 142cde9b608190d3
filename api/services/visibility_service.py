"""Hierarchical visibility for journeys, milestones and objectives.

Effective visibility is the AND of an entity's own flag and every
ancestor's flag: journey -> milestone -> objective. A missing record, or a
milestone/objective record without its parent references, is private.

CACHING:
- Resolved lookups are memoized per request in a VisibilityCache the caller
  creates and passes in. Nothing is cached process-wide.
- Journey content is cached by services.content_service.

Writes validate parent existence against the journey content, audit the
change (best-effort, see services.audit_log_service) and then upsert.
"""

from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.telemetry import track_operation
from core.wide_event import set_wide_event_fields
from models import EntityType
from repositories.visibility_repository import VisibilityRepository
from schemas import (
    Journey,
    JourneyNode,
    JourneyVisibilityDetails,
    JourneyVisibilityInfo,
    MilestoneVisibilityInfo,
    ObjectiveVisibilityInfo,
    PublicJourney,
    PublicJourneyNode,
    PublicLearningObjective,
    VisibilityOverview,
    VisibilitySettingCreate,
    VisibilitySettingData,
    VisibilityStats,
    VisibilityUpdate,
)
from services.audit_log_service import log_visibility_change
from services.content_service import (
    find_journey_by_slug,
    find_journeys_by_slugs,
    get_all_journeys,
    objective_id,
)

logger = get_logger(__name__)

VisibilityCache = dict[tuple[EntityType, str], bool]
"""Per-request memo of resolved visibility, keyed by (entity_type, entity_id)."""


class VisibilityErrorCode(StrEnum):
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    INVALID_ENTITY_TYPE = "INVALID_ENTITY_TYPE"


class VisibilityError(Exception):
    """Base error for visibility operations."""

    def __init__(
        self,
        message: str,
        code: VisibilityErrorCode,
        entity_type: EntityType | None = None,
        entity_id: str | None = None,
    ):
        self.message = message
        self.code = code
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class ParentNotFoundError(VisibilityError):
    """The referenced parent journey or milestone does not exist."""

    def __init__(self, message: str, entity_type: EntityType, entity_id: str):
        super().__init__(
            message, VisibilityErrorCode.PARENT_NOT_FOUND, entity_type, entity_id
        )


class InvalidEntityTypeError(VisibilityError, ValueError):
    def __init__(self, value: str):
        super().__init__(
            f"Invalid entity type: {value!r}",
            VisibilityErrorCode.INVALID_ENTITY_TYPE,
        )


def parse_entity_type(value: str) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        raise InvalidEntityTypeError(value) from None


# =============================================================================
# Resolver
# =============================================================================


async def is_effectively_public(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: str,
    cache: VisibilityCache | None = None,
) -> bool:
    """True only if the entity and every ancestor are directly public.

    Args:
        db: Database session
        entity_type: Tier of the entity
        entity_id: Journey slug, milestone node id or objective id
        cache: Optional per-request memo; pass the same dict to share
            ancestor lookups across calls

    Returns:
        Effective visibility. Missing records and orphans resolve to False.
    """
    if cache is None:
        cache = {}

    key = (entity_type, entity_id)
    if key in cache:
        return cache[key]

    # Seed before walking ancestors so a self-referential chain ends private.
    cache[key] = False
    result = await _resolve(db, entity_type, entity_id, cache)
    cache[key] = result
    return result


async def _resolve(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: str,
    cache: VisibilityCache,
) -> bool:
    setting = await VisibilityRepository(db).get(entity_type, entity_id)
    if setting is None or not setting.is_public:
        return False

    if entity_type == EntityType.JOURNEY:
        return True

    if not setting.has_required_parents:
        logger.warning(
            "visibility.orphan_record",
            entity_type=entity_type.value,
            entity_id=entity_id,
        )
        return False

    if entity_type == EntityType.MILESTONE:
        assert setting.parent_journey_slug is not None
        return await is_effectively_public(
            db, EntityType.JOURNEY, setting.parent_journey_slug, cache
        )

    assert setting.parent_milestone_id is not None
    return await is_effectively_public(
        db, EntityType.MILESTONE, setting.parent_milestone_id, cache
    )


# =============================================================================
# Mutator
# =============================================================================


def validate_parent_exists(
    entity_type: EntityType,
    entity_id: str,
    parent_journey_slug: str | None,
    parent_milestone_id: str | None,
) -> None:
    """Raise ParentNotFoundError unless the parent chain exists in content.

    Journeys have no parent and always pass.
    """
    if entity_type == EntityType.JOURNEY:
        return

    if not parent_journey_slug:
        raise ParentNotFoundError(
            f"{entity_type.value.capitalize()} {entity_id!r} "
            "requires a parent journey",
            entity_type,
            entity_id,
        )

    journey = find_journey_by_slug(parent_journey_slug, include_inactive=True)
    if journey is None:
        raise ParentNotFoundError(
            f"Parent journey not found: {parent_journey_slug}",
            entity_type,
            entity_id,
        )

    if entity_type == EntityType.OBJECTIVE:
        if not parent_milestone_id:
            raise ParentNotFoundError(
                f"Objective {entity_id!r} requires a parent milestone",
                entity_type,
                entity_id,
            )
        if parent_milestone_id not in journey.node_ids:
            raise ParentNotFoundError(
                f"Parent milestone not found: {parent_milestone_id} "
                f"in journey {parent_journey_slug}",
                entity_type,
                entity_id,
            )


def _build_setting(
    admin_id: str,
    entity_type: EntityType,
    update: VisibilityUpdate,
    stored_content_public: bool | None,
) -> VisibilitySettingCreate:
    if entity_type == EntityType.JOURNEY:
        parent_journey_slug = None
        parent_milestone_id = None
    else:
        parent_journey_slug = update.parent_journey_slug
        parent_milestone_id = (
            update.parent_milestone_id if entity_type == EntityType.OBJECTIVE else None
        )

    content_public = None
    if entity_type == EntityType.OBJECTIVE:
        content_public = update.content_public
        if content_public is None:
            content_public = stored_content_public

    return VisibilitySettingCreate(
        entity_type=entity_type,
        entity_id=update.entity_id,
        is_public=update.is_public,
        parent_journey_slug=parent_journey_slug,
        parent_milestone_id=parent_milestone_id,
        content_public=content_public,
        updated_by=admin_id,
    )


@track_operation("visibility_update")
async def update_visibility(
    db: AsyncSession,
    admin_id: str,
    entity_type: EntityType,
    entity_id: str,
    is_public: bool,
    parent_journey_slug: str | None = None,
    parent_milestone_id: str | None = None,
    *,
    content_public: bool | None = None,
) -> VisibilitySettingData:
    """Set the direct visibility of one entity.

    Parents are validated before anything is read or written. The audit
    entry is written before the upsert; audit failures are swallowed,
    storage failures propagate.

    Raises:
        ParentNotFoundError: The parent journey or milestone does not exist.
    """
    validate_parent_exists(
        entity_type, entity_id, parent_journey_slug, parent_milestone_id
    )

    repo = VisibilityRepository(db)
    existing = await repo.get(entity_type, entity_id)
    old_value = existing.is_public if existing else None

    setting = _build_setting(
        admin_id,
        entity_type,
        VisibilityUpdate(
            entity_id=entity_id,
            is_public=is_public,
            parent_journey_slug=parent_journey_slug,
            parent_milestone_id=parent_milestone_id,
            content_public=content_public,
        ),
        existing.content_public if existing else None,
    )

    await log_visibility_change(
        db,
        admin_id,
        entity_type,
        entity_id,
        old_value,
        is_public,
        setting.parent_journey_slug,
        setting.parent_milestone_id,
    )
    result = await repo.set(setting)

    logger.info(
        "visibility.updated",
        entity_type=entity_type.value,
        entity_id=entity_id,
        old_value=old_value,
        new_value=is_public,
        admin_user_id=admin_id,
    )
    set_wide_event_fields(
        visibility_entity_type=entity_type.value,
        visibility_entity_id=entity_id,
        visibility_new_value=is_public,
    )
    return result


@track_operation("visibility_update_batch")
async def update_visibility_batch(
    db: AsyncSession,
    admin_id: str,
    entity_type: EntityType,
    updates: list[VisibilityUpdate],
) -> list[VisibilitySettingData]:
    """Set the direct visibility of many entities of one type.

    Every update is validated before anything is written; one bad parent
    rejects the whole batch. Each update gets its own audit entry. The
    writes go out as one bulk upsert, which is not guaranteed atomic across
    records; re-read with VisibilityRepository.get_batch if that matters.

    Raises:
        ParentNotFoundError: Any update references a missing parent.
    """
    if not updates:
        return []

    for update in updates:
        validate_parent_exists(
            entity_type,
            update.entity_id,
            update.parent_journey_slug,
            update.parent_milestone_id,
        )

    repo = VisibilityRepository(db)
    existing = await repo.get_batch(entity_type, [u.entity_id for u in updates])
    old_values = {entity_id: s.is_public for entity_id, s in existing.items()}
    stored_content = {entity_id: s.content_public for entity_id, s in existing.items()}

    settings: list[VisibilitySettingCreate] = []
    for update in updates:
        setting = _build_setting(
            admin_id, entity_type, update, stored_content.get(update.entity_id)
        )
        settings.append(setting)
        stored_content[update.entity_id] = setting.content_public

    for setting in settings:
        await log_visibility_change(
            db,
            admin_id,
            entity_type,
            setting.entity_id,
            old_values.get(setting.entity_id),
            setting.is_public,
            setting.parent_journey_slug,
            setting.parent_milestone_id,
        )
        # A repeated id sees the earlier entry as its old value.
        old_values[setting.entity_id] = setting.is_public

    results = await repo.set_batch(settings)

    logger.info(
        "visibility.batch_updated",
        entity_type=entity_type.value,
        requested=len(updates),
        written=len(results),
        admin_user_id=admin_id,
    )
    set_wide_event_fields(
        visibility_entity_type=entity_type.value,
        visibility_batch_size=len(updates),
    )
    return results


@track_operation("visibility_remove")
async def remove_visibility(
    db: AsyncSession,
    admin_id: str,
    entity_type: EntityType,
    entity_id: str,
) -> bool:
    """Delete an entity's record so it reverts to default-private.

    Audited as old_value -> False. Returns False (and audits nothing) when
    no record existed.
    """
    repo = VisibilityRepository(db)
    existing = await repo.get(entity_type, entity_id)
    if existing is None:
        return False

    await log_visibility_change(
        db,
        admin_id,
        entity_type,
        entity_id,
        existing.is_public,
        False,
        existing.parent_journey_slug,
        existing.parent_milestone_id,
    )
    removed = await repo.remove(entity_type, entity_id)

    logger.info(
        "visibility.removed",
        entity_type=entity_type.value,
        entity_id=entity_id,
        admin_user_id=admin_id,
    )
    return removed


# =============================================================================
# Public content filter
# =============================================================================


async def _public_objectives(
    repo: VisibilityRepository, node: JourneyNode
) -> list[PublicLearningObjective]:
    settings = {
        s.entity_id: s
        for s in await repo.find_by_parent(EntityType.OBJECTIVE, node.id)
        if s.is_public
    }
    objectives: list[PublicLearningObjective] = []
    for index, objective in enumerate(node.learning_objectives):
        setting = settings.get(objective_id(node.id, index))
        if setting is None:
            continue
        objectives.append(
            PublicLearningObjective(
                title=objective.title,
                lesson_id=objective.lesson_id,
                content_public=bool(setting.content_public),
            )
        )
    return objectives


async def filter_journey_for_public(
    db: AsyncSession, journey: Journey
) -> PublicJourney:
    """Project a journey down to its directly public milestones and objectives.

    Assumes the journey itself already passed the visibility check. Edges
    survive only when both ends survive.
    """
    repo = VisibilityRepository(db)
    public_milestone_ids = {
        s.entity_id
        for s in await repo.find_by_parent(EntityType.MILESTONE, journey.slug)
        if s.is_public
    }

    nodes: list[PublicJourneyNode] = []
    for node in journey.nodes:
        if node.id not in public_milestone_ids:
            continue
        nodes.append(
            PublicJourneyNode(
                id=node.id,
                title=node.title,
                description=node.description,
                type=node.type,
                position=node.position,
                learning_objectives=await _public_objectives(repo, node),
                estimated_minutes=node.estimated_minutes,
                difficulty=node.difficulty,
            )
        )

    surviving = {node.id for node in nodes}
    edges = [
        edge
        for edge in journey.edges
        if edge.source in surviving and edge.target in surviving
    ]

    return PublicJourney(
        slug=journey.slug,
        title=journey.title,
        description=journey.description,
        category=journey.category,
        difficulty=journey.difficulty,
        estimated_hours=journey.estimated_hours,
        nodes=nodes,
        edges=edges,
    )


@track_operation("public_journeys_list")
async def get_public_journeys(db: AsyncSession) -> list[PublicJourney]:
    """All public journeys, filtered to their public subtrees.

    Journeys have no ancestor, so the direct flag is the effective one.
    Public slugs with no active content are skipped.
    """
    slugs = await VisibilityRepository(db).find_public(EntityType.JOURNEY)
    return [
        await filter_journey_for_public(db, journey)
        for journey in find_journeys_by_slugs(slugs)
    ]


@track_operation("public_journey_get")
async def get_public_journey_by_slug(
    db: AsyncSession,
    slug: str,
    cache: VisibilityCache | None = None,
) -> PublicJourney | None:
    """A public journey, or None if it is hidden or does not exist.

    Content is not loaded for hidden journeys.
    """
    if not await is_effectively_public(db, EntityType.JOURNEY, slug, cache):
        return None

    journey = find_journey_by_slug(slug)
    if journey is None:
        return None
    return await filter_journey_for_public(db, journey)


# =============================================================================
# Admin read models
# =============================================================================


def _public_ids(settings: list[VisibilitySettingData]) -> set[str]:
    return {s.entity_id for s in settings if s.is_public}


@track_operation("visibility_overview")
async def get_visibility_overview(db: AsyncSession) -> VisibilityOverview:
    """Direct visibility of every active journey plus global counts.

    Counts only cover entities present in content; records for deleted
    milestones or objectives are ignored.
    """
    repo = VisibilityRepository(db)
    journeys = get_all_journeys()
    journey_settings = await repo.get_batch(
        EntityType.JOURNEY, [journey.slug for journey in journeys]
    )

    total_milestones = 0
    public_milestones = 0
    total_objectives = 0
    public_objectives = 0
    infos: list[JourneyVisibilityInfo] = []

    for journey in journeys:
        setting = journey_settings.get(journey.slug)
        public_milestone_ids = _public_ids(
            await repo.find_by_parent(EntityType.MILESTONE, journey.slug)
        )
        journey_public_milestones = 0

        for node in journey.nodes:
            total_milestones += 1
            if node.id in public_milestone_ids:
                journey_public_milestones += 1

            total_objectives += len(node.learning_objectives)
            public_objective_ids = _public_ids(
                await repo.find_by_parent(EntityType.OBJECTIVE, node.id)
            )
            public_objectives += sum(
                1
                for index in range(len(node.learning_objectives))
                if objective_id(node.id, index) in public_objective_ids
            )

        public_milestones += journey_public_milestones
        infos.append(
            JourneyVisibilityInfo(
                slug=journey.slug,
                title=journey.title,
                is_public=setting.is_public if setting else False,
                milestone_count=len(journey.nodes),
                public_milestone_count=journey_public_milestones,
            )
        )

    return VisibilityOverview(
        journeys=infos,
        stats=VisibilityStats(
            total_journeys=len(journeys),
            public_journeys=sum(1 for info in infos if info.is_public),
            total_milestones=total_milestones,
            public_milestones=public_milestones,
            total_objectives=total_objectives,
            public_objectives=public_objectives,
        ),
    )


@track_operation("journey_visibility_details")
async def get_journey_visibility_details(
    db: AsyncSession, slug: str
) -> JourneyVisibilityDetails | None:
    """Per-milestone and per-objective flags for one active journey.

    Effective flags here combine the chain shown on this page (journey,
    milestone, objective) without a resolver round trip per entity.
    """
    journey = find_journey_by_slug(slug)
    if journey is None:
        return None

    repo = VisibilityRepository(db)
    journey_setting = await repo.get(EntityType.JOURNEY, slug)
    journey_public = journey_setting.is_public if journey_setting else False

    milestone_settings = {
        s.entity_id: s
        for s in await repo.find_by_parent(EntityType.MILESTONE, slug)
    }

    milestones: list[MilestoneVisibilityInfo] = []
    for node in journey.nodes:
        milestone_setting = milestone_settings.get(node.id)
        milestone_public = milestone_setting.is_public if milestone_setting else False
        milestone_effective = journey_public and milestone_public

        objective_settings = {
            s.entity_id: s
            for s in await repo.find_by_parent(EntityType.OBJECTIVE, node.id)
        }
        objectives: list[ObjectiveVisibilityInfo] = []
        for index, objective in enumerate(node.learning_objectives):
            oid = objective_id(node.id, index)
            objective_setting = objective_settings.get(oid)
            objective_public = (
                objective_setting.is_public if objective_setting else False
            )
            content_public = bool(
                objective_setting and objective_setting.content_public
            )
            objective_effective = milestone_effective and objective_public
            objectives.append(
                ObjectiveVisibilityInfo(
                    index=index,
                    objective_id=oid,
                    title=objective.title,
                    is_public=objective_public,
                    effectively_public=objective_effective,
                    content_public=content_public,
                    effectively_content_public=objective_effective
                    and content_public,
                )
            )

        milestones.append(
            MilestoneVisibilityInfo(
                node_id=node.id,
                title=node.title,
                is_public=milestone_public,
                effectively_public=milestone_effective,
                objectives=objectives,
            )
        )

    return JourneyVisibilityDetails(
        journey=JourneyVisibilityInfo(
            slug=journey.slug,
            title=journey.title,
            is_public=journey_public,
            milestone_count=len(journey.nodes),
            public_milestone_count=sum(1 for m in milestones if m.is_public),
        ),
        milestones=milestones,
    )
