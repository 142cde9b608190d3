"""Property-based tests for the visibility resolver using Hypothesis.

For every combination of present/absent records, direct flags and parent
references along a journey -> milestone -> objective chain, the resolver
must return True exactly when every record on the chain exists, is public
and carries its parent references.
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import patch

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from models import EntityType
from schemas import VisibilitySettingData
from services.visibility_service import VisibilityCache, is_effectively_public

pytestmark = pytest.mark.unit

JOURNEY_SLUG = "js-basics"
MILESTONE_ID = "m1"
OBJECTIVE_ID = "m1-objective-0"


# =============================================================================
# Fake store
# =============================================================================


def make_setting(
    entity_type: EntityType,
    entity_id: str,
    is_public: bool,
    parent_journey_slug: str | None = None,
    parent_milestone_id: str | None = None,
) -> VisibilitySettingData:
    now = datetime.now(UTC)
    return VisibilitySettingData(
        id=f"{entity_type.value}-{entity_id}",
        entity_type=entity_type,
        entity_id=entity_id,
        is_public=is_public,
        parent_journey_slug=parent_journey_slug,
        parent_milestone_id=parent_milestone_id,
        updated_by="admin_1",
        created_at=now,
        updated_at=now,
    )


def fake_repository(records: dict[tuple[EntityType, str], VisibilitySettingData]):
    """VisibilityRepository stand-in serving `records` from memory."""

    class FakeVisibilityRepository:
        def __init__(self, db):
            self.db = db

        async def get(self, entity_type, entity_id):
            return records.get((entity_type, entity_id))

    return FakeVisibilityRepository


def resolve(
    records: dict[tuple[EntityType, str], VisibilitySettingData],
    entity_type: EntityType,
    entity_id: str,
    cache: VisibilityCache | None = None,
) -> bool:
    with patch(
        "services.visibility_service.VisibilityRepository", fake_repository(records)
    ):
        return asyncio.run(is_effectively_public(None, entity_type, entity_id, cache))


# =============================================================================
# Custom Strategies
# =============================================================================

# None means no record is stored for that tier
flags = st.one_of(st.none(), st.booleans())


@st.composite
def chains(draw) -> dict:
    return {
        "journey": draw(flags),
        "milestone": draw(flags),
        "objective": draw(flags),
        "milestone_has_parent": draw(st.booleans()),
        "objective_has_journey": draw(st.booleans()),
        "objective_has_milestone": draw(st.booleans()),
    }


def build_records(chain: dict) -> dict[tuple[EntityType, str], VisibilitySettingData]:
    records: dict[tuple[EntityType, str], VisibilitySettingData] = {}
    if chain["journey"] is not None:
        records[(EntityType.JOURNEY, JOURNEY_SLUG)] = make_setting(
            EntityType.JOURNEY, JOURNEY_SLUG, chain["journey"]
        )
    if chain["milestone"] is not None:
        records[(EntityType.MILESTONE, MILESTONE_ID)] = make_setting(
            EntityType.MILESTONE,
            MILESTONE_ID,
            chain["milestone"],
            parent_journey_slug=(
                JOURNEY_SLUG if chain["milestone_has_parent"] else None
            ),
        )
    if chain["objective"] is not None:
        records[(EntityType.OBJECTIVE, OBJECTIVE_ID)] = make_setting(
            EntityType.OBJECTIVE,
            OBJECTIVE_ID,
            chain["objective"],
            parent_journey_slug=(
                JOURNEY_SLUG if chain["objective_has_journey"] else None
            ),
            parent_milestone_id=(
                MILESTONE_ID if chain["objective_has_milestone"] else None
            ),
        )
    return records


def expected_milestone(chain: dict) -> bool:
    return (
        chain["journey"] is True
        and chain["milestone"] is True
        and chain["milestone_has_parent"]
    )


def expected_objective(chain: dict) -> bool:
    return (
        expected_milestone(chain)
        and chain["objective"] is True
        and chain["objective_has_journey"]
        and chain["objective_has_milestone"]
    )


hypothesis_settings = settings(max_examples=200, deadline=None)


# =============================================================================
# Properties
# =============================================================================


class TestHierarchicalVisibilityProperties:
    @given(chain=chains())
    @hypothesis_settings
    def test_journey_is_its_own_flag(self, chain: dict):
        records = build_records(chain)

        assert resolve(records, EntityType.JOURNEY, JOURNEY_SLUG) is (
            chain["journey"] is True
        )

    @given(chain=chains())
    @hypothesis_settings
    def test_milestone_is_and_of_chain(self, chain: dict):
        records = build_records(chain)

        assert resolve(
            records, EntityType.MILESTONE, MILESTONE_ID
        ) is expected_milestone(chain)

    @given(chain=chains())
    @hypothesis_settings
    def test_objective_is_and_of_chain(self, chain: dict):
        records = build_records(chain)

        assert resolve(
            records, EntityType.OBJECTIVE, OBJECTIVE_ID
        ) is expected_objective(chain)

    @given(chain=chains())
    @hypothesis_settings
    def test_private_ancestor_forces_private(self, chain: dict):
        records = build_records(chain)

        if chain["journey"] is not True:
            assert not resolve(records, EntityType.MILESTONE, MILESTONE_ID)
            assert not resolve(records, EntityType.OBJECTIVE, OBJECTIVE_ID)
        if chain["milestone"] is not True:
            assert not resolve(records, EntityType.OBJECTIVE, OBJECTIVE_ID)

    @given(chain=chains())
    @hypothesis_settings
    def test_shared_cache_does_not_change_results(self, chain: dict):
        records = build_records(chain)
        cache: VisibilityCache = {}

        objective = resolve(records, EntityType.OBJECTIVE, OBJECTIVE_ID, cache)
        milestone = resolve(records, EntityType.MILESTONE, MILESTONE_ID, cache)
        journey = resolve(records, EntityType.JOURNEY, JOURNEY_SLUG, cache)

        assert objective is expected_objective(chain)
        assert milestone is expected_milestone(chain)
        assert journey is (chain["journey"] is True)
