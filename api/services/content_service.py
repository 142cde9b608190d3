"""Journey content loading service.

Journeys are authored by the content pipeline and stored as one JSON file
per journey in <CONTENT_DIR>/journeys/. This service only reads them; the
visibility service uses it to validate parent references and to build
public projections.

Loaded journeys are cached for CONTENT_CACHE_TTL_SECONDS (core.cache).
"""

import json
import re
from pathlib import Path

from pydantic import ValidationError

from core.cache import clear_all_caches, get_cached_journeys, set_cached_journeys
from core.config import get_settings
from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from schemas import Journey

logger = get_logger(__name__)

_OBJECTIVE_ID_RE = re.compile(r"^(?P<node_id>.+)-objective-(?P<index>\d+)$")


def objective_id(node_id: str, index: int) -> str:
    """Visibility id of the objective at position `index` of a milestone.

    Identity is positional: reordering a milestone's objectives moves
    their visibility settings with the positions, not with the objectives.
    """
    return f"{node_id}-objective-{index}"


def parse_objective_index(value: str) -> int | None:
    """Position encoded in an objective id, or None if it is not one."""
    match = _OBJECTIVE_ID_RE.match(value)
    if not match:
        return None
    return int(match.group("index"))


def _get_journeys_dir() -> Path:
    """Lazily accessed to avoid module-level settings initialization."""
    return get_settings().content_dir_path / "journeys"


def _load_journey(journey_file: Path) -> Journey | None:
    """Load and validate a single journey file."""
    try:
        with open(journey_file, encoding="utf-8") as f:
            data = json.load(f)
        return Journey.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(
            "content.journey.load_failed",
            journey_file=str(journey_file),
            error=str(e),
        )
        set_wide_event_fields(
            content_error="journey_load_failed",
            content_journey_file=str(journey_file),
        )
        return None


def _load_all_journeys() -> dict[str, Journey]:
    journeys_dir = _get_journeys_dir()
    if not journeys_dir.exists():
        logger.warning("content.dir.not_found", content_dir=str(journeys_dir))
        set_wide_event_fields(
            content_error="content_dir_not_found",
            content_dir=str(journeys_dir),
        )
        return {}

    journeys: dict[str, Journey] = {}
    for journey_file in sorted(journeys_dir.glob("*.json")):
        journey = _load_journey(journey_file)
        if journey is None:
            continue
        if journey.slug in journeys:
            logger.warning(
                "content.journey.duplicate_slug",
                slug=journey.slug,
                journey_file=str(journey_file),
            )
            continue
        journeys[journey.slug] = journey

    logger.info("content.journeys.loaded", count=len(journeys))
    return journeys


def _journeys_by_slug() -> dict[str, Journey]:
    journeys = get_cached_journeys()
    if journeys is None:
        journeys = _load_all_journeys()
        set_cached_journeys(journeys)
    return journeys


def get_all_journeys() -> list[Journey]:
    """All active journeys, ordered by slug."""
    return [
        journey
        for slug, journey in sorted(_journeys_by_slug().items())
        if journey.is_active
    ]


def find_journey_by_slug(
    slug: str, *, include_inactive: bool = False
) -> Journey | None:
    """Get a journey by slug.

    Inactive journeys are only returned with include_inactive=True, which
    admin writes use so drafts can be set up before they go live.
    """
    journey = _journeys_by_slug().get(slug)
    if journey is None or not (journey.is_active or include_inactive):
        return None
    return journey


def find_journeys_by_slugs(slugs: list[str]) -> list[Journey]:
    """Active journeys among `slugs`, in the order given. Unknown slugs are skipped."""
    journeys = _journeys_by_slug()
    found = []
    for slug in slugs:
        journey = journeys.get(slug)
        if journey is not None and journey.is_active:
            found.append(journey)
    return found


def journey_exists(slug: str) -> bool:
    return find_journey_by_slug(slug) is not None


def journeys_dir_exists() -> bool:
    return _get_journeys_dir().is_dir()


def clear_cache() -> None:
    """Clear the content cache (useful for testing)."""
    clear_all_caches()
