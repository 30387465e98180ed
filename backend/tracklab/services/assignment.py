"""A/B test assignment: which test applies to a visitor and which creative they get."""
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from tracklab.errors import NotFoundError
from tracklab.middleware.logging import get_logger
from tracklab.models.abtest import ABTest
from tracklab.schemas.abtest import ConditionSet, Creative
from tracklab.services.conditions import MatchContext, match_url, matches, parse_int_prefix
from tracklab.services.creatives import select_creative
from tracklab.services.devices import profile_user_agent
from tracklab.services.store import TrackerStore

logger = get_logger()

DEFAULT_SESSION_DURATION = 720


@dataclass(frozen=True)
class VisitorContext:
    """Everything the SDK told us about one page view."""
    project_id: str
    url: str
    user_agent: Optional[str] = None
    language: Optional[str] = None
    visit_count: Any = None
    referrer: Optional[str] = None


@dataclass
class AssignmentResult:
    matched: bool
    abtest_id: Optional[str] = None
    abtest_name: Optional[str] = None
    session_duration: Optional[int] = None
    creative: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        if not self.matched:
            return {"matched": False}
        return {
            "matched": True,
            "abtestId": self.abtest_id,
            "abtestName": self.abtest_name,
            "sessionDuration": self.session_duration,
            "creative": self.creative,
        }


def creative_payload(index: int, creative: Creative) -> Dict[str, Any]:
    return {
        "index": index,
        "name": creative.name,
        "css": creative.css,
        "javascript": creative.javascript,
        "isOriginal": creative.is_original,
    }


def load_creatives(abtest: ABTest) -> List[Creative]:
    return [Creative.model_validate(c) for c in (abtest.creatives or [])]


def build_match_context(visitor: VisitorContext) -> MatchContext:
    profile = profile_user_agent(visitor.user_agent)
    return MatchContext(
        device=profile.device,
        browser=profile.browser,
        os=profile.os,
        language=visitor.language or "unknown",
        visit_count=parse_int_prefix(visitor.visit_count) or 0,
        referrer=visitor.referrer or "",
        url=visitor.url or "",
    )


def in_date_window(abtest: ABTest, now: datetime) -> bool:
    if abtest.start_date and now < abtest.start_date:
        return False
    if abtest.end_date and now > abtest.end_date:
        return False
    return True


class AssignmentService:
    """Selects the first applicable A/B test and a creative for a visitor."""

    def __init__(
        self,
        store: TrackerStore,
        rng: Optional[random.Random] = None,
        default_session_duration: int = DEFAULT_SESSION_DURATION
    ):
        self.store = store
        self.rng = rng
        self.default_session_duration = default_session_duration

    def _test_applies(self, abtest: ABTest, context: MatchContext, now: datetime) -> bool:
        if not in_date_window(abtest, now):
            logger.debug("abtest_skipped", abtest_id=str(abtest.id), reason="date_window")
            return False

        if abtest.target_url and abtest.target_url.strip():
            if not match_url(context.url, abtest.target_url):
                logger.debug("abtest_skipped", abtest_id=str(abtest.id), reason="target_url")
                return False

        if abtest.exclude_url and abtest.exclude_url.strip():
            if match_url(context.url, abtest.exclude_url):
                logger.debug("abtest_skipped", abtest_id=str(abtest.id), reason="exclude_url")
                return False

        try:
            conditions = ConditionSet.model_validate(abtest.conditions or {})
        except SchemaValidationError as e:
            logger.warning("abtest_conditions_invalid", abtest_id=str(abtest.id), error=str(e))
            return False

        if not matches(conditions, context):
            logger.debug("abtest_skipped", abtest_id=str(abtest.id), reason="conditions")
            return False
        return True

    def execute(self, visitor: VisitorContext, now: Optional[datetime] = None) -> AssignmentResult:
        """
        Assign a visitor to the first matching active test of their project.

        Tests are tried in creation order; the first one whose date window,
        target/exclude URLs and conditions all pass wins, even if a later
        test would also match.

        Raises:
            InfrastructureError: if the store is unavailable
        """
        now = now or datetime.utcnow()

        abtests = self.store.find_active_tests(visitor.project_id)
        if not abtests:
            return AssignmentResult(matched=False)

        context = build_match_context(visitor)

        for abtest in abtests:
            if not self._test_applies(abtest, context, now):
                continue

            try:
                creatives = load_creatives(abtest)
            except SchemaValidationError as e:
                logger.warning("abtest_creatives_invalid", abtest_id=str(abtest.id), error=str(e))
                continue

            selected = select_creative(creatives, self.rng)
            if selected is None:
                continue

            logger.info(
                "abtest_assigned",
                project_id=visitor.project_id,
                abtest_id=str(abtest.id),
                creative_index=selected.index,
                device=context.device
            )
            return AssignmentResult(
                matched=True,
                abtest_id=str(abtest.id),
                abtest_name=abtest.name,
                session_duration=abtest.session_duration or self.default_session_duration,
                creative=creative_payload(selected.index, selected.creative),
            )

        return AssignmentResult(matched=False)

    def preview(self, abtest_id, creative_index) -> Dict[str, Any]:
        """
        Force a specific creative (``gh_id`` / ``gh_creative`` preview mode).

        Raises:
            NotFoundError: unknown test or creative index out of range
        """
        abtest = self.store.find_test_by_id(abtest_id)
        if abtest is None:
            raise NotFoundError("ABTest not found")

        creatives = load_creatives(abtest)
        index = parse_int_prefix(creative_index)
        if index is None or index < 0 or index >= len(creatives):
            raise NotFoundError("Creative not found")

        return {
            "abtestId": str(abtest.id),
            "abtestName": abtest.name,
            "sessionDuration": abtest.session_duration or self.default_session_duration,
            "creative": creative_payload(index, creatives[index]),
        }
