# Recommendation Orchestrator - marks form, validation, single-flight provider call
# State machine: IDLE -> VALIDATING -> SUBMITTING -> {SUCCESS, FAILED}; reset() -> IDLE from anywhere

import logging
from typing import Dict, List, Optional, Sequence

from prometheus_client import Counter

from ..models import (
    OrchestratorState, RecommendationFormState, RecommendationRequest,
    SchoolRecommendation, SubjectEntry, SubmitOutcome,
)
from .gemini_gateway import GatewayError, RecommendationGateway
from .marks import (
    DUPLICATE_NAME_ERROR, MISSING_NAME_ERROR,
    coerce_mark, is_blank, validate_mark,
)

logger = logging.getLogger(__name__)

SEED_SUBJECTS = (
    "Mathematics",
    "Physical Sciences",
    "English FAL",
    "Life Orientation",
    "isiXhosa HL",
)

MIN_FILLED_SUBJECTS = 3

INSUFFICIENT_DATA_MESSAGE = "Please provide at least 3 subjects and their marks."
INVALID_INPUT_MESSAGE = "Please fix the errors in your marks before proceeding."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."

try:
    recommendation_submit_total = Counter(
        "recommendation_submit_total", "Recommendation submissions by outcome", ["outcome"]
    )
except ValueError:
    # metrics already registered
    from prometheus_client import REGISTRY
    recommendation_submit_total = REGISTRY._names_to_collectors["recommendation_submit_total"]


class RecommendationOrchestrator:
    """
    Owns one student's marks form and the lifecycle of the recommendation call.

    - Rows are addressed by an id from a per-instance counter, never by position
    - Marks are validated eagerly on edit and again on submit
    - At most one provider call in flight; each call carries a sequence number
      and its result is applied only while that number is still the latest
    """

    def __init__(
        self,
        gateway: RecommendationGateway,
        seed_subjects: Sequence[str] = SEED_SUBJECTS,
        min_rows: int = 1,
    ):
        self.gateway = gateway
        self.seed_subjects = tuple(seed_subjects)
        self.min_rows = min_rows
        self._seq = 0
        self._seed()

    def _seed(self):
        self._subjects: List[SubjectEntry] = [
            SubjectEntry(id=i, name=name) for i, name in enumerate(self.seed_subjects, 1)
        ]
        self._next_id = len(self._subjects) + 1
        self.average_mark = ""
        self.average_mark_error: Optional[str] = None
        self.recommendations: List[SchoolRecommendation] = []
        self.error: Optional[str] = None
        self.state = OrchestratorState.IDLE

    # === Row operations ===

    @property
    def subjects(self) -> List[SubjectEntry]:
        return list(self._subjects)

    @property
    def is_loading(self) -> bool:
        return self.state == OrchestratorState.SUBMITTING

    def _find(self, entry_id: int) -> Optional[SubjectEntry]:
        return next((s for s in self._subjects if s.id == entry_id), None)

    def add_subject(self) -> SubjectEntry:
        entry = SubjectEntry(id=self._next_id)
        self._next_id += 1
        self._subjects.append(entry)
        return entry

    def remove_subject(self, entry_id: int) -> bool:
        """Remove a row. Unknown ids and removals below min_rows are refused."""
        entry = self._find(entry_id)
        if entry is None:
            return False
        if len(self._subjects) <= self.min_rows:
            logger.debug(f"Refusing to remove subject {entry_id}: minimum of {self.min_rows} rows")
            return False
        self._subjects.remove(entry)
        return True

    def edit_subject(self, entry_id: int, field: str, value: str) -> SubjectEntry:
        if field not in ("name", "mark"):
            raise ValueError(f"Unknown subject field: {field}")
        entry = self._find(entry_id)
        if entry is None:
            raise KeyError(entry_id)

        if field == "mark":
            entry.mark = value
            entry.error = validate_mark(value)
        else:
            entry.name = value
            # Name errors are re-checked on submit; mark errors survive a rename
            if entry.error == DUPLICATE_NAME_ERROR:
                entry.error = None
            elif entry.error == MISSING_NAME_ERROR and not is_blank(value):
                entry.error = None
        return entry

    def set_average_mark(self, value: str) -> Optional[str]:
        self.average_mark = value
        self.average_mark_error = validate_mark(value)
        return self.average_mark_error

    # === Submission ===

    def _validate_all(self) -> bool:
        """Re-validate every field, attaching errors in place. True when all pass."""
        self.average_mark_error = validate_mark(self.average_mark)
        ok = self.average_mark_error is None

        seen = set()
        for entry in self._subjects:
            entry.error = validate_mark(entry.mark)
            if entry.error is None and not is_blank(entry.mark):
                key = entry.name.strip().casefold()
                if not key:
                    entry.error = MISSING_NAME_ERROR
                elif key in seen:
                    entry.error = DUPLICATE_NAME_ERROR
                seen.add(key)
            if entry.error:
                ok = False
        return ok

    def _filled(self) -> List[SubjectEntry]:
        return [s for s in self._subjects if not is_blank(s.name) and not is_blank(s.mark)]

    def build_request(self) -> RecommendationRequest:
        """Request from filled rows; call only after validation passed"""
        subject_marks: Dict[str, int] = {
            s.name.strip(): coerce_mark(s.mark) for s in self._filled()
        }
        return RecommendationRequest(
            subject_marks=subject_marks,
            average_mark=coerce_mark(self.average_mark),
        )

    def _finish(self, outcome: SubmitOutcome, error: Optional[str] = None) -> SubmitOutcome:
        if error is not None:
            self.error = error
            self.state = OrchestratorState.FAILED
        recommendation_submit_total.labels(outcome=outcome.value).inc()
        logger.info(f"Recommendation submit finished: {outcome.value}")
        return outcome

    async def submit(self) -> SubmitOutcome:
        if self.state == OrchestratorState.SUBMITTING:
            logger.info("Recommendation request already in flight, ignoring submit")
            return self._finish(SubmitOutcome.BUSY)

        # Stale results never co-appear with a new error
        self.recommendations = []
        self.error = None
        self.state = OrchestratorState.VALIDATING

        fields_ok = self._validate_all()
        filled = self._filled()

        if len(filled) < MIN_FILLED_SUBJECTS:
            return self._finish(SubmitOutcome.INSUFFICIENT_DATA, INSUFFICIENT_DATA_MESSAGE)
        if not fields_ok:
            return self._finish(SubmitOutcome.INVALID_INPUT, INVALID_INPUT_MESSAGE)

        request = self.build_request()
        self._seq += 1
        seq = self._seq
        self.state = OrchestratorState.SUBMITTING
        logger.debug(f"Submitting recommendation request #{seq} with {len(request.subject_marks)} subjects")

        try:
            result = await self.gateway.get_recommendations(request)
        except GatewayError as e:
            if seq != self._seq:
                return self._finish(SubmitOutcome.STALE)
            return self._finish(SubmitOutcome.GATEWAY_FAILURE, e.message)
        except Exception as e:
            logger.exception(f"Recommendation gateway raised unexpectedly: {e}")
            if seq != self._seq:
                return self._finish(SubmitOutcome.STALE)
            return self._finish(SubmitOutcome.GATEWAY_FAILURE, UNKNOWN_ERROR_MESSAGE)

        if seq != self._seq:
            logger.info(f"Discarding stale recommendation response #{seq}")
            return self._finish(SubmitOutcome.STALE)

        self.recommendations = list(result)
        self.state = OrchestratorState.SUCCESS
        return self._finish(SubmitOutcome.SUCCESS)

    def reset(self):
        """Back to the seed form from any state; an in-flight response is discarded"""
        self._seq += 1
        self._seed()
        logger.debug("Recommendation form reset")

    def snapshot(self) -> RecommendationFormState:
        return RecommendationFormState(
            state=self.state,
            subjects=[s.model_copy() for s in self._subjects],
            average_mark=self.average_mark,
            average_mark_error=self.average_mark_error,
            recommendations=list(self.recommendations),
            error=self.error,
            is_loading=self.is_loading,
        )
