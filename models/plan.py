from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .series_info import SeasonInfo, SeriesInfo
from .watch_record import WatchRecord


class Reason(str, Enum):
    """Why a season is (or is not) eligible for deletion, in rule order."""

    INCOMPLETE = "incomplete"
    UNWATCHED = "unwatched"
    RETAINED_BY_TAG = "retained-by-tag"
    WITHIN_GRACE_PERIOD = "within-grace-period"
    ELIGIBLE = "eligible"


@dataclass(frozen=True)
class Verdict:
    eligible: bool
    reason: Reason


@dataclass(frozen=True)
class MatchedSeason:
    """A catalog season joined with the watch records for the same title and season."""

    series: SeriesInfo
    season: SeasonInfo
    watch_records: Tuple[WatchRecord, ...] = ()


@dataclass(frozen=True)
class DeletionCandidate:
    series_id: int
    series_title: str
    season_number: int
    file_count: int
    total_size: int
    reasons: Tuple[str, ...]
    file_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class DeletionPlan:
    """Eligible seasons in deletion order, plus every verdict that produced them."""

    candidates: Tuple[DeletionCandidate, ...] = ()
    evaluated: Tuple[Tuple[MatchedSeason, Verdict], ...] = ()

    @property
    def total_size(self) -> int:
        return sum(c.total_size for c in self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)


class CandidateState(str, Enum):
    PLANNED = "planned"
    UNMONITORING = "unmonitoring"
    DELETING = "deleting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CandidateOutcome:
    candidate: DeletionCandidate
    state: CandidateState = CandidateState.PLANNED
    failed_in: Optional[CandidateState] = None
    error: Optional[str] = None
    deleted_files: int = 0


@dataclass
class ExecutionReport:
    """Accumulates per-candidate outcomes for a run."""

    dry_run: bool
    outcomes: List[CandidateOutcome] = field(default_factory=list)
    interrupted: bool = False

    @property
    def succeeded(self) -> List[CandidateOutcome]:
        return [o for o in self.outcomes if o.state == CandidateState.DONE]

    @property
    def failed(self) -> List[CandidateOutcome]:
        return [o for o in self.outcomes if o.state == CandidateState.FAILED]

    @property
    def skipped(self) -> List[CandidateOutcome]:
        return [o for o in self.outcomes if o.state == CandidateState.PLANNED]

    @property
    def ok(self) -> bool:
        return not self.failed
