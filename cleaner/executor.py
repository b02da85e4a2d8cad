import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from models.plan import CandidateOutcome, CandidateState, DeletionPlan, ExecutionReport
from services.base import APIError

from .planner import format_size, report_line

logger = logging.getLogger(__name__)


class SeasonDeleter(Protocol):
    def unmonitor_season(self, series_id: int, season_number: int) -> None:
        ...

    def delete_episode_file(self, episode_file_id: int) -> None:
        ...


@contextmanager
def stop_on_interrupt(stop_event: threading.Event) -> Iterator[threading.Event]:
    """Turn the first Ctrl-C into a request to stop between seasons instead of mid-season.

    The previous handler is put back as soon as the first Ctrl-C arrives, so a
    second one interrupts immediately.
    """
    if threading.current_thread() is not threading.main_thread():
        yield stop_event
        return

    def handler(signum, frame):
        logger.warning("Interrupted: finishing the current season, then stopping (Ctrl-C again to abort)")
        stop_event.set()
        signal.signal(signal.SIGINT, previous)

    # getsignal() gives None for handlers installed outside Python.
    previous = signal.getsignal(signal.SIGINT)
    if previous is None:
        previous = signal.default_int_handler
    signal.signal(signal.SIGINT, handler)
    try:
        yield stop_event
    finally:
        signal.signal(signal.SIGINT, previous)


class ExecutionEngine:
    """Reports a deletion plan, and with ``delete_files`` carries it out against Sonarr.

    Seasons are processed one at a time, in plan order: unmonitor, then delete
    each of its files. A season that fails is recorded and the next one is
    attempted anyway.
    """

    def __init__(self, catalog: SeasonDeleter, stop_event: Optional[threading.Event] = None):
        self.catalog = catalog
        self.stop_event = stop_event or threading.Event()

    def run(self, plan: DeletionPlan, delete_files: bool = False) -> ExecutionReport:
        report = ExecutionReport(dry_run=not delete_files)

        for candidate in plan.candidates:
            outcome = CandidateOutcome(candidate)
            report.outcomes.append(outcome)

            if report.interrupted:
                continue
            if delete_files and self.stop_event.is_set():
                report.interrupted = True
                continue

            logger.info(report_line(candidate))
            if delete_files:
                self._process(outcome)

        return report

    def _process(self, outcome: CandidateOutcome) -> None:
        candidate = outcome.candidate
        name = f"{candidate.series_title} S{candidate.season_number:02d}"

        outcome.state = CandidateState.UNMONITORING
        try:
            self.catalog.unmonitor_season(candidate.series_id, candidate.season_number)
        except APIError as e:
            self._fail(outcome, e)
            logger.error(f"Unmonitoring {name} failed: {e}")
            return

        outcome.state = CandidateState.DELETING
        for file_id in candidate.file_ids:
            try:
                self.catalog.delete_episode_file(file_id)
            except APIError as e:
                self._fail(outcome, e)
                logger.error(
                    f"Deleting file {file_id} of {name} failed after "
                    f"{outcome.deleted_files}/{candidate.file_count} files: {e}"
                )
                return
            outcome.deleted_files += 1

        outcome.state = CandidateState.DONE
        logger.debug(f"Done with {name}")

    @staticmethod
    def _fail(outcome: CandidateOutcome, error: APIError) -> None:
        outcome.failed_in = outcome.state
        outcome.state = CandidateState.FAILED
        outcome.error = str(error)


def log_summary(plan: DeletionPlan, report: ExecutionReport) -> None:
    """
    Log summary statistics of the run.

    Args:
        plan: The deletion plan that was reported or executed
        report: Outcomes of the run
    """
    if not plan.candidates:
        logger.info("Nothing eligible for deletion.")
        return

    verb = "Would delete" if report.dry_run else "Deleted"
    done = plan.candidates if report.dry_run else [o.candidate for o in report.succeeded]
    logger.info(
        f"{verb} {len(done)} season(s), {format_size(sum(c.total_size for c in done))} "
        f"(plan: {len(plan.candidates)} season(s), {format_size(plan.total_size)})"
    )

    if report.interrupted:
        logger.warning(f"Interrupted: {len(report.skipped)} season(s) left untouched")
    for outcome in report.failed:
        candidate = outcome.candidate
        logger.error(
            f"FAILED {candidate.series_title} S{candidate.season_number:02d} "
            f"while {outcome.failed_in.value}: {outcome.error}"
        )
