import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from cleaner.executor import ExecutionEngine, log_summary, stop_on_interrupt
from cleaner.matching import match_seasons
from cleaner.planner import build_plan
from cleaner.retention import evaluate, log_verdict
from models.config import Config
from models.plan import DeletionPlan, ExecutionReport
from models.series_info import SeriesInfo
from models.watch_record import WatchedShow
from services.base import RetryPolicy
from services.sonarr import SonarrService
from services.watch_state import WatchStateSource, create_watch_source, fetch_watched_shows

logger = logging.getLogger(__name__)


class TVCleaner:
    """Deletes TV seasons that are fully downloaded in Sonarr and fully watched on the media server."""

    def __init__(
        self,
        config: Config,
        sonarr: Optional[SonarrService] = None,
        watch_source: Optional[WatchStateSource] = None,
    ):
        """Initialize TVCleaner with the Sonarr and media server connections.

        Connections that aren't passed in are built from the configuration.
        """
        self.config = config
        self.policy = config.retention

        retry_policy = RetryPolicy(
            max_attempts=config.retry.max_attempts, backoff=config.retry.backoff
        )
        self.sonarr = sonarr or SonarrService(
            config.tv, retry_policy=retry_policy, max_workers=config.max_workers
        )
        self.watch_source = watch_source or create_watch_source(config, retry_policy)

    def fetch_snapshots(self) -> Tuple[List[SeriesInfo], List[WatchedShow]]:
        """Fetch the Sonarr catalog and the media server's watch state side by side.

        The watch state is fetched for every show on the media server; matching
        throws away whatever Sonarr doesn't have.
        """
        with ThreadPoolExecutor(max_workers=2) as executor:
            catalog = executor.submit(self.sonarr.list_series)
            watched = executor.submit(
                fetch_watched_shows, self.watch_source, None, self.config.max_workers
            )
            return catalog.result(), watched.result()

    def plan(
        self,
        catalog: List[SeriesInfo],
        watched: List[WatchedShow],
        now: Optional[datetime] = None,
    ) -> DeletionPlan:
        """Match, evaluate and plan. Pure: no network, no mutation."""
        now = now or datetime.now(timezone.utc)

        evaluated = []
        for matched in match_seasons(catalog, watched):
            verdict = evaluate(matched, self.policy, now)
            log_verdict(matched, verdict, self.policy, now)
            evaluated.append((matched, verdict))

        return build_plan(evaluated)

    def clean_tv(
        self,
        delete_files: bool = False,
        stop_event: Optional[threading.Event] = None,
        now: Optional[datetime] = None,
    ) -> ExecutionReport:
        """
        Execute the TV cleanup process.

        Args:
            delete_files: If False (the default), only report what would be deleted
            stop_event: Set to stop between seasons; Ctrl-C sets it while deleting
            now: Reference time for the grace period

        Returns:
            ExecutionReport with one outcome per planned season
        """
        logger.info(f"Starting TV cleanup process... ({'LIVE RUN' if delete_files else 'DRY RUN'})")

        catalog, watched = self.fetch_snapshots()
        logger.info(
            f"Found {len(catalog)} series in Sonarr and {len(watched)} shows on the media server."
        )

        plan = self.plan(catalog, watched, now)
        if delete_files:
            # Ctrl-C is only deferred once Sonarr is being changed.
            with stop_on_interrupt(stop_event or threading.Event()) as stop_event:
                report = ExecutionEngine(self.sonarr, stop_event).run(plan, delete_files=True)
        else:
            report = ExecutionEngine(self.sonarr).run(plan)

        log_summary(plan, report)
        return report
