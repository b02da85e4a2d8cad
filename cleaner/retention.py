import logging
from datetime import datetime

from models.config import RetentionPolicy
from models.plan import MatchedSeason, Reason, Verdict

logger = logging.getLogger(__name__)


def _is_complete(matched: MatchedSeason) -> bool:
    episodes = matched.season.episodes
    return bool(episodes) and all(e.downloaded for e in episodes)


def _is_watched(matched: MatchedSeason) -> bool:
    # Episodes the media server doesn't know about count as unwatched.
    watched = {
        (r.season_number, r.episode_number) for r in matched.watch_records if r.watched
    }
    season_number = matched.season.season_number
    return all((season_number, e.episode_number) in watched for e in matched.season.episodes)


def _is_past_grace_period(matched: MatchedSeason, policy: RetentionPolicy, now: datetime) -> bool:
    last_air_date = matched.season.last_air_date
    if last_air_date is None:
        return False
    return now - last_air_date >= policy.retain_duration


def evaluate(matched: MatchedSeason, policy: RetentionPolicy, now: datetime) -> Verdict:
    """
    Decide whether a season may be deleted.

    Rules are checked in order and the first one that fails is the reason:
    every episode downloaded, every episode watched, series not tagged with the
    retain tag, and last air date at least ``retain_duration`` ago.

    Args:
        matched: The season and its watch records
        policy: Retain tag and grace period
        now: Aware datetime to measure the grace period against

    Returns:
        Verdict with exactly one reason
    """
    if not _is_complete(matched):
        return Verdict(eligible=False, reason=Reason.INCOMPLETE)
    if not _is_watched(matched):
        return Verdict(eligible=False, reason=Reason.UNWATCHED)
    if policy.retain_tag in matched.series.tags:
        return Verdict(eligible=False, reason=Reason.RETAINED_BY_TAG)
    if not _is_past_grace_period(matched, policy, now):
        return Verdict(eligible=False, reason=Reason.WITHIN_GRACE_PERIOD)
    return Verdict(eligible=True, reason=Reason.ELIGIBLE)


def _days(delta) -> str:
    return f"{delta.total_seconds() / 86400:.1f}d"


def log_verdict(matched: MatchedSeason, verdict: Verdict, policy: RetentionPolicy, now: datetime) -> None:
    series, season = matched.series, matched.season
    name = f"{series.title} - Season {season.season_number}"

    if verdict.reason == Reason.INCOMPLETE:
        downloaded = sum(1 for e in season.episodes if e.downloaded)
        logger.debug(f"Skipping {name} because incomplete ({downloaded}/{len(season.episodes)} downloaded)")
    elif verdict.reason == Reason.UNWATCHED:
        logger.debug(f"Skipping {name} because unwatched")
    elif verdict.reason == Reason.RETAINED_BY_TAG:
        logger.info(f"Skipping {name} because tagged {policy.retain_tag!r}")
    elif verdict.reason == Reason.WITHIN_GRACE_PERIOD:
        if season.last_air_date is None:
            logger.info(f"Skipping {name} because its last air date is unknown")
        else:
            logger.info(
                f"Skipping {name} because age:{_days(now - season.last_air_date)} "
                f"< desired:{_days(policy.retain_duration)}"
            )
