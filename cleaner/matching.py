"""Join Sonarr seasons to media-server watch records.

The two systems share no identifier, so series are joined on their normalized
title. The join fails closed: a title that is missing from either side, or that
appears more than once on either side, produces nothing. Guessing wrong here
would delete the wrong show.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from models.plan import MatchedSeason
from models.series_info import SeriesInfo, normalize_title
from models.watch_record import WatchedShow

logger = logging.getLogger(__name__)


def _group(items: Iterable, title_of) -> Dict[str, list]:
    groups = defaultdict(list)
    for item in items:
        groups[normalize_title(title_of(item))].append(item)
    return groups


def match_seasons(catalog: Iterable[SeriesInfo], watched: Iterable[WatchedShow]) -> List[MatchedSeason]:
    """Return a MatchedSeason for every season both systems unambiguously agree on."""
    series_by_title = _group(catalog, lambda s: s.title)
    shows_by_title = _group(watched, lambda w: w.title)

    matched = []
    for key, series_group in series_by_title.items():
        show_group = shows_by_title.get(key, [])

        if len(series_group) > 1 or len(show_group) > 1:
            logger.debug(
                f"Skipping {series_group[0].title!r}: ambiguous title "
                f"({len(series_group)} in Sonarr, {len(show_group)} on the media server)"
            )
            continue
        if not show_group:
            logger.debug(f"Skipping {series_group[0].title!r}: not found on the media server")
            continue

        series, show = series_group[0], show_group[0]
        records_by_season = defaultdict(list)
        for record in show.records:
            records_by_season[record.season_number].append(record)

        for season in series.seasons:
            records = records_by_season.get(season.season_number)
            if not records:
                logger.debug(
                    f"Skipping {series.title} - Season {season.season_number}: "
                    "not on the media server"
                )
                continue
            matched.append(MatchedSeason(series=series, season=season, watch_records=tuple(records)))

    return matched
