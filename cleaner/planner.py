from typing import Dict, Iterable, Tuple

from models.plan import DeletionCandidate, DeletionPlan, MatchedSeason, Verdict

BINARY_UNITS = ["B", "KiB", "MiB", "GiB", "TiB"]


def format_size(size_bytes: int) -> str:
    """Format bytes to a human-readable string (binary units)."""
    size = float(size_bytes)
    for unit in BINARY_UNITS:
        if abs(size) < 1024.0 or unit == BINARY_UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1024.0


def make_candidate(matched: MatchedSeason, verdict: Verdict) -> DeletionCandidate:
    """Size up a season for deletion.

    Sonarr can store several episodes in one file, so sizes and counts are
    taken over distinct file handles.
    """
    files: Dict[int, int] = {}
    for episode in matched.season.episodes:
        if episode.file_id is not None:
            files.setdefault(episode.file_id, episode.file_size)

    return DeletionCandidate(
        series_id=matched.series.id,
        series_title=matched.series.title,
        season_number=matched.season.season_number,
        file_count=len(files),
        total_size=sum(files.values()),
        reasons=(verdict.reason.value,),
        file_ids=tuple(files),
    )


def build_plan(evaluated: Iterable[Tuple[MatchedSeason, Verdict]]) -> DeletionPlan:
    """Turn verdicts into a deletion plan ordered by (series title, season number)."""
    evaluated = tuple(evaluated)
    candidates = sorted(
        (make_candidate(matched, verdict) for matched, verdict in evaluated if verdict.eligible),
        key=lambda c: (c.series_title, c.season_number),
    )
    return DeletionPlan(candidates=tuple(candidates), evaluated=evaluated)


def report_line(candidate: DeletionCandidate) -> str:
    return (
        f"delete {candidate.file_count} files: {candidate.series_title} "
        f"S{candidate.season_number:02d}: {format_size(candidate.total_size)}"
    )
