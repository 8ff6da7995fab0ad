"""Percentile Ranker: rank-normalizes composite scores across a cohort."""

from typing import List, NamedTuple, Sequence, Tuple


class RankedStudent(NamedTuple):
    student_id: str
    composite: float
    rank: int
    percentile: float


def rank_percentiles(composites: Sequence[Tuple[str, float]]) -> List[RankedStudent]:
    """
    Stable ascending sort by composite; percentile = rank / max(N - 1, 1).

    Equal composites keep their input order. A single student gets
    percentile 0 and an empty cohort yields an empty list.
    """
    ordered = sorted(composites, key=lambda item: item[1])
    denominator = max(len(ordered) - 1, 1)
    return [
        RankedStudent(student_id, composite, rank, rank / denominator)
        for rank, (student_id, composite) in enumerate(ordered)
    ]

