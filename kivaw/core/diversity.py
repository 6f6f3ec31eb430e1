"""Round-robin selection across content kinds."""

from collections.abc import Callable, Sequence

from kivaw.core.contracts import ScoredCandidate


def _kind(scored: ScoredCandidate) -> str:
    return scored.candidate.kind


def select_diverse(
    scored: Sequence[ScoredCandidate],
    target_count: int,
    key: Callable[[ScoredCandidate], str] = _kind,
) -> list[ScoredCandidate]:
    """Pick up to `target_count` candidates, alternating between groups.

    Candidates are grouped by `key` in order of first appearance. Each group
    is sorted by score (stable, so equal scores keep input order), then one
    candidate is taken from each group in turn until the target is reached
    or every group is exhausted.

    Args:
        scored: Scored candidates
        target_count: Maximum number of candidates to return
        key: Grouping function, the candidate kind by default

    Returns:
        Selected candidates in pick order
    """
    if target_count <= 0 or not scored:
        return []

    groups: dict[str, list[ScoredCandidate]] = {}
    for item in scored:
        groups.setdefault(key(item), []).append(item)

    queues = [sorted(group, key=lambda s: s.score, reverse=True) for group in groups.values()]

    picked: list[ScoredCandidate] = []
    position = 0
    while len(picked) < target_count:
        took_any = False
        for queue in queues:
            if position < len(queue):
                picked.append(queue[position])
                took_any = True
                if len(picked) >= target_count:
                    break
        if not took_any:
            break
        position += 1

    return picked
