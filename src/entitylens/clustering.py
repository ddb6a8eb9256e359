"""Entity clustering by capped transitive closure over final matches.

Every record starts in its own cluster, labelled with its own id.  Each
round, every record adopts the smallest label among itself and its matched
neighbours (all records update from the previous round's labels).  Rounds
stop at a fixed point or after ``max_depth`` rounds.  With the cap,
records further apart than ``max_depth`` hops may end up in different
clusters; ``converged`` reports whether that happened.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass
class ClusterResult:
    assignments: dict[str, str]
    iterations: int
    converged: bool

    @property
    def n_clusters(self) -> int:
        return len(set(self.assignments.values()))


def _propagate(labels: dict[str, str], adjacency: dict[str, set[str]]) -> dict[str, str]:
    updated: dict[str, str] = {}
    for node, label in labels.items():
        best = label
        for neighbour in adjacency.get(node, ()):
            if labels[neighbour] < best:
                best = labels[neighbour]
        updated[node] = best
    return updated


def build_clusters(
    record_ids: Iterable[str],
    matches: Iterable[tuple[str, str]],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ClusterResult:
    """Group records into entity clusters.

    Parameters
    ----------
    record_ids:
        Every record to assign; records without matches become singletons.
    matches:
        Matched ``(left_id, right_id)`` pairs.  Ids not in *record_ids*
        are added.
    max_depth:
        Maximum number of propagation rounds.

    Returns
    -------
    ClusterResult
        ``record_id -> cluster_id`` where the cluster id is the smallest
        record id reached within the cap.
    """
    if max_depth < 1:
        msg = f"max_depth must be >= 1, got {max_depth}"
        raise ValueError(msg)

    labels: dict[str, str] = {str(r): str(r) for r in record_ids}
    adjacency: dict[str, set[str]] = defaultdict(set)
    for left, right in matches:
        left, right = str(left), str(right)
        if left == right:
            continue
        adjacency[left].add(right)
        adjacency[right].add(left)
        labels.setdefault(left, left)
        labels.setdefault(right, right)

    iterations = 0
    converged = False
    for _ in range(max_depth):
        updated = _propagate(labels, adjacency)
        if updated == labels:
            converged = True
            break
        labels = updated
        iterations += 1

    if not converged:
        converged = _propagate(labels, adjacency) == labels
        if not converged:
            logger.warning("clustering_depth_cap_reached", max_depth=max_depth)

    result = ClusterResult(assignments=labels, iterations=iterations, converged=converged)
    logger.info(
        "clusters_built",
        records=len(labels),
        clusters=result.n_clusters,
        iterations=iterations,
        converged=converged,
    )
    return result


def cluster_sizes(assignments: dict[str, str]) -> dict[str, int]:
    """Return ``cluster_id -> member count``."""
    return dict(Counter(assignments.values()))
