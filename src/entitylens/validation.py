"""Precision / recall measurement and SLA checks for resolution quality.

Compares cluster assignments against a labelled set of record pairs and
evaluates the run against the pipeline's service-level targets.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

# ---------------------------------------------------------------------------
# SLA thresholds
# ---------------------------------------------------------------------------

PRECISION_TARGET = 0.95
RECALL_TARGET = 0.90
PROCESSING_SECONDS_TARGET = 4 * 60 * 60


@dataclass
class MetricResult:
    """Outcome of evaluating one metric against its threshold."""

    name: str
    value: float
    threshold: float
    passed: bool
    must_pass: bool
    failure_explanation: str = ""


@dataclass(frozen=True)
class LabelledPair:
    left_id: str
    right_id: str
    same_entity: bool


# ---------------------------------------------------------------------------
# Ground truth
# ---------------------------------------------------------------------------

_TRUE_VALUES = {"true", "1", "yes", "y", "t"}


def read_ground_truth_csv(csv_path: Path) -> list[LabelledPair]:
    """Read labelled pairs from a CSV with ``left_id,right_id,same_entity`` columns."""
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    df.columns = [c.strip().lower() for c in df.columns]
    missing = [c for c in ("left_id", "right_id", "same_entity") if c not in df.columns]
    if missing:
        msg = f"{csv_path} is missing required columns: {missing}"
        raise ValueError(msg)

    return [
        LabelledPair(
            left_id=row["left_id"].strip(),
            right_id=row["right_id"].strip(),
            same_entity=row["same_entity"].strip().lower() in _TRUE_VALUES,
        )
        for row in df.to_dict(orient="records")
        if row["left_id"].strip() and row["right_id"].strip()
    ]


# ---------------------------------------------------------------------------
# Pairwise metrics
# ---------------------------------------------------------------------------

def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def compute_pairwise_metrics(
    assignments: dict[str, str],
    ground_truth: Sequence[LabelledPair],
) -> dict[str, float]:
    """Compute precision, recall, and F1 of cluster assignments.

    A labelled pair is predicted "same" when both records share a cluster.
    If either record was never assigned a cluster the pair cannot be
    judged: it counts as a false negative when labelled same, and is
    otherwise ignored.

    Returns
    -------
    dict
        ``{"precision", "recall", "f1", "true_positives", "false_positives",
          "false_negatives", "total_pairs"}``
    """
    true_positives = 0
    false_positives = 0
    false_negatives = 0

    for pair in ground_truth:
        cluster_a = assignments.get(pair.left_id)
        cluster_b = assignments.get(pair.right_id)

        if cluster_a is None or cluster_b is None:
            false_negatives += int(pair.same_entity)
            continue

        if cluster_a == cluster_b:
            if pair.same_entity:
                true_positives += 1
            else:
                false_positives += 1
        elif pair.same_entity:
            false_negatives += 1
        # Correctly separated pairs do not enter precision or recall.

    precision = _ratio(true_positives, true_positives + false_positives)
    recall = _ratio(true_positives, true_positives + false_negatives)
    f1 = _ratio(2 * precision * recall, precision + recall)

    return {
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "true_positives": true_positives,
        "false_positives": false_positives,
        "false_negatives": false_negatives,
        "total_pairs": len(ground_truth),
    }


# ---------------------------------------------------------------------------
# SLA evaluation
# ---------------------------------------------------------------------------

def _precision_sla(value: float) -> MetricResult:
    return MetricResult(
        name="Precision",
        value=value,
        threshold=PRECISION_TARGET,
        passed=value >= PRECISION_TARGET,
        must_pass=True,
        failure_explanation=(
            "Too many false merges. Raise match_threshold or tighten blocking."
            if value < PRECISION_TARGET else ""
        ),
    )


def _recall_sla(value: float) -> MetricResult:
    return MetricResult(
        name="Recall",
        value=value,
        threshold=RECALL_TARGET,
        passed=value >= RECALL_TARGET,
        must_pass=True,
        failure_explanation=(
            "Duplicates are being missed. Raise search_k or lower similarity_floor."
            if value < RECALL_TARGET else ""
        ),
    )


def _processing_time_sla(seconds: float) -> MetricResult:
    return MetricResult(
        name="Processing time (s)",
        value=seconds,
        threshold=PROCESSING_SECONDS_TARGET,
        passed=seconds <= PROCESSING_SECONDS_TARGET,
        must_pass=True,
        failure_explanation=(
            "Run exceeded the processing window. Switch to an hnsw/ivf index "
            "or scale out the vector service."
            if seconds > PROCESSING_SECONDS_TARGET else ""
        ),
    )


def evaluate_slas(
    *,
    precision: float,
    recall: float,
    processing_seconds: float,
) -> list[MetricResult]:
    return [
        _precision_sla(precision),
        _recall_sla(recall),
        _processing_time_sla(processing_seconds),
    ]


def all_slas_met(results: list[MetricResult]) -> bool:
    """Return ``True`` only if every *must_pass* SLA in *results* passed."""
    return all(r.passed for r in results if r.must_pass)


def generate_validation_report(
    metrics: dict[str, float],
    sla_results: list[MetricResult] | None = None,
) -> str:
    """Format resolution metrics (and optional SLA verdicts) as text."""
    lines = [
        "Entity Resolution Validation Report",
        "=" * 40,
        "",
        f"Total pairs evaluated:  {metrics.get('total_pairs', 0):.0f}",
        f"True positives:         {metrics.get('true_positives', 0):.0f}",
        f"False positives:        {metrics.get('false_positives', 0):.0f}",
        f"False negatives:        {metrics.get('false_negatives', 0):.0f}",
        "",
        f"Precision:  {metrics.get('precision', 0.0):.4f}",
        f"Recall:     {metrics.get('recall', 0.0):.4f}",
        f"F1 Score:   {metrics.get('f1', 0.0):.4f}",
    ]

    if sla_results:
        lines.extend(["", "SLAs", "-" * 40])
        for r in sla_results:
            verdict = "PASS" if r.passed else "FAIL"
            lines.append(f"[{verdict}] {r.name}: {r.value:.4f} (target {r.threshold:g})")
            if r.failure_explanation:
                lines.append(f"       {r.failure_explanation}")
        overall = "ALL SLAS MET" if all_slas_met(sla_results) else "SLA BREACH"
        lines.append(f"\nAssessment: {overall}")

    return "\n".join(lines)
