"""
Quality scoring and summary statistics for adapter results.
"""

from datetime import datetime, timedelta

from eohub.models import DataKind, Quality, SourceData, Statistics

MIN_COMPLETENESS = 0.8
MIN_SPATIAL_ACCURACY = 0.8
STALE_AFTER = timedelta(days=7)

INCOMPLETE_PENALTY = 0.7
STALE_PENALTY = 0.8
CONFIDENCE_FLOOR = 0.1


def compute_statistics(values: list[float | None]) -> Statistics:
    valid = [v for v in values if v is not None]
    if not valid:
        return Statistics(valid_count=0, total_count=len(values))
    return Statistics(
        mean=sum(valid) / len(valid),
        min=min(valid),
        max=max(valid),
        valid_count=len(valid),
        total_count=len(values),
    )


def validate_data_quality(data: SourceData, now: datetime | None = None) -> Quality:
    """
    Score an adapter result.

    Confidence starts at 1.0 and is multiplied down for low completeness,
    old data and poor spatial accuracy, never going below 0.1. Imagery is
    judged by whether a tile was fetched.
    """
    now = now or datetime.now()
    issues: set[str] = set()

    if data.kind is DataKind.IMAGERY:
        if data.asset is None:
            return Quality(
                is_valid=False,
                confidence_score=CONFIDENCE_FLOOR,
                completeness=0.0,
                issues={"no_imagery"},
            )
        return Quality(is_valid=True, confidence_score=1.0, completeness=1.0)

    total = len(data.values)
    valid = sum(1 for v in data.values if v is not None)
    completeness = valid / total if total else 0.0
    confidence = 1.0

    if completeness < MIN_COMPLETENESS:
        confidence *= INCOMPLETE_PENALTY
        issues.add("low_completeness")

    if data.timestamp is not None and now - data.timestamp > STALE_AFTER:
        confidence *= STALE_PENALTY
        issues.add("old_data")

    if data.spatial_accuracy is not None and data.spatial_accuracy < MIN_SPATIAL_ACCURACY:
        confidence *= data.spatial_accuracy
        issues.add("low_spatial_accuracy")

    is_valid = valid > 0
    if not is_valid:
        issues.add("no_values")

    return Quality(
        is_valid=is_valid,
        confidence_score=round(max(CONFIDENCE_FLOOR, confidence), 4),
        completeness=completeness,
        issues=issues,
    )
