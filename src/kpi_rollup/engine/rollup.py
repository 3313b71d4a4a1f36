"""Group KPI records into buckets at a display granularity."""

from collections.abc import Iterable

import structlog

from ..data.models import RawRecord
from ..periods import Granularity, PeriodKey

logger = structlog.get_logger(__name__)


def bucket_key(period: PeriodKey, granularity: Granularity) -> PeriodKey | None:
    """Return the bucket a period falls into, or None when it is coarser.

    A coarse observation is never attributed to a sub-period: a Year record
    has no Month bucket, a Quarter record has no Month bucket, and so on.
    """
    return period.rollup(granularity)


def bucket_records(
    records: Iterable[RawRecord],
    granularity: Granularity | str,
) -> dict[PeriodKey, list[float]]:
    """Map records to their bucket at ``granularity``, keeping every duplicate.

    Records coarser than ``granularity`` are dropped. An empty result is a
    valid "no data at this view" state, not an error.
    """
    target = Granularity.parse(granularity)
    buckets: dict[PeriodKey, list[float]] = {}
    seen = 0
    dropped = 0
    for record in records:
        seen += 1
        key = bucket_key(record.period, target)
        if key is None:
            dropped += 1
            continue
        buckets.setdefault(key, []).append(record.value)
    logger.debug(
        "engine.rollup_complete",
        granularity=target.value,
        records=seen,
        dropped=dropped,
        buckets=len(buckets),
    )
    return buckets


__all__ = ["bucket_key", "bucket_records"]
