"""Counter aggregation and derived rates for variant delivery data."""

from collections.abc import Iterable

from .models import DeliveryRecord, MetricCounts, MetricSnapshot, Variant, VariantPerformance
from .significance import sample_size_confidence

DELIVERED_STATUSES = frozenset({"delivered", "sent", "opened", "clicked"})

_ADDITIVE_FIELDS = (
    "sent_count",
    "delivered_count",
    "open_count",
    "click_count",
    "conversion_count",
    "bounce_count",
)


def _is_bounce(record: DeliveryRecord) -> bool:
    if record.status == "bounced":
        return True
    return record.status == "failed" and "bounce" in (record.failure_reason or "").lower()


def metrics_from_history(records: Iterable[DeliveryRecord]) -> MetricCounts:
    """Count sends, deliveries and engagement in a batch of delivery records.

    A booking id on the record is the conversion signal. Participants are
    distinct customers within the batch.
    """
    counts = MetricCounts()
    customers: set[str] = set()

    for record in records:
        counts.sent_count += 1
        customers.add(record.customer_id)
        if record.status in DELIVERED_STATUSES:
            counts.delivered_count += 1
        if record.opened_at is not None:
            counts.open_count += 1
        if record.clicked_at is not None:
            counts.click_count += 1
        if record.booking_id:
            counts.conversion_count += 1
        if _is_bounce(record):
            counts.bounce_count += 1

    counts.participant_count = len(customers)
    return counts


def aggregate_snapshots(snapshots: Iterable[MetricSnapshot | MetricCounts]) -> MetricCounts:
    """Sum daily counters across snapshots.

    ``participant_count`` is a per-day distinct-customer watermark, so it
    takes the maximum rather than the sum.
    """
    total = MetricCounts()
    for snapshot in snapshots:
        for name in _ADDITIVE_FIELDS:
            setattr(total, name, getattr(total, name) + getattr(snapshot, name))
        total.participant_count = max(total.participant_count, snapshot.participant_count)
    return total


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator * 100 if denominator > 0 else 0.0


def compute_rates(counts: MetricCounts) -> dict[str, float]:
    """Open, click and conversion rates as percentages of delivered messages."""
    return {
        "open_rate": _rate(counts.open_count, counts.delivered_count),
        "click_rate": _rate(counts.click_count, counts.delivered_count),
        "conversion_rate": _rate(counts.conversion_count, counts.delivered_count),
    }


def to_performance(variant: Variant, counts: MetricCounts) -> VariantPerformance:
    """Attach rates and a sample-size confidence to a variant's counters."""
    return VariantPerformance(
        variant_id=variant.variant_id,
        variant_name=variant.name,
        is_control=variant.is_control,
        counts=counts,
        confidence=sample_size_confidence(counts.participant_count),
        **compute_rates(counts),
    )


def resolve_control(variants: list[Variant]) -> Variant | None:
    """Pick the control arm: the flagged variant, else the earliest created.

    Ties on ``created_at`` fall back to ``priority`` and then input order.
    """
    if not variants:
        return None
    ordered = sorted(
        enumerate(variants), key=lambda item: (item[1].created_at, item[1].priority, item[0])
    )
    flagged = [variant for _, variant in ordered if variant.is_control]
    if flagged:
        return flagged[0]
    return ordered[0][1]
