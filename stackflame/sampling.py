"""
sampling.py

Compensate for reading events from a downsampled index.

A downsampled index at level N keeps 1/5^N of the raw samples, so the
population total is estimated as floor(sampled / sampleRate). The estimate is
only right when the rate belongs to the index the events actually came from.
Per-node counts in the flame graph stay raw sample counts; only the summary
totals are scaled.
"""

import math
from dataclasses import fields
from fractions import Fraction

from .config import DEFAULT_MAX_DOWNSAMPLE_LEVEL, DEFAULT_TARGET_SAMPLE_SIZE
from .directory import DOWNSAMPLE_FACTOR, EventsIndex
from .errors import InvalidInput
from .flamegraph import ElasticFlameGraph, FlameGraph


def estimate_total_traces(sampled_traces: int, events_index: EventsIndex) -> int:
    if sampled_traces < 0:
        raise InvalidInput(f"sampled traces must be >= 0, got {sampled_traces}")
    if events_index.level is not None:
        return sampled_traces * DOWNSAMPLE_FACTOR ** events_index.level
    # Fraction of the shortest repr: 0.04 is 1/25, not 0.04000000000000000083...
    rate = Fraction(repr(float(events_index.sample_rate)))
    return math.floor(Fraction(sampled_traces) / rate)


def create_elastic_flame_graph(
    flamegraph: FlameGraph, events_index: EventsIndex, total_seconds: float
) -> ElasticFlameGraph:
    """Attach TotalSeconds, TotalTraces and SampledTraces to a flame graph."""
    sampled = flamegraph.total
    columns = {
        f.name: list(getattr(flamegraph, f.name))
        for f in fields(FlameGraph)
        if f.name != "total"
    }
    return ElasticFlameGraph(
        total=sampled,
        **columns,
        total_seconds=float(total_seconds),
        total_traces=estimate_total_traces(sampled, events_index),
        sampled_traces=sampled,
    )


def select_events_index(
    full_count: int,
    target_sample_size: int = DEFAULT_TARGET_SAMPLE_SIZE,
    max_level: int = DEFAULT_MAX_DOWNSAMPLE_LEVEL,
) -> EventsIndex:
    """
    Pick the most downsampled index still expected to hold at least
    ``target_sample_size`` samples, given ``full_count`` samples in the
    full events table. Small populations read the full table.

    This is a hint for the fetch side, not a constraint on the pipeline.
    """
    if target_sample_size < 1:
        raise InvalidInput(f"target sample size must be >= 1, got {target_sample_size}")
    level = 0
    while level < max_level and full_count >= target_sample_size * DOWNSAMPLE_FACTOR ** (level + 1):
        level += 1
    return EventsIndex.downsampled(level)
