"""
pipeline.py

Run the four flame graph stages over an already-fetched dataset:

    caller-callee graph -> columnar graph -> flame graph -> sampling correction

Stages run sequentially because each needs the complete output of the one
before. Each stage is wrapped by an injected instrumentation hook and its
wall time is logged.
"""

import concurrent.futures as futures
import logging
import time
from contextlib import contextmanager
from typing import Callable, ContextManager, Optional

from .callercallee import build_caller_callee_graph, build_caller_callee_graph_partitioned
from .columnar import create_columnar_caller_callee
from .directory import FetchResult
from .flamegraph import ElasticFlameGraph, create_flame_graph
from .sampling import create_elastic_flame_graph
from .telemetry import profile_block

logger = logging.getLogger(__name__)

Instrument = Callable[[str], ContextManager]


@contextmanager
def _stage(name: str, description: str, instrument: Instrument):
    t0 = time.perf_counter()
    with instrument(name) as span:
        yield span
    logger.info("%s took %d ms", description, (time.perf_counter() - t0) * 1000)


def _tag(span, key: str, value):
    if span is not None and hasattr(span, "set_attribute"):
        span.set_attribute(key, value)


def create_flame_graph_payload(
    fetch_result: FetchResult,
    time_from: float,
    time_to: float,
    instrument: Optional[Instrument] = None,
    partitions: int = 1,
    executor: Optional[futures.Executor] = None,
) -> ElasticFlameGraph:
    """
    Build the ElasticFlameGraph for a fetch result and query window.

    ``instrument`` is called with each stage name and must return a context
    manager; it defaults to a telemetry span. ``partitions`` > 1 builds the
    caller-callee graph from merged partial graphs, built on ``executor``
    when one is given. Errors from any stage propagate unchanged and no
    partial payload is returned.
    """
    instrument = instrument or profile_block
    events = fetch_result.stack_trace_events
    directory = fetch_result.directory

    with _stage("create_caller_callee_graph", "creating caller-callee graph", instrument) as span:
        if partitions > 1:
            graph = build_caller_callee_graph_partitioned(
                events, directory, partitions, executor=executor
            )
        else:
            graph = build_caller_callee_graph(events, directory)
        _tag(span, "events", len(events))
        _tag(span, "nodes", len(graph) - 1)

    with _stage(
        "create_columnar_caller_callee", "creating columnar caller-callee graph", instrument
    ) as span:
        columnar = create_columnar_caller_callee(graph, directory)
        _tag(span, "rows", columnar.size)

    with _stage("create_flamegraph", "creating flamegraph", instrument) as span:
        flamegraph = create_flame_graph(columnar)
        _tag(span, "max_depth", flamegraph.max_depth)

    if flamegraph.total != fetch_result.total_count:
        logger.warning(
            "fetched totalCount %d differs from aggregated sample count %d",
            fetch_result.total_count,
            flamegraph.total,
        )

    with _stage("apply_sampling_correction", "applying sampling correction", instrument) as span:
        payload = create_elastic_flame_graph(
            flamegraph, fetch_result.events_index, time_to - time_from
        )
        _tag(span, "events_index", fetch_result.events_index.name)
        _tag(span, "sample_rate", fetch_result.events_index.sample_rate)
        _tag(span, "total_traces", payload.total_traces)

    logger.info(
        "flamegraph ready: %d rows, %d sampled traces, %d estimated traces",
        payload.size,
        payload.sampled_traces,
        payload.total_traces,
    )
    return payload
