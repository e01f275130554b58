"""
stackflame: weighted flame graphs from sampled stack traces, corrected for
downsampled event indices.
"""

from .callercallee import (
    CallerCalleeGraph,
    CallerCalleeNode,
    build_caller_callee_graph,
    build_caller_callee_graph_partitioned,
    merge_graphs,
)
from .columnar import ColumnarGraph, create_columnar_caller_callee
from .directory import (
    Directory,
    EventsIndex,
    Executable,
    FetchResult,
    StackFrame,
    StackTrace,
    StackTraceEvent,
    load_fetch_result,
)
from .errors import ConfigError, InvalidInput, StackFlameError, UnresolvedFrame
from .flamegraph import ElasticFlameGraph, FlameGraph, create_flame_graph
from .pipeline import create_flame_graph_payload
from .sampling import create_elastic_flame_graph, estimate_total_traces, select_events_index

__version__ = "0.1.0"
