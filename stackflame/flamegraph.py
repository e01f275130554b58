"""
flamegraph.py

Derive layout-ready flame graph fields from a columnar caller-callee graph.

This stage reads the columnar arrays only. Counts are copied through
unchanged; widths and offsets are fractions of the root total.
"""

from dataclasses import dataclass, field, fields
from typing import Dict, List

from .columnar import NO_PARENT, ColumnarGraph

# column attribute -> serialized key
_COLUMNS = {
    "frame_id": "FrameID",
    "parent": "Parent",
    "count_exclusive": "CountExclusive",
    "count_inclusive": "CountInclusive",
    "width": "Width",
    "self_width": "SelfWidth",
    "depth": "Depth",
    "x": "X",
    "label": "Label",
    "function_name": "FunctionName",
    "file_name": "SourceFilename",
    "line_number": "SourceLine",
    "executable_id": "ExecutableID",
    "exe_filename": "ExeFilename",
}


@dataclass
class FlameGraph(ColumnarGraph):
    width: List[float] = field(default_factory=list)
    self_width: List[float] = field(default_factory=list)
    depth: List[int] = field(default_factory=list)
    x: List[float] = field(default_factory=list)

    @property
    def max_depth(self) -> int:
        return max(self.depth, default=0)

    def to_dict(self) -> Dict:
        body = {"Size": self.size, "Total": self.total}
        for attr, key in _COLUMNS.items():
            body[key] = list(getattr(self, attr))
        return body


@dataclass
class ElasticFlameGraph(FlameGraph):
    total_seconds: float = 0.0
    total_traces: int = 0
    sampled_traces: int = 0

    def to_dict(self) -> Dict:
        body = super().to_dict()
        body["TotalSeconds"] = self.total_seconds
        body["TotalTraces"] = self.total_traces
        body["SampledTraces"] = self.sampled_traces
        return body


def create_flame_graph(columnar: ColumnarGraph) -> FlameGraph:
    """
    Compute width, self width, depth and x offset for every row.

    A zero root total (no events matched) yields an empty flame graph.
    """
    total = columnar.total
    if total == 0:
        return FlameGraph()

    base = {
        f.name: list(getattr(columnar, f.name))
        for f in fields(ColumnarGraph)
        if f.name != "total"
    }
    fg = FlameGraph(total=total, **base)

    # next free offset (in samples) under each row; the implicit root is NO_PARENT
    cursor = {NO_PARENT: 0}
    depths = []
    for row in range(columnar.size):
        parent = columnar.parent[row]
        inclusive = columnar.count_inclusive[row]
        depth = 1 if parent == NO_PARENT else depths[parent] + 1
        depths.append(depth)

        offset = cursor[parent]
        cursor[parent] = offset + inclusive
        cursor[row] = offset

        fg.width.append(inclusive / total)
        fg.self_width.append(columnar.count_exclusive[row] / total)
        fg.x.append(offset / total)
    fg.depth = depths
    return fg
