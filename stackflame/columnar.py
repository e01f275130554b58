"""
columnar.py

Flatten a caller-callee graph into parallel, index-addressed columns.

Rows are emitted in depth-first pre-order starting at the root's children,
so every row's parent index is smaller than its own and a consumer can
rebuild ancestry with a single backward scan. The synthetic root is not a
row; its total is kept as ``ColumnarGraph.total``.
"""

from dataclasses import dataclass, field
from typing import Iterator, List

from .callercallee import ROOT, CallerCalleeGraph
from .directory import Directory, ExecutableID, FrameID

NO_PARENT = -1


@dataclass
class ColumnarGraph:
    total: int = 0
    frame_id: List[FrameID] = field(default_factory=list)
    parent: List[int] = field(default_factory=list)
    count_exclusive: List[int] = field(default_factory=list)
    count_inclusive: List[int] = field(default_factory=list)
    function_name: List[str] = field(default_factory=list)
    file_name: List[str] = field(default_factory=list)
    line_number: List[int] = field(default_factory=list)
    executable_id: List[ExecutableID] = field(default_factory=list)
    exe_filename: List[str] = field(default_factory=list)
    label: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.frame_id)

    def ancestors(self, index: int) -> Iterator[int]:
        """Indices of the row's ancestors, nearest first."""
        index = self.parent[index]
        while index != NO_PARENT:
            yield index
            index = self.parent[index]


def create_columnar_caller_callee(
    graph: CallerCalleeGraph, directory: Directory
) -> ColumnarGraph:
    columnar = ColumnarGraph(total=graph.total_count)
    nodes = graph.nodes
    # (node index, parent row); reversed so the largest child is popped first
    stack = [(child, NO_PARENT) for child in reversed(graph.sorted_children(ROOT))]
    while stack:
        node_idx, parent_row = stack.pop()
        node = nodes[node_idx]
        frame, exe = directory.resolve(node.frame_id)
        row = columnar.size

        columnar.frame_id.append(node.frame_id)
        columnar.parent.append(parent_row)
        columnar.count_exclusive.append(node.self_count)
        columnar.count_inclusive.append(node.total_count)
        columnar.function_name.append(frame.function_name)
        columnar.file_name.append(frame.file_name)
        columnar.line_number.append(frame.line_number)
        columnar.executable_id.append(frame.executable_id)
        columnar.exe_filename.append(exe.file_name)
        columnar.label.append(directory.label(node.frame_id))

        for child in reversed(graph.sorted_children(node_idx)):
            stack.append((child, row))
    return columnar
