"""
callercallee.py

Aggregate stack trace events into a caller-callee graph.

Each node is a distinct call-path prefix, not merely a distinct frame: the
same function reached through two different callers gives two nodes, while
events sharing an identical prefix merge into one. Nodes live in an arena
(a list) and refer to each other by index; index 0 is the synthetic root.
"""

import concurrent.futures as futures
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .directory import Directory, FrameID, StackTraceEvent
from .errors import InvalidInput

ROOT = 0


@dataclass
class CallerCalleeNode:
    frame_id: Optional[FrameID]
    parent: int
    self_count: int = 0
    total_count: int = 0
    children: Dict[FrameID, int] = field(default_factory=dict)


class CallerCalleeGraph:
    def __init__(self):
        self.nodes: List[CallerCalleeNode] = [CallerCalleeNode(None, -1)]

    def __len__(self):
        return len(self.nodes)

    @property
    def root(self) -> CallerCalleeNode:
        return self.nodes[ROOT]

    @property
    def total_count(self) -> int:
        return self.nodes[ROOT].total_count

    def child(self, parent: int, frame_id: FrameID) -> int:
        """Index of the child of ``parent`` for ``frame_id``, created on demand."""
        children = self.nodes[parent].children
        idx = children.get(frame_id)
        if idx is None:
            idx = len(self.nodes)
            self.nodes.append(CallerCalleeNode(frame_id, parent))
            children[frame_id] = idx
        return idx

    def add_path(self, frame_ids: Sequence[FrameID], count: int) -> int:
        """Accumulate ``count`` samples along a root-to-leaf path; return the leaf index."""
        self.nodes[ROOT].total_count += count
        node = ROOT
        for frame_id in frame_ids:
            node = self.child(node, frame_id)
            self.nodes[node].total_count += count
        self.nodes[node].self_count += count
        return node

    def sorted_children(self, index: int) -> List[int]:
        """Children by descending total count, ties broken by frame id."""
        nodes = self.nodes
        return sorted(
            nodes[index].children.values(),
            key=lambda i: (-nodes[i].total_count, nodes[i].frame_id),
        )

    def path(self, index: int) -> List[FrameID]:
        frames = []
        while index != ROOT:
            node = self.nodes[index]
            frames.append(node.frame_id)
            index = node.parent
        frames.reverse()
        return frames

    def find(self, frame_ids: Sequence[FrameID]) -> Optional[CallerCalleeNode]:
        node = ROOT
        for frame_id in frame_ids:
            node = self.nodes[node].children.get(frame_id)
            if node is None:
                return None
        return self.nodes[node]

    def merge(self, other: "CallerCalleeGraph") -> "CallerCalleeGraph":
        """Add the counts of ``other`` into this graph, keyed by (parent, frame id)."""
        self.nodes[ROOT].total_count += other.nodes[ROOT].total_count
        self.nodes[ROOT].self_count += other.nodes[ROOT].self_count
        # other index -> our index
        pending = [(ROOT, ROOT)]
        while pending:
            theirs, ours = pending.pop()
            for frame_id, their_child in other.nodes[theirs].children.items():
                our_child = self.child(ours, frame_id)
                src = other.nodes[their_child]
                dst = self.nodes[our_child]
                dst.total_count += src.total_count
                dst.self_count += src.self_count
                pending.append((their_child, our_child))
        return self

    def check_conservation(self) -> None:
        """Raise InvalidInput unless every total equals self plus children totals."""
        for idx, node in enumerate(self.nodes):
            expected = node.self_count + sum(
                self.nodes[c].total_count for c in node.children.values()
            )
            if node.total_count != expected or node.total_count < node.self_count:
                raise InvalidInput(
                    f"node {idx} ({node.frame_id!r}) total {node.total_count} "
                    f"!= self {node.self_count} + children"
                )


def build_caller_callee_graph(
    events: Iterable[StackTraceEvent], directory: Directory
) -> CallerCalleeGraph:
    """
    Build the caller-callee graph for ``events``.

    Every frame is resolved against the directory before any count is added,
    so a failing event leaves no partial contribution behind. Raises
    InvalidInput for empty traces, unknown stack trace ids and counts below 1,
    and UnresolvedFrame for frames or executables missing from the directory.
    """
    graph = CallerCalleeGraph()
    resolved = set()
    for event in events:
        count = event.count
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidInput(
                f"event for stack trace {event.stack_trace_id!r} has invalid count {count!r}"
            )
        trace = directory.stack_trace(event.stack_trace_id)
        if not trace.frame_ids:
            raise InvalidInput(f"stack trace {event.stack_trace_id!r} is empty")
        for frame_id in trace.frame_ids:
            if frame_id not in resolved:
                directory.resolve(frame_id)
                resolved.add(frame_id)
        graph.add_path(trace.frame_ids, count)
    return graph


def merge_graphs(graphs: Iterable[CallerCalleeGraph]) -> CallerCalleeGraph:
    merged = CallerCalleeGraph()
    for graph in graphs:
        merged.merge(graph)
    return merged


def build_caller_callee_graph_partitioned(
    events: Sequence[StackTraceEvent],
    directory: Directory,
    partitions: int = 4,
    executor: Optional[futures.Executor] = None,
) -> CallerCalleeGraph:
    """
    Build partial graphs over ``partitions`` slices of ``events`` and merge them.

    With an executor the partial graphs are built concurrently; the directory
    is only read. Child ordering is not part of the graph, it is applied by
    the columnar transform after the merge.
    """
    if partitions < 1:
        raise InvalidInput(f"partitions must be >= 1, got {partitions}")
    events = list(events)
    chunks = [events[i::partitions] for i in range(partitions)]
    if executor is None:
        partials = [build_caller_callee_graph(chunk, directory) for chunk in chunks]
    else:
        jobs = [executor.submit(build_caller_callee_graph, chunk, directory) for chunk in chunks]
        partials = [job.result() for job in jobs]
    return merge_graphs(partials)
