"""
folded.py

Export a flame graph as FlameGraph-style folded stacks, one line per row
with self samples:

    root_fn;child_fn;leaf_fn <self_count>
"""

from typing import Iterator, List

from ..flamegraph import FlameGraph


def build_path(row: int, fg: FlameGraph) -> List[str]:
    path = [fg.label[row]]
    path.extend(fg.label[a] for a in fg.ancestors(row))
    return list(reversed(path))


def folded_lines(fg: FlameGraph, min_count: int = 1) -> Iterator[str]:
    for row in range(fg.size):
        count = fg.count_exclusive[row]
        if count < min_count:
            continue
        # ';' separates frames in the folded format
        stack = [name.replace(";", ":") for name in build_path(row, fg)]
        yield f"{';'.join(stack)} {count}"
