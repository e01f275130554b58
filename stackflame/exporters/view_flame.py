"""
view_flame.py

Render a flame graph as a collapsible tree in the terminal using Rich,
with human-friendly sample counts.
"""

from rich.markup import escape
from rich.tree import Tree

from ..columnar import NO_PARENT
from ..flamegraph import ElasticFlameGraph, FlameGraph


def format_count(samples: int) -> str:
    """Convert a sample count to a short human-friendly string."""
    if samples >= 1_000_000:
        return f"{samples / 1_000_000:.2f}M"
    elif samples >= 1_000:
        return f"{samples / 1_000:.2f}k"
    else:
        return str(samples)


def title(fg: FlameGraph) -> str:
    head = f"[b]root[/] • {format_count(fg.total)} samples (100%)"
    if isinstance(fg, ElasticFlameGraph):
        head += (
            f" • ~{format_count(fg.total_traces)} traces estimated"
            f" over {fg.total_seconds:g}s"
        )
    return head


def render(fg: FlameGraph, tree: Tree, min_width: float = 0.0) -> Tree:
    """
    Add every row of ``fg`` under ``tree``. Rows narrower than ``min_width``
    (a fraction of the root total) are left out together with their children.
    """
    branches = {NO_PARENT: tree}
    for row in range(fg.size):
        parent = branches.get(fg.parent[row])
        if parent is None or fg.width[row] < min_width:
            continue
        label = escape(fg.label[row])
        if fg.file_name[row]:
            label += f" [dim]{escape(fg.file_name[row])}:{fg.line_number[row]}[/]"
        total = format_count(fg.count_inclusive[row])
        pct = fg.width[row] * 100
        text = f"[bold]{label}[/] • {total} ({pct:.1f}%)"
        if fg.count_exclusive[row]:
            text += f" self {format_count(fg.count_exclusive[row])}"
        branches[row] = parent.add(text)
    return tree


def build_tree(fg: FlameGraph, min_width: float = 0.0) -> Tree:
    return render(fg, Tree(title(fg)), min_width)
