"""Human-readable outline of a finished hierarchy."""

from __future__ import annotations
from typing import Dict, List, Mapping, Optional, Sequence

from ..contracts.base import TranscriptEntry
from ..contracts.nodes import CausalLink, LeafLink
from ..core.topology import HierarchyTopology


def _clip(text: Optional[str], width: int) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= width else text[:width - 3] + "..."


def _header(node: CausalLink) -> str:
    return (
        f"L{node.level} {node.node_kind.value} {node.tier.value} "
        f"mass={node.mass:.2f} span={node.span_start_index}-{node.span_end_index} "
        f"ctx={node.context_count} [{node.id}]"
    )


def render_hierarchy_outline(
    final_nodes: Sequence[CausalLink],
    topology: HierarchyTopology,
    transcript: Sequence[TranscriptEntry] = (),
    top_k: int = 10,
    max_depth: int = 3,
    width: int = 96
) -> str:
    """
    Top-K final nodes by mass (ties by id), each expanded through its
    members down to transcript lines.
    """
    lines_by_index: Dict[int, TranscriptEntry] = {e.line_index: e for e in transcript}
    ranked = sorted(final_nodes, key=lambda n: (-n.mass, n.id))[:top_k]
    out: List[str] = []
    for rank, node in enumerate(ranked, start=1):
        out.append(f"{rank}. {_header(node)}")
        _expand(node, topology, lines_by_index, 1, max_depth, width, out)
    return "\n".join(out)


def _expand(
    node: CausalLink,
    topology: HierarchyTopology,
    lines_by_index: Mapping[int, TranscriptEntry],
    depth: int,
    max_depth: int,
    width: int,
    out: List[str]
) -> None:
    indent = "   " * depth
    if isinstance(node, LeafLink):
        for anchor, text in (
            (node.cause_anchor_index, node.cause_text),
            (node.effect_anchor_index, node.effect_text),
        ):
            if anchor is None:
                continue
            entry = lines_by_index.get(anchor)
            speaker = f"{entry.author_name}: " if entry else ""
            out.append(f"{indent}#{anchor} {speaker}{_clip(text, width)}")
        return
    if depth > max_depth:
        out.append(f"{indent}...")
        return
    for child_id in topology.children(node.id):
        child = topology.node(child_id)
        if child is None:
            out.append(f"{indent}- [{child_id}]")
            continue
        out.append(f"{indent}- {_header(child)}")
        _expand(child, topology, lines_by_index, depth + 1, max_depth, width, out)
