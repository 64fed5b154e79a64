"""
Forensic Hierarchy CLI
======================

Runs and inspects hierarchy builds from JSON files on disk.

COMMANDS:
- run:       Build the hierarchy for a session and write artifacts
- recompute: Rerun rounds from persisted Round-1 rows
- verify:    Repeat a run and check the output hash never changes
- outline:   Print the top nodes expanded down to transcript lines

USAGE:
    python -m causal_hierarchy.forensic [COMMAND] [ARGS]
"""
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

from .contracts.base import SessionInput
from .contracts.nodes import to_row
from .contracts.params import HierarchyParams
from .domain.serialization import pretty_dumps
from .engine import CausalHierarchyEngine, HierarchyResult
from .observability.outline import render_hierarchy_outline


NODE_TSV_COLUMNS = (
    "id", "node_kind", "level", "tier", "span_start_index", "span_end_index",
    "center_index", "mass_base", "mass_boost", "mass", "strength_bridge",
    "strength_internal", "context_count",
)


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_params(path: Optional[str]) -> HierarchyParams:
    if not path:
        return HierarchyParams.default()
    return HierarchyParams.from_dict(load_json(path))


def load_session(path: str) -> SessionInput:
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: session file must hold a JSON object")
    return SessionInput.from_dict(data)


def load_rows(path: str) -> List[Dict[str, Any]]:
    data = load_json(path)
    rows = data.get("rows") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise ValueError(f"{path}: expected a list of rows or {{'rows': [...]}}")
    return rows


def render_nodes_tsv(result: HierarchyResult) -> str:
    lines = ["\t".join(NODE_TSV_COLUMNS)]
    for node in result.final_nodes:
        row = to_row(node)
        cells = []
        for column in NODE_TSV_COLUMNS:
            value = row[column]
            cells.append(f"{value:.3f}" if isinstance(value, float) else str(value))
        lines.append("\t".join(cells))
    return "\n".join(lines)


def write_artifacts(
    result: HierarchyResult,
    out_dir: str,
    session: Optional[SessionInput] = None
) -> List[str]:
    """Write hierarchy.json, nodes.tsv, one mass-delta TSV per round and outline.txt."""
    os.makedirs(out_dir, exist_ok=True)
    written = []

    def _write(name: str, content: str) -> None:
        path = os.path.join(out_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
            f.write("\n")
        written.append(path)

    _write("hierarchy.json", pretty_dumps(result.to_dict()))
    _write("nodes.tsv", render_nodes_tsv(result))
    for round_number, tsv in sorted(result.mass_delta_tsvs().items()):
        _write(f"mass_delta_r{round_number}.tsv", tsv)
    _write("outline.txt", render_hierarchy_outline(
        result.final_nodes,
        result.topology(),
        session.transcript if session else (),
    ))
    return written


def print_summary(result: HierarchyResult) -> None:
    print(f"[*] Session:        {result.session_id}")
    print(f"[*] Kernel version: {result.provenance.kernel_version}")
    print(f"[*] Param hash:     {result.provenance.short_hash}")
    print(f"[*] Rounds:         {result.rounds_completed}")
    for state in result.phases:
        counts = ", ".join(f"{k}={v}" for k, v in sorted(state.metrics.counts.items()))
        print(f"    r{state.round} {state.phase:<9} {counts}")
    print(f"[*] Final nodes:    {len(result.final_nodes)}")
    print(f"[*] Output hash:    {result.output_hash}")


def cmd_run(args) -> int:
    session = load_session(args.session)
    engine = CausalHierarchyEngine(load_params(args.params))
    result = engine.run(session, emit_traces=args.traces)
    print_summary(result)
    if args.out:
        for path in write_artifacts(result, args.out, session):
            print(f"    wrote {path}")
    return 0


def cmd_recompute(args) -> int:
    engine = CausalHierarchyEngine(load_params(args.params))
    result = engine.recompute_from_rows(load_rows(args.rows))
    print_summary(result)
    if args.out:
        for path in write_artifacts(result, args.out):
            print(f"    wrote {path}")
    return 0


def cmd_verify(args) -> int:
    session = load_session(args.session)
    params = load_params(args.params)
    print(f"[*] Verifying determinism over {args.runs} runs...")
    hashes = []
    for _ in range(args.runs):
        result = CausalHierarchyEngine(params).run(session)
        hashes.append((result.output_hash, result.mass_delta_tsvs()))
    reference = hashes[0]
    mismatches = sum(1 for h in hashes[1:] if h != reference)
    if mismatches:
        print(f"[FAIL] {mismatches} of {args.runs - 1} repeat runs diverged.")
        return 1
    print(f"[PASS] Output hash stable: {reference[0]}")
    return 0


def cmd_outline(args) -> int:
    session = load_session(args.session)
    result = CausalHierarchyEngine(load_params(args.params)).run(session)
    print(render_hierarchy_outline(
        result.final_nodes,
        result.topology(),
        session.transcript,
        top_k=args.top_k,
        max_depth=args.max_depth,
    ))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Causal hierarchy forensic tool")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Build the hierarchy for a session")
    run_parser.add_argument("session", help="Session JSON file")
    run_parser.add_argument("--params", help="HierarchyParams JSON file")
    run_parser.add_argument("--out", help="Directory for artifacts")
    run_parser.add_argument("--traces", action="store_true", help="Record kernel allocation traces")

    recompute_parser = subparsers.add_parser("recompute", help="Rerun rounds from Round-1 rows")
    recompute_parser.add_argument("rows", help="JSON list of Round-1 rows")
    recompute_parser.add_argument("--params", help="HierarchyParams JSON file")
    recompute_parser.add_argument("--out", help="Directory for artifacts")

    verify_parser = subparsers.add_parser("verify", help="Check repeated runs are identical")
    verify_parser.add_argument("session", help="Session JSON file")
    verify_parser.add_argument("--params", help="HierarchyParams JSON file")
    verify_parser.add_argument("--runs", type=int, default=3, help="Number of runs to compare")

    outline_parser = subparsers.add_parser("outline", help="Print the hierarchy outline")
    outline_parser.add_argument("session", help="Session JSON file")
    outline_parser.add_argument("--params", help="HierarchyParams JSON file")
    outline_parser.add_argument("--top-k", type=int, default=10)
    outline_parser.add_argument("--max-depth", type=int, default=3)

    return parser


COMMANDS = {
    "run": cmd_run,
    "recompute": cmd_recompute,
    "verify": cmd_verify,
    "outline": cmd_outline,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2
    try:
        return handler(args)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
