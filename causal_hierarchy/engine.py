"""
Hierarchy Engine Orchestration
==============================

Sequences the phases of one hierarchy run:

    Round 1:  Kernel -> Anneal [-> Absorb]
    Round k:  Composer -> Anneal -> propagate internal strength [-> Absorb]
              for k = 2 .. max_level

DESIGN PRINCIPLES:
==================
1. Phases communicate ONLY through contracts
2. Every phase returns new nodes; a finished round is never touched again
3. All timestamps come from the injected clock
4. Parameters are validated before any computation and fingerprinted
   into the provenance record

With convergence enabled, a round whose composer finds no pair anneals
repeatedly until the largest mass change drops below epsilon, and the
run stops composing.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from .contracts.base import InvalidHierarchyParams, SessionInput, SingletonKind
from .contracts.nodes import CausalLink, CompositeLink, LeafLink, from_row, to_row
from .contracts.params import HierarchyParams, MAX_HIERARCHY_LEVEL
from .contracts.traces import (
    ContextEdge, LinkLinkCandidate, NeighborEdgeTrace, SingletonNode,
)
from .core.absorption import absorb_singletons, extract_singletons
from .core.anneal import AnnealResult, anneal_links
from .core.composer import LinkLinkComposer, index_by_id, propagate_internal_strength
from .core.detection import CauseDetector, EffectDetector
from .core.kernel import CAUSAL_KERNEL_VERSION, KernelOutput, LeafExtractionKernel
from .core.topology import HierarchyTopology
from .observability.audit import Provenance, compute_provenance, nodes_hash
from .observability.metrics import MetricsCollector, PhaseMetrics, metric_stats
from .temporal.clock import LogicalClock


logger = logging.getLogger(__name__)


# =============================================================================
# RESULT CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class RoundPhaseState:
    """Output of one phase of one round."""
    round: int
    phase: str
    nodes: Tuple[CausalLink, ...]
    metrics: PhaseMetrics
    neighbor_edges: Tuple[NeighborEdgeTrace, ...] = ()
    candidates: Tuple[LinkLinkCandidate, ...] = ()
    context_edges: Tuple[ContextEdge, ...] = ()
    mass_delta_tsv: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "phase": self.phase,
            "nodes": [to_row(n) for n in self.nodes],
            "metrics": self.metrics.to_dict(),
            "neighbor_edges": [e.to_dict() for e in self.neighbor_edges],
            "candidates": [c.to_dict() for c in self.candidates],
            "context_edges": [e.to_dict() for e in self.context_edges],
            "mass_delta_tsv": self.mass_delta_tsv,
        }


@dataclass(frozen=True)
class HierarchyResult:
    """Everything a run produced, plus its reproducibility fingerprints."""
    session_id: str
    phases: Tuple[RoundPhaseState, ...]
    provenance: Provenance
    output_hash: str
    kernel_output: Optional[KernelOutput] = None
    remaining_singletons: Tuple[SingletonNode, ...] = field(default_factory=tuple)
    metrics: MetricsCollector = field(default_factory=MetricsCollector, compare=False)

    @property
    def final_nodes(self) -> Tuple[CausalLink, ...]:
        return self.phases[-1].nodes if self.phases else ()

    @property
    def rounds_completed(self) -> int:
        return max((p.round for p in self.phases), default=0)

    def round_nodes(self, round_number: int) -> Tuple[CausalLink, ...]:
        """Nodes as they stood when `round_number` finished."""
        states = [p for p in self.phases if p.round == round_number]
        return states[-1].nodes if states else ()

    def phase(self, round_number: int, phase: str) -> Optional[RoundPhaseState]:
        for state in self.phases:
            if state.round == round_number and state.phase == phase:
                return state
        return None

    def mass_delta_tsvs(self) -> Dict[int, str]:
        """Anneal audit table per round (the last anneal of each round)."""
        tables: Dict[int, str] = {}
        for state in self.phases:
            if state.mass_delta_tsv:
                tables[state.round] = state.mass_delta_tsv
        return tables

    def topology(self) -> HierarchyTopology:
        topology = HierarchyTopology()
        for state in self.phases:
            topology.add_nodes(state.nodes)
        return topology

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "provenance": self.provenance.to_dict(),
            "output_hash": self.output_hash,
            "rounds_completed": self.rounds_completed,
            "final_nodes": [to_row(n) for n in self.final_nodes],
            "metrics": [p.metrics.to_dict() for p in self.phases],
            "unclaimed_effects": [
                e.to_dict() for e in (self.kernel_output.unclaimed_effects if self.kernel_output else ())
            ],
            "remaining_singletons": [s.to_dict() for s in self.remaining_singletons],
        }


# =============================================================================
# ENGINE
# =============================================================================

@dataclass
class _RunContext:
    """Per-run clock and metrics; nothing outlives a single run."""
    clock: LogicalClock
    metrics: MetricsCollector = field(default_factory=MetricsCollector)


class CausalHierarchyEngine:
    """
    Orchestrates kernel, anneal, composer and absorption rounds.

    Detectors and the clock are injected. Without a clock, every stamp is
    frozen at the eligibility mask's compiled_at_ms, which keeps repeated
    runs byte-identical.
    """

    def __init__(
        self,
        params: Optional[HierarchyParams] = None,
        cause_detector: Optional[CauseDetector] = None,
        effect_detector: Optional[EffectDetector] = None,
        clock: Optional[LogicalClock] = None
    ):
        self._params = params or HierarchyParams.default()
        self._params.validate()
        self._cause_detector = cause_detector
        self._effect_detector = effect_detector
        self._clock = clock

    @property
    def params(self) -> HierarchyParams:
        return self._params

    def provenance(self) -> Provenance:
        return compute_provenance(CAUSAL_KERNEL_VERSION, self._params.to_dict())

    def run(self, session: SessionInput, emit_traces: bool = False) -> HierarchyResult:
        """Full recompute for one session."""
        ctx = _RunContext(
            clock=self._clock or LogicalClock.frozen(session.eligibility_mask.compiled_at_ms)
        )
        kernel = LeafExtractionKernel(
            self._params.kernel,
            self._params.levers,
            self._cause_detector,
            self._effect_detector,
        )
        output = kernel.extract(session, ctx.clock, emit_traces=emit_traces)
        claimed = sum(1 for link in output.links if link.claimed)
        kernel_state = RoundPhaseState(
            round=1,
            phase="kernel",
            nodes=output.links,
            metrics=self._record(ctx, 1, "kernel", {
                "links": len(output.links),
                "claimed": claimed,
                "unclaimed": len(output.links) - claimed,
                "effects": len(output.effects),
                "unclaimed_effects": len(output.unclaimed_effects),
            }, {
                "mass": metric_stats(n.mass for n in output.links),
                "score": metric_stats(n.score for n in output.links if n.score is not None),
            }),
        )
        causes, effects = extract_singletons(
            session.session_id, output.links, output.unclaimed_effects
        )
        phases, remaining = self._run_rounds(
            session.session_id, output.links, causes + effects, ctx
        )
        return self._result(
            session.session_id, (kernel_state,) + phases, remaining, output, ctx.metrics
        )

    def recompute_from_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        clock: Optional[LogicalClock] = None
    ) -> HierarchyResult:
        """
        Rerun rounds from persisted Round-1 rows.

        The kernel is skipped; unclaimed leaf rows still act as singleton
        causes unless absorption is switched off.
        """
        nodes = tuple(from_row(row) for row in rows)
        if not nodes:
            raise ValueError("recompute needs at least one row")
        session_ids = {n.session_id for n in nodes}
        if len(session_ids) != 1:
            raise ValueError(f"rows span several sessions: {sorted(session_ids)}")
        if any(not isinstance(n, LeafLink) for n in nodes):
            raise ValueError("recompute starts from level-1 rows only")
        session_id = session_ids.pop()
        ctx = _RunContext(
            clock=clock or self._clock or LogicalClock.frozen(
                max(n.created_at_ms for n in nodes)
            )
        )
        ordered = tuple(sorted(nodes, key=lambda n: (n.cause_anchor_index, n.id)))
        causes, _ = extract_singletons(session_id, ordered)  # type: ignore[arg-type]
        phases, remaining = self._run_rounds(session_id, ordered, causes, ctx)
        return self._result(session_id, phases, remaining, None, ctx.metrics)

    # =========================================================================
    # ROUNDS
    # =========================================================================

    def _run_rounds(
        self,
        session_id: str,
        round_one: Sequence[CausalLink],
        singletons: Sequence[SingletonNode],
        ctx: _RunContext
    ) -> Tuple[Tuple[RoundPhaseState, ...], Tuple[SingletonNode, ...]]:
        params = self._params
        if not 1 <= params.max_level <= MAX_HIERARCHY_LEVEL:
            raise InvalidHierarchyParams(f"max_level out of range: {params.max_level}")

        phases: List[RoundPhaseState] = []
        context: Dict[str, Tuple[str, ...]] = {}
        remaining = tuple(singletons)

        annealed = self._anneal(1, round_one, context, ctx, phases, {})
        nodes, remaining = self._absorb(1, annealed, remaining, context, ctx, phases)

        composer = LinkLinkComposer(params.link_links, params.levers)
        for round_number in range(2, params.max_level + 1):
            previous = index_by_id(nodes)
            composed = composer.compose(session_id, nodes, ctx.clock)
            phases.append(RoundPhaseState(
                round=round_number,
                phase="compose",
                nodes=composed.nodes,
                candidates=composed.candidates,
                metrics=self._record(ctx, round_number, "compose", {
                    "input_nodes": len(nodes),
                    "candidates": len(composed.candidates),
                    "composites": len(composed.composites),
                    "unpaired": len(composed.unpaired),
                }, {
                    "strength_bridge": metric_stats(c.strength_bridge for c in composed.composites),
                    "composite_mass_base": metric_stats(c.mass_base for c in composed.composites),
                }),
            ))
            for composite in composed.composites:
                inherited = context.get(composite.members[0], ()) + context.get(composite.members[1], ())
                if inherited:
                    context[composite.id] = inherited

            annealed = self._anneal(round_number, composed.nodes, context, ctx, phases, previous)
            nodes, remaining = self._absorb(
                round_number, annealed, remaining, context, ctx, phases
            )

            if not composed.composites and params.convergence.enabled:
                nodes = self._converge(round_number, nodes, context, ctx, phases)
                logger.info("round %d produced no composites; stopping", round_number)
                break

        return tuple(phases), remaining

    def _anneal(
        self,
        round_number: int,
        nodes: Sequence[CausalLink],
        context: Mapping[str, Tuple[str, ...]],
        ctx: _RunContext,
        phases: List[RoundPhaseState],
        children: Mapping[str, CausalLink]
    ) -> Tuple[CausalLink, ...]:
        result = anneal_links(nodes, self._params.anneal, self._params.levers, context)
        annealed = result.nodes
        if children:
            annealed = propagate_internal_strength(annealed, children)
        phases.append(self._anneal_state(round_number, "anneal", annealed, result, ctx))
        return annealed

    def _anneal_state(
        self,
        round_number: int,
        phase: str,
        nodes: Tuple[CausalLink, ...],
        result: AnnealResult,
        ctx: _RunContext
    ) -> RoundPhaseState:
        logger.info("round %d %s nodes=%d", round_number, phase, len(nodes))
        return RoundPhaseState(
            round=round_number,
            phase=phase,
            nodes=nodes,
            neighbor_edges=result.neighbor_edges,
            mass_delta_tsv=result.mass_delta_tsv,
            metrics=self._record(ctx, round_number, phase, {
                "links": len(nodes),
                "neighbor_edges": len(result.neighbor_edges),
                "composites": sum(1 for n in nodes if isinstance(n, CompositeLink)),
            }, {
                "mass_base": metric_stats(n.mass_base for n in nodes),
                "mass_boost": metric_stats(n.mass_boost for n in nodes),
                "mass": metric_stats(n.mass for n in nodes),
                "strength_internal": metric_stats(n.strength_internal for n in nodes),
            }),
        )

    def _absorb(
        self,
        round_number: int,
        nodes: Tuple[CausalLink, ...],
        singletons: Tuple[SingletonNode, ...],
        context: Dict[str, Tuple[str, ...]],
        ctx: _RunContext,
        phases: List[RoundPhaseState]
    ) -> Tuple[Tuple[CausalLink, ...], Tuple[SingletonNode, ...]]:
        config = self._params.absorb
        if config is None or not singletons:
            return nodes, singletons
        causes = [s for s in singletons if s.kind is SingletonKind.CAUSE]
        effects = [s for s in singletons if s.kind is SingletonKind.EFFECT]
        result = absorb_singletons(nodes, causes, effects, config, ctx.clock)
        for link_id, texts in result.context_by_link_id.items():
            context[link_id] = context.get(link_id, ()) + texts
        phases.append(RoundPhaseState(
            round=round_number,
            phase="absorb",
            nodes=result.nodes,
            context_edges=result.context_edges,
            metrics=self._record(ctx, round_number, "absorb", result.counts, {
                "ctx_strength": metric_stats(result.ctx_strengths),
            }),
        ))
        return result.nodes, result.remaining_causes + result.remaining_effects

    def _converge(
        self,
        round_number: int,
        nodes: Tuple[CausalLink, ...],
        context: Mapping[str, Tuple[str, ...]],
        ctx: _RunContext,
        phases: List[RoundPhaseState]
    ) -> Tuple[CausalLink, ...]:
        convergence = self._params.convergence
        for iteration in range(1, convergence.max_iterations + 1):
            result = anneal_links(nodes, self._params.anneal, self._params.levers, context)
            nodes = result.nodes
            phases.append(self._anneal_state(round_number, "converge", nodes, result, ctx))
            if result.max_mass_delta < convergence.epsilon:
                logger.debug("converged after %d anneal iterations", iteration)
                break
        return nodes

    # =========================================================================
    # BOOKKEEPING
    # =========================================================================

    def _record(
        self,
        ctx: _RunContext,
        round_number: int,
        phase: str,
        counts: Dict[str, int],
        stats: Dict[str, Any]
    ) -> PhaseMetrics:
        metrics = PhaseMetrics(
            round=round_number,
            phase=phase,
            timestamp_ms=ctx.clock.now_ms(),
            counts=counts,
            stats=stats,
        )
        ctx.metrics.collect(metrics)
        return metrics

    def _result(
        self,
        session_id: str,
        phases: Tuple[RoundPhaseState, ...],
        remaining: Tuple[SingletonNode, ...],
        kernel_output: Optional[KernelOutput],
        metrics: MetricsCollector
    ) -> HierarchyResult:
        final_nodes = phases[-1].nodes if phases else ()
        return HierarchyResult(
            session_id=session_id,
            phases=phases,
            provenance=self.provenance(),
            output_hash=nodes_hash(final_nodes),
            kernel_output=kernel_output,
            remaining_singletons=remaining,
            metrics=metrics,
        )


def run_hierarchy_rounds(
    session: SessionInput,
    params: Optional[HierarchyParams] = None,
    cause_detector: Optional[CauseDetector] = None,
    effect_detector: Optional[EffectDetector] = None,
    clock: Optional[LogicalClock] = None,
    emit_traces: bool = False
) -> HierarchyResult:
    """One-shot convenience wrapper around CausalHierarchyEngine.run."""
    engine = CausalHierarchyEngine(params, cause_detector, effect_detector, clock)
    return engine.run(session, emit_traces=emit_traces)
