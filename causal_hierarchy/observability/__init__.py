"""
Observability & Audit Layer

RESPONSIBILITY: Metrics, provenance fingerprints, audit tables, outlines
ALLOWED INPUTS: Finished phase outputs
OUTPUTS: PhaseMetrics, Provenance, mass-delta TSV, text outlines

WHAT THIS LAYER MUST NOT DO:
============================
- Modify nodes or phase outputs
- Make decisions based on recorded data

Outline rendering lives in observability.outline and is imported from
there, since it depends on the core topology.
"""

from .metrics import MetricStats, PhaseMetrics, MetricsCollector, metric_stats, percentile
from .audit import (
    MASS_DELTA_COLUMNS,
    Provenance,
    compute_provenance,
    nodes_hash,
    render_mass_delta_tsv,
    sha256_hex,
)

__all__ = [
    "MetricStats",
    "PhaseMetrics",
    "MetricsCollector",
    "metric_stats",
    "percentile",
    "MASS_DELTA_COLUMNS",
    "Provenance",
    "compute_provenance",
    "nodes_hash",
    "render_mass_delta_tsv",
    "sha256_hex",
]
