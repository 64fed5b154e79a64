"""
Audit Surfaces
==============

Reproducibility fingerprints and the anneal mass-delta table.

GUARANTEES:
- params_json is canonical (sorted keys, no whitespace), so equal
  parameter sets always hash equal
- The mass-delta TSV is byte-identical for identical input
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence
import hashlib

from ..contracts.nodes import CausalLink, to_row
from ..domain.serialization import canonical_dumps


MASS_DELTA_COLUMNS = (
    "link_id", "mass_base", "mass_prev", "mass_new", "boost",
    "tier_prev", "tier_new", "top_contributor_link_id",
)


@dataclass(frozen=True)
class Provenance:
    """{kernel_version, params_json, param_hash} recorded with every run."""
    kernel_version: str
    params_json: str
    param_hash: str

    @property
    def short_hash(self) -> str:
        return self.param_hash[:12]

    def to_dict(self) -> Dict[str, str]:
        return {
            "kernel_version": self.kernel_version,
            "params_json": self.params_json,
            "param_hash": self.param_hash,
        }


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_provenance(kernel_version: str, params: Mapping[str, Any]) -> Provenance:
    params_json = canonical_dumps(params)
    return Provenance(
        kernel_version=kernel_version,
        params_json=params_json,
        param_hash=sha256_hex(params_json),
    )


def nodes_hash(nodes: Iterable[CausalLink]) -> str:
    """SHA-256 over the canonical rows of `nodes`, in the given order."""
    return sha256_hex(canonical_dumps([to_row(node) for node in nodes]))


def render_mass_delta_tsv(rows: Sequence[Mapping[str, Any]]) -> str:
    """
    One line per node; floats fixed at three decimals.

    Each row carries the MASS_DELTA_COLUMNS keys.
    """
    lines = ["\t".join(MASS_DELTA_COLUMNS)]
    for row in rows:
        lines.append("\t".join((
            str(row["link_id"]),
            f"{row['mass_base']:.3f}",
            f"{row['mass_prev']:.3f}",
            f"{row['mass_new']:.3f}",
            f"{row['boost']:.3f}",
            str(row["tier_prev"]),
            str(row["tier_new"]),
            str(row.get("top_contributor_link_id") or ""),
        )))
    return "\n".join(lines)
