"""
Hierarchy Parameters
====================

Configuration for every phase, with documented defaults.

VALIDATION:
===========
Each config validates itself in __post_init__ and raises
InvalidHierarchyParams (a ValueError) before any computation runs.
`from_dict` rejects unknown keys so a typo never silently falls back to a
default.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from .base import InvalidHierarchyParams


T = TypeVar("T")

MAX_HIERARCHY_LEVEL = 3


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidHierarchyParams(message)


def _from_mapping(cls: Type[T], data: Mapping[str, Any]) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(data) - known)
    if unknown:
        raise InvalidHierarchyParams(f"{cls.__name__}: unknown keys {unknown}")
    return cls(**data)


# =============================================================================
# LEVERS
# =============================================================================

@dataclass(frozen=True)
class LeverParams:
    """
    Two-lever regime.

    locality sets the distance falloff, coupling the evidence exponent,
    growth_resistance how fast merge thresholds rise with mass.
    """
    locality: float = 0.7
    coupling: float = 1.0
    growth_resistance: float = 0.15
    threshold_base: float = 1.0
    strength_scale: float = 2.0
    keyword_lex_bonus: float = 0.25

    def __post_init__(self):
        _require(0.0 <= self.locality <= 1.0, "locality must be within [0, 1]")
        _require(self.coupling > 0, "coupling must be positive")
        _require(self.growth_resistance >= 0, "growth_resistance must be >= 0")
        _require(self.strength_scale > 0, "strength_scale must be positive")
        _require(self.keyword_lex_bonus >= 0, "keyword_lex_bonus must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LeverParams':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TierThresholds:
    """Mass cut-offs: below `beat` is a plain link."""
    beat: float = 1.5
    event: float = 3.0
    scene: float = 6.0

    def __post_init__(self):
        _require(0 <= self.beat <= self.event <= self.scene,
                 "tier thresholds must satisfy 0 <= beat <= event <= scene")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TierThresholds':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# PHASE CONFIGS
# =============================================================================

@dataclass(frozen=True)
class KernelConfig:
    """Leaf extraction."""
    k_local: int = 8
    hill_tau: float = 8.0
    hill_steepness: float = 2.2
    beta_lex: float = 2.0
    answer_boost: float = 0.15
    strong_min_score: float = 1.0
    weak_min_score: float = 1.0
    strong_cause_mass: float = 0.7
    # Replaces the strong/weak thresholds when set
    min_pair_strength: Optional[float] = None
    max_l1_span: Optional[int] = None
    ambient_mass_boost: bool = True
    link_window: float = 18.0
    link_boost_damping: float = 0.15
    beta_lex_ll: float = 0.8
    require_claimed_neighbors: bool = True

    def __post_init__(self):
        _require(self.k_local >= 0, "k_local must be >= 0")
        _require(self.hill_tau > 0, "hill_tau must be positive")
        _require(self.hill_steepness > 0, "hill_steepness must be positive")
        _require(self.link_window >= 0, "link_window must be >= 0")
        _require(self.max_l1_span is None or self.max_l1_span >= 0,
                 "max_l1_span must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'KernelConfig':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AnnealConfig:
    """Neighbor-mass anneal."""
    window_links: int = 8
    hill_tau: float = 8.0
    hill_steepness: float = 2.2
    beta_lex: float = 0.8
    lambda_: float = 0.8
    top_k_contrib: int = 5
    include_context_text: bool = True
    tier_thresholds: Optional[TierThresholds] = field(default_factory=TierThresholds)

    def __post_init__(self):
        _require(self.window_links >= 0, "window_links must be >= 0")
        _require(self.top_k_contrib >= 0, "top_k_contrib must be >= 0")
        _require(self.hill_tau > 0, "hill_tau must be positive")
        _require(self.hill_steepness > 0, "hill_steepness must be positive")
        _require(self.lambda_ >= 0, "lambda_ must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'AnnealConfig':
        data = dict(data)
        if "tier_thresholds" in data and isinstance(data["tier_thresholds"], Mapping):
            data["tier_thresholds"] = TierThresholds.from_dict(data["tier_thresholds"])
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LinkLinkConfig:
    """Pairwise composition."""
    k_local_links: int = 8
    hill_tau: float = 8.0
    hill_steepness: float = 2.2
    beta_lex: float = 0.8
    min_bridge: float = 1.0
    # Merge threshold base; falls back to min_bridge
    t_link_base: Optional[float] = None
    t_link_k: float = 0.15
    max_forward_lines: float = 120.0

    def __post_init__(self):
        _require(self.k_local_links >= 0, "k_local_links must be >= 0")
        _require(self.hill_tau > 0, "hill_tau must be positive")
        _require(self.hill_steepness > 0, "hill_steepness must be positive")
        _require(self.max_forward_lines >= 0, "max_forward_lines must be >= 0")
        _require(self.t_link_k >= 0, "t_link_k must be >= 0")

    @property
    def threshold_base(self) -> float:
        return self.min_bridge if self.t_link_base is None else self.t_link_base

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LinkLinkConfig':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AbsorbConfig:
    """Singleton absorption as context."""
    radius_base: float = 6.0
    radius_per_mass: float = 2.0
    cap_base: float = 1.0
    cap_per_mass: float = 1.0
    min_ctx_strength: float = 0.35
    hill_tau: float = 6.0
    hill_steepness: float = 2.2
    beta_lex: float = 0.8

    def __post_init__(self):
        _require(self.radius_base >= 0, "radius_base must be >= 0")
        _require(self.hill_tau > 0, "hill_tau must be positive")
        _require(self.hill_steepness > 0, "hill_steepness must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'AbsorbConfig':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConvergenceConfig:
    """Repeat anneal once composition stalls."""
    enabled: bool = False
    epsilon: float = 1e-3
    max_iterations: int = 10

    def __post_init__(self):
        _require(self.epsilon > 0, "epsilon must be positive")
        _require(self.max_iterations >= 1, "max_iterations must be >= 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ConvergenceConfig':
        return _from_mapping(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# FULL PARAMETER SET
# =============================================================================

@dataclass(frozen=True)
class HierarchyParams:
    """Complete parameter set; its canonical JSON is hashed into provenance."""
    kernel: KernelConfig = field(default_factory=KernelConfig)
    anneal: AnnealConfig = field(default_factory=AnnealConfig)
    link_links: LinkLinkConfig = field(default_factory=LinkLinkConfig)
    absorb: Optional[AbsorbConfig] = field(default_factory=AbsorbConfig)
    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)
    levers: Optional[LeverParams] = None
    max_level: int = MAX_HIERARCHY_LEVEL

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        _require(isinstance(self.max_level, int) and not isinstance(self.max_level, bool)
                 and 1 <= self.max_level <= MAX_HIERARCHY_LEVEL,
                 f"max_level must be within 1..{MAX_HIERARCHY_LEVEL}, got {self.max_level!r}")

    @classmethod
    def default(cls) -> 'HierarchyParams':
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HierarchyParams':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidHierarchyParams(f"HierarchyParams: unknown keys {unknown}")
        kwargs: Dict[str, Any] = {}
        if "kernel" in data:
            kwargs["kernel"] = KernelConfig.from_dict(data["kernel"])
        if "anneal" in data:
            kwargs["anneal"] = AnnealConfig.from_dict(data["anneal"])
        if "link_links" in data:
            kwargs["link_links"] = LinkLinkConfig.from_dict(data["link_links"])
        if "absorb" in data:
            # null switches absorption off
            kwargs["absorb"] = None if data["absorb"] is None else AbsorbConfig.from_dict(data["absorb"])
        if "convergence" in data:
            kwargs["convergence"] = ConvergenceConfig.from_dict(data["convergence"])
        if data.get("levers") is not None:
            kwargs["levers"] = LeverParams.from_dict(data["levers"])
        if "max_level" in data:
            kwargs["max_level"] = data["max_level"]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kernel": self.kernel.to_dict(),
            "anneal": self.anneal.to_dict(),
            "link_links": self.link_links.to_dict(),
            "absorb": None if self.absorb is None else self.absorb.to_dict(),
            "convergence": self.convergence.to_dict(),
            "levers": None if self.levers is None else self.levers.to_dict(),
            "max_level": self.max_level,
        }
