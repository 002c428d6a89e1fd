"""
What-if traffic simulator.

Applies hypothetical per-cell traffic changes to the baseline buffered
capacity and classifies the congestion risk per link. The damping factor and
risk thresholds are policy knobs, not a physical model.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from config import RISK_HIGH_CHANGE_PCT, RISK_MEDIUM_CHANGE_PCT, WHAT_IF_DAMPING_FACTOR
from schema_normalizer import CellId, cell_to_link

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"


@dataclass(frozen=True)
class TrafficModification:
    cell_id: CellId
    change_percent: float


@dataclass(frozen=True)
class RiskPolicy:
    damping_factor: float = WHAT_IF_DAMPING_FACTOR
    high_threshold_pct: float = RISK_HIGH_CHANGE_PCT
    medium_threshold_pct: float = RISK_MEDIUM_CHANGE_PCT

    def classify(self, change_pct: float) -> str:
        if change_pct > self.high_threshold_pct:
            return RISK_HIGH
        if change_pct > self.medium_threshold_pct:
            return RISK_MEDIUM
        return RISK_LOW


DEFAULT_POLICY = RiskPolicy()


@dataclass(frozen=True)
class LinkImpact:
    total_change_pct: float
    capacity_change_gbps: float
    baseline_gbps: float
    risk: str
    affected_cells: Tuple[CellId, ...] = field(default=())

    @property
    def projected_gbps(self) -> float:
        return self.baseline_gbps + self.capacity_change_gbps


def estimate(baseline: Mapping[str, float],
             modifications: Iterable[TrafficModification],
             topology: Mapping[str, Sequence[CellId]],
             policy: RiskPolicy = DEFAULT_POLICY) -> Dict[str, LinkImpact]:
    """
    Impact per topology link of the given modifications.

    `baseline` is the with-buffer capacity per link (Gbps); links missing
    from it count as 0. Modifications for cells outside the topology are
    ignored.
    """
    modifications = list(modifications)
    impact = {}
    for link_id, cells in topology.items():
        members = set(cells)
        relevant = [m for m in modifications if m.cell_id in members]
        total_change = sum(m.change_percent for m in relevant)
        base = baseline.get(link_id, 0.0) or 0.0
        impact[link_id] = LinkImpact(
            total_change_pct=total_change,
            capacity_change_gbps=(total_change / 100.0) * base * policy.damping_factor,
            baseline_gbps=base,
            risk=policy.classify(total_change),
            affected_cells=tuple(m.cell_id for m in relevant),
        )
    return impact


def update_modification(modifications: Sequence[TrafficModification], cell_id: CellId,
                        change_percent: float) -> Tuple[TrafficModification, ...]:
    """Set one cell's change; 0 % removes it. Returns a new tuple."""
    if change_percent == 0:
        return tuple(m for m in modifications if m.cell_id != cell_id)
    updated: List[TrafficModification] = []
    replaced = False
    for m in modifications:
        if m.cell_id == cell_id:
            updated.append(TrafficModification(cell_id, change_percent))
            replaced = True
        else:
            updated.append(m)
    if not replaced:
        updated.append(TrafficModification(cell_id, change_percent))
    return tuple(updated)


def slider_groups(topology: Mapping[str, Sequence[CellId]]) -> Dict[str, List[CellId]]:
    """
    Cells to offer per link in the simulator, each cell exactly once.

    A modification is keyed by cell, so a cell listed on several links is
    shown under the first one only; `estimate` still applies it to all.
    """
    groups: Dict[str, List[CellId]] = {link_id: [] for link_id in topology}
    for cell, link_id in cell_to_link(topology).items():
        groups[link_id].append(cell)
    return groups


def risk_counts(impact: Mapping[str, LinkImpact]) -> Dict[str, int]:
    counts = {RISK_LOW: 0, RISK_MEDIUM: 0, RISK_HIGH: 0}
    for link_impact in impact.values():
        counts[link_impact.risk] += 1
    return counts
