"""
Normalization of the analyzer payload.

The analysis service has shipped several shapes of the same data over time
(topology as a map or as a list of links, confidence as a map or a list,
outliers as a list, a map or nothing at all, ...). Everything downstream
works on the single `NormalizedAnalysis` shape built here.

Missing or wrong-typed sections never raise: they come back empty and a
warning is logged, so the dashboard can show "no data" panels instead.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

log = logging.getLogger(__name__)

CellId = Union[int, str]

_LINK_PREFIX = re.compile(r"^\s*link[\s_-]*", re.IGNORECASE)
_CELL_PREFIX = re.compile(r"^\s*cell[\s_-]*", re.IGNORECASE)


def _empty_mapping():
    return MappingProxyType({})


@dataclass(frozen=True)
class Contributor:
    cell_id: CellId
    pct: float


@dataclass(frozen=True)
class CongestionEvent:
    timestamp: float
    link_id: str
    contributors: Tuple[Contributor, ...] = ()


@dataclass(frozen=True)
class Outlier:
    cell_id: CellId
    link_id: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class CorrelationMatrix:
    cells: Tuple[CellId, ...]
    matrix: Tuple[Tuple[float, ...], ...]


@dataclass(frozen=True)
class TrafficPattern:
    times: Tuple[float, ...]
    values: Tuple[float, ...]


@dataclass(frozen=True)
class AnalysisSummary:
    """Aggregates shared by the summary, capacity and congestion panels."""
    link_count: int = 0
    cell_count: int = 0
    highest_confidence: Optional[Tuple[str, float]] = None
    average_confidence: Optional[float] = None
    max_saving: Optional[Tuple[str, float]] = None
    average_saving: Optional[float] = None
    total_capacity_reduction_gbps: Optional[float] = None
    most_congested_link: Optional[Tuple[str, int]] = None
    total_events: int = 0
    outlier_cells: Tuple[CellId, ...] = ()


@dataclass(frozen=True)
class NormalizedAnalysis:
    topology: Mapping[str, Tuple[CellId, ...]] = field(default_factory=_empty_mapping)
    confidence: Mapping[str, float] = field(default_factory=_empty_mapping)
    outliers: Tuple[Outlier, ...] = ()
    capacity_no_buffer: Mapping[str, float] = field(default_factory=_empty_mapping)
    capacity_with_buffer: Mapping[str, float] = field(default_factory=_empty_mapping)
    bandwidth_savings: Mapping[str, float] = field(default_factory=_empty_mapping)
    events: Tuple[CongestionEvent, ...] = ()
    correlation: Optional[CorrelationMatrix] = None
    traffic_patterns: Mapping[str, TrafficPattern] = field(default_factory=_empty_mapping)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)

    @property
    def links(self) -> List[str]:
        return sorted(self.topology, key=_natural_key)

    @property
    def is_empty(self) -> bool:
        return not (self.topology or self.capacity_with_buffer or self.events)


# --- identifier and number coercion ---

def _natural_key(value):
    text = str(value)
    return (0, int(text), "") if text.isdigit() else (1, 0, text)


def link_key(value: Any) -> str:
    """'Link 2', 'Link_2', 2 and '2' all name link '2'."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _LINK_PREFIX.sub("", str(value)).strip()


def cell_key(value: Any) -> CellId:
    """'Cell 7', '7' and 7 all name cell 7; non-numeric ids stay strings."""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    text = _CELL_PREFIX.sub("", str(value)).strip()
    return int(text) if text.isdigit() else text


def to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _first(obj: Mapping, *keys, default=None):
    for key in keys:
        if key in obj:
            return obj[key]
    return default


# --- sections ---

def normalize_topology(section: Any) -> Dict[str, Tuple[CellId, ...]]:
    if isinstance(section, Mapping) and isinstance(section.get("links"), list):
        section = section["links"]

    topology = {}
    if isinstance(section, list):
        for entry in section:
            if not isinstance(entry, Mapping) or "link_id" not in entry:
                log.warning("Skipping malformed topology entry: %r", entry)
                continue
            cells = entry.get("cells")
            topology[link_key(entry["link_id"])] = _cells(cells)
    elif isinstance(section, Mapping):
        for link_id, cells in section.items():
            topology[link_key(link_id)] = _cells(cells)
    elif section is not None:
        log.warning("Unrecognized topology section of type %s", type(section).__name__)
    return topology


def _cells(cells: Any) -> Tuple[CellId, ...]:
    if not isinstance(cells, (list, tuple)):
        return ()
    return tuple(cell_key(c) for c in cells)


def _per_link_values(section: Any, value_keys: Tuple[str, ...]) -> Dict[str, float]:
    """Mapping form `{link: value}` or list form `[{link_id, <value_key>}]`."""
    values = {}
    if isinstance(section, Mapping):
        for link_id, value in section.items():
            values[link_key(link_id)] = to_float(value)
    elif isinstance(section, list):
        for entry in section:
            if not isinstance(entry, Mapping) or "link_id" not in entry:
                log.warning("Skipping malformed per-link entry: %r", entry)
                continue
            values[link_key(entry["link_id"])] = to_float(_first(entry, *value_keys))
    elif section is not None:
        log.warning("Unrecognized per-link section of type %s", type(section).__name__)
    return values


def normalize_confidence(raw: Mapping) -> Dict[str, float]:
    section = _first(raw, "topology_confidence", "confidence")
    return _per_link_values(section, ("confidence",))


def normalize_outliers(section: Any) -> Tuple[Outlier, ...]:
    if section is None:
        return ()

    outliers = []
    if isinstance(section, list):
        for entry in section:
            if isinstance(entry, Mapping) and "cell_id" in entry:
                outliers.append(_outlier(entry, entry.get("link_id", "")))
            else:
                log.warning("Skipping malformed outlier: %r", entry)
    elif isinstance(section, Mapping):
        for link_id, entries in section.items():
            if isinstance(entries, Mapping):
                entries = [entries]
            if not isinstance(entries, list):
                entries = [entries]
            for entry in entries:
                if isinstance(entry, Mapping):
                    outliers.append(_outlier(entry, entry.get("link_id", link_id)))
                else:
                    outliers.append(Outlier(cell_key(entry), link_key(link_id)))
    else:
        log.warning("Unrecognized outliers section of type %s", type(section).__name__)
    return tuple(outliers)


def _outlier(entry: Mapping, link_id: Any) -> Outlier:
    reason = entry.get("reason")
    if reason is None and "max_correlation" in entry:
        reason = f"Max correlation {to_float(entry['max_correlation']):.2f} with assigned link"
    return Outlier(cell_key(entry.get("cell_id")), link_key(link_id), reason)


def normalize_capacity(raw: Mapping) -> Tuple[Dict[str, float], Dict[str, float]]:
    if isinstance(raw.get("capacity"), Mapping):
        section = raw["capacity"]
        no_buffer = _first(section, "no_buffer_gbps", "no_buffer")
        with_buffer = _first(section, "with_buffer_gbps", "with_buffer")
    elif isinstance(raw.get("capacities"), Mapping):
        section = raw["capacities"]
        no_buffer = _first(section, "no_buffer", "no_buffer_gbps")
        with_buffer = _first(section, "with_buffer", "with_buffer_gbps")
    else:
        no_buffer = raw.get("capacity_no_buf")
        with_buffer = raw.get("capacity_with_buf")
    return _per_link_values(no_buffer, ()), _per_link_values(with_buffer, ())


def normalize_savings(raw: Mapping) -> Dict[str, float]:
    section = _first(raw, "bandwidth_savings_pct", "bandwidth_savings")
    return _per_link_values(section, ("savings_percent", "savings_pct", "pct"))


def _event(entry: Any, link_id: Any) -> Optional[CongestionEvent]:
    if not isinstance(entry, Mapping):
        log.warning("Skipping malformed congestion event: %r", entry)
        return None
    raw_contributors = _first(entry, "contributors", "contributions", default=[]) or []
    if not isinstance(raw_contributors, (list, tuple)):
        log.warning("Contributors of event %r are not a list, ignoring them", entry)
        raw_contributors = []
    contributors = []
    for c in raw_contributors:
        if not isinstance(c, Mapping):
            continue
        contributors.append(Contributor(
            cell_key(_first(c, "cell_id", "cell")),
            to_float(_first(c, "pct", "contribution_percent", "percentage")),
        ))
    return CongestionEvent(
        timestamp=to_float(_first(entry, "time_sec", "timestamp", "time")),
        link_id=link_key(_first(entry, "link_id", default=link_id)),
        contributors=tuple(contributors),
    )


def normalize_events(section: Any) -> Tuple[CongestionEvent, ...]:
    """Flatten root-cause attribution into one timestamp-ordered event list."""
    if isinstance(section, Mapping) and isinstance(section.get("events"), list):
        section = section["events"]

    events = []
    if isinstance(section, list):
        events = [_event(e, "") for e in section]
    elif isinstance(section, Mapping):
        for link_id, link_events in section.items():
            if not isinstance(link_events, list):
                log.warning("Events for link %s are not a list", link_id)
                continue
            events.extend(_event(e, link_id) for e in link_events)
    elif section is not None:
        log.warning("Unrecognized root cause section of type %s", type(section).__name__)

    events = [e for e in events if e is not None]
    events.sort(key=event_sort_key)
    return tuple(events)


def event_sort_key(event: CongestionEvent) -> Tuple[bool, float]:
    """Ascending time with NaN timestamps last; use with a stable sort."""
    if math.isnan(event.timestamp):
        return True, 0.0
    return False, event.timestamp


def normalize_correlation(raw: Mapping) -> Optional[CorrelationMatrix]:
    section = raw.get("correlation_matrix")
    if isinstance(section, Mapping):
        cells, matrix = section.get("cells"), section.get("matrix")
    else:
        cells, matrix = raw.get("cells"), section
    if not isinstance(cells, list) or not isinstance(matrix, list) or not cells or not matrix:
        return None

    n = min(len(cells), len(matrix))
    rows = []
    for row in matrix[:n]:
        row = list(row) if isinstance(row, (list, tuple)) else []
        values = [to_float(v) for v in row[:n]]
        values.extend([math.nan] * (n - len(values)))
        rows.append(tuple(values))
    return CorrelationMatrix(tuple(cell_key(c) for c in cells[:n]), tuple(rows))


def normalize_traffic_patterns(section: Any) -> Dict[str, TrafficPattern]:
    patterns = {}
    if not isinstance(section, Mapping):
        if section is not None:
            log.warning("Unrecognized traffic pattern section of type %s", type(section).__name__)
        return patterns
    for link_id, series in section.items():
        if not isinstance(series, Mapping):
            continue
        times = _first(series, "times", "time_sec", "t") or []
        values = _first(series, "values", "gbps", "data_rate_gbps") or []
        if not isinstance(times, (list, tuple)) or not isinstance(values, (list, tuple)):
            log.warning("Traffic pattern for link %s is not a pair of arrays, skipping", link_id)
            continue
        n = min(len(times), len(values))
        if n != max(len(times), len(values)):
            log.warning("Traffic pattern for link %s has unequal lengths, truncating to %d", link_id, n)
        patterns[link_key(link_id)] = TrafficPattern(
            tuple(to_float(t) for t in times[:n]),
            tuple(to_float(v) for v in values[:n]),
        )
    return patterns


# --- derived aggregates ---

def _mean(values) -> Optional[float]:
    values = list(values)
    return float(np.mean(values)) if values else None


def _argmax(values: Mapping[str, float]) -> Optional[Tuple[str, float]]:
    best = None
    for link_id, value in values.items():
        if best is None or value > best[1]:
            best = (link_id, value)
    return best


def summarize(topology, confidence, outliers, no_buffer, with_buffer, savings, events) -> AnalysisSummary:
    counts: Dict[str, int] = {}
    for event in events:
        counts[event.link_id] = counts.get(event.link_id, 0) + 1
    most_congested = None
    for link_id, count in counts.items():
        if most_congested is None or count > most_congested[1]:
            most_congested = (link_id, count)

    reduction = None
    if no_buffer or with_buffer:
        reduction = float(sum(no_buffer.values()) - sum(with_buffer.values()))

    return AnalysisSummary(
        link_count=len(topology),
        cell_count=len(all_cells(topology)),
        highest_confidence=_argmax(confidence),
        average_confidence=_mean(confidence.values()),
        max_saving=_argmax(savings),
        average_saving=_mean(savings.values()),
        total_capacity_reduction_gbps=reduction,
        most_congested_link=most_congested,
        total_events=len(events),
        outlier_cells=tuple(o.cell_id for o in outliers),
    )


def normalize(raw: Any) -> NormalizedAnalysis:
    """Map any known payload shape onto `NormalizedAnalysis`."""
    if not isinstance(raw, Mapping):
        log.warning("Analysis payload is %s, not an object; using empty analysis", type(raw).__name__)
        return NormalizedAnalysis()

    topology = normalize_topology(raw.get("topology"))
    confidence = normalize_confidence(raw)
    outliers = normalize_outliers(raw.get("outliers"))
    no_buffer, with_buffer = normalize_capacity(raw)
    savings = normalize_savings(raw)
    events = normalize_events(raw.get("root_cause_attribution"))

    for name, section in (("topology", topology), ("capacity", with_buffer), ("root_cause_attribution", events)):
        if not section:
            log.warning("Analysis payload has no usable %s section", name)

    return NormalizedAnalysis(
        topology=MappingProxyType(topology),
        confidence=MappingProxyType(confidence),
        outliers=outliers,
        capacity_no_buffer=MappingProxyType(no_buffer),
        capacity_with_buffer=MappingProxyType(with_buffer),
        bandwidth_savings=MappingProxyType(savings),
        events=events,
        correlation=normalize_correlation(raw),
        traffic_patterns=MappingProxyType(normalize_traffic_patterns(raw.get("traffic_patterns"))),
        summary=summarize(topology, confidence, outliers, no_buffer, with_buffer, savings, events),
    )


# --- topology helpers ---

def all_cells(topology: Mapping[str, Tuple[CellId, ...]]) -> List[CellId]:
    cells = {c for link_cells in topology.values() for c in link_cells}
    return sorted(cells, key=_natural_key)


def cell_to_link(topology: Mapping[str, Tuple[CellId, ...]]) -> Dict[CellId, str]:
    """
    Reverse lookup of the topology.

    A cell is expected on exactly one link. When the payload attaches a cell
    to several links the first one wins and the conflict is logged; it is not
    rejected.
    """
    mapping = {}
    for link_id, cells in topology.items():
        for cell in cells:
            if cell in mapping and mapping[cell] != link_id:
                log.warning("Cell %s attached to links %s and %s", cell, mapping[cell], link_id)
                continue
            mapping[cell] = link_id
    return mapping


def format_pct(value: Optional[float], digits: int = 1) -> str:
    return "—" if value is None else f"{value:.{digits}f}%"


def format_gbps(value: Optional[float], digits: int = 2) -> str:
    return "—" if value is None else f"{value:.{digits}f} Gbps"
