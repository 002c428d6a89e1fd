"""
Congestion event grouping for the per-link timeline lanes.

Events are grouped by link and ordered by time. Markers closer together than
a proximity threshold are fanned out to the right by a fixed pixel increment
so they do not sit on top of each other. Timestamps are never altered; the
offset is a display hint only.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from config import (
    DENSE_EVENT_COUNT,
    DENSE_PROXIMITY_THRESHOLD_SEC,
    HIGH_CONTRIBUTION_PCT,
    HIGH_SEVERITY_PCT,
    MAX_EVENTS_PER_LINK,
    OFFSET_INCREMENT_PX,
    PROXIMITY_THRESHOLD_SEC,
    TIMELINE_MARGIN_PCT,
)
from schema_normalizer import CellId, CongestionEvent, Contributor, event_sort_key


@dataclass(frozen=True)
class DisplayEvent:
    event: CongestionEvent
    display_offset: int = 0

    @property
    def timestamp(self) -> float:
        return self.event.timestamp

    @property
    def link_id(self) -> str:
        return self.event.link_id

    @property
    def top_contributor(self) -> Optional[Contributor]:
        return self.event.contributors[0] if self.event.contributors else None

    @property
    def is_high_severity(self) -> bool:
        top = self.top_contributor
        return top is not None and top.pct > HIGH_SEVERITY_PCT


@dataclass(frozen=True)
class AggregatedEvents:
    by_link: Mapping[str, Tuple[DisplayEvent, ...]]
    counts: Mapping[str, int]

    def shown_label(self, link_id: str) -> str:
        total = self.counts.get(link_id, 0)
        shown = len(self.by_link.get(link_id, ()))
        return f"{total} events" if shown == total else f"{shown} of {total} shown"


@dataclass(frozen=True)
class CongestionStats:
    total_events: int
    top_cell: Optional[CellId]
    top_average_pct: float
    high_contributions: int


def group_by_link(events: Iterable[CongestionEvent]) -> Dict[str, List[CongestionEvent]]:
    grouped: Dict[str, List[CongestionEvent]] = {}
    for event in events:
        grouped.setdefault(event.link_id, []).append(event)
    for link_events in grouped.values():
        # list.sort is stable: equal timestamps keep their input order
        link_events.sort(key=event_sort_key)
    return grouped


def stride_sample(items: Sequence, cap: int) -> List:
    """Uniformly pick `cap` items in order; shorter sequences pass through."""
    n = len(items)
    if cap <= 0:
        return []
    if n <= cap:
        return list(items)
    stride = n / cap
    return [items[int(i * stride)] for i in range(cap)]


def assign_offsets(events: Sequence[CongestionEvent], proximity_threshold: float,
                   offset_increment: int) -> List[DisplayEvent]:
    placed: List[DisplayEvent] = []
    for event in events:
        offset = 0
        if placed:
            previous = placed[-1]
            if event.timestamp - previous.timestamp < proximity_threshold:
                offset = previous.display_offset + offset_increment
        placed.append(DisplayEvent(event, offset))
    return placed


def proximity_threshold_for(event_count: int) -> float:
    """Wider merge window for dense lanes, where 0.1 s would barely group anything."""
    if event_count > DENSE_EVENT_COUNT:
        return DENSE_PROXIMITY_THRESHOLD_SEC
    return PROXIMITY_THRESHOLD_SEC


def aggregate(events: Iterable[CongestionEvent],
              proximity_threshold: float = PROXIMITY_THRESHOLD_SEC,
              offset_increment: int = OFFSET_INCREMENT_PX,
              cap: Optional[int] = MAX_EVENTS_PER_LINK,
              links: Iterable[str] = ()) -> AggregatedEvents:
    """
    Group events per link with display offsets.

    Lanes over `cap` are stride-subsampled before offsets are computed;
    `counts` always reports the full number of events per link. Links named
    in `links` get a lane even when they have no events.
    """
    grouped = group_by_link(events)
    for link_id in links:
        grouped.setdefault(link_id, [])

    by_link, counts = {}, {}
    for link_id, link_events in grouped.items():
        counts[link_id] = len(link_events)
        if cap is not None:
            link_events = stride_sample(link_events, cap)
        by_link[link_id] = tuple(assign_offsets(link_events, proximity_threshold, offset_increment))

    return AggregatedEvents(MappingProxyType(by_link), MappingProxyType(counts))


# --- time axis ---

def time_range(events: Iterable[CongestionEvent]) -> Tuple[float, float]:
    stamps = [e.timestamp for e in events if not math.isnan(e.timestamp)]
    if not stamps:
        return 0.0, 1.0
    return min(stamps), max(stamps)


def position_percent(t: float, t_min: float, t_max: float, margin_pct: float = TIMELINE_MARGIN_PCT) -> float:
    span = t_max - t_min
    if span == 0:
        return 50.0
    return margin_pct + (t - t_min) / span * (100 - 2 * margin_pct)


def time_markers(t_min: float, t_max: float, count: int = 5) -> List[float]:
    if count < 2:
        return [t_min]
    step = (t_max - t_min) / (count - 1)
    return [t_min + i * step for i in range(count - 1)] + [t_max]


# --- contribution statistics ---

def contribution_frame(events: Iterable[CongestionEvent]) -> pd.DataFrame:
    """One row per (event, contributor)."""
    rows = []
    for idx, event in enumerate(events):
        for rank, c in enumerate(event.contributors):
            rows.append({
                "event_idx": idx,
                "timestamp": event.timestamp,
                "link_id": event.link_id,
                "cell_id": c.cell_id,
                "pct": c.pct,
                "is_top": rank == 0,
            })
    return pd.DataFrame(rows, columns=["event_idx", "timestamp", "link_id", "cell_id", "pct", "is_top"])


def congestion_stats(events: Sequence[CongestionEvent],
                     high_pct: float = HIGH_CONTRIBUTION_PCT) -> CongestionStats:
    frame = contribution_frame(events)
    if frame.empty:
        return CongestionStats(len(events), None, 0.0, 0)

    averages = frame.groupby("cell_id", sort=False)["pct"].mean()
    top_cell = averages.idxmax() if averages.notna().any() else None
    top_avg = float(averages.max()) if top_cell is not None else 0.0
    return CongestionStats(
        total_events=len(events),
        top_cell=top_cell,
        top_average_pct=top_avg,
        high_contributions=int((frame["pct"] > high_pct).sum()),
    )


def cell_contribution_totals(events: Iterable[CongestionEvent], link_id: Optional[str] = None) -> pd.DataFrame:
    """Per-cell event count and mean contribution, largest mean first."""
    frame = contribution_frame(events)
    if link_id is not None:
        frame = frame[frame["link_id"] == link_id]
    if frame.empty:
        return pd.DataFrame(columns=["cell_id", "events", "mean_pct", "max_pct"])
    totals = frame.groupby("cell_id", sort=False)["pct"].agg(events="count", mean_pct="mean", max_pct="max")
    return totals.reset_index().sort_values("mean_pct", ascending=False, kind="stable").reset_index(drop=True)
