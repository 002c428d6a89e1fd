"""Chart-ready frames and plotly figures for the dashboard panels."""

from typing import Mapping, Optional, Tuple

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from config import DOWNSAMPLE_TARGET_POINTS, MIN_DOWNSAMPLE_TARGET, OFFSET_INCREMENT_PX
from correlation_colors import DIAGONAL_COLOR, HeatmapGrid, colorscale
from downsampling import downsample_frame
from event_aggregator import AggregatedEvents, contribution_frame, position_percent, time_markers
from schema_normalizer import NormalizedAnalysis
from what_if import RISK_HIGH, RISK_LOW, RISK_MEDIUM, LinkImpact

LINK_COLORS = ["#1976D2", "#00D084", "#F7931E", "#9b59b6", "#e74c3c", "#16a085"]
RISK_COLORS = {RISK_LOW: "#00D084", RISK_MEDIUM: "#F7931E", RISK_HIGH: "#FF3B30"}
# nominal lane width used to turn pixel offsets into axis percent
TIMELINE_WIDTH_PX = 900


def link_color(idx: int) -> str:
    return LINK_COLORS[idx % len(LINK_COLORS)]


def capacity_frame(analysis: NormalizedAnalysis) -> pd.DataFrame:
    rows = []
    for link_id in analysis.links:
        rows.append({
            "Link": f"Link {link_id}",
            "No Buffer (Gbps)": analysis.capacity_no_buffer.get(link_id, np.nan),
            "With Buffer (Gbps)": analysis.capacity_with_buffer.get(link_id, np.nan),
            "Savings (%)": analysis.bandwidth_savings.get(link_id, np.nan),
            "Confidence (%)": analysis.confidence.get(link_id, np.nan),
            "Cells": len(analysis.topology[link_id]),
        })
    return pd.DataFrame(rows, columns=["Link", "No Buffer (Gbps)", "With Buffer (Gbps)", "Savings (%)",
                                       "Confidence (%)", "Cells"])


def capacity_figure(analysis: NormalizedAnalysis) -> go.Figure:
    frame = capacity_frame(analysis)
    long = frame.melt(id_vars="Link", value_vars=["No Buffer (Gbps)", "With Buffer (Gbps)"],
                      var_name="Method", value_name="Capacity (Gbps)")
    fig = px.bar(
        long, x="Link", y="Capacity (Gbps)", color="Method", barmode="group",
        color_discrete_map={"No Buffer (Gbps)": "#FF6B35", "With Buffer (Gbps)": "#00D084"},
    )
    fig.update_layout(height=400, template="plotly_white", title="Required Capacity: No Buffer vs With Buffer")
    return fig


def confidence_figure(analysis: NormalizedAnalysis) -> go.Figure:
    frame = capacity_frame(analysis)
    fig = px.bar(frame, x="Link", y="Confidence (%)", range_y=[0, 100], text="Confidence (%)",
                 color_discrete_sequence=["#124191"])
    fig.update_traces(texttemplate="%{text:.1f}%", textposition="outside")
    fig.update_layout(height=320, template="plotly_white", title="Topology Confidence per Link")
    return fig


def traffic_frame(analysis: NormalizedAnalysis, link_id: str,
                  target_points: int = DOWNSAMPLE_TARGET_POINTS) -> pd.DataFrame:
    pattern = analysis.traffic_patterns.get(link_id)
    if pattern is None:
        return pd.DataFrame(columns=["time", "gbps"])
    frame = pd.DataFrame({"time": pattern.times, "gbps": pattern.values})
    return downsample_frame(frame, "time", "gbps", max(target_points, MIN_DOWNSAMPLE_TARGET))


def traffic_figure(analysis: NormalizedAnalysis, link_id: str,
                   target_points: int = DOWNSAMPLE_TARGET_POINTS) -> go.Figure:
    chart_data = traffic_frame(analysis, link_id, target_points)
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=chart_data["time"],
        y=chart_data["gbps"],
        mode="lines",
        name="Data rate (peak per bucket)",
        line=dict(color="#1976D2", width=1),
        fill="tozeroy",
        fillcolor="rgba(25, 118, 210, 0.1)",
    ))
    no_buffer = analysis.capacity_no_buffer.get(link_id)
    with_buffer = analysis.capacity_with_buffer.get(link_id)
    if no_buffer is not None:
        fig.add_hline(y=no_buffer, line_dash="dot", line_color="#FF6B35",
                      annotation_text="No buffer", annotation_position="right")
    if with_buffer is not None:
        fig.add_hline(y=with_buffer, line_dash="dash", line_color="#00D084",
                      annotation_text="With buffer", annotation_position="right")
    fig.update_layout(
        title=f"Link {link_id} - Traffic Pattern ({len(chart_data)} points)",
        xaxis_title="Time (s)",
        yaxis_title="Data rate (Gbps)",
        height=350,
        template="plotly_white",
        margin=dict(l=0, r=0, t=40, b=0),
    )
    return fig


def timeline_figure(aggregated: AggregatedEvents, t_range: Tuple[float, float],
                    links: Optional[list] = None) -> go.Figure:
    """One lane per link; near-simultaneous markers fan out to the right."""
    t_min, t_max = t_range
    links = links or sorted(aggregated.by_link)
    fig = go.Figure()

    for lane, link_id in enumerate(links):
        placed = aggregated.by_link.get(link_id, ())
        xs = [position_percent(e.timestamp, t_min, t_max) + e.display_offset / TIMELINE_WIDTH_PX * 100
              for e in placed]
        hover = []
        for e in placed:
            top = "<br>".join(f"Cell {c.cell_id}: {c.pct:.1f}%" for c in e.event.contributors[:3])
            more = len(e.event.contributors) - 3
            if more > 0:
                top += f"<br>+{more} more"
            hover.append(f"Link {link_id} t={e.timestamp:.2f}s<br>{top}")
        fig.add_trace(go.Scatter(
            x=xs,
            y=[lane] * len(xs),
            mode="markers",
            name=f"Link {link_id} ({aggregated.shown_label(link_id)})",
            marker=dict(
                size=[16 if e.is_high_severity else 12 for e in placed],
                color=link_color(lane),
                symbol=["diamond" if e.is_high_severity else "circle" for e in placed],
                line=dict(color="#ffffff", width=1),
            ),
            hovertext=hover,
            hoverinfo="text",
        ))

    markers = time_markers(t_min, t_max)
    fig.update_layout(
        title=f"Event Timeline {t_min:.2f}s → {t_max:.2f}s",
        xaxis=dict(range=[0, 100 + OFFSET_INCREMENT_PX * 3 / TIMELINE_WIDTH_PX * 100],
                   tickvals=[position_percent(t, t_min, t_max) for t in markers],
                   ticktext=[f"{t:.2f}s" for t in markers], showgrid=True),
        yaxis=dict(tickvals=list(range(len(links))), ticktext=[f"Link {l}" for l in links],
                   range=[-0.5, len(links) - 0.5]),
        height=120 + 60 * len(links),
        template="plotly_white",
        margin=dict(l=0, r=0, t=40, b=0),
    )
    return fig


def contribution_figure(analysis: NormalizedAnalysis) -> go.Figure:
    frame = contribution_frame(analysis.events)
    if frame.empty:
        return go.Figure()
    frame = frame.assign(Cell=frame["cell_id"].map(lambda c: f"Cell {c}"),
                         Link=frame["link_id"].map(lambda l: f"Link {l}"))
    fig = px.line(frame, x="timestamp", y="pct", color="Cell", line_group="Cell", facet_row="Link",
                  markers=True, labels={"timestamp": "Time (s)", "pct": "Contribution (%)"})
    fig.update_layout(height=220 * max(frame["Link"].nunique(), 1), template="plotly_white",
                      title="Cell Contribution Across Congestion Events")
    return fig


def heatmap_figure(grid: HeatmapGrid) -> go.Figure:
    z = np.array(grid.values, dtype=float)
    # diagonal left blank so the neutral background shows through
    np.fill_diagonal(z, np.nan)
    labels = [str(c) for c in grid.cells]
    fig = go.Figure(go.Heatmap(
        z=z,
        x=labels,
        y=labels,
        zmin=0,
        zmax=1,
        colorscale=colorscale(),
        hovertemplate="Cell %{y} ↔ Cell %{x}: %{z:.1%}<extra></extra>",
        xgap=1,
        ygap=1,
    ))
    fig.update_layout(
        title=f"Cell Correlation Matrix ({grid.size} cells)",
        plot_bgcolor=DIAGONAL_COLOR,
        yaxis=dict(autorange="reversed"),
        height=max(400, 22 * grid.size + 120),
        template="plotly_white",
    )
    return fig


def what_if_figure(impact: Mapping[str, LinkImpact]) -> go.Figure:
    links = sorted(impact)
    fig = go.Figure()
    fig.add_trace(go.Bar(name="Baseline (with buffer)", x=[f"Link {l}" for l in links],
                         y=[impact[l].baseline_gbps for l in links], marker_color="#124191"))
    fig.add_trace(go.Bar(name="Projected", x=[f"Link {l}" for l in links],
                         y=[impact[l].projected_gbps for l in links],
                         marker_color=[RISK_COLORS[impact[l].risk] for l in links]))
    fig.update_layout(barmode="group", height=380, template="plotly_white",
                      yaxis_title="Capacity (Gbps)", title="Simulated Capacity Impact")
    return fig
