import json
import logging
import os
import sys
from pathlib import Path

import plotly.graph_objects as go
from plotly.subplots import make_subplots

from config import DOWNSAMPLE_TARGET_POINTS, OUTPUT_DIR, configure_logging
from charts import capacity_frame, link_color, traffic_frame
from event_aggregator import cell_contribution_totals, group_by_link
from sample_data import SAMPLE_ANALYSIS
from schema_normalizer import NormalizedAnalysis, format_gbps, format_pct, normalize

log = logging.getLogger(__name__)

# Configuration
PAYLOAD_FILE = os.environ.get("ANALYSIS_PAYLOAD_FILE", "")
OUTPUT_HTML = OUTPUT_DIR / "fronthaul_dashboard.html"


def load_data(path=PAYLOAD_FILE):
    """Saved `/analyze` payload, or the bundled sample when no file is given."""
    if not path:
        log.info("No payload file configured, using the sample analysis")
        return normalize(SAMPLE_ANALYSIS)
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    log.info("Loaded analysis payload from %s", path)
    return normalize(raw)


def create_dashboard(analysis: NormalizedAnalysis, output_html=OUTPUT_HTML):
    links = analysis.links
    fig = make_subplots(
        rows=4, cols=1,
        subplot_titles=(
            "Link Traffic (peak per bucket)",
            "Required Capacity: No Buffer vs With Buffer",
            "Link Summary",
            "Congestion Events per Link",
        ),
        vertical_spacing=0.08,
        specs=[[{"type": "xy"}], [{"type": "xy"}], [{"type": "table"}], [{"type": "xy"}]],
    )

    # Traffic, downsampled so spikes survive
    for idx, link_id in enumerate(links):
        chart_data = traffic_frame(analysis, link_id, DOWNSAMPLE_TARGET_POINTS)
        if chart_data.empty:
            continue
        fig.add_trace(
            go.Scatter(x=chart_data["time"], y=chart_data["gbps"], mode="lines", name=f"Link {link_id} Traffic",
                       line=dict(width=1, color=link_color(idx)), opacity=0.8),
            row=1, col=1,
        )
        with_buffer = analysis.capacity_with_buffer.get(link_id)
        if with_buffer is not None:
            fig.add_hline(y=with_buffer, line_dash="dot", line_color=link_color(idx),
                          annotation_text=f"Link {link_id} Buffer", row=1, col=1)

    frame = capacity_frame(analysis)
    fig.add_trace(go.Bar(name="No Buffer", x=frame["Link"], y=frame["No Buffer (Gbps)"], marker_color="#FF6B35"),
                  row=2, col=1)
    fig.add_trace(go.Bar(name="With Buffer", x=frame["Link"], y=frame["With Buffer (Gbps)"], marker_color="#00D084"),
                  row=2, col=1)

    grouped = group_by_link(analysis.events)
    header = ["Link", "Cells", "Confidence", "No Buffer", "With Buffer", "Savings", "Top Contributor"]
    rows = []
    for link_id in links:
        totals = cell_contribution_totals(grouped.get(link_id, []))
        top = f"Cell {totals['cell_id'].iloc[0]}" if not totals.empty else "—"
        rows.append([
            f"Link {link_id}",
            len(analysis.topology[link_id]),
            format_pct(analysis.confidence.get(link_id)),
            format_gbps(analysis.capacity_no_buffer.get(link_id)),
            format_gbps(analysis.capacity_with_buffer.get(link_id)),
            format_pct(analysis.bandwidth_savings.get(link_id)),
            top,
        ])
    # Transpose for plotly table
    cell_data = list(map(list, zip(*rows))) if rows else [[] for _ in header]
    fig.add_trace(
        go.Table(
            header=dict(values=header, fill_color="#124191", font=dict(color="white"), align="left"),
            cells=dict(values=cell_data, fill_color="#f5f7fa", align="left"),
        ),
        row=3, col=1,
    )

    fig.add_trace(
        go.Bar(name="Events", x=[f"Link {l}" for l in links], y=[len(grouped.get(l, [])) for l in links],
               marker_color=[link_color(i) for i in range(len(links))], showlegend=False),
        row=4, col=1,
    )

    fig.update_layout(
        title_text="<b>O-RAN Fronthaul Analysis Dashboard</b>",
        height=1400,
        template="plotly_white",
        showlegend=True,
        barmode="group",
    )

    Path(output_html).parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(output_html)
    log.info("Dashboard saved to %s", output_html)
    return fig


if __name__ == "__main__":
    configure_logging()
    create_dashboard(load_data(sys.argv[1] if len(sys.argv) > 1 else PAYLOAD_FILE))
