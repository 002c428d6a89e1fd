import streamlit as st
import pandas as pd
from datetime import datetime

from config import (
    ANALYSIS_CACHE_TTL_SEC,
    API_BASE_URL,
    DOWNSAMPLE_TARGET_POINTS,
    HIGH_CONTRIBUTION_PCT,
    MAX_EVENTS_PER_LINK,
    MIN_DOWNSAMPLE_TARGET,
    OFFSET_INCREMENT_PX,
    WHAT_IF_SLIDER_RANGE_PCT,
    configure_logging,
)
from api_client import AnalysisFetchError, fetch_analysis
from charts import (
    capacity_figure,
    capacity_frame,
    confidence_figure,
    contribution_figure,
    heatmap_figure,
    timeline_figure,
    traffic_figure,
    what_if_figure,
)
from chat_client import SUGGESTED_QUESTIONS, ChatError, QuotaExhaustedError, RateLimitError, make_chat_client
from correlation_colors import heatmap_grid, legend_stops
from event_aggregator import (
    aggregate,
    cell_contribution_totals,
    congestion_stats,
    group_by_link,
    proximity_threshold_for,
    time_range,
)
from report import analysis_to_json, generate_report
from sample_data import SAMPLE_ANALYSIS
from schema_normalizer import all_cells, cell_to_link, format_gbps, format_pct, normalize
from topology_view import topology_figure
from what_if import RISK_HIGH, RISK_MEDIUM, estimate, risk_counts, slider_groups, update_modification

configure_logging()

st.set_page_config(
    page_title="O-RAN Fronthaul Optimizer",
    page_icon="📡",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .fh-header {
        background: linear-gradient(135deg, #124191 0%, #1976D2 100%);
        padding: 28px;
        border-radius: 10px;
        color: white;
        margin-bottom: 24px;
    }
    .stMetric {
        background-color: #ffffff;
        padding: 16px;
        border-radius: 12px;
        border-left: 4px solid #124191;
    }
    .risk-badge {
        display: inline-block;
        padding: 6px 14px;
        border-radius: 20px;
        font-weight: 600;
        color: white;
    }
    .risk-low { background-color: #00D084; }
    .risk-medium { background-color: #F7931E; }
    .risk-high { background-color: #FF3B30; }
    .insight-box {
        background: #f5f7fa;
        padding: 14px 18px;
        border-radius: 10px;
        margin: 6px 0;
        border-left: 4px solid #1976D2;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_data(ttl=ANALYSIS_CACHE_TTL_SEC, show_spinner=False)
def load_payload(base_url):
    return fetch_analysis(base_url)


def risk_badge(risk):
    return f'<span class="risk-badge risk-{risk}">{risk.upper()}</span>'


st.markdown("""
<div class="fh-header">
    <h1 style="margin:0; font-size: 34px;">📡 O-RAN Fronthaul Optimizer</h1>
    <p style="margin: 8px 0 0 0; opacity: 0.9;">Topology inference, capacity planning &amp; congestion root cause</p>
</div>
""", unsafe_allow_html=True)

# --- SIDEBAR ---
with st.sidebar:
    st.header("📁 Data Source")
    source = st.radio("Analysis payload", ["Live API", "Sample data"])
    base_url = API_BASE_URL
    if source == "Live API":
        base_url = st.text_input("API base URL", value=API_BASE_URL)
        if st.button("🔄 Refresh analysis"):
            load_payload.clear()

    st.markdown("---")
    page = st.radio("🎛️ View", ["Analysis Dashboard", "What-If Simulator"])

    st.markdown("---")
    st.header("⚙️ Display Controls")
    target_points = st.slider("Traffic chart points", MIN_DOWNSAMPLE_TARGET, 1000, DOWNSAMPLE_TARGET_POINTS, 50)

# --- LOAD ---
if source == "Live API":
    try:
        with st.spinner("🔄 Fetching analysis results..."):
            raw = load_payload(base_url)
    except AnalysisFetchError as e:
        st.error(f"❌ Failed to load analysis data: {e}")
        st.info("Reload the page or switch the data source to *Sample data*.")
        st.stop()
else:
    raw = SAMPLE_ANALYSIS

analysis = normalize(raw)
summary = analysis.summary
links = analysis.links

if analysis.is_empty:
    st.warning("No data available in the analysis response.")

# --- WHAT-IF SIMULATOR ---
if page == "What-If Simulator":
    st.markdown("### 🧪 What-If Simulator")
    st.caption("Simulate per-cell traffic changes and estimate the impact on each fronthaul link.")

    if "modifications" not in st.session_state:
        st.session_state.modifications = ()
        st.session_state.simulation_run = False

    col_reset, col_run = st.columns([1, 1])
    if col_reset.button("↺ Reset All", use_container_width=True):
        for cell in all_cells(analysis.topology):
            st.session_state.pop(f"mod_{cell}", None)
        st.session_state.modifications = ()
        st.session_state.simulation_run = False

    mods = st.session_state.modifications
    groups = slider_groups(analysis.topology)
    for link_id in links:
        with st.expander(f"**Link {link_id}** — {len(analysis.topology[link_id])} cells", expanded=False):
            cols = st.columns(4)
            for idx, cell in enumerate(groups.get(link_id, ())):
                lo, hi = WHAT_IF_SLIDER_RANGE_PCT
                value = cols[idx % 4].slider(f"Cell {cell} (%)", lo, hi, 0, 5, key=f"mod_{cell}")
                mods = update_modification(mods, cell, value)

    if mods != st.session_state.modifications:
        st.session_state.modifications = mods
        st.session_state.simulation_run = False

    if mods:
        st.markdown("**Active modifications:** " + " · ".join(
            f"Cell {m.cell_id} {'📈' if m.change_percent > 0 else '📉'} {m.change_percent:+.0f}%" for m in mods
        ))

    if col_run.button("▶️ Run Simulation", type="primary", disabled=not mods, use_container_width=True):
        st.session_state.simulation_run = True

    if st.session_state.simulation_run and mods:
        impact = estimate(analysis.capacity_with_buffer, mods, analysis.topology)
        st.session_state.last_impact = impact
        counts = risk_counts(impact)

        c1, c2, c3 = st.columns(3)
        c1.metric("Links at high risk", counts[RISK_HIGH])
        c2.metric("Links at medium risk", counts[RISK_MEDIUM])
        c3.metric("Total capacity change", format_gbps(sum(i.capacity_change_gbps for i in impact.values())))

        for link_id in links:
            i = impact[link_id]
            st.markdown(
                f"**Link {link_id}** {risk_badge(i.risk)} &nbsp; traffic {i.total_change_pct:+.0f}% → "
                f"capacity {i.capacity_change_gbps:+.2f} Gbps ({format_gbps(i.projected_gbps)} projected)"
                + (f" · cells {', '.join(str(c) for c in i.affected_cells)}" if i.affected_cells else ""),
                unsafe_allow_html=True,
            )
        st.plotly_chart(what_if_figure(impact), use_container_width=True)
    elif not mods:
        st.info("Adjust cell traffic sliders to set up a scenario.")
    st.stop()

# --- DASHBOARD ---
tab1, tab2, tab3, tab4, tab5, tab6, tab7, tab8 = st.tabs([
    "📊 Summary",
    "🕸️ Topology",
    "⚡ Capacity",
    "🚨 Congestion",
    "🔥 Correlation",
    "📈 Traffic",
    "🤖 AI Assistant",
    "📥 Export",
])

with tab1:
    st.markdown("### 📈 Network KPIs")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Fronthaul Links", summary.link_count, f"{summary.cell_count} cells")
    col2.metric("Avg Confidence", format_pct(summary.average_confidence))
    col3.metric("Capacity Reduction", format_gbps(summary.total_capacity_reduction_gbps, 1))
    col4.metric("Congestion Events", summary.total_events)

    st.markdown("### 🧠 Key Insights")
    insights = [f"{summary.link_count} fronthaul links were inferred from packet-loss correlation analysis."]
    if summary.highest_confidence:
        link_id, value = summary.highest_confidence
        insights.append(f"Link {link_id} shows the highest topology confidence at {value:.1f}%.")
    if summary.outlier_cells:
        insights.append("Outlier detected: " + ", ".join(f"Cell {c}" for c in summary.outlier_cells)
                        + " shows weaker correlation with assigned link traffic patterns.")
    if summary.max_saving:
        link_id, value = summary.max_saving
        insights.append(f"Buffering reduces required capacity by up to {value:.1f}% on Link {link_id}.")
    if summary.total_capacity_reduction_gbps is not None:
        insights.append(f"Total network capacity can be reduced by {summary.total_capacity_reduction_gbps:.1f} Gbps "
                        "while maintaining ≤1% packet loss.")
    if summary.most_congested_link:
        link_id, count = summary.most_congested_link
        insights.append(f"Link {link_id} experienced the most congestion events ({count}).")
    for text in insights:
        st.markdown(f'<div class="insight-box">{text}</div>', unsafe_allow_html=True)

with tab2:
    st.markdown("### 🕸️ Inferred Topology")
    if not analysis.topology:
        st.info("No topology data available.")
    else:
        fig, congested = topology_figure(analysis)
        st.plotly_chart(fig, use_container_width=True)
        st.plotly_chart(confidence_figure(analysis), use_container_width=True)

        mapping = cell_to_link(analysis.topology)
        mapping_df = pd.DataFrame(
            [(f"Cell {c}", f"Link {l}") for c, l in mapping.items()], columns=["Cell", "Link"]
        )
        st.dataframe(mapping_df, use_container_width=True, hide_index=True)

        if analysis.outliers:
            st.markdown("#### ⚠️ Outliers")
            for o in analysis.outliers:
                st.warning(f"Cell {o.cell_id} on Link {o.link_id}" + (f": {o.reason}" if o.reason else ""))
        if congested:
            st.caption("Congested elements: " + ", ".join(e["node"] for e in congested))

with tab3:
    st.markdown("### ⚡ Capacity Planning")
    if not analysis.capacity_with_buffer and not analysis.capacity_no_buffer:
        st.info("No capacity data available.")
    else:
        col1, col2 = st.columns(2)
        if summary.max_saving:
            col1.metric("Max Bandwidth Savings", format_pct(summary.max_saving[1]), f"Link {summary.max_saving[0]}")
        col2.metric("Avg Bandwidth Savings", format_pct(summary.average_saving))
        st.plotly_chart(capacity_figure(analysis), use_container_width=True)
        st.dataframe(capacity_frame(analysis).set_index("Link"), use_container_width=True)
        st.caption("Savings are reported by the analysis service as (no buffer − with buffer) / no buffer.")

with tab4:
    st.markdown("### 🚨 Congestion Root Cause")
    if not analysis.events:
        st.info("No congestion events available.")
    else:
        stats = congestion_stats(analysis.events)
        col1, col2, col3 = st.columns(3)
        col1.metric("Total Events", stats.total_events)
        col2.metric("Top Contributor", f"Cell {stats.top_cell}" if stats.top_cell is not None else "—",
                    f"avg {stats.top_average_pct:.1f}%")
        col3.metric(f"Contributions > {HIGH_CONTRIBUTION_PCT:.0f}%", stats.high_contributions)

        densest = max(len(v) for v in group_by_link(analysis.events).values())
        threshold = st.number_input("Marker grouping window (s)", min_value=0.0, max_value=5.0,
                                    value=proximity_threshold_for(densest), step=0.05)
        aggregated = aggregate(analysis.events, proximity_threshold=threshold,
                               offset_increment=OFFSET_INCREMENT_PX, cap=MAX_EVENTS_PER_LINK, links=links)
        st.plotly_chart(timeline_figure(aggregated, time_range(analysis.events), links), use_container_width=True)
        st.plotly_chart(contribution_figure(analysis), use_container_width=True)

        link_choice = st.selectbox("Contributor breakdown", links, format_func=lambda l: f"Link {l}")
        st.dataframe(cell_contribution_totals(analysis.events, link_choice), use_container_width=True, hide_index=True)
        st.caption(f"Cells above {HIGH_CONTRIBUTION_PCT:.0f}% contribution are primary drivers that may "
                   "warrant further investigation.")

with tab5:
    st.markdown("### 🔥 Cell Correlation")
    grid = heatmap_grid(analysis.correlation)
    if grid is None:
        st.info("No correlation data available.")
    else:
        st.plotly_chart(heatmap_figure(grid), use_container_width=True)
        legend = "".join(
            f'<span style="display:inline-block;width:40px;height:14px;background:{color}" title="{v:.0%}"></span>'
            for v, color in legend_stops()
        )
        st.markdown(f"Low {legend} High", unsafe_allow_html=True)
        st.caption("High correlation indicates cells share the same fronthaul Ethernet link.")

with tab6:
    st.markdown("### 📈 Traffic Patterns")
    if not analysis.traffic_patterns:
        st.info("No traffic pattern data in this analysis.")
    for link_id in links:
        if link_id in analysis.traffic_patterns:
            st.plotly_chart(traffic_figure(analysis, link_id, target_points), use_container_width=True)
    if analysis.traffic_patterns:
        st.caption("Each point is the peak of its time bucket, so short congestion spikes stay visible.")

with tab7:
    st.markdown("### 🤖 Fronthaul AI Assistant")
    client = make_chat_client(analysis)
    if client is None:
        st.info("Set CHAT_URL or OPENAI_API_KEY to enable the assistant.")
    else:
        if "messages" not in st.session_state:
            st.session_state.messages = []

        for msg in st.session_state.messages:
            with st.chat_message(msg["role"]):
                st.markdown(msg["content"])

        prompt = None
        if not st.session_state.messages:
            cols = st.columns(len(SUGGESTED_QUESTIONS))
            for col, question in zip(cols, SUGGESTED_QUESTIONS):
                if col.button(question, use_container_width=True):
                    prompt = question
        prompt = st.chat_input("Ask about topology, capacity or congestion...") or prompt

        if prompt:
            st.session_state.messages.append({"role": "user", "content": prompt})
            with st.chat_message("user"):
                st.markdown(prompt)

            received = []

            def collect(stream):
                for fragment in stream:
                    received.append(fragment)
                    yield fragment

            with st.chat_message("assistant"):
                try:
                    st.write_stream(collect(client.stream(st.session_state.messages)))
                except RateLimitError as e:
                    st.warning(f"⏳ {e}")
                except QuotaExhaustedError as e:
                    st.warning(f"💳 {e}")
                except ChatError as e:
                    st.error(f"❌ {e}")
            # partial replies are kept
            if received:
                st.session_state.messages.append({"role": "assistant", "content": "".join(received)})

with tab8:
    st.markdown("### 📥 Export Analysis")
    impact = st.session_state.get("last_impact")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("📄 Generate Report (PDF)", type="primary", use_container_width=True):
            with st.spinner("Generating PDF report..."):
                pdf_buffer = generate_report(analysis, impact)
            st.download_button(
                label="⬇️ Download PDF Report",
                data=pdf_buffer,
                file_name=f"Fronthaul_Report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf",
                mime="application/pdf",
                use_container_width=True
            )
    with col2:
        st.download_button(
            label="📊 Download Data (JSON)",
            data=analysis_to_json(analysis, impact),
            file_name=f"fronthaul_analysis_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json",
            mime="application/json",
            use_container_width=True
        )
