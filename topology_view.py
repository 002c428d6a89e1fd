import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
import plotly.graph_objects as go

from config import HIGH_CONTRIBUTION_PCT, HIGH_SEVERITY_PCT
from schema_normalizer import CellId, CongestionEvent, NormalizedAnalysis

LEVEL_HEALTHY, LEVEL_WARNING, LEVEL_CRITICAL = 0, 1, 2


def cell_congestion_levels(events: Sequence[CongestionEvent]) -> Dict[CellId, int]:
    """
    Worst contribution a cell ever made to a congestion event, as a level:
    > 50 % critical, > 20 % warning, otherwise healthy.
    """
    levels: Dict[CellId, int] = {}
    for event in events:
        for c in event.contributors:
            if c.pct > HIGH_SEVERITY_PCT:
                lvl = LEVEL_CRITICAL
            elif c.pct > HIGH_CONTRIBUTION_PCT:
                lvl = LEVEL_WARNING
            else:
                lvl = LEVEL_HEALTHY
            levels[c.cell_id] = max(levels.get(c.cell_id, 0), lvl)
    return levels


def build_topology_graph(topology: Mapping[str, Sequence[CellId]],
                         cell_levels: Optional[Mapping[CellId, int]] = None,
                         outlier_cells: Sequence[CellId] = ()) -> nx.Graph:
    """
    DU -> leaf switch -> one CSR per link -> cells.

    Each node carries a `level` attribute; links and the core inherit the
    worst level below them.
    """
    cell_levels = cell_levels or {}
    outliers = set(outlier_cells)
    G = nx.Graph()
    G.add_node("DU", type="core", label="Distributed Unit (DU)", level=0)
    G.add_node("Leaf_Switch", type="switch", label="Leaf Switch", level=0)
    G.add_edge("DU", "Leaf_Switch")

    for link_id, cells in topology.items():
        csr = f"CSR_{link_id}"
        G.add_node(csr, type="csr", label=f"CSR (Link {link_id})", link=link_id, level=0)
        G.add_edge("Leaf_Switch", csr)
        for cell in cells:
            node = f"Cell_{cell}"
            G.add_node(node, type="outlier" if cell in outliers else "cell", label=f"Cell {cell}",
                       link=link_id, level=cell_levels.get(cell, 0))
            G.add_edge(csr, node)
        G.nodes[csr]["level"] = max((cell_levels.get(c, 0) for c in cells), default=0)

    worst = max((G.nodes[f"CSR_{l}"]["level"] for l in topology), default=0)
    G.nodes["Leaf_Switch"]["level"] = worst
    G.nodes["DU"]["level"] = worst
    return G


def layout_topology(G: nx.Graph) -> Dict[str, np.ndarray]:
    """Radial layered layout: core on top, CSRs on a ring, cells clustered under their CSR."""
    pos = {"DU": np.array([0.0, 0.0, 3.0]), "Leaf_Switch": np.array([0.0, 0.0, 2.5])}
    csrs = [n for n, d in G.nodes(data=True) if d["type"] == "csr"]
    num_links = max(len(csrs), 1)

    for i, csr in enumerate(csrs):
        theta = 2 * math.pi * i / num_links
        pos[csr] = np.array([1.5 * math.cos(theta), 1.5 * math.sin(theta), 2.0])

        cells = [n for n in G.neighbors(csr) if G.nodes[n]["type"] in ("cell", "outlier")]
        if not cells:
            continue
        # arc per branch so neighbouring links do not overlap
        arc = math.pi / 2 if num_links <= 2 else (2 * math.pi / num_links) * 0.7
        offsets = np.linspace(-arc / 2, arc / 2, len(cells)) if len(cells) > 1 else [0.0]
        for cell, offset in zip(cells, offsets):
            pos[cell] = np.array([3.0 * math.cos(theta + offset), 3.0 * math.sin(theta + offset), 0.0])
    return pos


EDGE_STYLES = [
    (LEVEL_HEALTHY, "#444444", "Healthy Links", 3),
    (LEVEL_WARNING, "#ff7f0e", "Warning Links", 5),
    (LEVEL_CRITICAL, "#ff0000", "Congested Links (Critical)", 8),
]

NODE_STYLES = {
    "core": {"color": "#00ff00", "size": 16, "symbol": "diamond", "name": "Distributed Unit (DU)"},
    "switch": {"color": "#3498db", "size": 13, "symbol": "square", "name": "Leaf Switch"},
    "csr": {"color": "#e67e22", "size": 11, "symbol": "circle", "name": "CSR (Link Aggregator)"},
    "cell": {"color": "#bdc3c7", "size": 6, "symbol": "circle", "name": "Cell Site"},
    "outlier": {"color": "#f1c40f", "size": 8, "symbol": "x", "name": "Outlier Cell"},
}


def topology_figure(analysis: NormalizedAnalysis) -> Tuple[go.Figure, List[dict]]:
    """3D topology with congestion-coloured edges, plus the list of congested elements."""
    G = build_topology_graph(
        analysis.topology,
        cell_congestion_levels(analysis.events),
        analysis.summary.outlier_cells,
    )
    pos = layout_topology(G)
    traces = []

    for level, color, name, width in EDGE_STYLES:
        xs, ys, zs = [], [], []
        for u, v in G.edges():
            if max(G.nodes[u]["level"], G.nodes[v]["level"]) != level:
                continue
            (x0, y0, z0), (x1, y1, z1) = pos[u], pos[v]
            xs += [x0, x1, None]
            ys += [y0, y1, None]
            zs += [z0, z1, None]
        if xs:
            traces.append(go.Scatter3d(
                x=xs, y=ys, z=zs, mode="lines", name=name,
                line=dict(color=color, width=width),
                opacity=0.7 if level == LEVEL_HEALTHY else 1.0,
                hoverinfo="none",
            ))

    for node_type, style in NODE_STYLES.items():
        nodes = [n for n, d in G.nodes(data=True) if d["type"] == node_type]
        if not nodes:
            continue
        traces.append(go.Scatter3d(
            x=[pos[n][0] for n in nodes],
            y=[pos[n][1] for n in nodes],
            z=[pos[n][2] for n in nodes],
            mode="markers" if node_type in ("cell", "outlier") else "markers+text",
            name=style["name"],
            marker=dict(size=style["size"], color=style["color"], symbol=style["symbol"],
                        line=dict(color="#ffffff", width=1)),
            text=[G.nodes[n]["label"] for n in nodes],
            textposition="top center",
            hoverinfo="text",
        ))

    fig = go.Figure(data=traces)
    fig.update_layout(
        title="Inferred Fronthaul Topology",
        paper_bgcolor="#0e1117",
        font=dict(color="#ffffff"),
        legend=dict(x=0.75, y=0.1, bgcolor="rgba(0,0,0,0.5)"),
        scene=dict(
            xaxis=dict(visible=False), yaxis=dict(visible=False), zaxis=dict(visible=False),
            bgcolor="#0e1117",
        ),
        margin=dict(l=0, r=0, b=0, t=40),
        height=600,
    )

    congested = [
        {"node": d["label"], "level": d["level"]}
        for _, d in G.nodes(data=True) if d["level"] > LEVEL_HEALTHY
    ]
    return fig, congested
