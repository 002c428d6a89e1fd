"""
Offline analysis payload.

Backs the "Sample data" source of the dashboard and the static exporter
when no payload file is given. Shaped like the live `/analyze` response.
"""

import numpy as np

SAMPLE_TOPOLOGY = {
    "1": [4],
    "2": [1, 3, 5, 9, 11, 12, 14, 17, 20, 21, 22],
    "3": [2, 6, 7, 8, 10, 13, 15, 16, 18, 19, 23, 24],
}


def _correlation(topology, seed=7):
    rng = np.random.default_rng(seed)
    cells = sorted(c for link_cells in topology.values() for c in link_cells)
    link_of = {c: link for link, link_cells in topology.items() for c in link_cells}
    n = len(cells)
    matrix = np.empty((n, n))
    for i, a in enumerate(cells):
        for j in range(i, n):
            b = cells[j]
            if i == j:
                value = 1.0
            elif link_of[a] == link_of[b]:
                value = rng.uniform(0.72, 0.96)
            else:
                value = rng.uniform(0.05, 0.35)
            matrix[i, j] = matrix[j, i] = round(float(value), 3)
    return {"cells": cells, "matrix": matrix.tolist()}


def _traffic(base_gbps, seconds=60.0, slot_sec=0.01, seed=11):
    rng = np.random.default_rng(seed)
    t = np.arange(0, seconds, slot_sec)
    load = base_gbps * (0.55 + 0.15 * np.sin(t / 4.0)) + rng.normal(0, base_gbps * 0.04, len(t))
    # micro-bursts
    bursts = rng.random(len(t)) < 0.004
    load[bursts] += base_gbps * rng.uniform(0.3, 0.6, bursts.sum())
    return {"times": np.round(t, 3).tolist(), "values": np.round(np.clip(load, 0, None), 3).tolist()}


SAMPLE_ANALYSIS = {
    "topology": SAMPLE_TOPOLOGY,
    "topology_confidence": {"1": 67.0, "2": 61.0, "3": 87.0},
    "outliers": [],
    "capacity": {
        "no_buffer_gbps": {"1": 6.77, "2": 31.05, "3": 56.57},
        "with_buffer_gbps": {"1": 5.27, "2": 24.16, "3": 44.0},
    },
    "bandwidth_savings_pct": {"1": 22.2, "2": 22.2, "3": 22.2},
    "root_cause_attribution": {
        "1": [
            {"time_sec": 1.21, "contributors": [{"cell_id": 4, "pct": 100.0}]},
            {"time_sec": 2.48, "contributors": [{"cell_id": 4, "pct": 100.0}]},
            {"time_sec": 2.52, "contributors": [{"cell_id": 4, "pct": 100.0}]},
        ],
        "2": [
            {"time_sec": 1.06, "contributors": [{"cell_id": 20, "pct": 22.8}, {"cell_id": 1, "pct": 21.1}, {"cell_id": 5, "pct": 18.4}]},
            {"time_sec": 1.12, "contributors": [{"cell_id": 9, "pct": 31.0}, {"cell_id": 12, "pct": 19.5}]},
            {"time_sec": 2.87, "contributors": [{"cell_id": 14, "pct": 27.3}, {"cell_id": 20, "pct": 15.2}]},
            {"time_sec": 3.4, "contributors": [{"cell_id": 1, "pct": 35.6}, {"cell_id": 20, "pct": 28.2}, {"cell_id": 5, "pct": 14.9}]},
            {"time_sec": 3.45, "contributors": [{"cell_id": 12, "pct": 24.1}, {"cell_id": 9, "pct": 18.0}]},
        ],
        "3": [
            {"time_sec": 1.55, "contributors": [{"cell_id": 2, "pct": 26.4}, {"cell_id": 8, "pct": 21.7}]},
            {"time_sec": 2.02, "contributors": [{"cell_id": 10, "pct": 29.9}, {"cell_id": 15, "pct": 17.3}]},
            {"time_sec": 2.06, "contributors": [{"cell_id": 19, "pct": 33.2}, {"cell_id": 23, "pct": 20.4}]},
            {"time_sec": 3.12, "contributors": [{"cell_id": 8, "pct": 25.5}, {"cell_id": 2, "pct": 22.0}]},
            {"time_sec": 3.89, "contributors": [{"cell_id": 23, "pct": 28.9}, {"cell_id": 15, "pct": 25.3}, {"cell_id": 10, "pct": 18.7}]},
        ],
    },
    "correlation_matrix": _correlation(SAMPLE_TOPOLOGY),
    "traffic_patterns": {
        "1": _traffic(6.77, seed=11),
        "2": _traffic(31.05, seed=12),
        "3": _traffic(56.57, seed=13),
    },
}
