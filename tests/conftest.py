"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for the fronthaul dashboard modules.

Usage:
    pytest tests/                    # Run all tests
    pytest tests/ -k "normalizer"    # Run only normalizer tests
"""

import copy
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from sample_data import SAMPLE_ANALYSIS  # noqa: E402
from schema_normalizer import CongestionEvent, Contributor  # noqa: E402


# =============================================================================
# Payload Fixtures
# =============================================================================

@pytest.fixture
def sample_payload() -> Dict[str, Any]:
    """Current `/analyze` shape (mapping topology, per-link root cause)."""
    return copy.deepcopy(SAMPLE_ANALYSIS)


@pytest.fixture
def links_payload() -> Dict[str, Any]:
    """Older shape: list-of-links topology, list confidence, flat event list."""
    return {
        "topology": {"links": [
            {"link_id": "Link 1", "cells": ["Cell 4"]},
            {"link_id": "Link 2", "cells": [1, 3, 5]},
        ]},
        "confidence": [
            {"link_id": "Link 1", "confidence": 67},
            {"link_id": "Link 2", "confidence": 61},
        ],
        "outliers": {"Link 2": [{"cell_id": 5, "max_correlation": 0.412}]},
        "capacities": {
            "no_buffer": {"Link 1": 6.77, "Link 2": 31.05},
            "with_buffer": {"Link 1": 5.27, "Link 2": 24.16},
        },
        "bandwidth_savings": [
            {"link_id": "Link 1", "savings_percent": 22.2},
            {"link_id": "Link 2", "savings_percent": 22.2},
        ],
        "root_cause_attribution": {"events": [
            {"timestamp": 2.5, "link_id": "Link 2",
             "contributors": [{"cell_id": 3, "contribution_percent": 60.0}]},
            {"timestamp": 1.0, "link_id": "Link 1",
             "contributors": [{"cell": "Cell 4", "percentage": 100}]},
        ]},
        "cells": [1, 3, 4, 5],
        "correlation_matrix": [
            [1.0, 0.8, 0.1, 0.7],
            [0.8, 1.0, 0.2, 0.9],
            [0.1, 0.2, 1.0, 0.1],
            [0.7, 0.9, 0.1, 1.0],
        ],
    }


# =============================================================================
# Event Fixtures
# =============================================================================

def make_event(t, link="1", *contributors):
    return CongestionEvent(
        timestamp=t,
        link_id=link,
        contributors=tuple(Contributor(c, p) for c, p in contributors),
    )


@pytest.fixture
def close_events():
    """Three near-simultaneous events on link 1 and an isolated one on link 2."""
    return [
        make_event(1.00, "1", (4, 100.0)),
        make_event(1.05, "1", (4, 60.0)),
        make_event(1.12, "1", (4, 30.0)),
        make_event(2.00, "2", (9, 31.0), (12, 19.5)),
    ]
