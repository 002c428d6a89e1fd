import copy
from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

import api_client
import sample_data
from api_client import AnalysisFetchError

APP_FILE = str(Path(__file__).parent.parent / "app.py")


@pytest.fixture
def offline(monkeypatch):
    def unreachable(*args, **kwargs):
        raise AnalysisFetchError("API error: 503", 503)

    monkeypatch.setattr(api_client, "fetch_analysis", unreachable)


def _simulator(monkeypatch, topology):
    payload = copy.deepcopy(sample_data.SAMPLE_ANALYSIS)
    payload["topology"] = topology
    monkeypatch.setattr(sample_data, "SAMPLE_ANALYSIS", payload)

    at = AppTest.from_file(APP_FILE, default_timeout=60)
    at.run()
    at.sidebar.radio[0].set_value("Sample data")
    at.sidebar.radio[1].set_value("What-If Simulator")
    at.run()
    return at


def _cell_sliders(at):
    return [s for s in at.slider if s.key and s.key.startswith("mod_")]


def test_unreachable_api_shows_error(offline):
    at = AppTest.from_file(APP_FILE, default_timeout=60)
    at.run()

    assert not at.exception
    assert "API error: 503" in at.error[0].value


def test_simulator_renders_one_slider_per_cell(offline, monkeypatch):
    at = _simulator(monkeypatch, sample_data.SAMPLE_TOPOLOGY)

    assert not at.exception
    assert len(_cell_sliders(at)) == 24


def test_simulator_with_cell_on_two_links(offline, monkeypatch):
    at = _simulator(monkeypatch, {"1": [4, 5], "2": [5, 6]})

    assert not at.exception
    assert sorted(s.key for s in _cell_sliders(at)) == ["mod_4", "mod_5", "mod_6"]
