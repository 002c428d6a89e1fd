import math

import pytest

from schema_normalizer import (
    NormalizedAnalysis,
    all_cells,
    cell_key,
    cell_to_link,
    format_gbps,
    format_pct,
    link_key,
    normalize,
    normalize_events,
    normalize_outliers,
    normalize_topology,
)


class TestIdentifiers:
    def test_link_prefixes_are_stripped(self):
        assert link_key("Link 2") == "2"
        assert link_key("Link_2") == "2"
        assert link_key(2) == "2"
        assert link_key(2.0) == "2"

    def test_cell_ids_become_ints(self):
        assert cell_key("Cell 7") == 7
        assert cell_key("7") == 7
        assert cell_key(7.0) == 7
        assert cell_key("RU-a") == "RU-a"


class TestCurrentShape:
    def test_sections(self, sample_payload):
        analysis = normalize(sample_payload)

        assert analysis.links == ["1", "2", "3"]
        assert analysis.topology["1"] == (4,)
        assert analysis.confidence["3"] == 87.0
        assert analysis.capacity_no_buffer["2"] == 31.05
        assert analysis.capacity_with_buffer["1"] == 5.27
        assert analysis.bandwidth_savings["3"] == 22.2
        assert analysis.correlation is not None
        assert len(analysis.correlation.cells) == 24
        assert set(analysis.traffic_patterns) == {"1", "2", "3"}

    def test_events_flattened_and_time_ordered(self, sample_payload):
        analysis = normalize(sample_payload)
        stamps = [e.timestamp for e in analysis.events]

        assert len(stamps) == 13
        assert stamps == sorted(stamps)
        assert {e.link_id for e in analysis.events} == {"1", "2", "3"}

    def test_summary_computed_once(self, sample_payload):
        summary = normalize(sample_payload).summary

        assert summary.link_count == 3
        assert summary.cell_count == 24
        assert summary.highest_confidence == ("3", 87.0)
        assert summary.average_confidence == pytest.approx((67 + 61 + 87) / 3)
        assert summary.total_capacity_reduction_gbps == pytest.approx(
            (6.77 + 31.05 + 56.57) - (5.27 + 24.16 + 44.0))
        assert summary.total_events == 13
        assert summary.most_congested_link == ("2", 5)


class TestLegacyShape:
    def test_list_sections(self, links_payload):
        analysis = normalize(links_payload)

        assert analysis.topology == {"1": (4,), "2": (1, 3, 5)}
        assert analysis.confidence == {"1": 67.0, "2": 61.0}
        assert analysis.capacity_with_buffer == {"1": 5.27, "2": 24.16}
        assert analysis.bandwidth_savings == {"1": 22.2, "2": 22.2}

    def test_event_list_with_alternate_keys(self, links_payload):
        events = normalize(links_payload).events

        assert [e.link_id for e in events] == ["1", "2"]
        assert events[0].contributors[0].cell_id == 4
        assert events[0].contributors[0].pct == 100.0
        assert events[1].contributors[0].pct == 60.0

    def test_outliers_keyed_by_link(self, links_payload):
        outliers = normalize(links_payload).outliers

        assert len(outliers) == 1
        assert outliers[0].cell_id == 5
        assert outliers[0].link_id == "2"
        assert "0.41" in outliers[0].reason

    def test_top_level_correlation(self, links_payload):
        correlation = normalize(links_payload).correlation

        assert correlation.cells == (1, 3, 4, 5)
        assert correlation.matrix[1][3] == 0.9


class TestFailSoft:
    def test_non_mapping_payload(self):
        analysis = normalize(["not", "an", "object"])

        assert isinstance(analysis, NormalizedAnalysis)
        assert analysis.is_empty
        assert analysis.summary.average_confidence is None

    def test_empty_payload_logs_warning(self, caplog):
        with caplog.at_level("WARNING"):
            analysis = normalize({})

        assert analysis.is_empty
        assert analysis.links == []
        assert "no usable topology" in caplog.text

    def test_wrong_typed_sections(self):
        analysis = normalize({
            "topology": "oops",
            "capacity": {"no_buffer_gbps": {"1": "n/a"}, "with_buffer_gbps": 5},
            "root_cause_attribution": {"1": "not a list"},
            "correlation_matrix": {"cells": [], "matrix": []},
        })

        assert analysis.topology == {}
        assert math.isnan(analysis.capacity_no_buffer["1"])
        assert analysis.capacity_with_buffer == {}
        assert analysis.events == ()
        assert analysis.correlation is None

    def test_default_analysis_is_empty_and_read_only(self):
        analysis = NormalizedAnalysis()

        assert analysis.topology == {}
        assert analysis.traffic_patterns == {}
        with pytest.raises(TypeError):
            analysis.topology["1"] = (4,)

    def test_scalar_contributors_ignored(self, caplog):
        with caplog.at_level("WARNING"):
            events = normalize({"root_cause_attribution": {"1": [{"time_sec": 1.0, "contributors": 7}]}}).events

        assert len(events) == 1
        assert events[0].timestamp == 1.0
        assert events[0].contributors == ()
        assert "not a list" in caplog.text

    @pytest.mark.parametrize("times, values", [
        (5, [1.0]),
        ({"a": 1}, [1.0]),
        ([0.0, 1.0], "fast"),
    ])
    def test_non_array_traffic_pattern_skipped(self, times, values):
        analysis = normalize({"traffic_patterns": {
            "1": {"times": times, "values": values},
            "2": {"times": [0.0, 1.0], "values": [3.0, 4.0]},
        }})

        assert "1" not in analysis.traffic_patterns
        assert analysis.traffic_patterns["2"].values == (3.0, 4.0)

    def test_malformed_entries_skipped(self):
        assert normalize_topology({"links": [{"cells": [1]}, {"link_id": 1, "cells": [2]}]}) == {"1": (2,)}
        assert normalize_outliers(None) == ()
        assert len(normalize_outliers(["junk", {"cell_id": 3, "link_id": "1"}])) == 1

    def test_nan_timestamps_sort_last(self):
        events = normalize_events({"1": [{"time_sec": "bad"}, {"time_sec": 2.0}, {"time_sec": 1.0}]})

        assert [e.timestamp for e in events[:2]] == [1.0, 2.0]
        assert math.isnan(events[2].timestamp)

    def test_empty_averages_format_as_dash(self):
        summary = normalize({"topology": {"1": [1]}}).summary

        assert format_pct(summary.average_confidence) == "—"
        assert format_gbps(summary.total_capacity_reduction_gbps) == "—"
        assert format_pct(22.2) == "22.2%"


class TestTopologyHelpers:
    def test_all_cells_sorted(self):
        assert all_cells({"2": (11, 3), "1": (4,)}) == [3, 4, 11]

    def test_multi_link_cell_keeps_first(self, caplog):
        with caplog.at_level("WARNING"):
            mapping = cell_to_link({"1": (4, 5), "2": (5, 6)})

        assert mapping == {4: "1", 5: "1", 6: "2"}
        assert "attached to links 1 and 2" in caplog.text
