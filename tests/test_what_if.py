import pytest

from what_if import (
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    RiskPolicy,
    TrafficModification,
    estimate,
    risk_counts,
    slider_groups,
    update_modification,
)

TOPOLOGY = {"1": (4,), "2": (1, 3, 5), "3": (2, 6)}
BASELINE = {"1": 5.27, "2": 24.16, "3": 44.0}


class TestEstimate:
    def test_no_modifications(self):
        impact = estimate(BASELINE, [], TOPOLOGY)

        assert set(impact) == set(TOPOLOGY)
        for link_impact in impact.values():
            assert link_impact.capacity_change_gbps == 0
            assert link_impact.risk == RISK_LOW
            assert link_impact.affected_cells == ()

    def test_single_cell_example(self):
        impact = estimate({"1": 5.27}, [TrafficModification(4, 40)], {"1": [4]})

        assert impact["1"].capacity_change_gbps == pytest.approx(0.6324)
        assert impact["1"].risk == RISK_HIGH
        assert impact["1"].projected_gbps == pytest.approx(5.27 + 0.6324)

    def test_changes_sum_per_link(self):
        mods = [TrafficModification(1, 10), TrafficModification(3, 5), TrafficModification(2, -20)]

        impact = estimate(BASELINE, mods, TOPOLOGY)

        assert impact["2"].total_change_pct == 15
        assert impact["2"].risk == RISK_MEDIUM
        assert impact["2"].affected_cells == (1, 3)
        assert impact["3"].capacity_change_gbps == pytest.approx(-0.2 * 44.0 * 0.3)
        assert impact["3"].risk == RISK_LOW
        assert impact["1"].total_change_pct == 0

    def test_thresholds_are_strict(self):
        impact = estimate(BASELINE, [TrafficModification(1, 30), TrafficModification(2, 10)], TOPOLOGY)

        assert impact["2"].risk == RISK_MEDIUM
        assert impact["3"].risk == RISK_LOW

    def test_missing_baseline_counts_as_zero(self):
        impact = estimate({}, [TrafficModification(4, 80)], TOPOLOGY)

        assert impact["1"].capacity_change_gbps == 0
        assert impact["1"].risk == RISK_HIGH

    def test_unknown_cells_ignored(self):
        impact = estimate(BASELINE, [TrafficModification(99, 50)], TOPOLOGY)

        assert all(i.total_change_pct == 0 for i in impact.values())

    def test_custom_policy(self):
        policy = RiskPolicy(damping_factor=1.0, high_threshold_pct=50, medium_threshold_pct=20)

        impact = estimate({"1": 10.0}, [TrafficModification(4, 40)], {"1": [4]}, policy)

        assert impact["1"].capacity_change_gbps == pytest.approx(4.0)
        assert impact["1"].risk == RISK_MEDIUM

    def test_risk_counts(self):
        impact = estimate(BASELINE, [TrafficModification(4, 40), TrafficModification(1, 15)], TOPOLOGY)

        assert risk_counts(impact) == {RISK_LOW: 1, RISK_MEDIUM: 1, RISK_HIGH: 1}


class TestModifications:
    def test_add_replace_remove(self):
        mods = update_modification((), 4, 20)
        assert mods == (TrafficModification(4, 20),)

        mods = update_modification(mods, 5, -10)
        mods = update_modification(mods, 4, 35)
        assert mods == (TrafficModification(4, 35), TrafficModification(5, -10))

        mods = update_modification(mods, 4, 0)
        assert mods == (TrafficModification(5, -10),)

    def test_input_not_mutated(self):
        mods = [TrafficModification(4, 20)]

        update_modification(mods, 4, 50)

        assert mods == [TrafficModification(4, 20)]

    def test_slider_groups_follow_topology(self):
        assert slider_groups(TOPOLOGY) == {"1": [4], "2": [1, 3, 5], "3": [2, 6]}

    def test_shared_cell_gets_one_slider(self):
        topology = {"1": (4, 5), "2": (5, 6)}

        groups = slider_groups(topology)

        assert groups == {"1": [4, 5], "2": [6]}
        cells = [c for group in groups.values() for c in group]
        assert len(cells) == len(set(cells))

    def test_shared_cell_counts_on_every_link(self):
        mods = update_modification((), 5, 20)

        impact = estimate({"1": 10.0, "2": 10.0}, mods, {"1": (4, 5), "2": (5, 6)})

        assert impact["1"].total_change_pct == 20
        assert impact["2"].total_change_pct == 20
