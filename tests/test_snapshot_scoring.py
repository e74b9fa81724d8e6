"""Unit tests for fmea_smart.services.snapshot_scoring.

Coverage
--------
    - Weights of each content kind
    - Permissive parsing of malformed snapshots (never raises)
    - is_empty / content_counts
"""

import pytest

from fmea_smart.services.snapshot_scoring import (
    WorksheetView,
    content_counts,
    is_empty,
    score,
)


class TestScore:
    def test_none_scores_zero(self):
        assert score(None) == 0

    def test_empty_dict_scores_zero(self):
        assert score({}) == 0

    def test_l1_name_only(self):
        assert score({"l1": {"name": "Brake"}}) == 50

    def test_whitespace_name_does_not_count(self):
        assert score({"l1": {"name": "   "}}) == 0

    def test_full_weighting(self):
        snapshot = {
            "l1": {"name": "Brake", "failureScopes": [{}, {}]},
            "l2": [
                {"name": "Bolt tightening", "l3": [{}, {}], "failureModes": [{}], "failureCauses": [{}, {}]},
                {"no": "20"},
                {"name": "", "no": ""},
            ],
        }
        # 50 + 2*20 + 2*5 + (1 + 2)*2 + 2*2
        assert score(snapshot) == 50 + 40 + 10 + 6 + 4

    def test_unnamed_process_still_contributes_children(self):
        snapshot = {"l2": [{"l3": [{}], "failureModes": [{}]}]}
        assert score(snapshot) == 5 + 2

    def test_accepts_worksheet_view(self):
        view = WorksheetView.from_dict({"l1": {"name": "Brake"}})
        assert score(view) == 50


class TestMalformedInput:
    @pytest.mark.parametrize("snapshot", [
        [],
        "text",
        42,
        {"l1": "not a dict"},
        {"l2": "not a list"},
        {"l2": [None, 3, "x"]},
        {"l1": {"name": None, "failureScopes": {"a": 1}}},
        {"l2": [{"name": "P", "l3": None, "failureModes": "bad"}]},
    ])
    def test_never_raises(self, snapshot):
        assert score(snapshot) >= 0

    def test_non_string_name_is_coerced(self):
        assert score({"l2": [{"no": 10}]}) == 20


class TestIsEmpty:
    def test_none_is_empty(self):
        assert is_empty(None) is True

    def test_children_without_named_process_is_empty(self):
        assert is_empty({"l2": [{"l3": [{}, {}]}]}) is True

    def test_l1_name_is_not_empty(self):
        assert is_empty({"l1": {"name": "Brake"}}) is False

    def test_numbered_process_is_not_empty(self):
        assert is_empty({"l2": [{"no": "10"}]}) is False


class TestContentCounts:
    def test_counts(self):
        counts = content_counts({
            "l1": {"failureScopes": [{}]},
            "l2": [{"name": "A", "l3": [{}], "failureModes": [{}, {}]}, {"failureCauses": [{}]}],
        })
        assert counts == {
            "meaningfulProcesses": 1,
            "workElements": 1,
            "failureModes": 2,
            "failureCauses": 1,
            "failureScopes": 1,
        }

    def test_counts_of_none_are_zero(self):
        assert set(content_counts(None).values()) == {0}
