"""Unit tests for fmea_smart.services.worksheet_conversion.

Coverage
--------
    - legacy_to_atomic: structure, functions, failures, links, risk, confirmation
    - Positional ids for items without an id; duplicate ids dropped
    - Unresolvable failure links dropped
    - Risk ratings outside 1..10 stored as 0; AP computed from S/O/D
    - atomic_to_legacy: None for empty input, rebuilt document scores like
      the original
"""

from fmea_smart.services.snapshot_scoring import content_counts, score
from fmea_smart.services.worksheet_conversion import (
    ATOMIC_KEYS,
    atomic_to_legacy,
    empty_atomic,
    legacy_to_atomic,
)


class TestEmptyAtomic:
    def test_shape(self):
        atomic = empty_atomic("pfm26-m001")
        assert atomic["fmeaId"] == "pfm26-m001"
        assert atomic["l1Structure"] is None
        assert all(atomic[key] == [] for key in ATOMIC_KEYS)
        assert set(atomic["confirmed"].values()) == {False}

    def test_non_dict_legacy_gives_empty(self):
        assert legacy_to_atomic("pfm26-m001", None) == empty_atomic("pfm26-m001")


class TestLegacyToAtomic:
    def test_structure(self, sample_worksheet):
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        assert atomic["l1Structure"] == {"id": "l1-1", "name": "Brake Caliper Assembly", "confirmed": True}
        assert [s["id"] for s in atomic["l2Structures"]] == ["p-10"]
        assert atomic["l2Structures"][0]["no"] == "10"
        assert atomic["l3Structures"][0]["l2Id"] == "p-10"
        assert atomic["l3Structures"][0]["m4"] == "MC"

    def test_functions(self, sample_worksheet):
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        l1_func = atomic["l1Functions"][0]
        assert l1_func["id"] == "req-1"
        assert l1_func["category"] == "Your Plant"
        assert l1_func["requirement"] == "Torque 35 Nm"
        assert atomic["l2Functions"][0]["id"] == "pc-1"
        assert atomic["l2Functions"][0]["productChar"] == "Torque"
        assert atomic["l3Functions"][0]["id"] == "wc-1"
        assert atomic["l3Functions"][0]["l3StructId"] == "we-1"

    def test_failures_resolve_to_functions(self, sample_worksheet):
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        assert atomic["failureEffects"][0]["l1FuncId"] == "req-1"
        assert atomic["failureEffects"][0]["severity"] == 8
        assert atomic["failureModes"][0]["l2FuncId"] == "pc-1"
        assert atomic["failureCauses"][0]["l3FuncId"] == "wc-1"
        assert atomic["failureCauses"][0]["l3StructId"] == "we-1"

    def test_link_and_risk(self, sample_worksheet):
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        assert atomic["failureLinks"] == [
            {"id": "LK-fm-1-fe-1-fc-1", "fmId": "fm-1", "feId": "fe-1", "fcId": "fc-1"},
        ]
        risk = atomic["riskAnalyses"][0]
        assert risk["linkId"] == "LK-fm-1-fe-1-fc-1"
        assert (risk["severity"], risk["occurrence"], risk["detection"]) == (8, 4, 6)
        assert risk["ap"] == "M"
        assert risk["preventionControl"] == "Daily tool calibration"
        assert risk["detectionControl"] is None

    def test_confirmed_flags(self, sample_worksheet):
        confirmed = legacy_to_atomic("pfm26-m001", sample_worksheet)["confirmed"]
        assert confirmed["structureConfirmed"] is True
        assert confirmed["l1FunctionConfirmed"] is True
        assert confirmed["failureLinkConfirmed"] is False

    def test_positional_ids_are_stable(self):
        legacy = {
            "l1": {"name": "Brake"},
            "l2": [
                {"name": "Cutting", "l3": [{"name": "Saw"}], "failureModes": [{"name": "Burr"}]},
                {"no": "20", "failureCauses": [{"name": "Dull blade"}]},
            ],
        }
        first = legacy_to_atomic("pfm26-m001", legacy)
        second = legacy_to_atomic("pfm26-m001", legacy)
        assert first == second
        assert first["l1Structure"]["id"] == "L1"
        assert [s["id"] for s in first["l2Structures"]] == ["L2-1", "L2-2"]
        assert first["l3Structures"][0]["id"] == "L3-1-1"
        assert first["failureModes"][0]["id"] == "FM-1-1"
        assert first["failureCauses"][0]["id"] == "FC-2-1"

    def test_unnamed_process_is_skipped(self):
        atomic = legacy_to_atomic("x", {"l2": [{"name": "", "no": ""}, {"name": "Welding"}]})
        assert [s["id"] for s in atomic["l2Structures"]] == ["L2-2"]

    def test_duplicate_ids_dropped(self):
        legacy = {"l2": [{"id": "p", "name": "A"}, {"id": "p", "name": "B"}]}
        atomic = legacy_to_atomic("x", legacy)
        assert [s["name"] for s in atomic["l2Structures"]] == ["A"]

    def test_unresolved_link_dropped(self, sample_worksheet):
        sample_worksheet["failureLinks"].append({"fmId": "fm-1", "feId": "missing", "fcId": "fc-1"})
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        assert len(atomic["failureLinks"]) == 1

    def test_link_resolved_by_text(self, sample_worksheet):
        sample_worksheet["failureLinks"] = [
            {"fmText": "Under-torque", "feText": "Loose caliper", "fcText": "Tool out of calibration"},
        ]
        atomic = legacy_to_atomic("pfm26-m001", sample_worksheet)
        assert atomic["failureLinks"][0]["id"] == "LK-fm-1-fe-1-fc-1"

    def test_out_of_range_rating_stored_as_zero(self, sample_worksheet):
        sample_worksheet["riskData"]["risk-fm-1-fc-1-O"] = 14
        risk = legacy_to_atomic("pfm26-m001", sample_worksheet)["riskAnalyses"][0]
        assert risk["occurrence"] == 0
        assert risk["ap"] == ""

    def test_no_risk_without_risk_data(self, sample_worksheet):
        del sample_worksheet["riskData"]
        assert legacy_to_atomic("pfm26-m001", sample_worksheet)["riskAnalyses"] == []

    def test_optimization_needs_known_risk(self, sample_worksheet):
        sample_worksheet["optimizations"] = [
            {"riskId": "RA-LK-fm-1-fe-1-fc-1", "recommendedAction": "Add poka-yoke"},
            {"riskId": "RA-unknown", "recommendedAction": "Orphan"},
        ]
        opts = legacy_to_atomic("pfm26-m001", sample_worksheet)["optimizations"]
        assert [o["recommendedAction"] for o in opts] == ["Add poka-yoke"]
        assert opts[0]["id"] == "OPT-1"

    def test_requirement_failure_effect(self):
        legacy = {"l1": {"name": "Brake", "types": [{"name": "User", "functions": [
            {"name": "Stop vehicle", "requirements": [
                {"id": "r1", "name": "Stop in 40 m", "failureEffect": "Long stop distance", "severity": 9},
            ]},
        ]}]}}
        effects = legacy_to_atomic("x", legacy)["failureEffects"]
        assert effects == [{"id": "FE-r1", "l1FuncId": "r1", "category": "User",
                            "effect": "Long stop distance", "severity": 9}]


class TestAtomicToLegacy:
    def test_none_for_empty(self):
        assert atomic_to_legacy(None) is None
        assert atomic_to_legacy(empty_atomic("x")) is None

    def test_rebuild_keeps_score(self, sample_worksheet):
        rebuilt = atomic_to_legacy(legacy_to_atomic("pfm26-m001", sample_worksheet))
        assert score(rebuilt) == score(sample_worksheet)
        assert content_counts(rebuilt) == content_counts(sample_worksheet)

    def test_rebuild_restores_risk_and_flags(self, sample_worksheet):
        rebuilt = atomic_to_legacy(legacy_to_atomic("pfm26-m001", sample_worksheet))
        assert rebuilt["fmeaId"] == "pfm26-m001"
        assert rebuilt["riskData"] == {
            "risk-fm-1-fc-1-O": 4,
            "risk-fm-1-fc-1-D": 6,
            "prevention-fm-1-fc-1": "Daily tool calibration",
        }
        assert rebuilt["structureConfirmed"] is True
        assert rebuilt["failureLinkConfirmed"] is False
        assert rebuilt["failureLinks"][0]["fcText"] == "Tool out of calibration"

    def test_processes_sorted_by_order(self):
        atomic = empty_atomic("x")
        atomic["l2Structures"] = [
            {"id": "b", "name": "Second", "order": 2},
            {"id": "a", "name": "First", "order": 1},
        ]
        rebuilt = atomic_to_legacy(atomic)
        assert [p["name"] for p in rebuilt["l2"]] == ["First", "Second"]
        assert rebuilt["l1"]["id"] == "L1"
