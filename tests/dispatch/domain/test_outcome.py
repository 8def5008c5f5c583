"""Tests for split outcomes."""

import pytest
from dispatch.errors import PartialSplitFailure
from dispatch.planning.outcome import GroupOutcome, SplitOutcome


class TestSplitOutcome:
    def test_all_groups_succeeded(self):
        outcome = SplitOutcome.from_results(
            [GroupOutcome("Vendor One", True, order_id="d-1"), GroupOutcome("Vendor Two", True, order_id="d-2")],
            path="local",
        )
        assert outcome.success
        assert outcome.total_stores == 2
        assert outcome.successful_splits == 2
        assert outcome.failures == []

    def test_one_group_failed(self):
        outcome = SplitOutcome.from_results(
            [GroupOutcome("Vendor One", True, order_id="d-1"), GroupOutcome("Vendor Two", False, error="boom")],
            path="local",
        )
        assert not outcome.success
        assert outcome.successful_splits == 1
        with pytest.raises(PartialSplitFailure) as exc:
            outcome.raise_for_failures("ord-1")
        assert exc.value.failed == [{"store_name": "Vendor Two", "success": False, "error": "boom"}]
        assert "Vendor Two (boom)" in str(exc.value)

    def test_no_results_is_not_success(self):
        assert not SplitOutcome.from_results([], path="local").success

    def test_from_remote_payload(self):
        payload = {
            "success": True,
            "total_stores": 2,
            "successful_splits": 2,
            "results": [
                {"store_name": "Vendor One", "success": True, "order_id": 42},
                {"store_name": "Vendor Two", "success": True, "order_id": "d-2"},
            ],
        }
        outcome = SplitOutcome.from_payload(payload)
        assert outcome.path == "remote"
        assert outcome.results[0].order_id == "42"

    def test_to_dict_omits_empty_fields(self):
        data = SplitOutcome.from_results([GroupOutcome("Vendor One", True, order_id="d-1")], path="transfer").to_dict()
        assert data == {
            "success": True,
            "total_stores": 1,
            "successful_splits": 1,
            "path": "transfer",
            "results": [{"store_name": "Vendor One", "success": True, "order_id": "d-1"}],
        }
