# =============================================================================
# tests/unit/test_merge.py
# Unit Tests for the Day Merge Rule
# =============================================================================

from delivery_core.offline import merge_day


class TestMergeDay:
    """Remote copy wins for known ids, local-only records are kept"""

    def test_remote_wins_for_shared_id(self, delivery_factory):
        remote = [delivery_factory("a", status="delivered")]
        local = [delivery_factory("a"), delivery_factory("b")]

        merged = merge_day(remote, local)

        assert [d.id for d in merged] == ["a", "b"]
        assert merged[0].delivery_status.value == "delivered"
        assert merged[1] == local[1]

    def test_merge_is_idempotent(self, delivery_factory):
        remote = [delivery_factory("a", status="picked up"), delivery_factory("c")]
        local = [delivery_factory("a"), delivery_factory("b")]

        once = merge_day(remote, local)
        twice = merge_day(remote, once)

        assert twice == once

    def test_local_only_records_unchanged(self, delivery_factory):
        local = [delivery_factory("x", price=12.5), delivery_factory("y")]

        merged = merge_day([], local)

        assert merged == local

    def test_remote_only_records_included(self, delivery_factory):
        remote = [delivery_factory("r1"), delivery_factory("r2")]

        assert merge_day(remote, []) == remote

    def test_no_duplicate_ids(self, delivery_factory):
        remote = [delivery_factory("a"), delivery_factory("b")]
        local = [delivery_factory("b"), delivery_factory("a"), delivery_factory("c")]

        ids = [d.id for d in merge_day(remote, local)]

        assert sorted(ids) == ["a", "b", "c"]
        assert len(ids) == len(set(ids))
