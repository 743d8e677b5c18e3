# =============================================================================
# tests/unit/test_cleanup_service.py
# Unit Tests for CleanupService
# =============================================================================

import asyncio
from datetime import datetime

from delivery_core.services import CleanupService, PurgeResult


TODAY = "2024-01-10"


def seed_day(fake_remote, delivery_factory, statuses):
    for i, status in enumerate(statuses):
        record_id = f"d{i}"
        fake_remote.deliveries[record_id] = delivery_factory(record_id, status=status)


class TestRetentionWindow:
    """Test the end-of-day time gate"""

    def test_window_closed_before_cleanup_hour(self, engine, mid_day):
        cleanup = CleanupService(engine, cleanup_hour=23, now_fn=mid_day)

        assert not cleanup.is_retention_window_open()

    def test_window_open_at_cleanup_hour(self, engine):
        cleanup = CleanupService(engine, now_fn=lambda: datetime(2024, 1, 10, 23, 0))

        assert cleanup.is_retention_window_open()

    def test_next_auto_cleanup_rolls_to_tomorrow(self, engine, mid_day, end_of_day):
        before = CleanupService(engine, now_fn=mid_day)
        after = CleanupService(engine, now_fn=end_of_day)

        assert before.next_auto_cleanup() == datetime(2024, 1, 10, 23, 0)
        assert after.next_auto_cleanup() == datetime(2024, 1, 11, 23, 0)


class TestPurgeTerminalRecords:
    """Test removal of delivered orders"""

    def test_purge_removes_delivered_only(self, engine, fake_remote, delivery_factory, end_of_day):
        """3 records, 2 delivered -> removed 2, remaining 1; again -> 0, 1"""
        seed_day(fake_remote, delivery_factory, ["delivered", "pending pickup", "delivered"])
        cleanup = CleanupService(engine, now_fn=end_of_day)

        first = asyncio.run(cleanup.purge_terminal_records(TODAY))
        second = asyncio.run(cleanup.purge_terminal_records(TODAY))

        assert (first.removed, first.remaining) == (2, 1)
        assert (second.removed, second.remaining) == (0, 1)
        assert list(fake_remote.deliveries) == ["d1"]
        assert engine.cache.read_day(TODAY)[0].id == "d1"

    def test_failed_delete_is_skipped(self, engine, fake_remote, delivery_factory, end_of_day):
        seed_day(fake_remote, delivery_factory, ["delivered", "delivered", "picked up"])
        fake_remote.linger_ids.add("d0")
        cleanup = CleanupService(engine, now_fn=end_of_day)

        result = asyncio.run(cleanup.purge_terminal_records(TODAY))

        assert result.removed == 1
        assert result.remaining == 1
        assert result.failed == ["d0"]
        assert "d0" in fake_remote.deliveries
        assert "d1" not in fake_remote.deliveries

    def test_purge_includes_local_only_delivered(self, engine, fake_remote, delivery_factory, end_of_day):
        """Records reconciled into the day are purged through the engine"""
        engine.cache.upsert_day_delivery(TODAY, delivery_factory("local", status="delivered"))
        cleanup = CleanupService(engine, now_fn=end_of_day)

        result = asyncio.run(cleanup.purge_terminal_records(TODAY))

        assert result == PurgeResult(removed=1, remaining=0)
        assert engine.cache.read_day(TODAY) == []

    def test_purge_offline_fails_every_record(self, engine, fake_remote, delivery_factory, end_of_day):
        seed_day(fake_remote, delivery_factory, ["delivered", "delivered"])
        asyncio.run(engine.get_daily_data())
        engine.connection.mark_unreachable("network down")
        cleanup = CleanupService(engine, now_fn=end_of_day)

        result = asyncio.run(cleanup.purge_terminal_records(TODAY))

        assert result.removed == 0
        assert sorted(result.failed) == ["d0", "d1"]
        assert len(fake_remote.deliveries) == 2


class TestAutomaticCleanup:
    """Test the hourly automatic path"""

    def test_check_and_run_waits_for_window(self, engine, fake_remote, delivery_factory, mid_day):
        seed_day(fake_remote, delivery_factory, ["delivered"])
        cleanup = CleanupService(engine, now_fn=mid_day)

        assert asyncio.run(cleanup.check_and_run()) is None
        assert len(fake_remote.deliveries) == 1

    def test_check_and_run_once_per_day(self, engine, fake_remote, delivery_factory, end_of_day):
        seed_day(fake_remote, delivery_factory, ["delivered", "pending pickup"])
        cleanup = CleanupService(engine, now_fn=end_of_day)

        first = asyncio.run(cleanup.check_and_run())
        fake_remote.deliveries["late"] = delivery_factory("late", status="delivered")
        second = asyncio.run(cleanup.check_and_run())

        assert first.removed == 1
        assert second is None
        assert "late" in fake_remote.deliveries
        assert engine.cache.get_last_cleanup_date() == TODAY
        assert engine.state.last_cleanup_date == TODAY

    def test_offline_check_retries_after_reconnect(self, engine, fake_remote, delivery_factory, end_of_day):
        """Offline at 23:00, online at the next hourly check: purged then"""
        seed_day(fake_remote, delivery_factory, ["delivered"])
        asyncio.run(engine.get_daily_data())
        engine.connection.mark_unreachable("network down")
        cleanup = CleanupService(engine, now_fn=end_of_day)

        first = asyncio.run(cleanup.check_and_run())

        assert first.failed == ["d0"]
        assert engine.cache.get_last_cleanup_date() is None
        assert cleanup.should_run_cleanup()

        assert asyncio.run(engine.reconnect()) is True
        second = asyncio.run(cleanup.check_and_run())

        assert second.removed == 1
        assert fake_remote.deliveries == {}
        assert engine.cache.get_last_cleanup_date() == TODAY

    def test_offline_check_with_nothing_cached_is_not_recorded(self, engine, fake_remote, delivery_factory, end_of_day):
        seed_day(fake_remote, delivery_factory, ["delivered"])
        engine.connection.mark_unreachable("network down")
        cleanup = CleanupService(engine, now_fn=end_of_day)

        result = asyncio.run(cleanup.check_and_run())

        assert result == PurgeResult()
        assert engine.cache.get_last_cleanup_date() is None
        assert engine.state.last_cleanup_date is None

    def test_logical_day_follows_shared_today_fn(self, engine, fake_remote, delivery_factory):
        seed_day(fake_remote, delivery_factory, ["delivered"])
        late_next_day = lambda: datetime(2024, 1, 11, 23, 30)  # noqa: E731
        cleanup = CleanupService(engine, now_fn=late_next_day, today_fn=engine.today)

        result = asyncio.run(cleanup.check_and_run())

        assert cleanup.today() == TODAY
        assert result.removed == 1
        assert engine.cache.get_last_cleanup_date() == TODAY

    def test_force_cleanup_does_not_record_day(self, engine, fake_remote, delivery_factory, mid_day):
        seed_day(fake_remote, delivery_factory, ["delivered"])
        cleanup = CleanupService(engine, now_fn=mid_day)

        result = asyncio.run(cleanup.force_cleanup())

        assert result.removed == 1
        assert engine.cache.get_last_cleanup_date() is None
        assert cleanup.should_run_cleanup()

    def test_cleanup_status(self, engine, end_of_day):
        engine.cache.set_last_cleanup_date("2024-01-09")
        cleanup = CleanupService(engine, now_fn=end_of_day)

        status = cleanup.get_cleanup_status()

        assert status == {
            "last_cleanup": "2024-01-09",
            "should_run": True,
            "is_cleanup_time": True,
            "next_auto_cleanup": "2024-01-11T23:00:00",
        }

    def test_delivered_count_uses_working_set(self, engine, sample_store, end_of_day):
        asyncio.run(engine.add_delivery(sample_store, delivery_status="delivered"))
        asyncio.run(engine.add_delivery(sample_store))
        cleanup = CleanupService(engine, now_fn=end_of_day)

        assert cleanup.delivered_count() == 1

    def test_monitoring_checks_immediately(self, engine, fake_remote, delivery_factory, end_of_day):
        seed_day(fake_remote, delivery_factory, ["delivered"])

        async def run():
            cleanup = CleanupService(engine, check_interval=3600, now_fn=end_of_day)
            cleanup.start_monitoring()
            for _ in range(50):
                if engine.cache.get_last_cleanup_date():
                    break
                await asyncio.sleep(0.01)
            await cleanup.stop_monitoring()
            return cleanup

        cleanup = asyncio.run(run())

        assert not cleanup.is_monitoring
        assert fake_remote.deliveries == {}
        assert engine.cache.get_last_cleanup_date() == TODAY
