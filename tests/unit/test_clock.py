"""Clock behaviour and the rule that aggregates read time only from their clock."""

from datetime import datetime, timedelta, timezone

import pytest

from marketplace.core.clock import SimClock, WallClock


class TestWallClock:
    def test_now_is_utc_and_recent(self):
        now = WallClock().now()
        assert now.tzinfo == timezone.utc
        assert abs((datetime.now(timezone.utc) - now).total_seconds()) < 1.0

    def test_now_ms_returns_int(self):
        assert isinstance(WallClock().now_ms(), int)


class TestSimClock:
    def test_default_start(self):
        assert SimClock().now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_fixture_start(self, sim_clock):
        assert sim_clock.now() == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_set_time_cannot_go_backwards(self, sim_clock):
        with pytest.raises(ValueError, match="cannot go backwards"):
            sim_clock.set_time(datetime(2024, 5, 1, tzinfo=timezone.utc))

    def test_set_time_same_time_ok(self, sim_clock):
        same = sim_clock.now()
        sim_clock.set_time(same)
        assert sim_clock.now() == same

    def test_advance_ms_updates_now_ms(self, sim_clock):
        before = sim_clock.now_ms()
        sim_clock.advance_ms(60_000)
        assert sim_clock.now_ms() - before == 60_000

    def test_advance_negative_raises(self, sim_clock):
        with pytest.raises(ValueError):
            sim_clock.advance(timedelta(seconds=-1))

    def test_naive_start_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            SimClock(start=datetime(2024, 1, 1))

    def test_start_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        clock = SimClock(start=datetime(2024, 1, 1, 2, 0, tzinfo=plus_two))
        assert clock.now() == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert clock.now().tzinfo == timezone.utc

    def test_step_advances_after_each_read(self):
        clock = SimClock(step=timedelta(milliseconds=1))
        first, second = clock.now(), clock.now()
        assert second - first == timedelta(milliseconds=1)
        assert clock.peek() == second + timedelta(milliseconds=1)
        assert clock.peek() == clock.peek()

    def test_negative_step_rejected(self):
        with pytest.raises(ValueError):
            SimClock(step=timedelta(seconds=-1))


class TestAggregatesUseInjectedClock:
    def test_creation_timestamps_come_from_clock(self, sim_clock, make_order):
        order = make_order()
        assert order.audit.created_at == sim_clock.now()
        assert order.order_date == sim_clock.now()

    def test_event_timestamp_comes_from_clock(self, sim_clock, make_vendor):
        vendor = make_vendor()
        sim_clock.advance_ms(5_000)
        vendor.approve()
        events = vendor.events.drain()
        assert events[0].timestamp == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert events[1].timestamp == datetime(2024, 6, 1, tzinfo=timezone.utc) + timedelta(seconds=5)

    def test_lifecycle_timestamps_follow_clock(self, sim_clock, make_payment):
        payment = make_payment()
        sim_clock.advance_ms(1_000)
        payment.complete("txn-1")
        assert payment.completed_at == sim_clock.now()
        assert payment.audit.updated_at == sim_clock.now()
