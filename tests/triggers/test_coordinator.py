"""Tests for the debounce coordinator state machine."""

from __future__ import annotations

import json
import threading

import pytest

from checkpoint.triggers import TriggerCoordinator, TriggerReason, TriggerState


@pytest.fixture
def fired():
    return []


@pytest.fixture
def coordinator(fired, timers, clock, tmp_path):
    return TriggerCoordinator(
        fired.append,
        debounce_seconds=60,
        timer_factory=timers,
        clock=clock,
        timer_file=tmp_path / "watcher-timer",
        trigger_file=tmp_path / "last-trigger",
        name="web",
    )


class TestDebounce:
    def test_starts_idle(self, coordinator):
        assert coordinator.state is TriggerState.IDLE

    def test_burst_collapses_into_one_run(self, coordinator, timers, fired):
        for i in range(25):
            coordinator.signal(f"src/file{i}.py")
        assert coordinator.state is TriggerState.TIMER_PENDING
        assert len(timers.pending) == 1
        assert timers.fire_pending() == 1
        assert fired == [TriggerReason.DEBOUNCE]
        assert coordinator.state is TriggerState.IDLE
        assert coordinator.signals_received == 25
        assert coordinator.runs_requested == 1

    def test_each_signal_restarts_full_window(self, coordinator, timers):
        coordinator.signal()
        coordinator.signal()
        first, second = timers.timers
        assert first.cancelled
        assert not second.cancelled
        assert second.delay == 60

    def test_spaced_signals_run_each_time(self, coordinator, timers, fired):
        for _ in range(3):
            coordinator.signal()
            timers.fire_pending()
        assert fired == [TriggerReason.DEBOUNCE] * 3

    def test_stale_timer_callback_is_ignored(self, coordinator, timers, fired):
        coordinator.signal()
        stale = timers.timers[0]
        coordinator.signal()
        stale.callback()
        assert fired == []
        assert coordinator.state is TriggerState.TIMER_PENDING


class TestRunningState:
    def test_signal_during_run_schedules_one_follow_up(self, timers, clock, tmp_path):
        fired = []
        coordinator = None

        def on_fire(reason):
            fired.append(reason)
            if len(fired) == 1:
                coordinator.signal("edited-during-run.py")
                coordinator.signal("edited-again.py")
                assert coordinator.state is TriggerState.RUNNING

        coordinator = TriggerCoordinator(
            on_fire, debounce_seconds=30, timer_factory=timers, clock=clock
        )
        coordinator.signal()
        timers.fire_pending()
        assert coordinator.state is TriggerState.TIMER_PENDING
        assert len(timers.pending) == 1
        timers.fire_pending()
        assert fired == [TriggerReason.DEBOUNCE, TriggerReason.DEBOUNCE]
        assert coordinator.state is TriggerState.IDLE

    def test_run_now_rejected_while_running(self, timers, clock):
        results = []
        coordinator = None

        def on_fire(reason):
            results.append(coordinator.run_now(TriggerReason.MANUAL))

        coordinator = TriggerCoordinator(on_fire, debounce_seconds=5, timer_factory=timers, clock=clock)
        assert coordinator.run_now(TriggerReason.SESSION_START)
        assert results == [False]

    def test_callback_exception_returns_to_idle(self, timers, clock):
        def on_fire(reason):
            raise RuntimeError("pipeline blew up")

        coordinator = TriggerCoordinator(on_fire, debounce_seconds=5, timer_factory=timers, clock=clock)
        coordinator.signal()
        timers.fire_pending()
        assert coordinator.state is TriggerState.IDLE


class TestRunNow:
    def test_run_now_cancels_pending_timer(self, coordinator, timers, fired):
        coordinator.signal()
        assert coordinator.run_now(TriggerReason.SESSION_START)
        assert timers.timers[0].cancelled
        assert fired == [TriggerReason.SESSION_START]
        assert coordinator.state is TriggerState.IDLE


class TestStateFiles:
    def test_timer_file_tracks_pending_timer(self, coordinator, timers, clock, tmp_path):
        coordinator.signal()
        data = json.loads((tmp_path / "watcher-timer").read_text())
        assert data["deadline"] == int(clock() + 60)
        assert data["generation"] == 1
        timers.fire_pending()
        assert not (tmp_path / "watcher-timer").exists()
        assert (tmp_path / "last-trigger").read_text().strip() == str(int(clock()))

    def test_close_cancels_and_ignores_later_signals(self, coordinator, timers, fired, tmp_path):
        coordinator.signal()
        coordinator.close()
        assert timers.timers[0].cancelled
        assert not (tmp_path / "watcher-timer").exists()
        assert coordinator.state is TriggerState.IDLE
        coordinator.signal()
        assert len(timers.timers) == 1
        assert not coordinator.run_now()
        assert fired == []


class TestClose:
    @staticmethod
    def blocking(started, release, finished):
        def on_fire(reason):
            started.set()
            release.wait(5)
            finished.append(reason)

        return on_fire

    def test_close_waits_for_running_run(self, timers, clock):
        started, release, finished = threading.Event(), threading.Event(), []
        coordinator = TriggerCoordinator(
            self.blocking(started, release, finished),
            debounce_seconds=60,
            timer_factory=timers,
            clock=clock,
        )
        coordinator.signal()
        worker = threading.Thread(target=timers.fire_pending)
        worker.start()
        assert started.wait(5)

        threading.Timer(0.1, release.set).start()
        assert coordinator.close(timeout=5)
        assert finished == [TriggerReason.DEBOUNCE]
        assert coordinator.state is TriggerState.IDLE
        worker.join(5)

    def test_close_gives_up_after_timeout(self, timers):
        started, release, finished = threading.Event(), threading.Event(), []
        coordinator = TriggerCoordinator(
            self.blocking(started, release, finished),
            debounce_seconds=60,
            timer_factory=timers,
        )
        worker = threading.Thread(target=coordinator.run_now)
        worker.start()
        assert started.wait(5)
        try:
            assert not coordinator.close(timeout=0.05)
            assert coordinator.state is TriggerState.RUNNING
        finally:
            release.set()
            worker.join(5)
        assert coordinator.state is TriggerState.IDLE

    def test_close_when_idle_returns_immediately(self, coordinator):
        assert coordinator.close(timeout=0)
