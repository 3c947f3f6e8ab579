"""
Tests for RendererSupervisor against a real child process.

Tests cover:
- Handshake success and every startup failure path
- ensure_running idempotence and crash recovery
- Restart backoff hardening
- Background warm-up and readiness probe
- Shutdown and state broadcasts
"""
import threading

import pytest

from plotpipe.core.events import EventType
from plotpipe.core.process.types import HealthStatus, SupervisorState
from plotpipe.errors import RendererUnavailable, StartupFailure


class TestStart:
    """Tests for start() and the handshake."""

    def test_start_ready(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        outcome = sup.start()

        assert outcome.ok
        assert outcome.state is SupervisorState.READY
        assert outcome.pid is not None
        assert outcome.version == "0.0-fake"
        assert sup.state is SupervisorState.READY

    def test_initial_state(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        assert sup.state is SupervisorState.UNINITIALIZED
        assert sup.outcome is None

    def test_start_is_noop_when_running(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        first = sup.start()
        second = sup.start()

        assert factory.calls == 1
        assert second.pid == first.pid

    @pytest.mark.parametrize("flags,fragment", [
        (("--handshake-code", "7"), "code 7"),
        (("--no-handshake",), "exited during startup"),
        (("--garbage-handshake",), "Malformed"),
    ])
    def test_startup_failures_downgrade_to_unavailable(self, make_supervisor, fake_command, flags, fragment):
        sup = make_supervisor(fake_command(*flags))
        outcome = sup.start()

        assert not outcome.ok
        assert outcome.state is SupervisorState.UNAVAILABLE
        assert fragment in outcome.reason
        assert sup.state is SupervisorState.UNAVAILABLE

    def test_handshake_timeout(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command("--silent-handshake"), startup_timeout_s=0.5)
        outcome = sup.start()

        assert outcome.state is SupervisorState.UNAVAILABLE
        assert "0.5" in outcome.reason

    def test_missing_binary(self, make_supervisor):
        def factory():
            raise StartupFailure("Renderer binary not found: kaleido")

        sup = make_supervisor(factory)
        outcome = sup.start()
        assert outcome.state is SupervisorState.UNAVAILABLE
        assert "not found" in outcome.reason

    def test_unexecutable_binary(self, make_supervisor, tmp_path):
        missing = tmp_path / "does-not-exist"
        sup = make_supervisor(lambda: [str(missing), "plotly"])
        outcome = sup.start()
        assert outcome.state is SupervisorState.UNAVAILABLE

    def test_failure_logs_warning(self, make_supervisor, fake_command, caplog):
        sup = make_supervisor(fake_command("--no-handshake"))
        with caplog.at_level("WARNING"):
            sup.start()
        assert any("not available" in r.getMessage() for r in caplog.records)

    def test_stderr_captured_in_health(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command("--stderr-noise", "3", "--no-handshake"))
        sup.start()
        health = sup.get_health()
        assert "noise line 2" in health.stderr_tail
        assert health.error_message is not None


class TestEnsureRunning:
    """Tests for ensure_running()."""

    def test_lazy_start(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        worker = sup.ensure_running()

        assert worker.is_alive()
        assert factory.calls == 1

    def test_two_calls_one_spawn(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        first = sup.ensure_running()
        second = sup.ensure_running()

        assert first is second
        assert factory.calls == 1

    def test_restarts_dead_worker(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        first = sup.ensure_running()
        first.kill()

        second = sup.ensure_running()
        assert second is not first
        assert second.pid != first.pid
        assert second.is_alive()
        assert factory.calls == 2
        assert sup.get_health().restart_count == 1

    def test_unavailable_raises_each_time_and_retries(self, make_supervisor, fake_command):
        factory = fake_command("--no-handshake")
        sup = make_supervisor(factory)

        for _ in range(2):
            with pytest.raises(RendererUnavailable, match="exited during startup"):
                sup.ensure_running()
        assert factory.calls == 2

    def test_backoff_skips_spawn(self, make_supervisor, fake_command):
        factory = fake_command("--no-handshake")
        sup = make_supervisor(factory, restart_backoff_base_ms=60000)

        with pytest.raises(RendererUnavailable):
            sup.ensure_running()
        with pytest.raises(RendererUnavailable, match="next attempt"):
            sup.ensure_running()
        assert factory.calls == 1

    def test_concurrent_first_use_spawns_once(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        workers = []

        threads = [threading.Thread(target=lambda: workers.append(sup.ensure_running())) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=20)

        assert factory.calls == 1
        assert len({id(w) for w in workers}) == 1


class TestRestart:
    """Tests for restart()."""

    def test_restart_replaces_live_worker(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        old = sup.ensure_running()
        outcome = sup.restart()

        assert outcome.ok
        assert not old.is_alive()
        assert sup.ensure_running().pid == outcome.pid

    def test_discard_worker_forces_restart(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        old = sup.ensure_running()
        sup.discard_worker("test")

        assert not old.is_alive()
        assert sup.ensure_running() is not old
        assert factory.calls == 2


class TestWarmUp:
    """Tests for start_async() and wait_ready()."""

    def test_warm_up_outcome(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        future = sup.start_async()

        outcome = future.result(timeout=20)
        assert outcome.ok
        sup.ensure_running()
        assert factory.calls == 1

    def test_warm_up_failure_resolves_not_raises(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command("--handshake-code", "1"))
        outcome = sup.start_async().result(timeout=20)
        assert outcome.state is SupervisorState.UNAVAILABLE

    def test_wait_ready_joins_warm_up(self, make_supervisor, fake_command):
        factory = fake_command()
        sup = make_supervisor(factory)
        sup.start_async()
        outcome = sup.wait_ready(timeout=20)

        assert outcome.ok
        assert factory.calls == 1

    def test_wait_ready_without_warm_up_starts(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        assert sup.wait_ready().ok


class TestShutdown:
    """Tests for shutdown()."""

    def test_shutdown_stops_worker(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        worker = sup.ensure_running()
        sup.shutdown()

        assert not worker.is_alive()
        assert sup.state is SupervisorState.STOPPED
        with pytest.raises(RendererUnavailable, match="shut down"):
            sup.ensure_running()

    def test_shutdown_idempotent(self, make_supervisor, fake_command):
        sup = make_supervisor(fake_command())
        sup.shutdown()
        sup.shutdown()
        assert sup.start().state is SupervisorState.STOPPED


class TestStateEvents:
    """State transitions are broadcast on the event system."""

    def test_ready_sequence(self, make_supervisor, fake_command, event_system):
        states = []
        event_system.subscribe(EventType.RENDERER_STATE_CHANGED, lambda e: states.append(e.data["state"]))
        sup = make_supervisor(fake_command())
        sup.ensure_running()
        sup.shutdown()

        assert states == ["STARTING", "READY", "STOPPED"]

    def test_failure_carries_reason(self, make_supervisor, fake_command, event_system):
        events = []
        event_system.subscribe(EventType.RENDERER_STATE_CHANGED, lambda e: events.append(e.data))
        sup = make_supervisor(fake_command("--handshake-code", "2"))
        sup.start()

        assert events[-1]["state"] == "UNAVAILABLE"
        assert "code 2" in events[-1]["reason"]


class TestHealthStatus:
    """Tests for HealthStatus bookkeeping."""

    def test_backoff_disabled_by_default(self):
        health = HealthStatus()
        health.record_failure("boom")
        assert health.get_restart_backoff_ms(0, 30000) == 0
        assert health.in_backoff(0, 30000) is False

    def test_backoff_doubles_and_caps(self):
        health = HealthStatus()
        delays = []
        for _ in range(6):
            health.record_failure("boom")
            delays.append(health.get_restart_backoff_ms(1000, 8000))
        assert delays == [1000, 2000, 4000, 8000, 8000, 8000]

    def test_success_resets_failures(self):
        health = HealthStatus()
        health.record_failure("boom")
        health.record_success(123)
        assert health.consecutive_failures == 0
        assert health.is_healthy()
        assert health.to_dict()["pid"] == 123
