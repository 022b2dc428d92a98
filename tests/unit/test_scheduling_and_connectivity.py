# =============================================================================
# tests/unit/test_scheduling_and_connectivity.py
# Unit Tests for ScheduledTask and Connectivity Providers
# =============================================================================

import threading
import time

import pytest

from asterix_offline.offline import ManualConnectivity, PollingConnectivity, ScheduledTask


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestScheduledTask:
    """Test the recurring task handle"""

    def test_runs_repeatedly(self):
        calls = []

        with ScheduledTask(lambda: calls.append(1), interval_ms=10, name="Ticker") as task:
            assert wait_for(lambda: len(calls) >= 3)

        assert not task.is_running

    def test_first_run_waits_for_interval(self):
        calls = []
        task = ScheduledTask(lambda: calls.append(1), interval_ms=60_000).start()

        time.sleep(0.05)
        task.cancel(wait=True)

        assert calls == []

    def test_errors_do_not_stop_the_loop(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("tick failed")

        with ScheduledTask(flaky, interval_ms=10):
            assert wait_for(lambda: len(calls) >= 2)

    def test_cancel_stops_future_runs(self):
        calls = []
        task = ScheduledTask(lambda: calls.append(1), interval_ms=10).start()
        assert wait_for(lambda: calls)

        task.cancel(wait=True)
        seen = len(calls)
        time.sleep(0.05)

        assert len(calls) == seen

    def test_cancel_lets_running_call_finish(self):
        started = threading.Event()
        release = threading.Event()
        finished = []

        def slow():
            started.set()
            release.wait(timeout=5)
            finished.append(1)

        task = ScheduledTask(slow, interval_ms=10).start()
        assert started.wait(timeout=5)

        task.cancel()
        release.set()
        task.cancel(wait=True)

        assert finished == [1]

    def test_restart_after_cancel(self):
        calls = []
        task = ScheduledTask(lambda: calls.append(1), interval_ms=10).start()
        task.cancel(wait=True)
        before = len(calls)

        task.start()
        assert wait_for(lambda: len(calls) > before)
        task.cancel(wait=True)

    def test_start_is_idempotent(self):
        task = ScheduledTask(lambda: None, interval_ms=60_000).start()
        thread = task._thread

        task.start()

        assert task._thread is thread
        task.cancel(wait=True)

    @pytest.mark.parametrize("interval", [0, -5])
    def test_invalid_interval(self, interval):
        with pytest.raises(ValueError):
            ScheduledTask(lambda: None, interval_ms=interval)


class TestManualConnectivity:
    """Test push-based connectivity"""

    def test_edges_notify_once(self):
        connectivity = ManualConnectivity(online=True)
        seen = []
        connectivity.register_callback(seen.append)

        assert connectivity.set_online(False)
        assert not connectivity.set_online(False)
        assert connectivity.go_online()

        assert seen == [False, True]

    def test_unregister(self):
        connectivity = ManualConnectivity(online=False)
        seen = []
        connectivity.register_callback(seen.append)
        connectivity.unregister_callback(seen.append)

        connectivity.go_online()

        assert seen == []
        assert connectivity.is_online

    def test_callback_errors_are_isolated(self):
        connectivity = ManualConnectivity()
        seen = []

        def broken(online):
            raise RuntimeError("listener bug")

        connectivity.register_callback(broken)
        connectivity.register_callback(seen.append)

        connectivity.go_offline()

        assert seen == [False]


class TestPollingConnectivity:
    """Test the polling provider with an injected probe"""

    def test_parses_host_and_port(self):
        connectivity = PollingConnectivity("http://asterix.local:19002")

        assert connectivity.host == "asterix.local"
        assert connectivity.port == 19002

    def test_default_ports(self):
        assert PollingConnectivity("http://db").port == 80
        assert PollingConnectivity("https://db").port == 443

    def test_check_connection_fires_on_edge(self):
        state = {"up": True}
        connectivity = PollingConnectivity("http://db:1", probe=lambda: state["up"])
        seen = []
        connectivity.register_callback(seen.append)

        assert connectivity.check_connection()
        assert connectivity.check_connection()
        state["up"] = False
        assert not connectivity.check_connection()

        assert seen == [True, False]
        assert connectivity.consecutive_failures == 1
        assert connectivity.last_online is not None

    def test_probe_exception_means_offline(self):
        def probe():
            raise OSError("unreachable")

        connectivity = PollingConnectivity("http://db:1", probe=probe)

        assert not connectivity.check_connection()

    def test_monitoring_detects_changes(self):
        state = {"up": False}
        connectivity = PollingConnectivity(
            "http://db:1",
            check_interval_online=0.01,
            check_interval_offline=0.01,
            probe=lambda: state["up"],
        )
        seen = []
        connectivity.register_callback(seen.append)

        connectivity.start_monitoring()
        state["up"] = True
        try:
            assert wait_for(lambda: connectivity.is_online)
        finally:
            connectivity.close()

        assert seen == [True]

    def test_unreachable_endpoint(self):
        """Port 9 on localhost is expected to refuse connections"""
        connectivity = PollingConnectivity("http://127.0.0.1:9")
        connectivity.CONNECTION_TIMEOUT = 0.5

        assert not connectivity.check_connection()
