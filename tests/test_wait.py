"""Tests for the readiness poller and transient-error classification."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest
import urllib3

from k8sio.k8s import (
    JobFailureError,
    JobStatus,
    K8sResourceError,
    PodInfo,
    TransientClusterError,
    WaitCancelled,
    WaitStatus,
    WaitTimeout,
    is_transient_error,
    wait_for_job_completion,
    wait_for_pods_running,
    wait_until,
)


class FakeClock:
    """Stands in for the ``time`` module; sleeping advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    fake = FakeClock()
    with patch("k8sio.k8s.wait.time", fake):
        yield fake


def scripted(*outcomes):
    """Build a check function returning or raising each outcome in turn."""
    calls = iter(outcomes)

    def check():
        outcome = next(calls)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return check


# ===========================================================================
# Classification
# ===========================================================================


class TestIsTransientError:
    """Tests for is_transient_error."""

    @pytest.mark.parametrize(
        "message",
        [
            "Client connection lost",
            "read: connection reset by peer",
            "context deadline exceeded (Timeout)",
            "Temporary failure in name resolution",
            "network is unreachable",
            "dial tcp: no route to host",
            "Connection refused",
            "i/o timeout",
        ],
    )
    def test_marker_messages_are_transient(self, message):
        assert is_transient_error(Exception(message)) is True

    def test_other_messages_are_fatal(self):
        assert is_transient_error(K8sResourceError("pods is forbidden")) is False

    def test_network_types_are_transient(self):
        assert is_transient_error(TransientClusterError("boom")) is True
        assert is_transient_error(urllib3.exceptions.ProtocolError("boom")) is True
        assert is_transient_error(ConnectionResetError("boom")) is True

    def test_network_cause_is_transient(self):
        err = K8sResourceError("list failed")
        err.__cause__ = urllib3.exceptions.NewConnectionError(None, "boom")
        assert is_transient_error(err) is True

    def test_job_failure_is_never_transient(self):
        assert is_transient_error(JobFailureError("job hit its timeout")) is False


# ===========================================================================
# wait_until
# ===========================================================================


class TestWaitUntil:
    """Tests for the generic poll loop."""

    def test_ready_on_first_check(self, clock):
        result = wait_until(scripted((True, "done")), interval=5, timeout=60)

        assert result.status == WaitStatus.READY
        assert result.ready
        assert result.attempts == 1
        assert clock.sleeps == []

    def test_transient_errors_are_retried(self, clock):
        check = scripted(
            TransientClusterError("connection refused"),
            Exception("i/o timeout"),
            (True, "3/3 pods running"),
        )

        result = wait_until(check, interval=5, timeout=60)

        assert result.status == WaitStatus.READY
        assert result.attempts == 3
        assert clock.sleeps == [5, 5]
        assert result.message == "3/3 pods running"

    def test_fatal_error_stops_immediately(self, clock):
        error = K8sResourceError("pods is forbidden")
        result = wait_until(scripted(error), interval=5, timeout=60)

        assert result.status == WaitStatus.FAILED
        assert result.attempts == 1
        assert result.error is error
        with pytest.raises(K8sResourceError):
            result.raise_for_status()

    def test_timeout_caps_last_sleep(self, clock):
        result = wait_until(
            lambda: (False, "1/2 pods running"), interval=5, timeout=12, description="pods"
        )

        assert result.status == WaitStatus.TIMEOUT
        assert result.attempts == 4
        assert clock.sleeps == [5, 5, 2]
        assert result.last_state == "1/2 pods running"
        assert result.message == "Timeout after 12s waiting for pods: 1/2 pods running"

    def test_timeout_raises_with_last_state(self, clock):
        result = wait_until(lambda: (False, "0/1 running"), interval=5, timeout=5)

        with pytest.raises(WaitTimeout) as exc_info:
            result.raise_for_status()
        assert exc_info.value.last_state == "0/1 running"

    def test_cancelled_before_first_check(self):
        event = threading.Event()
        event.set()
        check = MagicMock()

        result = wait_until(check, interval=5, timeout=60, cancel_event=event)

        assert result.status == WaitStatus.CANCELLED
        assert result.attempts == 0
        check.assert_not_called()
        with pytest.raises(WaitCancelled):
            result.raise_for_status()

    def test_cancel_wakes_the_poller(self):
        event = threading.Event()

        def check():
            event.set()
            return False, "waiting"

        # A 60s interval would block the test if the event did not wake it
        result = wait_until(check, interval=60, timeout=600, cancel_event=event)

        assert result.status == WaitStatus.CANCELLED
        assert result.attempts == 1


# ===========================================================================
# Resource waits
# ===========================================================================


class TestWaitForPodsRunning:
    """Tests for wait_for_pods_running."""

    def test_ready_when_enough_pods_running(self, clock, mock_k8s_client):
        mock_k8s_client.list_pods.side_effect = [
            [PodInfo("a", "Pending"), PodInfo("b", "Pending")],
            [PodInfo("a", "Running", "10.0.0.1", "n1"), PodInfo("b", "Pending")],
            [PodInfo("a", "Running", "10.0.0.1", "n1"), PodInfo("b", "Running", "10.0.0.2", "n2")],
        ]

        result = wait_for_pods_running(mock_k8s_client, "app=x", "bench", expected=2, interval=5)

        assert result.ready
        assert result.attempts == 3
        assert result.message == "2/2 pods running"
        mock_k8s_client.list_pods.assert_called_with("app=x", "bench")

    def test_more_pods_than_expected_is_ready(self, clock, mock_k8s_client):
        mock_k8s_client.list_pods.return_value = [
            PodInfo(name, "Running") for name in ("a", "b", "c")
        ]
        result = wait_for_pods_running(mock_k8s_client, "app=x", "bench", expected=2)
        assert result.ready


class TestWaitForJobCompletion:
    """Tests for wait_for_job_completion."""

    def test_succeeded(self, clock, mock_k8s_client):
        mock_k8s_client.get_job_status.side_effect = [
            JobStatus("job", exists=True, active=1),
            JobStatus("job", exists=True, succeeded=1),
        ]

        result = wait_for_job_completion(mock_k8s_client, "job", "bench", timeout=3600, interval=60)

        assert result.ready
        assert result.attempts == 2
        assert clock.sleeps == [60]

    def test_failed_job_is_not_retried(self, clock, mock_k8s_client):
        mock_k8s_client.get_job_status.side_effect = [
            JobStatus("job", exists=True, failed=1),
            JobStatus("job", exists=True, succeeded=1),
        ]

        result = wait_for_job_completion(mock_k8s_client, "job", "bench")

        assert result.status == WaitStatus.FAILED
        assert result.attempts == 1
        with pytest.raises(JobFailureError):
            result.raise_for_status()

    def test_missing_job_is_fatal(self, clock, mock_k8s_client):
        mock_k8s_client.get_job_status.side_effect = None
        mock_k8s_client.get_job_status.return_value = JobStatus("job", exists=False)

        result = wait_for_job_completion(mock_k8s_client, "job", "bench")

        assert result.status == WaitStatus.FAILED
        assert isinstance(result.error, K8sResourceError)

    def test_transient_status_error_is_retried(self, clock, mock_k8s_client):
        mock_k8s_client.get_job_status.side_effect = [
            TransientClusterError("connection reset by peer"),
            JobStatus("job", exists=True, succeeded=1),
        ]

        result = wait_for_job_completion(mock_k8s_client, "job", "bench", interval=60)

        assert result.ready
        assert result.attempts == 2
