"""Wait-for-ready logic for Kubernetes resources.

Every blocking wait in a benchmark run goes through :func:`wait_until`:
an immediate first check, then re-checks on a fixed interval until the
check reports ready, raises a fatal error, the timeout passes, or the
caller's cancel event is set. Errors that look like network trouble are
logged and retried instead of failing the wait.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from k8sio._constants import JOB_POLL_INTERVAL, WORKER_POLL_INTERVAL

from .client import (
    NETWORK_ERROR_TYPES,
    K8sClient,
    K8sError,
    K8sResourceError,
    TransientClusterError,
)

logger = logging.getLogger(__name__)

# Lowercase substrings that mark an error message as network trouble.
# This is a heuristic: a fatal API error whose text happens to contain one
# of these (e.g. a validation message mentioning "timeout") is retried.
TRANSIENT_MARKERS = (
    "client connection lost",
    "connection reset by peer",
    "timeout",
    "temporary failure",
    "network is unreachable",
    "no route to host",
    "connection refused",
    "i/o timeout",
)


class WaitStatus(Enum):
    """Status of a wait operation."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class WaitError(K8sError):
    """Raised when a wait operation fails."""

    pass


class WaitTimeout(WaitError):
    """Raised when a wait operation times out."""

    def __init__(self, message: str, last_state: str = ""):
        super().__init__(message)
        self.last_state = last_state


class WaitCancelled(WaitError):
    """Raised when a wait operation is cancelled by the caller."""

    pass


class JobFailureError(WaitError):
    """Raised when a Job reports failed pods."""

    pass


@dataclass
class WaitResult:
    """Result of a wait operation."""

    status: WaitStatus
    message: str
    elapsed_seconds: float
    attempts: int
    error: Exception | None = None
    last_state: str = ""

    @property
    def ready(self) -> bool:
        return self.status == WaitStatus.READY

    def raise_for_status(self) -> None:
        """Raise the error matching a non-ready outcome."""
        if self.status == WaitStatus.TIMEOUT:
            raise WaitTimeout(self.message, last_state=self.last_state)
        if self.status == WaitStatus.CANCELLED:
            raise WaitCancelled(self.message)
        if self.status == WaitStatus.FAILED:
            if self.error is not None:
                raise self.error
            raise WaitError(self.message)


def is_transient_error(exc: BaseException) -> bool:
    """Classify an error raised by a readiness check.

    Network-layer error types (anywhere in the ``__cause__`` chain) and
    messages containing one of :data:`TRANSIENT_MARKERS` are transient;
    everything else is fatal. A failed Job is never transient.
    """
    if isinstance(exc, JobFailureError):
        return False

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (TransientClusterError, *NETWORK_ERROR_TYPES)):
            return True
        text = str(current).lower()
        if any(marker in text for marker in TRANSIENT_MARKERS):
            return True
        current = current.__cause__
    return False


def wait_until(
    check_fn: Callable[[], tuple[bool, str]],
    interval: float = WORKER_POLL_INTERVAL,
    timeout: float = 300,
    cancel_event: threading.Event | None = None,
    description: str = "condition",
) -> WaitResult:
    """Poll ``check_fn`` until it reports ready.

    Args:
        check_fn: Returns (ready, message); raises on error
        interval: Seconds between checks (fixed, no backoff)
        timeout: Maximum time to wait
        cancel_event: Set by the caller to abort the wait
        description: Description for logging

    Returns:
        WaitResult with outcome
    """
    start_time = time.monotonic()
    attempts = 0
    message = "not checked"

    while True:
        elapsed = time.monotonic() - start_time
        if cancel_event is not None and cancel_event.is_set():
            return WaitResult(
                status=WaitStatus.CANCELLED,
                message=f"Cancelled after {int(elapsed)}s waiting for {description}",
                elapsed_seconds=elapsed,
                attempts=attempts,
            )

        attempts += 1
        try:
            ready, message = check_fn()
            if ready:
                return WaitResult(
                    status=WaitStatus.READY,
                    message=message,
                    elapsed_seconds=time.monotonic() - start_time,
                    attempts=attempts,
                )
        except Exception as e:
            if not is_transient_error(e):
                return WaitResult(
                    status=WaitStatus.FAILED,
                    message=str(e),
                    elapsed_seconds=time.monotonic() - start_time,
                    attempts=attempts,
                    error=e,
                )
            message = str(e)
            logger.warning("Transient error waiting for %s, retrying: %s", description, e)

        elapsed = time.monotonic() - start_time
        if elapsed >= timeout:
            return WaitResult(
                status=WaitStatus.TIMEOUT,
                message=f"Timeout after {int(elapsed)}s waiting for {description}: {message}",
                elapsed_seconds=elapsed,
                attempts=attempts,
                last_state=message,
            )

        logger.debug("Waiting for %s: %s", description, message)
        pause = min(interval, timeout - elapsed)
        if cancel_event is not None:
            cancel_event.wait(pause)
        else:
            time.sleep(pause)


def wait_for_pods_running(
    client: K8sClient,
    selector: str,
    namespace: str,
    expected: int,
    timeout: float = 300,
    interval: float = WORKER_POLL_INTERVAL,
    cancel_event: threading.Event | None = None,
) -> WaitResult:
    """Wait until at least ``expected`` pods matching ``selector`` are Running.

    Args:
        client: K8sClient instance
        selector: Label selector of the worker pods
        namespace: Namespace
        expected: Number of Running pods required
        timeout: Maximum time to wait
        interval: Seconds between checks
        cancel_event: Set by the caller to abort the wait

    Returns:
        WaitResult with outcome
    """

    def check() -> tuple[bool, str]:
        pods = client.list_pods(selector, namespace)
        running = sum(1 for pod in pods if pod.running)
        return running >= expected, f"{running}/{expected} pods running"

    return wait_until(
        check,
        interval=interval,
        timeout=timeout,
        cancel_event=cancel_event,
        description=f"pods {selector}",
    )


def wait_for_job_completion(
    client: K8sClient,
    name: str,
    namespace: str,
    timeout: float = 3600,
    interval: float = JOB_POLL_INTERVAL,
    cancel_event: threading.Event | None = None,
) -> WaitResult:
    """Wait for a Job to report a succeeded pod.

    A Job reporting any failed pod ends the wait with a
    :class:`JobFailureError`; it is not retried.
    """

    def check() -> tuple[bool, str]:
        status = client.get_job_status(name, namespace)
        if not status.exists:
            raise K8sResourceError(f"Job {name} not found in {namespace}")
        if status.failed > 0:
            raise JobFailureError(f"Job {name} failed ({status.failed} failed pod(s))")
        if status.succeeded > 0:
            return True, f"Job {name} completed"
        return False, f"Job {name} has {status.active} active pod(s)"

    return wait_until(
        check,
        interval=interval,
        timeout=timeout,
        cancel_event=cancel_event,
        description=f"job {name}",
    )
