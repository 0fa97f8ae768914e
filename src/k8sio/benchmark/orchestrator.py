"""Phase orchestration for a benchmark run.

The orchestrator walks a fixed phase sequence:

    Building -> StartingServers -> StartingClient -> [Prefilling] ->
    StartBenchmark -> Running -> Completed

applying manifests through the cluster client and blocking on the
readiness poller between phases. Any failure moves the run to Failed
and is raised as :class:`OrchestrationError`. Resources are never
deleted here; see :func:`cleanup`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from k8sio._constants import JOB_POLL_INTERVAL, WORKER_POLL_INTERVAL
from k8sio.deploy import TemplateRenderError, apply_manifests
from k8sio.k8s import (
    K8sClient,
    K8sError,
    WaitCancelled,
    WaitResult,
    WorkerEndpoint,
    wait_for_job_completion,
    wait_for_pods_running,
)

from .phases import BenchmarkRun, Phase, PhaseObserver

logger = logging.getLogger(__name__)

Manifests = list[dict[str, Any]]


class OrchestrationError(Exception):
    """Raised when a benchmark run fails; carries the phase and resource involved."""

    def __init__(self, phase: Phase, resource: str, cause: BaseException | str):
        super().__init__(f"{phase.value}: {resource}: {cause}")
        self.phase = phase
        self.resource = resource
        self.cause = cause


class RunCancelled(OrchestrationError):
    """Raised when the caller's cancel event stops a run."""

    pass


@dataclass
class RunPlan:
    """Everything the orchestrator needs to drive one run.

    Manifests that depend on the discovered workers are produced by
    callables invoked after the workers are known.
    """

    run_id: str
    namespace: str
    workload: str
    job_timeout: int
    worker_selector: str
    expected_workers: int
    infrastructure: Manifests
    discovery: Callable[[list[WorkerEndpoint]], Manifests]
    benchmark: Callable[[list[WorkerEndpoint]], Manifests]
    benchmark_job: str | None
    prefill: Manifests = field(default_factory=list)
    prefill_job: str | None = None
    prefill_cooldown: float = 0
    post_discovery_delay: float = 0

    @property
    def prefill_enabled(self) -> bool:
        return self.prefill_job is not None


class PhaseOrchestrator:
    """Drives one :class:`BenchmarkRun` through its phases."""

    def __init__(
        self,
        plan: RunPlan,
        k8s: K8sClient,
        cancel_event: threading.Event | None = None,
        observers: Iterable[PhaseObserver] = (),
        worker_poll_interval: float = WORKER_POLL_INTERVAL,
        job_poll_interval: float = JOB_POLL_INTERVAL,
    ):
        self.plan = plan
        self.k8s = k8s
        self.cancel_event = cancel_event or threading.Event()
        self.worker_poll_interval = worker_poll_interval
        self.job_poll_interval = job_poll_interval
        self.state = BenchmarkRun(
            run_id=plan.run_id,
            namespace=plan.namespace,
            workload=plan.workload,
            expected_workers=plan.expected_workers,
            job_timeout=plan.job_timeout,
            observers=list(observers),
        )

    def run(self) -> BenchmarkRun:
        """Execute every phase.

        Returns:
            The run, in phase Completed

        Raises:
            OrchestrationError: The run is left in phase Failed
        """
        plan = self.plan
        try:
            self._check_cancelled()
            self._apply(plan.infrastructure, "infrastructure")
            self._advance(Phase.STARTING_SERVERS)

            endpoints = self._wait_for_workers()
            self._advance(Phase.STARTING_CLIENT)

            self._apply(self._build(plan.discovery, endpoints, "discovery"), "discovery")
            self._pause(plan.post_discovery_delay, "worker ports")

            if plan.prefill_enabled:
                self._advance(Phase.PREFILLING)
                self._apply(plan.prefill, "prefill")
                self._wait_for_job(plan.prefill_job)  # type: ignore[arg-type]
                self._pause(plan.prefill_cooldown, "post-prefill cooldown")

            self._advance(Phase.START_BENCHMARK)
            self._apply(self._build(plan.benchmark, endpoints, "benchmark"), "benchmark")
            self._advance(Phase.RUNNING)

            if plan.benchmark_job:
                self._wait_for_job(plan.benchmark_job)
            self._advance(Phase.COMPLETED)
        except OrchestrationError as e:
            self.state.fail(str(e))
            raise

        return self.state

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise RunCancelled(self.state.phase, self.plan.run_id, "cancelled")

    def _advance(self, to: Phase) -> None:
        self._check_cancelled()
        self.state.advance(to)

    def _build(
        self,
        producer: Callable[[list[WorkerEndpoint]], Manifests],
        endpoints: list[WorkerEndpoint],
        resource: str,
    ) -> Manifests:
        try:
            return producer(endpoints)
        except TemplateRenderError as e:
            raise OrchestrationError(self.state.phase, resource, e)  # noqa: B904

    def _apply(self, manifests: Manifests, resource: str) -> None:
        try:
            apply_manifests(self.k8s, manifests, self.plan.namespace)
        except (K8sError, TemplateRenderError) as e:
            raise OrchestrationError(self.state.phase, resource, e)  # noqa: B904

    def _raise_for(self, result: WaitResult, resource: str) -> None:
        try:
            result.raise_for_status()
        except WaitCancelled as e:
            raise RunCancelled(self.state.phase, resource, e)  # noqa: B904
        except Exception as e:
            raise OrchestrationError(self.state.phase, resource, e)  # noqa: B904

    def _wait_for_workers(self) -> list[WorkerEndpoint]:
        plan = self.plan
        if plan.expected_workers == 0:
            return []

        result = wait_for_pods_running(
            self.k8s,
            plan.worker_selector,
            plan.namespace,
            expected=plan.expected_workers,
            timeout=plan.job_timeout,
            interval=self.worker_poll_interval,
            cancel_event=self.cancel_event,
        )
        self._raise_for(result, plan.worker_selector)
        logger.info("%s: %s", self.state.trunc_id, result.message)

        # Listing can race with pod status, so re-check the count
        try:
            endpoints = self.k8s.get_pod_endpoints(plan.worker_selector, plan.namespace)
            self.state.set_endpoints(endpoints)
        except (K8sError, ValueError) as e:
            raise OrchestrationError(self.state.phase, plan.worker_selector, e)  # noqa: B904
        return list(self.state.endpoints)

    def _wait_for_job(self, job_name: str) -> None:
        result = wait_for_job_completion(
            self.k8s,
            job_name,
            self.plan.namespace,
            timeout=self.plan.job_timeout,
            interval=self.job_poll_interval,
            cancel_event=self.cancel_event,
        )
        self._raise_for(result, f"job/{job_name}")
        logger.info("%s: %s", self.state.trunc_id, result.message)

    def _pause(self, seconds: float, reason: str) -> None:
        if seconds <= 0:
            return
        logger.info("%s: waiting %ss for %s", self.state.trunc_id, seconds, reason)
        if self.cancel_event.wait(seconds):
            raise RunCancelled(self.state.phase, reason, "cancelled")


def cleanup(
    k8s: K8sClient,
    namespace: str,
    selectors: list[str],
    include_vms: bool = False,
) -> None:
    """Delete a run's resources by label selector.

    The first selector is authoritative and its failure is raised; later
    selectors sweep leftovers and only warn on failure. Safe to repeat.
    """
    first, *rest = selectors
    k8s.delete_by_label(first, namespace, include_vms=include_vms)
    logger.info("Deleted resources matching %s", first)

    for selector in rest:
        try:
            k8s.delete_by_label(selector, namespace, include_vms=include_vms)
        except K8sError as e:
            logger.warning("Failed to clean up resources matching %s: %s", selector, e)
        else:
            logger.info("Deleted resources matching %s", selector)

