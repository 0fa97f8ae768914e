"""Workload base class and factory.

A workload turns a validated :class:`K8sIOConfig` into a :class:`RunPlan`
(the manifests and job names the orchestrator needs) and knows how to
clean up after itself. Workloads never talk to the cluster except through
the orchestrator, cleanup and result collection.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import yaml

from k8sio._constants import JOB_POLL_INTERVAL, RUN_LABEL, WORKER_POLL_INTERVAL
from k8sio.benchmark import BenchmarkRun, PhaseObserver, PhaseOrchestrator, RunPlan, cleanup
from k8sio.config import ConfigValidationError, K8sIOConfig
from k8sio.deploy import TemplateRenderer
from k8sio.k8s import K8sClient, WorkerEndpoint

logger = logging.getLogger(__name__)


class Workload(ABC):
    """One benchmark workload.

    Args:
        config: Validated run configuration
        k8s: Cluster client. Only needed to run, clean up or collect.
        renderer: Template renderer. Defaults to the package templates.
    """

    name: str = ""

    def __init__(
        self,
        config: K8sIOConfig,
        k8s: K8sClient | None = None,
        renderer: TemplateRenderer | None = None,
    ):
        self.config = config
        self._k8s = k8s
        self.renderer = renderer or TemplateRenderer()

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            raise RuntimeError(f"{self.name} workload has no cluster client")
        return self._k8s

    @property
    def trunc_uuid(self) -> str:
        return self.config.truncated_uuid()

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def _base_context(self) -> dict[str, Any]:
        """Template variables shared by every workload."""
        cfg = self.config
        return {
            "uuid": cfg.uuid,
            "trunc_uuid": self.trunc_uuid,
            "namespace": cfg.namespace,
            "test_user": cfg.test_user,
            "clustername": cfg.clustername,
            "elasticsearch": cfg.elasticsearch.model_dump() if cfg.elasticsearch else None,
        }

    def _render(self, template: str, context: dict[str, Any]) -> list[dict[str, Any]]:
        return self.renderer.render_manifests(template, context)

    @abstractmethod
    def validate(self) -> list[str]:
        """Cross-field checks beyond the config models.

        Returns:
            Human-readable problems; empty when the workload can run
        """

    @abstractmethod
    def plan(self) -> RunPlan:
        """Build the run plan for the orchestrator."""

    @abstractmethod
    def cleanup_selectors(self) -> list[str]:
        """Label selectors that remove this run's resources, most specific first."""

    @property
    def include_vms(self) -> bool:
        return False

    def generate_manifests(self) -> dict[str, str]:
        """Render every manifest without touching the cluster.

        Workers are not known before a run, so discovery and benchmark
        manifests use placeholder addresses.

        Returns:
            ``kind-name.yaml`` file name to YAML text, in apply order
        """
        plan = self.plan()
        placeholders = self.placeholder_endpoints(plan.expected_workers)
        docs = list(plan.infrastructure)
        docs += plan.discovery(placeholders)
        docs += plan.prefill
        docs += plan.benchmark(placeholders)

        files = {}
        for doc in docs:
            kind = doc.get("kind", "resource").lower()
            name = doc.get("metadata", {}).get("name", "unnamed")
            files[f"{kind}-{name}.yaml"] = yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)
        return files

    @staticmethod
    def placeholder_endpoints(count: int) -> list[WorkerEndpoint]:
        return [WorkerEndpoint(address=f"<server-{n}-ip>", node_name="<node>") for n in range(count)]

    def run(
        self,
        cancel_event: threading.Event | None = None,
        observers: Iterable[PhaseObserver] = (),
        worker_poll_interval: float = WORKER_POLL_INTERVAL,
        job_poll_interval: float = JOB_POLL_INTERVAL,
    ) -> BenchmarkRun:
        """Drive one run to Completed.

        Raises:
            OrchestrationError: The run failed or was cancelled
        """
        orchestrator = PhaseOrchestrator(
            self.plan(),
            self.k8s,
            cancel_event=cancel_event,
            observers=observers,
            worker_poll_interval=worker_poll_interval,
            job_poll_interval=job_poll_interval,
        )
        return orchestrator.run()

    def cleanup(self) -> None:
        """Delete every resource of this run."""
        cleanup(self.k8s, self.namespace, self.cleanup_selectors(), include_vms=self.include_vms)

    def run_selector(self) -> str:
        return f"{RUN_LABEL}={self.config.uuid}"


def create_workload(
    config: K8sIOConfig,
    k8s: K8sClient | None = None,
    renderer: TemplateRenderer | None = None,
) -> Workload:
    """Instantiate the workload named in ``config``.

    Raises:
        ConfigValidationError: No workload has that name
    """
    from .fio import FioWorkload
    from .hammerdb import HammerDBWorkload

    registry: dict[str, type[Workload]] = {
        FioWorkload.name: FioWorkload,
        HammerDBWorkload.name: HammerDBWorkload,
    }
    name = config.workload.name.value
    workload_cls = registry.get(name)
    if workload_cls is None:
        raise ConfigValidationError(
            f"Unknown workload: {name}",
            [{"loc": ("workload", "name"), "msg": f"unknown workload {name!r}"}],
        )
    return workload_cls(config, k8s=k8s, renderer=renderer)
