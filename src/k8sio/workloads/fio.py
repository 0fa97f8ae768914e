"""FIO storage benchmark workload.

Servers run ``fio --server`` in pods (or KubeVirt VMIs), each optionally
backed by its own PVC. Once the servers are running their addresses are
written to a hosts configmap, and a single client job drives every server
through the test matrix, printing each JSON result between
``FIO Result for <test id>`` and ``END FIO Result for <test id>``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from k8sio._constants import FIO_RESULT_MARKER, RUN_LABEL
from k8sio.benchmark import RunPlan
from k8sio.config import FioArgs, RunKind
from k8sio.k8s import K8sError, WorkerEndpoint
from k8sio.results import CaptureReport, ResultCapture

from .base import Workload

logger = logging.getLogger(__name__)

WRITE_JOBS = frozenset({"write", "randwrite", "readwrite", "randrw", "rw"})


@dataclass
class FioTest:
    """One entry of the test matrix (one job file)."""

    job: str
    bs: str
    numjobs: int
    runtime: int
    ramp_time: int
    params: list[str] = field(default_factory=list)

    @property
    def test_id(self) -> str:
        return f"fio-{self.job}-{self.bs}-{self.numjobs}"

    @property
    def file(self) -> str:
        # Configmap keys allow [-._a-zA-Z0-9] only
        return re.sub(r"[^-._a-zA-Z0-9]", "_", f"{self.test_id}.job")


class FioWorkload(Workload):
    """Distributed fio benchmark."""

    name = "fio"

    TEMPLATES = {
        "jobs": "fio/configmap.yaml.j2",
        "prefill_jobs": "fio/prefill-configmap.yaml.j2",
        "pvc": "fio/pvc.yaml.j2",
        "server": "fio/server.yaml.j2",
        "server_vm": "fio/server-vm.yaml.j2",
        "hosts": "fio/hosts.yaml.j2",
        "prefill": "fio/prefill-job.yaml.j2",
        "client": "fio/client.yaml.j2",
    }

    @property
    def args(self) -> FioArgs:
        return self.config.fio_args()

    @property
    def app_label(self) -> str:
        return f"fio-benchmark-{self.trunc_uuid}"

    @property
    def worker_selector(self) -> str:
        return f"app={self.app_label},benchmark-role=server"

    @property
    def client_job(self) -> str:
        return f"fio-client-{self.trunc_uuid}"

    @property
    def prefill_job(self) -> str:
        return f"fio-prefill-{self.trunc_uuid}"

    @property
    def include_vms(self) -> bool:
        return self.args.kind == RunKind.VM

    def validate(self) -> list[str]:
        args = self.args
        problems = []
        if args.pvcvolumemode == "Block" and not args.storageclass:
            problems.append("pvcvolumemode 'Block' requires a storageclass")
        if args.kind == RunKind.VM and args.runtime_class:
            problems.append("runtime_class only applies to kind 'pod'")
        if args.prefill and not any(job in WRITE_JOBS for job in args.jobs):
            logger.info("Prefill enabled for a read-only job list")
        return problems

    def test_matrix(self) -> list[FioTest]:
        """Every (job, block size, numjobs) combination, in config order."""
        args = self.args
        tests = []
        for job in args.jobs:
            is_write = job in WRITE_JOBS
            params = [
                param
                for job_param in self.config.job_params
                if job_param.jobname_match in job
                for param in job_param.params
            ]
            for bs in args.block_sizes:
                for numjobs in args.numjobs:
                    tests.append(
                        FioTest(
                            job=job,
                            bs=bs,
                            numjobs=numjobs,
                            runtime=args.write_runtime if is_write else args.read_runtime,
                            ramp_time=args.write_ramp_time if is_write else args.read_ramp_time,
                            params=params,
                        )
                    )
        return tests

    # ------------------------------------------------------------------
    # Template context
    # ------------------------------------------------------------------

    def _labels(self, role: str | None = None) -> dict[str, str]:
        labels = {"app": self.app_label, RUN_LABEL: self.config.uuid}
        if role:
            labels["benchmark-role"] = role
        return labels

    def _prometheus_context(self) -> dict[str, Any] | None:
        cfg = self.config
        prom = cfg.prometheus
        url = prom.prom_url if prom else ""
        token = prom.prom_token if prom else ""
        if not url and self._k8s is not None:
            try:
                info = self._k8s.discover_prometheus(url, token)
            except K8sError as e:
                logger.debug("Prometheus discovery failed: %s", e)
            else:
                if info.found:
                    url, token = info.url, info.token
        if not url:
            return None

        es_url = prom.es_url if prom else ""
        es_parallel = prom.es_parallel if prom else False
        if cfg.elasticsearch is not None:
            es_url = es_url or cfg.elasticsearch.url
            es_parallel = es_parallel or cfg.elasticsearch.parallel
        return {"prom_url": url, "prom_token": token, "es_url": es_url, "es_parallel": es_parallel}

    def _build_context(self) -> dict[str, Any]:
        args = self.args
        cfg = self.config
        context = self._base_context()
        context.update(
            {
                "args": args,
                "labels": self._labels(),
                "server_labels": self._labels("server"),
                "client_labels": self._labels("client"),
                "fio_path": args.fio_path,
                "block_device": args.pvcvolumemode == "Block",
                "tests": self.test_matrix(),
                "max_numjobs": max(args.numjobs),
                "marker": FIO_RESULT_MARKER,
                "kcache_drop_pod_ips": cfg.kcache_drop_pod_ips,
                "kernel_cache_drop_svc_port": cfg.kernel_cache_drop_svc_port,
                "ceph_osd_cache_drop_pod_ip": cfg.ceph_osd_cache_drop_pod_ip or cfg.rook_ceph_drop_cache_pod_ip,
                "ceph_cache_drop_svc_port": cfg.ceph_cache_drop_svc_port,
            }
        )
        return context

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def infrastructure_manifests(self, context: dict[str, Any]) -> list[dict[str, Any]]:
        """Job files, optional prefill job file, then per-server PVC and server."""
        args = self.args
        docs = self._render(self.TEMPLATES["jobs"], context)
        if args.prefill:
            docs += self._render(self.TEMPLATES["prefill_jobs"], context)

        server_template = self.TEMPLATES["server_vm" if args.kind == RunKind.VM else "server"]
        annotations = {**args.annotations, **args.server_annotations}
        for n in range(1, args.servers + 1):
            claim_name = f"fio-claim-{n}-{self.trunc_uuid}" if args.storageclass else ""
            server_context = {
                **context,
                "server_name": f"fio-server-{n}-{self.trunc_uuid}",
                "claim_name": claim_name,
                "annotations": annotations,
            }
            if claim_name:
                docs += self._render(self.TEMPLATES["pvc"], server_context)
            docs += self._render(server_template, server_context)
        return docs

    def _endpoint_producer(
        self, template: str, context: dict[str, Any]
    ) -> Callable[[list[WorkerEndpoint]], list[dict[str, Any]]]:
        def produce(endpoints: list[WorkerEndpoint]) -> list[dict[str, Any]]:
            return self._render(template, {**context, "hosts": [ep.address for ep in endpoints]})

        return produce

    def plan(self) -> RunPlan:
        args = self.args
        context = self._build_context()
        client_context = {
            **context,
            "prometheus": self._prometheus_context(),
            "annotations": {**args.annotations, **args.client_annotations},
        }

        prefill = self._render(self.TEMPLATES["prefill"], context) if args.prefill else []
        return RunPlan(
            run_id=self.config.uuid,
            namespace=self.namespace,
            workload=self.name,
            job_timeout=args.job_timeout,
            worker_selector=self.worker_selector,
            expected_workers=args.servers,
            infrastructure=self.infrastructure_manifests(context),
            discovery=self._endpoint_producer(self.TEMPLATES["hosts"], context),
            benchmark=self._endpoint_producer(self.TEMPLATES["client"], client_context),
            benchmark_job=self.client_job,
            prefill=prefill,
            prefill_job=self.prefill_job if args.prefill else None,
            prefill_cooldown=args.post_prefill_sleep,
            post_discovery_delay=args.vm_ready_delay if args.kind == RunKind.VM else 0,
        )

    def cleanup_selectors(self) -> list[str]:
        return [self.run_selector(), f"app={self.app_label}"]

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def collect_results(
        self,
        follow: bool = False,
        export_csv: bool = True,
        output_dir: Path | str = ".",
        console: Console | None = None,
    ) -> CaptureReport:
        """Read the client job's output and report its results.

        Parse problems are logged, never raised. Failing to read the logs
        at all is reported as an empty result.
        """
        console = console or Console()
        capture = ResultCapture(self.trunc_uuid, console=console, export=export_csv, output_dir=output_dir)
        try:
            if follow:
                lines = self.k8s.stream_job_pod_logs(self.client_job, self.namespace)
                return capture.from_stream(lines, echo=lambda line: console.print(line, markup=False, highlight=False))
            return capture.from_text(self.k8s.get_job_pod_logs(self.client_job, self.namespace))
        except K8sError as e:
            logger.warning("Failed to read logs of %s: %s", self.client_job, e)
            console.print(f"[yellow]WARN[/yellow] Failed to read logs of {self.client_job}: {e}")
            return CaptureReport()
