"""HammerDB TPC-C workload against an existing database server.

There are no worker pods: the run creates the TPC-C schema with a
creator job (when ``db_init`` is set) and then runs the timed workload
job (when ``db_benchmark`` is set). Both jobs run ``hammerdbcli`` on Tcl
scripts delivered through configmaps.
"""

from __future__ import annotations

from typing import Any

from k8sio._constants import RUN_LABEL
from k8sio.benchmark import RunPlan
from k8sio.config import DatabaseType, HammerDBArgs

from .base import Workload

# hammerdbcli database prefix and job name component per database
DATABASES: dict[DatabaseType, tuple[str, str]] = {
    DatabaseType.POSTGRES: ("pg", "postgres"),
    DatabaseType.MARIADB: ("maria", "mariadb"),
    DatabaseType.MSSQL: ("mssqls", "mssql"),
}


class HammerDBWorkload(Workload):
    """TPC-C database benchmark driven by HammerDB."""

    name = "hammerdb"

    TEMPLATES = {
        "connection": "hammerdb/connection.tcl.j2",
        "createdb": "hammerdb/createdb.tcl.j2",
        "workload": "hammerdb/workload.tcl.j2",
        "scripts": "hammerdb/scripts-configmap.yaml.j2",
        "pvc": "hammerdb/pvc.yaml.j2",
        "job": "hammerdb/job.yaml.j2",
    }

    @property
    def args(self) -> HammerDBArgs:
        return self.config.hammerdb_args()

    @property
    def app_label(self) -> str:
        return f"hammerdb-bench-{self.trunc_uuid}"

    @property
    def creator_job(self) -> str:
        return f"hammerdb-creator-{self.trunc_uuid}"

    @property
    def workload_job(self) -> str:
        _, db_name = DATABASES[self.args.db_type]
        return f"hammerdb-{db_name}-workload-{self.trunc_uuid}"

    def validate(self) -> list[str]:
        args = self.args
        problems = []
        if not args.db_password:
            problems.append("db_password is empty")
        if args.pin and not args.pin_node:
            problems.append("pin requires pin_node")
        if args.client_vm.pvc and not args.client_vm.pvc_storageclass:
            problems.append("client_vm.pvc requires client_vm.pvc_storageclass")
        return problems

    def _build_context(self) -> dict[str, Any]:
        prefix, _ = DATABASES[self.args.db_type]
        context = self._base_context()
        context.update(
            {
                "args": self.args,
                "prefix": prefix,
                "labels": {"app": self.app_label, RUN_LABEL: self.config.uuid},
            }
        )
        return context

    def _scripts_configmap(self, context: dict[str, Any], kind: str, configmap_name: str) -> list[dict[str, Any]]:
        script_name = f"{kind}.tcl"
        script = self.renderer.render(self.TEMPLATES[kind], context)
        return self._render(
            self.TEMPLATES["scripts"],
            {**context, "configmap_name": configmap_name, "script_name": script_name, "script": script},
        )

    def _job(self, context: dict[str, Any], job_name: str, kind: str, configmap_name: str) -> list[dict[str, Any]]:
        return self._render(
            self.TEMPLATES["job"],
            {**context, "job_name": job_name, "configmap_name": configmap_name, "script_name": f"{kind}.tcl"},
        )

    def plan(self) -> RunPlan:
        args = self.args
        context = self._build_context()
        creator_cm = f"hammerdb-creator-{self.trunc_uuid}"
        workload_cm = f"hammerdb-workload-{self.trunc_uuid}"

        infrastructure = []
        if args.client_vm.pvc:
            infrastructure += self._render(self.TEMPLATES["pvc"], context)
        infrastructure += self._scripts_configmap(context, "createdb", creator_cm)
        infrastructure += self._scripts_configmap(context, "workload", workload_cm)

        prefill = self._job(context, self.creator_job, "createdb", creator_cm) if args.db_init else []
        benchmark = self._job(context, self.workload_job, "workload", workload_cm) if args.db_benchmark else []

        return RunPlan(
            run_id=self.config.uuid,
            namespace=self.namespace,
            workload=self.name,
            job_timeout=args.job_timeout,
            worker_selector=f"app={self.app_label}",
            expected_workers=0,
            infrastructure=infrastructure,
            discovery=lambda endpoints: [],
            benchmark=lambda endpoints: benchmark,
            benchmark_job=self.workload_job if args.db_benchmark else None,
            prefill=prefill,
            prefill_job=self.creator_job if args.db_init else None,
        )

    def cleanup_selectors(self) -> list[str]:
        return [self.run_selector(), f"app={self.app_label}"]
