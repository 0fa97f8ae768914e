"""Pydantic models for k8sio configuration.

A run is described by one YAML document: cluster placement (namespace,
run id), the selected workload and its free-form ``args`` block, and the
optional indexing settings passed through to the benchmark jobs. The
``args`` block is validated against the model of the selected workload
when the document is loaded, so a bad descriptor is rejected before any
cluster call is made.
"""

from __future__ import annotations

import uuid as uuid_lib
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from k8sio._constants import DEFAULT_JOB_TIMEOUT, TRUNCATED_UUID_LENGTH

# =============================================================================
# Enums
# =============================================================================


class WorkloadKind(str, Enum):
    """Supported benchmark workloads."""

    FIO = "fio"
    HAMMERDB = "hammerdb"


class RunKind(str, Enum):
    """Where the benchmark processes run."""

    POD = "pod"
    VM = "vm"


class DatabaseType(str, Enum):
    """Databases HammerDB can drive."""

    POSTGRES = "pg"
    MARIADB = "mariadb"
    MSSQL = "mssql"


# (port, user) defaults per database
DATABASE_DEFAULTS: dict[DatabaseType, tuple[int, str]] = {
    DatabaseType.POSTGRES: (5432, "postgres"),
    DatabaseType.MARIADB: (3306, "root"),
    DatabaseType.MSSQL: (1433, "sa"),
}


# =============================================================================
# Shared sections
# =============================================================================


class ElasticsearchConfig(BaseModel):
    """Elasticsearch indexing target handed to the benchmark jobs."""

    url: str
    index_name: str = ""
    verify_cert: bool = False
    parallel: bool = False


class PrometheusConfig(BaseModel):
    """Prometheus settings used when collecting cluster metrics."""

    es_url: str = ""
    es_parallel: bool = False
    prom_token: str = ""
    prom_url: str = ""


class JobParam(BaseModel):
    """Extra fio parameters appended to job files whose name matches."""

    jobname_match: str
    params: list[str] = Field(default_factory=list)


# =============================================================================
# Workload arguments
# =============================================================================


class FioArgs(BaseModel):
    """Arguments of the ``fio`` workload."""

    model_config = ConfigDict(extra="ignore")

    kind: RunKind = RunKind.POD
    servers: int = Field(default=1, ge=1)
    samples: int = Field(default=1, ge=1)
    jobs: list[str] = Field(default_factory=list)
    bs: list[str] = Field(default_factory=list)
    bsrange: list[str] = Field(default_factory=list)
    numjobs: list[int] = Field(default_factory=list)
    iodepth: int = 4
    filesize: str = ""

    # Timing
    read_runtime: int = 0
    write_runtime: int = 0
    read_ramp_time: int = 0
    write_ramp_time: int = 0
    job_timeout: int = DEFAULT_JOB_TIMEOUT

    # Storage
    storageclass: str = ""
    storagesize: str = "5Gi"
    pvcaccessmode: str = "ReadWriteOnce"
    pvcvolumemode: str = "Filesystem"

    # Prefill
    prefill: bool = False
    prefill_bs: str = "4096KiB"
    post_prefill_sleep: int = Field(default=0, ge=0)

    # VM
    vm_image: str = "quay.io/kubevirt/fedora-container-disk-images:latest"
    vm_cores: int = 1
    vm_memory: str = "5G"
    vm_bus: str = "virtio"
    # Seconds to wait after VMs report Running before fio ports answer
    vm_ready_delay: int = Field(default=30, ge=0)

    # Pod
    image: str = "quay.io/cloud-bulldozer/fio:latest"
    runtime_class: str = ""
    nodeselector: dict[str, str] = Field(default_factory=dict)
    tolerations: list[dict[str, Any]] = Field(default_factory=list)
    annotations: dict[str, str] = Field(default_factory=dict)
    server_annotations: dict[str, str] = Field(default_factory=dict)
    client_annotations: dict[str, str] = Field(default_factory=dict)

    # Logging
    log_sample_rate: int = 0
    log_hist_msec: int = 0

    cmp_ratio: int = 0
    drop_cache_kernel: bool = False
    drop_cache_rook_ceph: bool = False

    @field_validator("filesize", "prefill_bs")
    @classmethod
    def strip_sizes(cls, v: str) -> str:
        """Normalize size strings."""
        return v.strip()

    @model_validator(mode="after")
    def validate_matrix(self) -> FioArgs:
        """Require a non-empty job/block-size/numjobs matrix."""
        if not self.jobs:
            raise ValueError("at least one job type must be specified")
        if not self.bs and not self.bsrange:
            raise ValueError("either bs or bsrange must be specified")
        if not self.numjobs:
            raise ValueError("at least one numjobs value must be specified")
        if not self.filesize:
            raise ValueError("filesize must be specified")
        return self

    @property
    def fio_path(self) -> str:
        """Directory (or device) fio writes its test files to."""
        if self.storageclass:
            return "/dev/xvda"
        return "/tmp"

    @property
    def block_sizes(self) -> list[str]:
        """Block sizes to iterate over, ``bs`` taking precedence over ``bsrange``."""
        return self.bs or self.bsrange


class ClientVMConfig(BaseModel):
    """Optional persistent volume for the HammerDB client."""

    pvc: bool = False
    pvc_storageclass: str = ""
    pvc_pvcaccessmode: str = "ReadWriteOnce"
    pvc_pvcvolumemode: str = "Filesystem"
    pvc_storagesize: str = "5Gi"


class HammerDBArgs(BaseModel):
    """Arguments of the ``hammerdb`` workload."""

    model_config = ConfigDict(extra="ignore")

    kind: RunKind = RunKind.POD
    db_type: DatabaseType
    db_init: bool = False
    db_benchmark: bool = False
    job_timeout: int = DEFAULT_JOB_TIMEOUT

    db_server: str = ""
    db_port: int = 0
    db_name: str = "tpcc"
    db_user: str = ""
    db_password: str = ""

    # TPC-C
    warehouses: int = 1
    virtual_users: int = 1
    rampup_time: int = 1
    duration: int = 5

    image: str = "quay.io/cloud-bulldozer/hammerdb:latest"
    runtime_class: str = ""

    client_vm: ClientVMConfig = Field(default_factory=ClientVMConfig)

    pin: bool = False
    pin_node: str = ""
    nodeselector: dict[str, str] = Field(default_factory=dict)
    tolerations: list[dict[str, Any]] = Field(default_factory=list)
    annotations: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def apply_database_defaults(self) -> HammerDBArgs:
        """Fill port/user from the database type and check the TPC-C sizing."""
        port, user = DATABASE_DEFAULTS[self.db_type]
        if not self.db_port:
            self.db_port = port
        if not self.db_user:
            self.db_user = user

        if not self.db_server:
            raise ValueError("db_server must be specified")
        if self.kind != RunKind.POD:
            raise ValueError("kind 'vm' is not supported for hammerdb, use 'pod'")
        if self.warehouses <= 0:
            raise ValueError("warehouses must be greater than 0")
        if self.virtual_users <= 0:
            raise ValueError("virtual_users must be greater than 0")
        if not self.db_init and not self.db_benchmark:
            raise ValueError("either db_init or db_benchmark (or both) must be enabled")
        return self


WORKLOAD_ARGS: dict[WorkloadKind, type[BaseModel]] = {
    WorkloadKind.FIO: FioArgs,
    WorkloadKind.HAMMERDB: HammerDBArgs,
}


class WorkloadConfig(BaseModel):
    """Workload selection and its arguments."""

    name: WorkloadKind
    args: dict[str, Any] = Field(default_factory=dict)

    _parsed: BaseModel | None = PrivateAttr(default=None)

    @model_validator(mode="after")
    def parse_args(self) -> WorkloadConfig:
        """Validate ``args`` against the selected workload's model."""
        model = WORKLOAD_ARGS[self.name]
        try:
            self._parsed = model.model_validate(self.args)
        except ValidationError as e:
            details = []
            for err in e.errors():
                loc = ".".join(str(x) for x in ("args", *err["loc"]))
                details.append(f"{loc}: {err['msg']}")
            raise ValueError(f"invalid {self.name.value} args ({'; '.join(details)})")  # noqa: B904
        return self

    @property
    def parsed(self) -> BaseModel:
        """Typed workload arguments."""
        assert self._parsed is not None
        return self._parsed


# =============================================================================
# Root configuration
# =============================================================================


class K8sIOConfig(BaseModel):
    """Root configuration of one benchmark run."""

    namespace: str = "default"
    uuid: str = Field(default_factory=lambda: str(uuid_lib.uuid4()))
    test_user: str = "ripsaw"
    clustername: str = "default-cluster"

    workload: WorkloadConfig

    elasticsearch: ElasticsearchConfig | None = None
    prometheus: PrometheusConfig | None = None

    # Cache drop settings
    kcache_drop_pod_ips: str = ""
    kernel_cache_drop_svc_port: int = 0
    ceph_osd_cache_drop_pod_ip: str = ""
    ceph_cache_drop_svc_port: int = 0
    rook_ceph_drop_cache_pod_ip: str = ""

    job_params: list[JobParam] = Field(default_factory=list)

    @field_validator("namespace", "test_user", "clustername")
    @classmethod
    def default_when_blank(cls, v: str, info: ValidationInfo) -> str:
        """Treat an explicit empty string like an omitted field."""
        if v:
            return v
        return {
            "namespace": "default",
            "test_user": "ripsaw",
            "clustername": "default-cluster",
        }[info.field_name]

    @field_validator("uuid")
    @classmethod
    def generate_when_blank(cls, v: str) -> str:
        """Generate a run id when none is given."""
        return v or str(uuid_lib.uuid4())

    def truncated_uuid(self) -> str:
        """Run id prefix used in resource names."""
        return self.uuid[:TRUNCATED_UUID_LENGTH]

    def fio_args(self) -> FioArgs:
        """Typed fio arguments."""
        if self.workload.name != WorkloadKind.FIO:
            raise ValueError(f"workload is {self.workload.name.value}, not fio")
        return self.workload.parsed  # type: ignore[return-value]

    def hammerdb_args(self) -> HammerDBArgs:
        """Typed HammerDB arguments."""
        if self.workload.name != WorkloadKind.HAMMERDB:
            raise ValueError(f"workload is {self.workload.name.value}, not hammerdb")
        return self.workload.parsed  # type: ignore[return-value]
