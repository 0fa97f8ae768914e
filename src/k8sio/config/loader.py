"""Configuration loader for k8sio."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .schema import K8sIOConfig


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when configuration file is not found."""

    pass


class ConfigParseError(ConfigError):
    """Raised when configuration file cannot be parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when a run descriptor is invalid."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return as dictionary.

    Args:
        path: Path to YAML file

    Returns:
        Dictionary containing parsed YAML

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}")  # noqa: B904

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigParseError(f"Expected a mapping at the top of {path}")
    return content


def parse_config(data: dict[str, Any]) -> K8sIOConfig:
    """Validate an already-parsed configuration mapping.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        return K8sIOConfig.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            msg = err["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(  # noqa: B904
            "Configuration validation failed:\n" + "\n".join(error_messages),
            errors=[dict(e) for e in errors],  # type: ignore[call-overload]
        )


def load_config(path: str | Path) -> K8sIOConfig:
    """Load and validate a run configuration from file.

    Args:
        path: Path to configuration YAML file

    Returns:
        Validated K8sIOConfig object

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
        ConfigValidationError: If validation fails
    """
    return parse_config(load_yaml(Path(path)))


def generate_example_config_yaml() -> str:
    """Generate example configuration YAML with comments.

    Only the fields a user must fill in are uncommented; every other
    option is shown commented-out with its default.
    """
    return """# k8sio configuration
# ===================
# One document describes one benchmark run.
#
#   Uncommented fields  = REQUIRED or explicitly set values
#   # field: value      = Available option with its DEFAULT value

# Namespace the benchmark resources are created in (created if missing)
namespace: benchmarks

# Run id; generated when omitted. The first 8 characters name resources.
# uuid: 0f8e6c2a-5b1d-4c3e-9a7f-2d4b6e8f0a1c
# test_user: ripsaw
# clustername: default-cluster

workload:
  # fio | hammerdb
  name: fio
  args:
    # pod | vm
    # kind: pod
    servers: 2
    # samples: 1
    jobs:
      - write
      - read
    bs:
      - 64KiB
    # bsrange: []
    numjobs:
      - 1
    # iodepth: 4
    filesize: 2GiB
    # read_runtime: 0
    # write_runtime: 0
    # read_ramp_time: 0
    # write_ramp_time: 0
    # job_timeout: 3600

    ## Storage (a PVC per server when storageclass is set)
    # storageclass: ""
    # storagesize: 5Gi
    # pvcaccessmode: ReadWriteOnce
    # pvcvolumemode: Filesystem

    ## Prefill writes every test file once before measuring
    # prefill: false
    # prefill_bs: 4096KiB
    # post_prefill_sleep: 0

    ## VM kind (KubeVirt)
    # vm_image: quay.io/kubevirt/fedora-container-disk-images:latest
    # vm_cores: 1
    # vm_memory: 5G
    # vm_bus: virtio
    # vm_ready_delay: 30

    # image: quay.io/cloud-bulldozer/fio:latest

# HammerDB example:
# workload:
#   name: hammerdb
#   args:
#     db_type: pg            # pg | mariadb | mssql
#     db_server: postgres.db.svc.cluster.local
#     db_password: secret
#     db_init: true
#     db_benchmark: true
#     # db_port / db_user default per db_type (5432/postgres, 3306/root, 1433/sa)
#     # db_name: tpcc
#     # warehouses: 1
#     # virtual_users: 1
#     # rampup_time: 1
#     # duration: 5

## Extra fio parameters per job name
# job_params:
#   - jobname_match: write
#     params:
#       - fsync_on_close=1

# elasticsearch:
#   url: https://es.example.com:9200
#   index_name: ripsaw-fio
# prometheus:
#   prom_url: ""
#   prom_token: ""
"""
