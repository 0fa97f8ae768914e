"""Shared fixtures for the k8sio test suite."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from k8sio.config import K8sIOConfig
from k8sio.k8s import JobStatus

RUN_ID = "0123abcd-4567-89ef-0123-456789abcdef"


def fio_args(**overrides) -> dict:
    """Minimal valid fio workload arguments."""
    args: dict = {
        "servers": 2,
        "jobs": ["write", "read"],
        "bs": ["4KiB", "64KiB"],
        "numjobs": [1],
        "filesize": "2GiB",
    }
    args.update(overrides)
    return args


def hammerdb_args(**overrides) -> dict:
    """Minimal valid HammerDB workload arguments."""
    args: dict = {
        "db_type": "pg",
        "db_server": "postgres.db.svc",
        "db_password": "secret",
        "db_init": True,
        "db_benchmark": True,
    }
    args.update(overrides)
    return args


def make_config(**overrides) -> K8sIOConfig:
    """Create a K8sIOConfig with sensible defaults for testing.

    This is the canonical config factory for tests: an fio run with two
    servers and a fixed uuid.
    """
    base: dict = {
        "namespace": "bench",
        "uuid": RUN_ID,
        "workload": {"name": "fio", "args": fio_args()},
    }
    base.update(overrides)
    return K8sIOConfig(**base)


@pytest.fixture
def default_config() -> K8sIOConfig:
    return make_config()


@pytest.fixture
def hammerdb_config() -> K8sIOConfig:
    return make_config(workload={"name": "hammerdb", "args": hammerdb_args()})


@pytest.fixture
def mock_k8s_client():
    """Pre-configured mock K8sClient for unit tests."""
    client = MagicMock()
    client.namespace = "bench"
    client.namespace_exists.return_value = True
    client.create_namespace.return_value = False
    client.apply_manifest.return_value = True
    client.list_pods.return_value = []
    client.get_pod_endpoints.return_value = []
    client.get_job_status.side_effect = lambda name, namespace=None: JobStatus(
        name=name, exists=True, succeeded=1
    )
    client.discover_prometheus.return_value = MagicMock(found=False, url="", token="")
    return client
