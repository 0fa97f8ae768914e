"""Kubernetes client module for k8sio."""

from .client import (
    JobStatus,
    K8sClient,
    K8sConnectionError,
    K8sError,
    K8sResourceError,
    PodInfo,
    PrometheusInfo,
    TransientClusterError,
    WorkerEndpoint,
    get_k8s_client,
    iter_lines,
)
from .wait import (
    JobFailureError,
    WaitCancelled,
    WaitError,
    WaitResult,
    WaitStatus,
    WaitTimeout,
    is_transient_error,
    wait_for_job_completion,
    wait_for_pods_running,
    wait_until,
)

__all__ = [
    # Client
    "K8sClient",
    "JobStatus",
    "PodInfo",
    "PrometheusInfo",
    "WorkerEndpoint",
    "get_k8s_client",
    "iter_lines",
    # Errors
    "K8sError",
    "K8sConnectionError",
    "K8sResourceError",
    "TransientClusterError",
    "WaitError",
    "WaitTimeout",
    "WaitCancelled",
    "JobFailureError",
    # Wait
    "WaitResult",
    "WaitStatus",
    "is_transient_error",
    "wait_until",
    "wait_for_pods_running",
    "wait_for_job_completion",
]
