"""Kubernetes client for k8sio."""

from __future__ import annotations

import codecs
import logging
import socket
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

# Resource kinds removed by a label-selector cleanup, in deletion order.
CLEANUP_KINDS = ("pods", "jobs", "configmaps", "persistentvolumeclaims")

# Where a cluster-local Prometheus usually lives: (namespace, service, port)
PROMETHEUS_TARGETS = (
    ("openshift-monitoring", "prometheus-k8s", 9091),
    ("monitoring", "prometheus-server", 9091),
    ("prometheus", "prometheus-server", 9091),
    ("kube-system", "prometheus", 9091),
    ("default", "prometheus", 9091),
)

# Errors raised below the API layer: sockets, DNS, TLS, dropped connections.
NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    urllib3.exceptions.HTTPError,
    ConnectionError,
    socket.timeout,
    TimeoutError,
)


class K8sError(Exception):
    """Base exception for Kubernetes errors."""

    pass


class K8sConnectionError(K8sError):
    """Raised when Kubernetes cluster is unreachable."""

    pass


class K8sResourceError(K8sError):
    """Raised when resource operations fail."""

    pass


class TransientClusterError(K8sError):
    """Raised when a call fails at the network layer and may succeed on retry."""

    pass


@dataclass(frozen=True)
class WorkerEndpoint:
    """Reachable address and scheduling host of one benchmark worker."""

    address: str
    node_name: str


@dataclass
class PodInfo:
    """Observed state of one pod."""

    name: str
    phase: str
    pod_ip: str = ""
    node_name: str = ""

    @property
    def running(self) -> bool:
        return self.phase == "Running"


@dataclass
class JobStatus:
    """Completion counters of a Job."""

    name: str
    exists: bool
    succeeded: int = 0
    failed: int = 0
    active: int = 0


@dataclass
class PrometheusInfo:
    """Result of Prometheus discovery."""

    found: bool
    url: str = ""
    token: str = ""


def _wrap(action: str, e: Exception) -> K8sError:
    """Map a client-library failure onto the k8sio error hierarchy."""
    if isinstance(e, K8sError):
        return e
    if isinstance(e, NETWORK_ERROR_TYPES):
        err: K8sError = TransientClusterError(f"{action}: {e}")
    else:
        err = K8sResourceError(f"{action}: {e}")
    err.__cause__ = e
    return err


class K8sClient:
    """Kubernetes client for resource management.

    This client wraps the official kubernetes-client and exposes the
    operations a benchmark run needs: idempotent apply, label-selector
    listing and deletion, job status and pod logs.
    """

    def __init__(self, context: str = "", namespace: str = ""):
        """Initialize Kubernetes client."""
        self.context_name = context
        self._namespace = namespace

        try:
            if context:
                config.load_kube_config(context=context)
            else:
                # Try in-cluster config first, fall back to kubeconfig
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
        except Exception as e:
            raise K8sConnectionError(f"Failed to load Kubernetes config: {e}")  # noqa: B904

        self._core_v1 = client.CoreV1Api()
        self._batch_v1 = client.BatchV1Api()
        self._custom = client.CustomObjectsApi()

    @property
    def namespace(self) -> str:
        """Get the default namespace."""
        return self._namespace or "default"

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def namespace_exists(self, name: str) -> bool:
        """Check if namespace exists."""
        try:
            self._core_v1.read_namespace(name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise _wrap(f"Error checking namespace {name}", e)  # noqa: B904
        except NETWORK_ERROR_TYPES as e:
            raise _wrap(f"Error checking namespace {name}", e)  # noqa: B904

    def create_namespace(self, name: str) -> bool:
        """Create namespace if it doesn't exist.

        Returns:
            True if created, False if it already existed
        """
        if self.namespace_exists(name):
            return False

        ns = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        try:
            self._core_v1.create_namespace(ns)
        except ApiException as e:
            if e.status == 409:
                return False
            raise _wrap(f"Failed to create namespace {name}", e)  # noqa: B904
        logger.info("Created namespace %s", name)
        return True

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply_manifest(self, manifest: dict[str, Any], namespace: str | None = None) -> bool:
        """Apply a Kubernetes manifest (create or replace).

        Args:
            manifest: Kubernetes manifest as dict
            namespace: Override namespace

        Returns:
            True if applied successfully
        """
        kind = manifest.get("kind", "")
        metadata = manifest.setdefault("metadata", {})
        name = metadata.get("name", "")
        ns = namespace or metadata.get("namespace") or self.namespace
        metadata["namespace"] = ns

        try:
            if kind == "ConfigMap":
                self._apply_configmap(manifest, ns)
            elif kind == "PersistentVolumeClaim":
                self._apply_pvc(manifest, ns)
            elif kind == "Pod":
                self._apply_pod(manifest, ns)
            elif kind == "Job":
                self._apply_job(manifest, ns)
            elif "/" in manifest.get("apiVersion", ""):
                self._apply_custom_resource(manifest, ns)
            else:
                raise K8sResourceError(f"Unsupported resource kind: {kind}")
        except (ApiException, *NETWORK_ERROR_TYPES) as e:
            raise _wrap(f"Failed to apply {kind}/{name}", e)  # noqa: B904

        logger.debug("Applied %s/%s in %s", kind, name, ns)
        return True

    def _apply_configmap(self, manifest: dict[str, Any], namespace: str) -> None:
        name = manifest["metadata"]["name"]
        try:
            self._core_v1.read_namespaced_config_map(name, namespace)
            self._core_v1.replace_namespaced_config_map(name, namespace, manifest)
        except ApiException as e:
            if e.status == 404:
                self._core_v1.create_namespaced_config_map(namespace, manifest)
            else:
                raise

    def _apply_pvc(self, manifest: dict[str, Any], namespace: str) -> None:
        """Create a PVC; an existing claim is kept since its spec is immutable."""
        name = manifest["metadata"]["name"]
        try:
            self._core_v1.read_namespaced_persistent_volume_claim(name, namespace)
            logger.debug("PVC %s already exists, keeping it", name)
        except ApiException as e:
            if e.status == 404:
                self._core_v1.create_namespaced_persistent_volume_claim(namespace, manifest)
            else:
                raise

    def _apply_pod(self, manifest: dict[str, Any], namespace: str) -> None:
        """Apply a Pod manifest.

        Note: Pod specs are immutable, so we delete and recreate if already exists.
        """
        name = manifest["metadata"]["name"]
        try:
            self._core_v1.read_namespaced_pod(name, namespace)
            self._core_v1.delete_namespaced_pod(
                name,
                namespace,
                body=client.V1DeleteOptions(grace_period_seconds=0),
            )
            self._wait_deleted(lambda: self._core_v1.read_namespaced_pod(name, namespace))
            self._core_v1.create_namespaced_pod(namespace, manifest)
        except ApiException as e:
            if e.status == 404:
                self._core_v1.create_namespaced_pod(namespace, manifest)
            else:
                raise

    def _apply_job(self, manifest: dict[str, Any], namespace: str) -> None:
        """Apply a Job manifest.

        Note: Jobs are immutable, so we delete and recreate if already exists.
        """
        name = manifest["metadata"]["name"]
        try:
            self._batch_v1.read_namespaced_job(name, namespace)
            self._batch_v1.delete_namespaced_job(
                name,
                namespace,
                body=client.V1DeleteOptions(propagation_policy="Background"),
            )
            self._wait_deleted(lambda: self._batch_v1.read_namespaced_job(name, namespace))
            self._batch_v1.create_namespaced_job(namespace, manifest)
        except ApiException as e:
            if e.status == 404:
                self._batch_v1.create_namespaced_job(namespace, manifest)
            else:
                raise

    @staticmethod
    def _wait_deleted(read_fn: Any, timeout: int = 60, interval: float = 2) -> None:
        """Block until ``read_fn`` reports 404 or the timeout passes."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            time.sleep(interval)
            try:
                read_fn()
            except ApiException as e:
                if e.status == 404:
                    return
                raise
        logger.warning("Resource still present after %ss, recreating anyway", timeout)

    def _apply_custom_resource(self, manifest: dict[str, Any], namespace: str) -> None:
        """Apply a namespaced Custom Resource (e.g. a KubeVirt VirtualMachineInstance)."""
        group, version = manifest["apiVersion"].split("/", 1)
        plural = _plural(manifest.get("kind", ""))
        name = manifest["metadata"]["name"]

        try:
            self._custom.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
            self._custom.patch_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                body=manifest,
            )
        except ApiException as e:
            if e.status == 404:
                self._custom.create_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    body=manifest,
                )
            else:
                raise

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_by_label(
        self,
        selector: str,
        namespace: str | None = None,
        kinds: Iterable[str] = CLEANUP_KINDS,
        include_vms: bool = False,
    ) -> None:
        """Delete every resource of the given kinds matching a label selector.

        Deleting a collection that matches nothing is not an error, so
        the call is safe to repeat.

        Raises:
            K8sResourceError: If any collection delete fails
        """
        ns = namespace or self.namespace
        deleters = {
            "pods": self._core_v1.delete_collection_namespaced_pod,
            "jobs": self._batch_v1.delete_collection_namespaced_job,
            "configmaps": self._core_v1.delete_collection_namespaced_config_map,
            "persistentvolumeclaims": (
                self._core_v1.delete_collection_namespaced_persistent_volume_claim
            ),
        }

        for kind in kinds:
            try:
                if kind == "jobs":
                    deleters[kind](ns, label_selector=selector, propagation_policy="Background")
                else:
                    deleters[kind](ns, label_selector=selector)
            except (ApiException, *NETWORK_ERROR_TYPES) as e:
                raise _wrap(f"Failed to delete {kind} ({selector})", e)  # noqa: B904
            logger.debug("Deleted %s matching %s in %s", kind, selector, ns)

        if include_vms:
            try:
                self._custom.delete_collection_namespaced_custom_object(
                    group="kubevirt.io",
                    version="v1",
                    namespace=ns,
                    plural="virtualmachineinstances",
                    label_selector=selector,
                )
            except ApiException as e:
                # KubeVirt not installed: nothing to delete
                if e.status != 404:
                    raise _wrap(f"Failed to delete VMIs ({selector})", e)  # noqa: B904

    # ------------------------------------------------------------------
    # Pods and jobs
    # ------------------------------------------------------------------

    def list_pods(self, selector: str, namespace: str | None = None) -> list[PodInfo]:
        """List pods matching a label selector."""
        ns = namespace or self.namespace
        try:
            pods = self._core_v1.list_namespaced_pod(ns, label_selector=selector)
        except (ApiException, *NETWORK_ERROR_TYPES) as e:
            raise _wrap(f"Failed to list pods ({selector})", e)  # noqa: B904

        return [
            PodInfo(
                name=pod.metadata.name,
                phase=(pod.status.phase if pod.status else "") or "",
                pod_ip=(pod.status.pod_ip if pod.status else "") or "",
                node_name=(pod.spec.node_name if pod.spec else "") or "",
            )
            for pod in pods.items
        ]

    def get_pod_endpoints(self, selector: str, namespace: str | None = None) -> list[WorkerEndpoint]:
        """Return the address/node of every scheduled pod with an IP.

        Pods without both an IP and a node are skipped; each address is
        reported once.
        """
        endpoints: dict[str, WorkerEndpoint] = {}
        for pod in self.list_pods(selector, namespace):
            if pod.pod_ip and pod.node_name:
                endpoints.setdefault(pod.pod_ip, WorkerEndpoint(pod.pod_ip, pod.node_name))
        return list(endpoints.values())

    def get_job_status(self, name: str, namespace: str | None = None) -> JobStatus:
        """Get the success/failure/active counters of a Job."""
        ns = namespace or self.namespace
        try:
            job = self._batch_v1.read_namespaced_job_status(name, ns)
        except ApiException as e:
            if e.status == 404:
                return JobStatus(name=name, exists=False)
            raise _wrap(f"Error getting job status for {name}", e)  # noqa: B904
        except NETWORK_ERROR_TYPES as e:
            raise _wrap(f"Error getting job status for {name}", e)  # noqa: B904

        status = job.status
        return JobStatus(
            name=name,
            exists=True,
            succeeded=(status.succeeded if status else 0) or 0,
            failed=(status.failed if status else 0) or 0,
            active=(status.active if status else 0) or 0,
        )

    def _first_job_pod(self, job_name: str, namespace: str) -> str:
        pods = self.list_pods(f"job-name={job_name}", namespace)
        if not pods:
            raise K8sResourceError(f"No pods found for job {job_name}")
        return pods[0].name

    def get_job_pod_logs(self, job_name: str, namespace: str | None = None) -> str:
        """Return the full log of the first pod created by a Job."""
        ns = namespace or self.namespace
        pod_name = self._first_job_pod(job_name, ns)
        try:
            return self._core_v1.read_namespaced_pod_log(pod_name, ns)
        except (ApiException, *NETWORK_ERROR_TYPES) as e:
            raise _wrap(f"Failed to get logs for pod {pod_name}", e)  # noqa: B904

    def stream_job_pod_logs(self, job_name: str, namespace: str | None = None) -> Iterator[str]:
        """Follow the log of the first pod created by a Job, line by line."""
        ns = namespace or self.namespace
        pod_name = self._first_job_pod(job_name, ns)
        try:
            response = self._core_v1.read_namespaced_pod_log(
                pod_name, ns, follow=True, _preload_content=False
            )
        except (ApiException, *NETWORK_ERROR_TYPES) as e:
            raise _wrap(f"Failed to stream logs for pod {pod_name}", e)  # noqa: B904

        try:
            yield from iter_lines(response.stream())
        except (ApiException, *NETWORK_ERROR_TYPES) as e:
            raise _wrap(f"Log stream of pod {pod_name} broke", e)  # noqa: B904
        finally:
            response.release_conn()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_prometheus(self, url: str = "", token: str = "") -> PrometheusInfo:
        """Locate a cluster Prometheus.

        An explicit ``url`` wins; otherwise well-known service names are
        probed in order. Lookup failures only mean "not found".
        """
        if url:
            return PrometheusInfo(found=True, url=url, token=token)

        for namespace, service, port in PROMETHEUS_TARGETS:
            try:
                svc = self._core_v1.read_namespaced_service(service, namespace)
            except (ApiException, *NETWORK_ERROR_TYPES):
                continue
            found_url = f"http://{svc.metadata.name}.{svc.metadata.namespace}.svc.cluster.local:{port}"
            logger.info("Discovered Prometheus at %s", found_url)
            return PrometheusInfo(found=True, url=found_url, token=token)

        return PrometheusInfo(found=False)


def iter_lines(chunks: Iterable[bytes | str]) -> Iterator[str]:
    """Reassemble a chunked byte/text stream into lines.

    Lines are yielded without their terminator. A trailing partial line
    is yielded when the stream ends.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    for chunk in chunks:
        if isinstance(chunk, bytes):
            chunk = decoder.decode(chunk)
        pending += chunk
        *complete, pending = pending.split("\n")
        for line in complete:
            yield line.rstrip("\r")
    pending += decoder.decode(b"", final=True)
    if pending:
        yield pending.rstrip("\r")


def _plural(kind: str) -> str:
    """Lowercase plural resource name for a kind."""
    lower = kind.lower()
    if lower.endswith("s"):
        return lower + "es"
    if lower.endswith("y"):
        return lower[:-1] + "ies"
    return lower + "s"


def get_k8s_client(context: str = "", namespace: str = "") -> K8sClient:
    """Create a Kubernetes client.

    Args:
        context: Kubernetes context (empty = current)
        namespace: Default namespace (empty = "default")

    Returns:
        K8sClient instance
    """
    return K8sClient(context=context, namespace=namespace)
