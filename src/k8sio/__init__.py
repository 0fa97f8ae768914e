"""k8sio - distributed storage and database benchmarks on Kubernetes."""

__version__ = "0.3.0"
