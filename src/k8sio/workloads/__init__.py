"""Benchmark workloads: FIO and HammerDB."""

from .base import Workload, create_workload
from .fio import FioTest, FioWorkload
from .hammerdb import HammerDBWorkload

__all__ = [
    "FioTest",
    "FioWorkload",
    "HammerDBWorkload",
    "Workload",
    "create_workload",
]
