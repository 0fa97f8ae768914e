"""Shared constants for k8sio."""

# Unified output directory -- single top-level directory for all k8sio outputs.
# Contains:
#   journal/   -- session-scoped JSONL provenance logs
#   results/   -- CSV exports of parsed benchmark results
DEFAULT_OUTPUT_DIR = "./k8sio-output"

# Length of the run id prefix used in resource names.
TRUNCATED_UUID_LENGTH = 8

# Label carrying the full run id on every resource a run creates.
RUN_LABEL = "benchmark-uuid"

# Default poll intervals (seconds) for the two readiness call sites.
WORKER_POLL_INTERVAL = 5
JOB_POLL_INTERVAL = 60

DEFAULT_JOB_TIMEOUT = 3600

# Marker emitted by the fio client job around each JSON result block.
FIO_RESULT_MARKER = "FIO Result"

# fio client_stats pseudo-entry aggregating all servers.
FIO_AGGREGATE_JOB = "All clients"
