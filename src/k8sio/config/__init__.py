"""k8sio configuration module."""

from .loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    generate_example_config_yaml,
    load_config,
    parse_config,
)
from .schema import (
    DatabaseType,
    ElasticsearchConfig,
    FioArgs,
    HammerDBArgs,
    JobParam,
    K8sIOConfig,
    PrometheusConfig,
    RunKind,
    WorkloadConfig,
    WorkloadKind,
)

__all__ = [
    # Config classes
    "K8sIOConfig",
    "WorkloadConfig",
    "FioArgs",
    "HammerDBArgs",
    "JobParam",
    "ElasticsearchConfig",
    "PrometheusConfig",
    # Enums
    "DatabaseType",
    "RunKind",
    "WorkloadKind",
    # Loader functions
    "load_config",
    "parse_config",
    "generate_example_config_yaml",
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
]
