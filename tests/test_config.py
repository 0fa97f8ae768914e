"""Tests for configuration loading and validation."""

import pytest
import yaml

from k8sio.config import (
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    DatabaseType,
    FioArgs,
    HammerDBArgs,
    K8sIOConfig,
    RunKind,
    WorkloadKind,
    generate_example_config_yaml,
    load_config,
    parse_config,
)
from tests.conftest import RUN_ID, fio_args, hammerdb_args, make_config


class TestK8sIOConfig:
    """Tests for the root model."""

    def test_defaults(self):
        config = K8sIOConfig(workload={"name": "fio", "args": fio_args()})
        assert config.namespace == "default"
        assert config.test_user == "ripsaw"
        assert config.clustername == "default-cluster"
        assert len(config.uuid) == 36
        assert config.elasticsearch is None
        assert config.prometheus is None

    def test_blank_values_fall_back_to_defaults(self):
        config = make_config(namespace="", test_user="", clustername="", uuid="")
        assert config.namespace == "default"
        assert config.test_user == "ripsaw"
        assert config.clustername == "default-cluster"
        assert config.uuid

    def test_generated_uuids_differ(self):
        a = K8sIOConfig(workload={"name": "fio", "args": fio_args()})
        b = K8sIOConfig(workload={"name": "fio", "args": fio_args()})
        assert a.uuid != b.uuid

    def test_truncated_uuid(self):
        assert make_config().truncated_uuid() == RUN_ID[:8]

    def test_typed_args_accessors(self, default_config, hammerdb_config):
        assert isinstance(default_config.fio_args(), FioArgs)
        assert isinstance(hammerdb_config.hammerdb_args(), HammerDBArgs)
        with pytest.raises(ValueError, match="not hammerdb"):
            default_config.hammerdb_args()
        with pytest.raises(ValueError, match="not fio"):
            hammerdb_config.fio_args()

    def test_unknown_workload_rejected(self):
        with pytest.raises(ValueError):
            make_config(workload={"name": "sysbench", "args": {}})

    def test_job_params(self):
        config = make_config(job_params=[{"jobname_match": "write", "params": ["fsync=1"]}])
        assert config.job_params[0].params == ["fsync=1"]


class TestFioArgs:
    """Tests for fio workload arguments."""

    def test_defaults(self, default_config):
        args = default_config.fio_args()
        assert args.kind == RunKind.POD
        assert args.samples == 1
        assert args.iodepth == 4
        assert args.storagesize == "5Gi"
        assert args.prefill_bs == "4096KiB"
        assert args.vm_ready_delay == 30

    @pytest.mark.parametrize(
        "field,value,message",
        [
            ("jobs", [], "at least one job type"),
            ("numjobs", [], "at least one numjobs"),
            ("filesize", "  ", "filesize must be specified"),
            ("servers", 0, "greater than or equal to 1"),
        ],
    )
    def test_invalid_args(self, field, value, message):
        with pytest.raises(ValueError, match=message):
            make_config(workload={"name": "fio", "args": fio_args(**{field: value})})

    def test_bs_or_bsrange_required(self):
        with pytest.raises(ValueError, match="either bs or bsrange"):
            make_config(workload={"name": "fio", "args": fio_args(bs=[])})

    def test_bsrange_used_when_bs_missing(self):
        config = make_config(workload={"name": "fio", "args": fio_args(bs=[], bsrange=["4KiB-16KiB"])})
        assert config.fio_args().block_sizes == ["4KiB-16KiB"]

    def test_unused_keys_are_ignored(self):
        args = FioArgs(**fio_args(hostpath="/mnt", fio_json_to_log=True, debug=True))
        assert not hasattr(args, "hostpath")
        assert not hasattr(args, "fio_json_to_log")

    def test_fio_path(self):
        assert FioArgs(**fio_args()).fio_path == "/tmp"
        assert FioArgs(**fio_args(storageclass="fast")).fio_path == "/dev/xvda"

    def test_error_location_names_args(self):
        with pytest.raises(ValueError, match=r"args\.servers"):
            make_config(workload={"name": "fio", "args": fio_args(servers="many")})


class TestHammerDBArgs:
    """Tests for HammerDB workload arguments."""

    @pytest.mark.parametrize(
        "db_type,port,user",
        [("pg", 5432, "postgres"), ("mariadb", 3306, "root"), ("mssql", 1433, "sa")],
    )
    def test_database_defaults(self, db_type, port, user):
        args = HammerDBArgs(**hammerdb_args(db_type=db_type))
        assert args.db_type == DatabaseType(db_type)
        assert args.db_port == port
        assert args.db_user == user

    def test_explicit_port_and_user_kept(self):
        args = HammerDBArgs(**hammerdb_args(db_port=6432, db_user="bench"))
        assert args.db_port == 6432
        assert args.db_user == "bench"

    def test_db_server_required(self):
        with pytest.raises(ValueError, match="db_server"):
            HammerDBArgs(**hammerdb_args(db_server=""))

    def test_vm_kind_rejected(self):
        with pytest.raises(ValueError, match="not supported for hammerdb"):
            HammerDBArgs(**hammerdb_args(kind="vm"))

    def test_unused_keys_are_ignored(self):
        args = HammerDBArgs(**hammerdb_args(vm_cores=8, debug=True, server_annotations={"a": "b"}))
        assert not hasattr(args, "vm_cores")
        assert not hasattr(args, "debug")

    def test_needs_init_or_benchmark(self):
        with pytest.raises(ValueError, match="db_init or db_benchmark"):
            HammerDBArgs(**hammerdb_args(db_init=False, db_benchmark=False))

    @pytest.mark.parametrize("field", ["warehouses", "virtual_users"])
    def test_sizing_must_be_positive(self, field):
        with pytest.raises(ValueError, match=f"{field} must be greater than 0"):
            HammerDBArgs(**hammerdb_args(**{field: 0}))

    def test_unknown_database(self):
        with pytest.raises(ValueError):
            HammerDBArgs(**hammerdb_args(db_type="oracle"))


class TestLoadConfig:
    """Tests for loading configuration files."""

    def test_load_valid(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(
            yaml.safe_dump({"namespace": "bench", "workload": {"name": "fio", "args": fio_args()}})
        )

        config = load_config(path)

        assert config.namespace == "bench"
        assert config.workload.name == WorkloadKind.FIO

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("workload: [unclosed\n")
        with pytest.raises(ConfigParseError):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigParseError, match="mapping"):
            load_config(path)

    def test_empty_file_fails_validation(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)
        assert exc_info.value.errors[0]["loc"] == ("workload",)

    def test_validation_errors_carry_locations(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            parse_config({"workload": {"name": "fio", "args": fio_args(jobs=[])}})

        err = exc_info.value
        assert "Configuration validation failed" in str(err)
        assert err.errors[0]["loc"] == ("workload",)
        assert "at least one job type" in err.errors[0]["msg"]

    def test_example_config_is_valid(self, tmp_path):
        path = tmp_path / "k8sio.yaml"
        path.write_text(generate_example_config_yaml())

        config = load_config(path)

        assert config.namespace == "benchmarks"
        assert config.fio_args().servers == 2
        assert config.fio_args().jobs == ["write", "read"]
