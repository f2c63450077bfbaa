"""Tests for the tfconf command line."""

import json
import textwrap

import pytest

from tfconf.cli import EXIT_DIAGNOSTICS, EXIT_OK, EXIT_USAGE, main
from tfconf.settings import get_settings

CONFIG = """
    variable:
      environment:
        type: string
        validation:
          - condition: "contains(['dev', 'prod'], var.environment)"
            error_message: Environment must be dev or prod.
      port_numbers:
        type: list(number)
        default: [80, 443]
        validation:
          - condition: all(1 <= p <= 65535 for p in var.port_numbers)
            error_message: All port numbers must be between 1 and 65535.
      db_password:
        type: string
        sensitive: true
        default: s3cret
    locals:
      name: "app-${var.environment}"
    output:
      name:
        value: "${local.name}"
      ports:
        value: "${var.port_numbers}"
      password:
        value: "${var.db_password}"
        sensitive: true
"""


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for key in ("TF_VAR_environment", "TF_VAR_port_numbers", "TFCONF_MASK_SENSITIVE"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text(textwrap.dedent(CONFIG))
    return str(path)


class TestValidate:
    def test_success(self, config_path, capsys):
        assert main(["validate", config_path, "--var", "environment=dev"]) == EXIT_OK
        assert "Success! The configuration is valid (3 variables)." in capsys.readouterr().out

    def test_failed_rule(self, config_path, capsys):
        code = main([
            "validate", config_path,
            "--var", "environment=dev",
            "--var", "port_numbers=[80, 443, 70000]",
        ])
        assert code == EXIT_DIAGNOSTICS
        err = capsys.readouterr().err
        assert "Error: Invalid value for variable (var.port_numbers)" in err
        assert "All port numbers must be between 1 and 65535." in err

    def test_missing_required(self, config_path, capsys):
        assert main(["validate", config_path]) == EXIT_DIAGNOSTICS
        assert "No value for required variable" in capsys.readouterr().err

    def test_json(self, config_path, capsys):
        code = main(["validate", config_path, "--var", "environment=qa", "--json"])
        assert code == EXIT_DIAGNOSTICS
        report = json.loads(capsys.readouterr().out)
        assert report["valid"] is False
        assert report["diagnostics"][0]["address"] == "var.environment"
        assert report["diagnostics"][0]["detail"] == "Environment must be dev or prod."

    def test_json_success(self, config_path, capsys):
        assert main(["validate", config_path, "--var", "environment=dev", "--json"]) == EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"valid": True, "diagnostics": []}

    def test_env_variable(self, config_path, monkeypatch):
        monkeypatch.setenv("TF_VAR_environment", "prod")
        assert main(["validate", config_path]) == EXIT_OK

    def test_cli_overrides_env(self, config_path, monkeypatch):
        monkeypatch.setenv("TF_VAR_environment", "prod")
        assert main(["validate", config_path, "--var", "environment=qa"]) == EXIT_DIAGNOSTICS

    def test_var_file(self, config_path, tmp_path):
        var_file = tmp_path / "dev.yaml"
        var_file.write_text("environment: dev\nport_numbers: [22]\n")
        assert main(["validate", config_path, "--var-file", str(var_file)]) == EXIT_OK


class TestEvaluate:
    def test_outputs(self, config_path, capsys):
        assert main(["evaluate", config_path, "--var", "environment=prod"]) == EXIT_OK
        out = capsys.readouterr().out.splitlines()
        assert out == [
            "name = app-prod",
            "ports = [80, 443]",
            "password = (sensitive value)",
        ]

    def test_json_outputs(self, config_path, capsys):
        assert main(["evaluate", config_path, "--var", "environment=dev", "--json"]) == EXIT_OK
        outputs = json.loads(capsys.readouterr().out)
        assert outputs == {"name": "app-dev", "ports": [80, 443], "password": "(sensitive value)"}

    def test_unmasked_by_setting(self, config_path, capsys, monkeypatch):
        monkeypatch.setenv("TFCONF_MASK_SENSITIVE", "false")
        assert main(["evaluate", config_path, "--var", "environment=dev"]) == EXIT_OK
        assert "password = s3cret" in capsys.readouterr().out


class TestGraph:
    def test_order(self, config_path, capsys):
        assert main(["graph", config_path]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert lines.index("local.name") < lines.index("output.name")
        assert set(lines) == {"local.name", "output.name", "output.ports", "output.password"}


class TestUsageErrors:
    def test_missing_config(self, tmp_path, capsys):
        assert main(["validate", str(tmp_path / "nope.yaml")]) == EXIT_USAGE
        assert "cannot read configuration" in capsys.readouterr().err

    def test_undeclared_cli_variable(self, config_path, capsys):
        assert main(["validate", config_path, "--var", "region=x"]) == EXIT_USAGE
        assert "undeclared variable 'region'" in capsys.readouterr().err

    def test_missing_var_file(self, config_path, tmp_path):
        assert main(["validate", config_path, "--var-file", str(tmp_path / "x.json")]) == EXIT_USAGE

    def test_bad_assignment(self, config_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["validate", config_path, "--var", "environment"])
        assert exc_info.value.code == EXIT_USAGE

    def test_no_command(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == EXIT_USAGE

    def test_unparseable_cli_value(self, config_path, capsys):
        code = main(["validate", config_path, "--var", "environment=dev", "--var", "port_numbers=80,443"])
        assert code == EXIT_DIAGNOSTICS
        assert "not valid JSON" in capsys.readouterr().err
