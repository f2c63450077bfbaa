"""Tests for input value sources and precedence."""

import json

import pytest

from conftest import var

from tfconf.evaluate import (
    ConfigError,
    TypeMismatchError,
    UndeclaredVariableError,
    ValueSource,
    VarFileError,
    parse_cli_assignment,
    read_var_file,
    resolve_inputs,
)
from tfconf.evaluate._sources import parse_raw_value
from tfconf.framework import parse_type


@pytest.fixture
def region():
    return var("region", "string", default="us-east-1")


@pytest.fixture
def var_file(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path
    return _write


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestPrecedence:
    def test_default(self, region):
        resolved = resolve_inputs([region], env={})
        assert resolved["region"].value == "us-east-1"
        assert resolved["region"].source == ValueSource.DEFAULT

    def test_file_over_default(self, region, var_file):
        path = var_file("prod.json", {"region": "eu-west-1"})
        resolved = resolve_inputs([region], env={}, var_files=[path])
        assert resolved["region"].value == "eu-west-1"
        assert resolved["region"].source == ValueSource.FILE
        assert resolved["region"].origin == str(path)

    def test_later_file_wins(self, region, var_file):
        first = var_file("a.json", {"region": "eu-west-1"})
        second = var_file("b.json", {"region": "ap-south-1"})
        resolved = resolve_inputs([region], env={}, var_files=[first, second])
        assert resolved["region"].value == "ap-south-1"

    def test_env_over_file(self, region, var_file):
        path = var_file("prod.json", {"region": "eu-west-1"})
        resolved = resolve_inputs([region], env={"TF_VAR_region": "us-west-2"}, var_files=[path])
        assert resolved["region"].value == "us-west-2"
        assert resolved["region"].origin == "TF_VAR_region"

    def test_cli_over_everything(self, region, var_file):
        path = var_file("prod.json", {"region": "eu-west-1"})
        resolved = resolve_inputs(
            [region],
            cli_vars={"region": "sa-east-1"},
            env={"TF_VAR_region": "us-west-2"},
            var_files=[path],
        )
        assert resolved["region"].value == "sa-east-1"
        assert resolved["region"].source == ValueSource.COMMAND_LINE

    def test_deterministic(self, region, var_file):
        path = var_file("prod.json", {"region": "eu-west-1"})
        kwargs = dict(cli_vars={"region": "sa-east-1"}, env={"TF_VAR_region": "x"}, var_files=[path])
        results = {resolve_inputs([region], **kwargs)["region"].value for _ in range(5)}
        assert results == {"sa-east-1"}

    def test_required_without_value_left_out(self):
        assert resolve_inputs([var("name", "string")], env={}) == {}

    def test_file_values(self, region):
        resolved = resolve_inputs([region], env={}, file_values=[{"region": "eu-north-1"}])
        assert resolved["region"].value == "eu-north-1"
        assert resolved["region"].origin == "<values>"

    def test_custom_env_prefix(self, region):
        resolved = resolve_inputs([region], env={"APP_region": "x"}, env_prefix="APP_")
        assert resolved["region"].value == "x"

    def test_process_environment_not_read_by_default(self, region, monkeypatch):
        monkeypatch.setenv("TF_VAR_region", "ap-south-1")
        resolved = resolve_inputs([region])
        assert resolved["region"].source == ValueSource.DEFAULT

    def test_env_for_undeclared_ignored(self, region):
        resolved = resolve_inputs([region], env={"TF_VAR_other": "x"})
        assert set(resolved) == {"region"}

    def test_file_for_undeclared_ignored(self, region, var_file, caplog):
        path = var_file("extra.json", {"other": 1})
        with caplog.at_level("WARNING"):
            resolve_inputs([region], env={}, var_files=[path])
        assert "undeclared variable 'other'" in caplog.text

    def test_cli_for_undeclared_raises(self, region):
        with pytest.raises(UndeclaredVariableError, match="Value for undeclared variable 'other'"):
            resolve_inputs([region], cli_vars={"other": "x"}, env={})


# ---------------------------------------------------------------------------
# Raw strings
# ---------------------------------------------------------------------------

class TestParseRawValue:
    def test_string_kept(self):
        assert parse_raw_value("80", parse_type("string")) == "80"

    def test_number(self):
        assert parse_raw_value("80", parse_type("number")) == 80
        assert parse_raw_value("2.5", parse_type("number")) == 2.5

    def test_bad_number(self):
        with pytest.raises(TypeMismatchError, match='a number is required, got "eighty"'):
            parse_raw_value("eighty", parse_type("number"), "port")

    def test_bool(self):
        assert parse_raw_value("True", parse_type("bool")) is True
        with pytest.raises(TypeMismatchError):
            parse_raw_value("yes", parse_type("bool"))

    def test_structured_json(self):
        assert parse_raw_value('[80, 443]', parse_type("list(number)")) == [80, 443]
        assert parse_raw_value('{"a": 1}', parse_type("map(number)")) == {"a": 1}

    def test_structured_invalid_json(self):
        with pytest.raises(TypeMismatchError, match="not valid JSON"):
            parse_raw_value("80,443", parse_type("list(number)"))

    def test_any_falls_back_to_string(self):
        assert parse_raw_value("plain", parse_type("any")) == "plain"
        assert parse_raw_value("[1]", parse_type("any")) == [1]


class TestCliAssignment:
    def test_split(self):
        assert parse_cli_assignment("region=us-west-2") == ("region", "us-west-2")

    def test_value_may_contain_equals(self):
        assert parse_cli_assignment("expr=a=b") == ("expr", "a=b")

    @pytest.mark.parametrize("text", ["region", "=x"])
    def test_invalid(self, text):
        with pytest.raises(ConfigError, match="expected NAME=VALUE"):
            parse_cli_assignment(text)


class TestVarFiles:
    def test_yaml(self, tmp_path):
        path = tmp_path / "prod.tfvars.yaml"
        path.write_text("ports: [80, 443]\nname: web\n")
        assert read_var_file(path) == {"ports": [80, 443], "name": "web"}

    def test_empty(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert read_var_file(path) == {}

    def test_not_mapping(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(VarFileError, match="must contain a mapping"):
            read_var_file(path)

    def test_missing(self, tmp_path):
        with pytest.raises(VarFileError, match="Cannot read variable file"):
            read_var_file(tmp_path / "nope.json")

    def test_unparseable(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        with pytest.raises(VarFileError, match="Cannot parse variable file"):
            read_var_file(path)
