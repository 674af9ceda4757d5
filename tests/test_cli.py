"""
Tests for the webstack command line interface.
"""

import json

import pytest
import yaml
from click.testing import CliRunner

from webstack import __version__
from webstack.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "webstack.yaml"
    path.write_text(
        "settings:\n"
        "  stack_name: demo\n"
        "  max_azs: 2\n"
        "app:\n"
        "  stage: prod\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def broken_config(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("app:\n  subnet_mask: 8\n", encoding="utf-8")
    return path


class TestCli:
    """Tests for CLI commands."""

    def test_version(self, runner):
        """--version prints the package version."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_synth_json(self, runner, config_file):
        """synth prints the plan as JSON."""
        result = runner.invoke(cli, ["synth", str(config_file)])

        assert result.exit_code == 0
        plan = json.loads(result.output)
        assert plan["topology"] == "demo"
        assert "instance/web_server" in plan["resources"]

    def test_synth_yaml(self, runner, config_file):
        """synth --format yaml prints the plan as YAML."""
        result = runner.invoke(cli, ["synth", str(config_file), "--format", "yaml"])

        assert result.exit_code == 0
        plan = yaml.safe_load(result.output)
        assert plan["metadata"]["availability_zones"] == ["us-east-1a", "us-east-1b"]

    def test_validate(self, runner, config_file):
        """validate reports a valid topology."""
        result = runner.invoke(cli, ["validate", str(config_file)])

        assert result.exit_code == 0
        assert "Topology 'demo' is valid" in result.output

    def test_targets(self, runner, config_file):
        """targets lists the instances each group deploys to."""
        result = runner.invoke(cli, ["targets", str(config_file)])

        assert result.exit_code == 0
        assert "python-webapp/PythonAppDeploymentGroup" in result.output
        assert "stage in {prod, stage}" in result.output
        assert "-> web_server (application-name=python-web, stage=prod)" in result.output

    def test_targets_none_matching(self, runner, tmp_path):
        """A group without matches is reported."""
        path = tmp_path / "webstack.yaml"
        path.write_text("app:\n  stage: dev\n", encoding="utf-8")

        result = runner.invoke(cli, ["targets", str(path)])

        assert result.exit_code == 0
        assert "no matching instances" in result.output

    def test_outputs(self, runner, config_file):
        """outputs lists the declared exports."""
        result = runner.invoke(cli, ["outputs", str(config_file)])

        assert result.exit_code == 0
        assert "IP Address: Attribute(web_server.public_ip)" in result.output

    def test_invalid_config_exits_nonzero(self, runner, broken_config):
        """An invalid topology exits with status 1."""
        result = runner.invoke(cli, ["validate", str(broken_config)])

        assert result.exit_code == 1
        assert "Could not load" in result.output

    def test_missing_file(self, runner, tmp_path):
        """A missing config file is a usage error."""
        result = runner.invoke(cli, ["synth", str(tmp_path / "absent.yaml")])

        assert result.exit_code == 2
