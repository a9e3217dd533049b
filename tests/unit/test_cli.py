"""Tests for CLI commands."""

from unittest.mock import patch

from botocore.exceptions import EndpointConnectionError

import pytest
from click.testing import CliRunner

from lambda_sync.cli import cli
from lambda_sync.exceptions import CredentialsError
from lambda_sync.models import FunctionResult, PlanEntry, RunReport, TriggerOutcome
from tests.unit.conftest import client_error

CONFIG = """\
functionCode: dist/app.zip
version: 1.0.0
lambdaRoleArn: arn:aws:iam::123456789012:role/lambda-exec
passThrough:
  FROM_CONFIG: "1"
lambdaFunctions:
  - functionName: orders
    handler: app.handler
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lambda-sync.yaml"
    path.write_text(CONFIG)
    return str(path)


def report(*results: FunctionResult) -> RunReport:
    return RunReport(functions=list(results))


class TestCLI:
    """Test CLI commands."""

    def test_cli_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Deploy AWS Lambda functions" in result.output

    @pytest.mark.parametrize("command", ["deploy", "delete", "update-code", "plan"])
    def test_command_help(self, runner: CliRunner, command: str) -> None:
        result = runner.invoke(cli, [command, "--help"])
        assert result.exit_code == 0
        assert "--config" in result.output
        assert "--region" in result.output
        assert "--endpoint-url" in result.output
        assert "--pass-through" in result.output

    @patch("lambda_sync.cli.Deployer")
    def test_deploy_success(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.deploy.return_value = report(
            FunctionResult(
                "orders",
                action="created",
                version="1",
                triggers=[TriggerOutcome("SNS", "alerts", "created")],
            )
        )

        result = runner.invoke(cli, ["deploy", "--config", config_file, "--region", "eu-west-1"])

        assert result.exit_code == 0, result.output
        assert "orders: created (version 1)" in result.output
        assert "SNS alerts: created" in result.output
        assert "Created: 1" in result.output

        options = mock_deployer.call_args.args[0]
        assert options.region == "eu-west-1"
        assert options.function_code == "dist/app.zip"
        assert options.force_update is False

    @patch("lambda_sync.cli.Deployer")
    def test_deploy_overrides(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.deploy.return_value = report()

        result = runner.invoke(
            cli,
            [
                "deploy",
                "--config",
                config_file,
                "--force-update",
                "--suffix",
                "-dev",
                "--pass-through",
                "STAGE=dev",
            ],
        )

        assert result.exit_code == 0, result.output
        options = mock_deployer.call_args.args[0]
        assert options.force_update is True
        assert options.function_name_suffix == "-dev"
        assert options.pass_through == {"FROM_CONFIG": "1", "STAGE": "dev"}

    @patch("lambda_sync.cli.Deployer")
    def test_config_from_environment(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.deploy.return_value = report()

        result = runner.invoke(cli, ["deploy"], env={"LAMBDA_SYNC_CONFIG": config_file})

        assert result.exit_code == 0, result.output
        assert mock_deployer.call_args.args[0].function_code == "dist/app.zip"

    @patch("lambda_sync.cli.Deployer")
    def test_failed_function_exits_1(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.deploy.return_value = report(
            FunctionResult("orders", action="failed", errors=["boom"]),
            FunctionResult("billing", action="skipped"),
        )

        result = runner.invoke(cli, ["deploy", "--config", config_file])

        assert result.exit_code == 1
        assert "boom" in result.output
        assert "Failed: 1" in result.output

    @patch("lambda_sync.cli.Deployer")
    def test_fatal_error_exits_1(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.side_effect = CredentialsError("ops")

        result = runner.invoke(cli, ["deploy", "--config", config_file, "--profile", "ops"])

        assert result.exit_code == 1
        assert "Deployment failed" in result.output
        assert "profile 'ops'" in result.output

    def test_bad_pass_through(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(cli, ["deploy", "--config", config_file, "--pass-through", "NOVALUE"])

        assert result.exit_code == 1
        assert "KEY=VALUE" in result.output

    @patch("lambda_sync.cli.Deployer")
    def test_update_code(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.update_code.return_value = report(
            FunctionResult("orders", action="not_found")
        )

        result = runner.invoke(cli, ["update-code", "--config", config_file])

        assert result.exit_code == 0, result.output
        assert "orders: not_found" in result.output

    @patch("lambda_sync.cli.Deployer")
    def test_delete_with_yes(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.delete.return_value = report(FunctionResult("orders", action="deleted"))

        result = runner.invoke(cli, ["delete", "--config", config_file, "--yes"])

        assert result.exit_code == 0, result.output
        assert "Deleted: 1" in result.output

    @patch("lambda_sync.cli.Deployer")
    def test_delete_requires_confirmation(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(cli, ["delete", "--config", config_file], input="n\n")

        assert result.exit_code == 1
        assert "Are you sure you want to delete orders?" in result.output
        mock_deployer.return_value.delete.assert_not_called()

    @patch("lambda_sync.cli.Deployer")
    def test_plan(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.plan.return_value = [
            PlanEntry("orders", "update", ("timeout", "handler")),
            PlanEntry("billing", "create"),
        ]

        result = runner.invoke(cli, ["plan", "--config", config_file])

        assert result.exit_code == 0, result.output
        assert "orders: update (timeout, handler)" in result.output
        assert "billing: create" in result.output
        mock_deployer.return_value.deploy.assert_not_called()

    @patch("lambda_sync.cli.Deployer")
    def test_plan_failure_exits_1(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.plan.return_value = [PlanEntry("broken", "failed", ("bad config",))]

        result = runner.invoke(cli, ["plan", "--config", config_file])

        assert result.exit_code == 1

    @patch("lambda_sync.cli.Deployer")
    def test_delete_prompt_names_suffixed_functions(
        self, mock_deployer, runner: CliRunner, config_file: str
    ) -> None:
        result = runner.invoke(
            cli, ["delete", "--config", config_file, "--suffix", "-dev"], input="n\n"
        )

        assert result.exit_code == 1
        assert "Are you sure you want to delete orders-dev?" in result.output


class TestSetupFailures:
    """AWS failures during shared setup end with an error line, not a traceback."""

    def test_bucket_listing_denied(self, runner: CliRunner, clients, tmp_path) -> None:
        artifact = tmp_path / "app.zip"
        artifact.write_bytes(b"PK")
        config = tmp_path / "lambda-sync.yaml"
        config.write_text(CONFIG.replace("dist/app.zip", str(artifact)))
        clients.s3.list_buckets.side_effect = client_error("AccessDenied", "ListBuckets")

        with patch("lambda_sync.deployer.AwsClients.from_options", return_value=clients):
            result = runner.invoke(cli, ["deploy", "--config", str(config)])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "✗ Deployment failed" in result.output
        assert "AccessDenied" in result.output
        clients.lambda_.create_function.assert_not_called()

    @patch("lambda_sync.cli.Deployer")
    def test_endpoint_unreachable(self, mock_deployer, runner: CliRunner, config_file: str) -> None:
        mock_deployer.return_value.update_code.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:4566"
        )

        result = runner.invoke(cli, ["update-code", "--config", config_file])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "✗ Code update failed" in result.output
        assert "localhost:4566" in result.output
