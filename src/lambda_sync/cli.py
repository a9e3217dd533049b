"""Command-line interface for lambda-sync."""

import logging
import sys
from collections.abc import Callable
from typing import Any

import click
from botocore.exceptions import BotoCoreError, ClientError

from .config import DeployOptions, load_config, parse_key_values
from .deployer import Deployer
from .exceptions import LambdaSyncError
from .models import RunReport
from .naming import add_suffix, resolve_config_path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_ACTION_MARKS = {
    "created": "+",
    "updated": "~",
    "skipped": "=",
    "deleted": "-",
    "not_found": "?",
    "failed": "✗",
}


def common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command."""
    options = [
        click.option(
            "--config",
            "config_path",
            help="Configuration file (default: $LAMBDA_SYNC_CONFIG or lambda-sync.yaml)",
        ),
        click.option("--region", help="AWS region (default: configured region or us-east-1)"),
        click.option("--profile", help="AWS profile (default: boto3 credential chain)"),
        click.option(
            "--endpoint-url",
            help=(
                "AWS endpoint URL "
                "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
            ),
        ),
        click.option("--suffix", help="Suffix appended to function, rule, topic and table names"),
        click.option(
            "--pass-through",
            multiple=True,
            metavar="KEY=VALUE",
            help="Environment variable passed to every function (repeatable)",
        ),
        click.option(
            "--encrypted-pass-through",
            multiple=True,
            metavar="KEY=VALUE",
            help="Environment variable encrypted with kmsEncryptionKeyArn (repeatable)",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Enable debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(package_name="lambda-sync")
def cli() -> None:
    """Deploy AWS Lambda functions and their triggers from a declarative configuration."""
    pass


def _load_options(
    config_path: str | None,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    suffix: str | None,
    pass_through: tuple[str, ...],
    encrypted_pass_through: tuple[str, ...],
    verbose: bool,
    force_update: bool | None = None,
) -> DeployOptions:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)

    options = DeployOptions.from_dict(
        load_config(resolve_config_path(config_path)),
        region=region,
        profile=profile,
        endpoint_url=endpoint_url,
        function_name_suffix=suffix,
        force_update=force_update or None,
    )
    if pass_through or encrypted_pass_through:
        options = options.with_overrides(
            pass_through={**options.pass_through, **parse_key_values(pass_through)},
            encrypted_pass_through={
                **options.encrypted_pass_through,
                **parse_key_values(encrypted_pass_through),
            },
        )
    return options


def _print_report(report: RunReport) -> None:
    click.echo()
    for result in report.functions:
        mark = _ACTION_MARKS.get(result.action, " ")
        line = f"{mark} {result.function_name}: {result.action}"
        if result.version:
            line += f" (version {result.version})"
        click.echo(line)
        for trigger in result.triggers:
            click.echo(f"    {trigger.kind} {trigger.target}: {trigger.action}")
        for orphan in result.orphans_removed:
            click.echo(f"    removed {orphan}")
        for error in result.errors:
            click.echo(f"    ✗ {error}", err=True)

    click.echo()
    click.echo(
        f"Created: {report.created}  Updated: {report.updated}  Skipped: {report.skipped}  "
        f"Deleted: {report.deleted}  Failed: {report.failed}"
    )


def _finish(report: RunReport) -> None:
    _print_report(report)
    if not report.ok:
        sys.exit(1)


@cli.command()
@common_options
@click.option(
    "--force-update",
    is_flag=True,
    help="Update code and configuration even when nothing changed",
)
def deploy(config_path: str | None, force_update: bool, **kwargs: Any) -> None:
    """Create or update every declared function and its triggers."""
    try:
        options = _load_options(config_path, force_update=force_update, **kwargs)
        report = Deployer(options).deploy()
    except (LambdaSyncError, ClientError, BotoCoreError) as e:
        click.echo(f"✗ Deployment failed: {e}", err=True)
        sys.exit(1)
    _finish(report)


@cli.command("update-code")
@common_options
def update_code(config_path: str | None, **kwargs: Any) -> None:
    """Upload the artifact and update the code of existing functions only."""
    try:
        options = _load_options(config_path, **kwargs)
        report = Deployer(options).update_code()
    except (LambdaSyncError, ClientError, BotoCoreError) as e:
        click.echo(f"✗ Code update failed: {e}", err=True)
        sys.exit(1)
    _finish(report)


@cli.command()
@common_options
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt",
)
def delete(config_path: str | None, yes: bool, **kwargs: Any) -> None:
    """Delete every declared function, its triggers and the staged artifact."""
    try:
        options = _load_options(config_path, **kwargs)
        deployer = Deployer(options)
        names = [
            add_suffix(str(d.get("functionName")), options.function_name_suffix)
            for d in options.declarations()
        ]
    except (LambdaSyncError, ClientError, BotoCoreError) as e:
        click.echo(f"✗ Deletion failed: {e}", err=True)
        sys.exit(1)

    if not yes:
        click.confirm(
            f"Are you sure you want to delete {', '.join(names)}?",
            abort=True,
        )

    try:
        report = deployer.delete()
    except (LambdaSyncError, ClientError, BotoCoreError) as e:
        click.echo(f"✗ Deletion failed: {e}", err=True)
        sys.exit(1)
    _finish(report)


@cli.command()
@common_options
@click.option(
    "--force-update",
    is_flag=True,
    help="Plan as if --force-update were passed to deploy",
)
def plan(config_path: str | None, force_update: bool, **kwargs: Any) -> None:
    """Show what deploy would do, without changing anything."""
    try:
        options = _load_options(config_path, force_update=force_update, **kwargs)
        entries = Deployer(options).plan()
    except (LambdaSyncError, ClientError, BotoCoreError) as e:
        click.echo(f"✗ Plan failed: {e}", err=True)
        sys.exit(1)

    failed = False
    for entry in entries:
        line = f"{entry.function_name}: {entry.action}"
        if entry.reasons:
            line += f" ({', '.join(entry.reasons)})"
        click.echo(line, err=entry.action == "failed")
        failed = failed or entry.action == "failed"

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    cli()
